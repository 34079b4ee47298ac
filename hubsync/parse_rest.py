"""
hubsync/parse_rest.py -- RemoteStore over the Parse REST API.

Talks to ``<server_url>/classes/<ClassName>`` with urllib.  Requests carry
the application id and REST key headers, plus the master key when one is
configured.  Every network or HTTP failure surfaces as
:class:`~hubsync.exceptions.TransportError`.

The REST API has no push channel, so :meth:`ParseRestStore.subscribe`
polls.  The first poll only records a baseline; each later poll diffs
against the previous snapshot:

    id not seen before          -> create
    updatedAt changed           -> update
    id no longer returned       -> delete

Usage:
    from hubsync.config import load_settings
    from hubsync.parse_rest import ParseRestStore

    store = ParseRestStore(load_settings())
    videos = store.query("videos", sort="-createdAt", limit=100)
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from typing import Any

from hubsync.config import SyncSettings
from hubsync.event_bus import Subscription
from hubsync.exceptions import TransportError
from hubsync.models.base import EntityKind
from hubsync.remote_store import Notification, NotificationHandler, PatchOp

logger = logging.getLogger(__name__)


def _diff_snapshots(
    previous: Mapping[str, Mapping[str, Any]],
    current: Mapping[str, Mapping[str, Any]],
) -> list[tuple[PatchOp, Mapping[str, Any]]]:
    """Changes between two ``{objectId: record}`` snapshots, deletes last."""
    changes: list[tuple[PatchOp, Mapping[str, Any]]] = []
    for object_id, record in current.items():
        before = previous.get(object_id)
        if before is None:
            changes.append((PatchOp.CREATE, record))
        elif before.get("updatedAt") != record.get("updatedAt"):
            changes.append((PatchOp.UPDATE, record))
    for object_id, record in previous.items():
        if object_id not in current:
            changes.append((PatchOp.DELETE, record))
    return changes


class ParseRestStore:
    """Parse Server client implementing the RemoteStore protocol.

    Parameters
    ----------
    settings : SyncSettings
        Server URL, credentials, timeout, poll interval and query limit.
    """

    def __init__(self, settings: SyncSettings):
        self.settings = settings
        self._base_url = settings.server_url.rstrip("/")
        self._pollers: list[_Poller] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # RemoteStore protocol
    # ------------------------------------------------------------------

    def query(self, kind, filters=None, sort=None, limit=None) -> list[dict[str, Any]]:
        kind = EntityKind.parse(kind)
        params: dict[str, str] = {
            "limit": str(limit if limit is not None else self.settings.query_limit)
        }
        if filters:
            params["where"] = json.dumps(dict(filters), separators=(",", ":"))
        if sort:
            params["order"] = sort
        data = self._request("GET", f"/classes/{kind.class_name}", params=params)
        results = data.get("results", [])
        if not isinstance(results, list):
            raise TransportError(f"Unexpected response for {kind.class_name} query")
        return results

    def save(self, kind, object_id, fields) -> dict[str, Any]:
        kind = EntityKind.parse(kind)
        body = {k: v for k, v in dict(fields).items() if k not in ("objectId", "createdAt", "updatedAt")}
        if object_id is None:
            data = self._request("POST", f"/classes/{kind.class_name}", body=body)
            record = {**body, **data}
            record.setdefault("updatedAt", record.get("createdAt"))
        else:
            data = self._request("PUT", f"/classes/{kind.class_name}/{object_id}", body=body)
            record = {**body, **data, "objectId": object_id}
        return record

    def delete(self, kind, object_id) -> None:
        kind = EntityKind.parse(kind)
        self._request("DELETE", f"/classes/{kind.class_name}/{object_id}")

    def subscribe(self, kind, handler: NotificationHandler) -> Subscription:
        """Poll *kind* every ``poll_interval`` seconds and report changes.

        Raises
        ------
        TransportError
            If the baseline snapshot cannot be fetched.
        """
        kind = EntityKind.parse(kind)
        poller = _Poller(self, kind, handler, self.settings.poll_interval)
        poller.start()
        with self._lock:
            self._pollers.append(poller)

        def _cancel() -> None:
            poller.stop()
            with self._lock:
                if poller in self._pollers:
                    self._pollers.remove(poller)

        return Subscription(kind.value, _cancel)

    def close(self) -> None:
        """Stop every polling subscription."""
        with self._lock:
            pollers, self._pollers = self._pollers, []
        for poller in pollers:
            poller.stop()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "X-Parse-Application-Id": self.settings.application_id,
            "X-Parse-REST-API-Key": self.settings.rest_api_key,
            "Content-Type": "application/json",
        }
        if self.settings.master_key:
            headers["X-Parse-Master-Key"] = self.settings.master_key
        return headers

    def _request(self, method: str, path: str, *, params=None, body=None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, headers=self._headers(), method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.settings.request_timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            detail = _error_detail(exc)
            raise TransportError(f"{method} {path} failed with HTTP {exc.code}: {detail}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise TransportError(f"{method} {path} failed: {exc.reason}") from exc
        except (TimeoutError, OSError) as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON") from exc
        return parsed if isinstance(parsed, dict) else {}


def _error_detail(exc: urllib.error.HTTPError) -> str:
    try:
        payload = json.loads(exc.read().decode("utf-8"))
    except (ValueError, OSError):
        return str(exc.reason)
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return str(exc.reason)


class _Poller:
    """Background thread turning periodic queries into notifications."""

    def __init__(self, store: ParseRestStore, kind: EntityKind, handler: NotificationHandler, interval: float):
        self.store = store
        self.kind = kind
        self.handler = handler
        self.interval = interval
        self._stop = threading.Event()
        self._snapshot: dict[str, dict[str, Any]] | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"hubsync-poll-{kind.value}", daemon=True
        )

    def start(self) -> None:
        """Take the baseline snapshot, then poll in the background.

        The baseline is fetched on the calling thread so that any change
        made after ``subscribe`` returns is reported by a later poll.
        """
        self.poll_once()
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)

    def poll_once(self) -> int:
        """Query once and deliver any changes.  Returns the number delivered."""
        records = self.store.query(self.kind)
        current = {str(r["objectId"]): r for r in records if r.get("objectId")}
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return 0

        changes = _diff_snapshots(previous, current)
        for op, record in changes:
            self.handler(Notification(self.kind, op, record))
        return len(changes)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll_once()
            except TransportError as exc:
                logger.warning("Polling %s failed: %s", self.kind.value, exc)
            except Exception:
                logger.exception("Change handler for %s failed", self.kind.value)
