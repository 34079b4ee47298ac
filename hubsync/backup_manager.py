"""
hubsync/backup_manager.py -- Catalog snapshots written before bulk imports.

Each backup is a timestamped ZIP in the backup directory holding two
members:

    manifest.json   version, timestamp, label, per-kind entity counts
    catalog.json    the full export snapshot (areas, videos, tags, ...)

Usage:
    from hubsync.backup_manager import BackupManager

    bm = BackupManager("/var/lib/hubsync/backups")
    meta = bm.create_backup(synchronizer.export_snapshot(), label="pre-import")
    latest = bm.list_backups()[0]
    snapshot = bm.load_backup(latest["path"])
    bm.cleanup_old_backups(keep_count=10)
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any

from hubsync.exceptions import CatalogSyncError
from hubsync.utils import now_utc, slugify

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
CATALOG_NAME = "catalog.json"


class BackupManager:
    """Creates, lists, loads and prunes catalog backups.

    Parameters
    ----------
    backup_dir : str or pathlib.Path
        Directory the ZIP files live in.  Created if missing.
    """

    MANIFEST_VERSION = 1

    def __init__(self, backup_dir):
        self.backups_dir = Path(backup_dir).resolve()
        os.makedirs(str(self.backups_dir), exist_ok=True)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_backup(self, snapshot: dict[str, Any], label: str | None = None) -> dict:
        """Write *snapshot* to a new backup ZIP.

        Parameters
        ----------
        snapshot : dict
            An export snapshot, as returned by
            ``ContentSynchronizer.export_snapshot()``.
        label : str, optional
            Appended to the filename after slugifying.

        Returns
        -------
        dict
            Metadata with keys ``path``, ``filename``, ``size_bytes``,
            ``timestamp``, ``label`` and ``entity_counts``.

        Raises
        ------
        CatalogSyncError
            If the archive cannot be written.
        """
        now = now_utc()
        timestamp_str = now.strftime("%Y%m%d_%H%M%S_%f")
        safe_label = slugify(label) if label else ""
        filename = f"backup_{timestamp_str}_{safe_label}.zip" if safe_label else f"backup_{timestamp_str}.zip"
        final_path = self.backups_dir / filename

        manifest = {
            "backup_version": self.MANIFEST_VERSION,
            "timestamp": now.isoformat(),
            "label": label or "",
            "entity_counts": _entity_counts(snapshot),
        }

        fd, tmp_path = tempfile.mkstemp(suffix=".zip", prefix="backup_tmp_", dir=str(self.backups_dir))
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_path, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2, ensure_ascii=False))
                zf.writestr(CATALOG_NAME, json.dumps(snapshot, indent=2, ensure_ascii=False, default=str))
            shutil.move(tmp_path, str(final_path))
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise CatalogSyncError(f"Could not create backup in {self.backups_dir}: {exc}") from exc

        logger.info("Backup written: %s", final_path)
        return {
            "path": str(final_path),
            "filename": filename,
            "size_bytes": os.path.getsize(str(final_path)),
            "timestamp": manifest["timestamp"],
            "label": manifest["label"],
            "entity_counts": manifest["entity_counts"],
        }

    # ------------------------------------------------------------------
    # Listing and cleanup
    # ------------------------------------------------------------------

    def list_backups(self) -> list[dict]:
        """Return all readable backups, newest first."""
        backups: list[dict] = []
        if not self.backups_dir.exists():
            return backups

        for entry in os.scandir(str(self.backups_dir)):
            if entry.is_file() and entry.name.startswith("backup_") and entry.name.endswith(".zip"):
                if entry.name.startswith("backup_tmp_"):
                    continue
                info = self._read_metadata(entry.path)
                if info is not None:
                    backups.append(info)

        backups.sort(key=lambda b: (b.get("timestamp", ""), b["filename"]), reverse=True)
        return backups

    def cleanup_old_backups(self, keep_count: int = 10) -> list[str]:
        """Keep the *keep_count* most recent backups and delete the rest.

        Returns the paths that were deleted.
        """
        deleted: list[str] = []
        for backup in self.list_backups()[keep_count:]:
            try:
                os.remove(backup["path"])
                deleted.append(backup["path"])
            except OSError as exc:
                logger.warning("Could not delete old backup %s: %s", backup["path"], exc)
        if deleted:
            logger.info("Removed %d old backup(s)", len(deleted))
        return deleted

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_backup(self, backup_path: str) -> dict[str, Any]:
        """Return the snapshot stored in *backup_path*.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        CatalogSyncError
            If the file is not a readable backup archive.
        """
        if not os.path.isfile(backup_path):
            raise FileNotFoundError(f"Backup not found: {backup_path}")
        try:
            with zipfile.ZipFile(backup_path, "r") as zf:
                return json.loads(zf.read(CATALOG_NAME).decode("utf-8"))
        except (zipfile.BadZipFile, KeyError, json.JSONDecodeError) as exc:
            raise CatalogSyncError(f"'{backup_path}' is not a valid catalog backup: {exc}") from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_metadata(self, backup_path: str) -> dict | None:
        try:
            with zipfile.ZipFile(backup_path, "r") as zf:
                manifest = json.loads(zf.read(MANIFEST_NAME).decode("utf-8"))
        except (zipfile.BadZipFile, KeyError, json.JSONDecodeError, OSError):
            logger.debug("Skipping unreadable backup %s", backup_path)
            return None
        return {
            "path": backup_path,
            "filename": os.path.basename(backup_path),
            "size_bytes": os.path.getsize(backup_path),
            "timestamp": manifest.get("timestamp", ""),
            "label": manifest.get("label", ""),
            "entity_counts": manifest.get("entity_counts", {}),
        }


def _entity_counts(snapshot: dict[str, Any]) -> dict[str, int]:
    metadata = snapshot.get("metadata") or {}
    return {
        "areas": metadata.get("totalAreas", len(snapshot.get("areas", []))),
        "subcategories": metadata.get(
            "totalSubcategories",
            sum(len(a.get("subcategories", [])) for a in snapshot.get("areas", [])),
        ),
        "videos": metadata.get("totalVideos", len(snapshot.get("videos", []))),
        "tags": metadata.get("totalTags", len(snapshot.get("tags", []))),
    }
