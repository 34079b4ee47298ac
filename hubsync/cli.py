"""
hubsync/cli.py -- Command-line entry point.

Usage::

    hubsync export -o catalog.json
    hubsync import approvideo.json --overwrite
    hubsync search gabion --min-views 100 --has-youtube
    hubsync analytics
    hubsync watch

    # against a local JSON file of flat records instead of the server
    hubsync --local records.json search bamboo
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading

from hubsync import __version__
from hubsync.backup_manager import BackupManager
from hubsync.config import SyncSettings, load_settings
from hubsync.event_bus import EVENT_NAMES
from hubsync.exceptions import CatalogSyncError
from hubsync.parse_rest import ParseRestStore
from hubsync.query_engine import SearchFilters
from hubsync.reconciler import ImportPolicy
from hubsync.remote_store import InMemoryRemoteStore
from hubsync.synchronizer import ContentSynchronizer
from hubsync.utils import safe_read_json, safe_write_json

logger = logging.getLogger("hubsync")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hubsync", description="ApproVideo content graph synchronizer")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--config", help="Path to a settings JSON file")
    parser.add_argument("--local", metavar="FILE", help="Use flat records from FILE instead of the server")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="Write the structured catalog as JSON")
    p_export.add_argument("-o", "--output", help="Output file (default: stdout)")

    p_import = sub.add_parser("import", help="Merge a JSON payload into the store")
    p_import.add_argument("file")
    p_import.add_argument("--overwrite", action="store_true", help="Update items that already exist")
    p_import.add_argument("--no-validate", action="store_true", help="Skip schema validation")
    p_import.add_argument("--no-backup", action="store_true", help="Do not back up before importing")

    p_search = sub.add_parser("search", help="Search videos")
    p_search.add_argument("text", nargs="?", default="")
    p_search.add_argument("--area", action="append", default=[], help="Area id (repeatable)")
    p_search.add_argument("--tag", action="append", default=[], help="Tag (repeatable, exact match)")
    p_search.add_argument("--min-views", type=int, default=0)
    youtube = p_search.add_mutually_exclusive_group()
    youtube.add_argument("--has-youtube", dest="has_youtube", action="store_true", default=None)
    youtube.add_argument("--no-youtube", dest="has_youtube", action="store_false")
    p_search.add_argument("--creator", action="append", default=[], help="Creator (repeatable)")

    sub.add_parser("analytics", help="Print catalog analytics")
    sub.add_parser("watch", help="Follow live changes until interrupted")
    return parser


def _make_synchronizer(args) -> tuple[ContentSynchronizer, SyncSettings]:
    settings = load_settings(args.config)
    if args.local:
        records = safe_read_json(args.local)
        if not isinstance(records, dict):
            raise CatalogSyncError(f"Could not read flat records from {args.local}")
        store = InMemoryRemoteStore(records)
    else:
        store = ParseRestStore(settings)
    return ContentSynchronizer(
        store,
        backup_manager=BackupManager(settings.backup_dir),
        query_limit=settings.query_limit,
    ), settings


def _cmd_export(sync: ContentSynchronizer, args) -> None:
    snapshot = sync.export_snapshot()
    if args.output:
        safe_write_json(args.output, snapshot)
        logger.info("Catalog written to %s", args.output)
    else:
        _print_json(snapshot)


def _cmd_import(sync: ContentSynchronizer, args, settings) -> None:
    payload = safe_read_json(args.file)
    if isinstance(payload, list):
        payload = {"areas": payload}
    if not isinstance(payload, dict):
        raise CatalogSyncError(f"Could not read an import payload from {args.file}")
    policy = ImportPolicy(
        overwrite_existing=args.overwrite,
        validate_data=not args.no_validate,
        create_backup=not args.no_backup,
    )
    report = sync.import_bulk(payload, policy)
    if policy.create_backup and sync.backup_manager is not None:
        sync.backup_manager.cleanup_old_backups(settings.keep_backups)
    _print_json(report.to_dict())


def _cmd_search(sync: ContentSynchronizer, args) -> None:
    filters = SearchFilters(
        areas=args.area,
        tags=args.tag,
        min_views=args.min_views,
        has_youtube_id=args.has_youtube,
        creators=args.creator,
    )
    _print_json(sync.search(args.text, filters).to_dict())


def _cmd_watch(sync: ContentSynchronizer) -> None:
    for name in sorted(EVENT_NAMES):
        sync.on_change(name, lambda payload, name=name: logger.info("%s %s", name, _describe(payload)))
    sync.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        sync.stop()


def _describe(payload) -> str:
    if isinstance(payload, dict):
        return json.dumps(payload)
    label = getattr(payload, "title", None) or getattr(payload, "name", None) or ""
    return f"{getattr(payload, 'id', '?')} {label}".strip()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    try:
        sync, settings = _make_synchronizer(args)
        if args.command == "watch":
            _cmd_watch(sync)
            return 0

        sync.refresh()
        if args.command == "export":
            _cmd_export(sync, args)
        elif args.command == "import":
            _cmd_import(sync, args, settings)
        elif args.command == "search":
            _cmd_search(sync, args)
        elif args.command == "analytics":
            _print_json(sync.analytics())
    except CatalogSyncError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
