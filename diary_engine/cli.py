"""Command line entry point: backup, restore, migrate, sweep, serve."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from diary_engine.config import ConfigLoader, ConfigLoadError
from diary_engine.main import setup_logging
from diary_engine.services.backup_service import BackupError
from diary_engine.services.channels import ChannelError
from diary_engine.services.restore_service import RestoreError
from diary_engine.services.startup import build_services, sweep_orphans

logger = logging.getLogger(__name__)


def _cmd_backup(services, args) -> int:
    if args.cloud:
        result = services.transfer.upload_backup_to_cloud()
        print(f"✓ Backup uploaded to cloud ({result.media_count} media file(s))")
    elif args.export:
        exported = services.transfer.export_backup_file()
        print(f"✓ Backup exported to: {exported}")
        return 0
    else:
        result = services.archiver.create_backup()
        print(f"✓ Backup created: {result.archive_path} ({result.media_count} media file(s))")
    
    for failure in result.skipped:
        print(f"  skipped {failure.reference}: {failure.reason}")
    return 0


def _cmd_restore(services, args) -> int:
    if args.cloud:
        report = services.transfer.restore_from_cloud()
    elif args.archive:
        report = services.transfer.import_backup_file(Path(args.archive))
    else:
        print("restore needs an archive path or --cloud", file=sys.stderr)
        return 2
    
    print(f"✓ Database restored, {report.restored_files} media file(s) put back")
    for failure in report.failures:
        print(f"  failed {failure.reference}: {failure.reason}")
    print("Restart the app to load the restored diary.")
    return 0


def _cmd_migrate(services, args) -> int:
    services.database.init_schema()
    services.media_store.initialize_directories()
    report = services.migration_runner.run(force=args.force)
    if report.skipped:
        print(f"Migration already done for version {report.current_version}")
        return 0
    
    print(f"✓ Migrated {report.migrated_count} reference(s)")
    for failure in report.failures:
        print(f"  {failure.kind.value} row {failure.row_id}: {failure.reason}")
    return 0


def _cmd_sweep(services, args) -> int:
    services.database.init_schema()
    removed = sweep_orphans(services, grace_seconds=args.grace)
    print(f"✓ Removed {len(removed)} orphaned media file(s)")
    return 0


def _cmd_serve(services, args) -> int:
    from diary_engine.main import main as serve
    services.close()
    serve(services.config)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diary-engine",
        description="Diary media storage and backup tools."
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to system.yaml (defaults to config/system.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    
    backup = subparsers.add_parser("backup", help="Create a backup archive")
    target = backup.add_mutually_exclusive_group()
    target.add_argument("--cloud", action="store_true", help="Upload to the cloud slot")
    target.add_argument("--export", action="store_true", help="Copy to the export directory")
    backup.set_defaults(handler=_cmd_backup)
    
    restore = subparsers.add_parser("restore", help="Restore from a backup archive")
    restore.add_argument("archive", nargs="?", help="Path to the .zip archive")
    restore.add_argument("--cloud", action="store_true", help="Restore the cloud backup")
    restore.set_defaults(handler=_cmd_restore)
    
    migrate = subparsers.add_parser("migrate", help="Migrate legacy media references")
    migrate.add_argument("--force", action="store_true", help="Ignore the version marker")
    migrate.set_defaults(handler=_cmd_migrate)
    
    sweep = subparsers.add_parser("sweep", help="Delete media files no row references")
    sweep.add_argument("--grace", type=int, help="Minimum file age in seconds")
    sweep.set_defaults(handler=_cmd_sweep)
    
    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.set_defaults(handler=_cmd_serve)
    
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    
    try:
        config = ConfigLoader().load_system_config(Path(args.config) if args.config else None)
    except ConfigLoadError as e:
        print(str(e), file=sys.stderr)
        return 1
    
    if args.command != "serve":
        setup_logging(debug=config.debug)
    
    services = build_services(config)
    try:
        return args.handler(services, args)
    except (BackupError, RestoreError, ChannelError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
