#!/usr/bin/env python3
"""
CLI entrypoint for the FBS project.

Usage examples:
  python -m fbs run --config config.yml
  python -m fbs backup notes.txt report.docx --backup-dir D:/Backups --ext .txt .docx
  python -m fbs cleanup --backup-dir D:/Backups --retention-days 14
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Any, List, Optional

from .backup import BackupEngine, BackupStatus
from .config import ServiceConfig
from .errors import FBSError
from .logging_config import LogSink, get_logger
from .monitor import MonitoringService
from .settings import build_settings


def _load(args: Any) -> Optional[ServiceConfig]:
    """Config from defaults, file and CLI; prints the error and returns None when invalid."""
    try:
        settings = build_settings(args, args.config)
        return ServiceConfig.from_dict(settings)
    except FBSError as e:
        print(f"ERROR: {e}")
        return None


def _sink(config: ServiceConfig) -> LogSink:
    return LogSink(get_logger("fbs", config.log_file))


def _engine(config: ServiceConfig, sink: LogSink) -> BackupEngine:
    return BackupEngine(
        Path(config.backup_folder),
        config.file_extensions,
        sink,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        journal=Path(config.journal) if config.journal else None,
    )


def run_command(args: Any) -> int:
    """
    Start the monitoring service in the foreground. Blocks until Ctrl+C.
    """
    config = _load(args)
    if config is None:
        return 1
    monitor = MonitoringService(config, _sink(config))
    try:
        monitor.start()
    except FBSError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Watching {config.monitored_folder} -> {config.backup_folder} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        monitor.stop()
    return 0


def backup_command(args: Any) -> int:
    """
    One-off backup of the given files, using the same filter and retry policy.
    """
    config = _load(args)
    if config is None:
        return 1
    if not config.backup_folder:
        print("ERROR: backup folder is not configured (use --backup-dir or config)")
        return 1

    engine = _engine(config, _sink(config))
    failures = 0
    for f in args.files:
        result = engine.backup_if_allowed(f)
        if result.status is BackupStatus.BACKED_UP:
            print(f" + {f} -> {result.destination}")
        elif result.skipped:
            print(f" ~ {f} ({result.status.value})")
        else:
            failures += 1
            print(f" ! {f}: {result.error}")
    return 1 if failures else 0


def cleanup_command(args: Any) -> int:
    """
    Run a single retention sweep over the backup folder.
    """
    config = _load(args)
    if config is None:
        return 1
    if not config.backup_folder:
        print("ERROR: backup folder is not configured (use --backup-dir or config)")
        return 1

    engine = _engine(config, _sink(config))
    result = engine.cleanup_old_backups(config.cleanup_retention_days)
    if result.missing_store:
        print(f"Backup folder does not exist: {config.backup_folder}")
        return 0

    for p in result.deleted:
        print(" -", p)
    print(f"Deleted {len(result.deleted)} backups older than {config.cleanup_retention_days} days")
    return 1 if result.errors else 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="Path to YAML config file", default=None)
    p.add_argument("--monitor", help="Folder to monitor", default=None)
    p.add_argument("--backup-dir", dest="backup_dir", help="Backup store folder", default=None)
    p.add_argument("--log", help="Path to log file", default=None)
    p.add_argument(
        "--retention-days",
        dest="retention_days",
        type=int,
        help="Delete backups older than this many days",
        default=None,
    )
    p.add_argument(
        "--ext",
        nargs="*",
        action="append",
        help="File extensions to back up (can be passed multiple times)",
        default=None,
    )


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fbs", description="File Backup Service")
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="Watch a folder and back up changed files")
    _add_common(p_run)

    p_backup = sub.add_parser("backup", help="Back up the given files once")
    p_backup.add_argument("files", nargs="+", help="Files to back up")
    _add_common(p_backup)

    p_cleanup = sub.add_parser("cleanup", help="Delete backups older than the retention window")
    _add_common(p_cleanup)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_cli()
    args = parser.parse_args(argv)

    if args.command == "run":
        return run_command(args)
    if args.command == "backup":
        return backup_command(args)
    if args.command == "cleanup":
        return cleanup_command(args)

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
