"""
Backup engine: filter, copy with bounded retry, and retention cleanup.

Design principles:
1. Per-item containment: one file's failure is a result, never an exception
   that escapes into the watcher or the sweeper.
2. Never overwrite: every artifact name is reserved with an exclusive create.
3. No partial artifacts: bytes land in a .partial sibling first and are moved
   into place only once the copy has completed.
"""
from __future__ import annotations

import contextlib
import errno
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .logger import append_log
from .logging_config import LogSink
from .utils import creation_time, normalize_extensions

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 5.0
NAME_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
PARTIAL_SUFFIX = ".partial"

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_WINDOWS_LOCK_ERRORS = {32, 33}
_POSIX_LOCK_ERRNOS = {errno.EBUSY, errno.EAGAIN, errno.ETXTBSY}


class BackupStatus(str, Enum):
    BACKED_UP = "backed_up"
    SKIPPED_EXTENSION = "skipped_extension"
    SKIPPED_MISSING = "skipped_missing"
    FAILED_TRANSIENT = "failed_transient"
    FAILED = "failed"


@dataclass(frozen=True)
class BackupResult:
    status: BackupStatus
    source: str
    destination: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is BackupStatus.BACKED_UP

    @property
    def skipped(self) -> bool:
        return self.status in (BackupStatus.SKIPPED_EXTENSION, BackupStatus.SKIPPED_MISSING)


@dataclass
class CleanupResult:
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    missing_store: bool = False


def is_transient_lock(exc: BaseException) -> bool:
    """
    True when the failure means "someone else holds the file right now".

    Windows reports sharing/lock violations through winerror; POSIX has no
    mandatory locking but EBUSY/EAGAIN/ETXTBSY are the nearest equivalents.
    """
    if not isinstance(exc, OSError):
        return False
    if getattr(exc, "winerror", None) in _WINDOWS_LOCK_ERRORS:
        return True
    if exc.errno in _POSIX_LOCK_ERRNOS:
        return True
    # strerror only; the file name itself may well contain "locked"
    text = exc.strerror or " ".join(a for a in exc.args if isinstance(a, str))
    return "locked" in text.lower()


class BackupEngine:
    """
    Copies allow-listed files into the backup store and prunes old copies.

    Artifacts are named "{yyyyMMdd_HHmmss}_{file name}". When that name is
    already taken the timestamp part gains a counter: "{ts}_1_{file name}".
    """

    def __init__(
        self,
        backup_folder: Path,
        extensions: Iterable[str],
        sink: Optional[LogSink] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        journal: Optional[Path] = None,
        copier: Callable[[str, str], object] = shutil.copyfile,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if backup_folder is None or not str(backup_folder).strip():
            raise ValueError("backup_folder is required")
        self.backup_folder = Path(backup_folder)
        self.extensions = frozenset(normalize_extensions(extensions))
        self.sink = sink or LogSink()
        self.max_retries = max_retries if max_retries > 0 else DEFAULT_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay > 0 else DEFAULT_RETRY_DELAY
        self.journal = Path(journal) if journal else None
        # copyfile, not copy2: the artifact's timestamps must be the backup time
        self.copier = copier
        self.sleep = sleep
        self.clock = clock

    # ---- filtering -------------------------------------------------------
    def should_backup(self, path: str) -> bool:
        if not self.extensions:
            self.sink.record(f"File skipped (no file extensions are configured for backup): {path}")
            return False

        ext = os.path.splitext(str(path))[1].lower()
        if ext in self.extensions:
            return True

        self.sink.record(f"File skipped (unsupported extension): {path}")
        return False

    def backup_if_allowed(self, path: str, observed_at: Optional[datetime] = None) -> BackupResult:
        if not self.should_backup(path):
            return BackupResult(BackupStatus.SKIPPED_EXTENSION, source=str(path))
        return self.backup_file(path, observed_at=observed_at)

    # ---- backup ----------------------------------------------------------
    def backup_file(self, source: str, observed_at: Optional[datetime] = None) -> BackupResult:
        """
        Copy one file into the store under the retry policy.

        observed_at names the artifact; it defaults to the current time.
        """
        src = Path(source)
        if not src.is_file():
            self.sink.record(f"File not found: {source}")
            return BackupResult(BackupStatus.SKIPPED_MISSING, source=str(source))

        stamp = observed_at or self.clock()
        return self.execute_with_retry(
            lambda: self._copy_once(src, stamp),
            "backup_file",
            source=str(source),
        )

    def execute_with_retry(
        self,
        operation: Callable[[], Path],
        operation_name: str,
        source: str = "",
    ) -> BackupResult:
        attempts = 0
        while True:
            attempts += 1
            try:
                destination = operation()
            except OSError as e:
                if isinstance(e, FileNotFoundError) and source and not Path(source).exists():
                    # vanished between the event and the copy
                    self.sink.record(f"File not found: {source}")
                    return BackupResult(
                        BackupStatus.SKIPPED_MISSING, source=source, attempts=attempts
                    )

                if not is_transient_lock(e):
                    self.sink.record(
                        f"Unhandled exception during operation '{operation_name}' for '{source}': {e}",
                        logging.ERROR,
                    )
                    return BackupResult(
                        BackupStatus.FAILED, source=source, attempts=attempts, error=str(e)
                    )

                if attempts >= self.max_retries:
                    self.sink.record(
                        f"Operation '{operation_name}' failed after {self.max_retries} retries: {source}",
                        logging.ERROR,
                    )
                    return BackupResult(
                        BackupStatus.FAILED_TRANSIENT,
                        source=source,
                        attempts=attempts,
                        error=str(e),
                    )

                self.sink.record(
                    f"Operation '{operation_name}' failed on attempt {attempts}. "
                    f"Retrying in {self.retry_delay:g} seconds...",
                    logging.WARNING,
                )
                self.sleep(self.retry_delay)
                continue
            except Exception as e:
                self.sink.record(
                    f"Unhandled exception during operation '{operation_name}' for '{source}': {e}",
                    logging.ERROR,
                )
                return BackupResult(BackupStatus.FAILED, source=source, attempts=attempts, error=str(e))

            self._log_backup_action(source, destination)
            return BackupResult(
                BackupStatus.BACKED_UP,
                source=source,
                destination=str(destination),
                attempts=attempts,
            )

    def _copy_once(self, src: Path, stamp: datetime) -> Path:
        self.backup_folder.mkdir(parents=True, exist_ok=True)
        destination = self._reserve_destination(src.name, stamp)
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        try:
            self.copier(str(src), str(partial))
            os.replace(partial, destination)
        except BaseException:
            for leftover in (partial, destination):
                with contextlib.suppress(OSError):
                    leftover.unlink()
            raise
        return destination

    def _reserve_destination(self, file_name: str, stamp: datetime) -> Path:
        ts = stamp.strftime(NAME_TIMESTAMP_FORMAT)
        counter = 0
        while True:
            name = f"{ts}_{file_name}" if counter == 0 else f"{ts}_{counter}_{file_name}"
            candidate = self.backup_folder / name
            try:
                fd = os.open(candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                counter += 1
                continue
            os.close(fd)
            return candidate

    def _log_backup_action(self, source: str, destination: Path) -> None:
        self.sink.record(f"{self.clock():%Y-%m-%d %H:%M:%S}: File '{source}' was backed up to '{destination}'.")
        self._journal({"event": "backup", "source": source, "destination": str(destination)})

    def _journal(self, entry: dict) -> None:
        if self.journal is None:
            return
        try:
            append_log(self.journal, entry)
        except OSError as e:
            self.sink.record(f"Failed to write backup journal {self.journal}: {e}", logging.WARNING)

    # ---- retention -------------------------------------------------------
    def cleanup_old_backups(self, retention_days: float, now: Optional[datetime] = None) -> CleanupResult:
        """
        Delete artifacts directly under the store whose creation time is
        strictly older than now - retention_days.
        """
        result = CleanupResult()
        if not self.backup_folder.is_dir():
            self.sink.record(f"Backup folder does not exist: {self.backup_folder}")
            result.missing_store = True
            return result

        reference = now or self.clock()
        cutoff = reference.timestamp() - retention_days * 86400

        try:
            entries = sorted(self.backup_folder.iterdir())
        except OSError as e:
            msg = f"Error during backup cleanup: {e}"
            self.sink.record(msg, logging.ERROR)
            result.errors.append(msg)
            return result

        for entry in entries:
            try:
                if not entry.is_file():
                    continue
                if creation_time(entry) < cutoff:
                    entry.unlink()
                    result.deleted.append(str(entry))
                    self.sink.record(f"Deleted old backup: {entry}")
                    self._journal({"event": "delete", "destination": str(entry)})
            except FileNotFoundError:
                # removed by someone else mid-sweep
                continue
            except OSError as e:
                msg = f"Error deleting old backup {entry}: {e}"
                self.sink.record(msg, logging.ERROR)
                result.errors.append(msg)

        return result
