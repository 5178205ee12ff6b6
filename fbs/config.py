from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError
from .utils import normalize_extensions, resolve_path

DEFAULT_CONFIG = {
    "monitored_folder": "",
    "backup_folder": "",
    "log_file": "fbs.log",
    "journal": None,
    "cleanup_retention_days": 7,
    "file_extensions": [],
    "max_retries": 3,
    "retry_delay": 5,
    "recursive": True,
    "use_polling": False,
    "poll_interval": 1.0,
    "sweep_interval_hours": 24,
    "max_workers": 4,
    "max_pending": 256,
}

# Keys as written by the older JSON service config.
_LEGACY_KEYS = {
    "FolderToMonitor": "monitored_folder",
    "monitoredFolder": "monitored_folder",
    "BackupFolder": "backup_folder",
    "backupFolder": "backup_folder",
    "LogFilePath": "log_file",
    "logFilePath": "log_file",
    "CleanupRetentionDays": "cleanup_retention_days",
    "cleanupRetentionDays": "cleanup_retention_days",
    "FileExtensionsToBackup": "file_extensions",
    "fileExtensionsToBackup": "file_extensions",
    "MaxRetries": "max_retries",
    "maxRetries": "max_retries",
    "RetryDelay": "retry_delay",
    "retryDelay": "retry_delay",
}


def _rename_legacy(raw: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in raw.items():
        out[_LEGACY_KEYS.get(key, key)] = value
    return out


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _as_extensions(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        # "file_extensions: .txt" means one extension, not four characters
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"file_extensions must be a list, got {value!r}")
    return normalize_extensions(value)


def load_config(path: Path) -> dict:
    # If config file missing → return defaults
    if not path.exists():
        return DEFAULT_CONFIG.copy()

    # YAML is a superset of JSON, so the old Config.json loads here too
    try:
        with path.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e

    if not isinstance(user_config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    # Merge defaults with user config
    final_config = DEFAULT_CONFIG.copy()
    final_config.update(_rename_legacy(user_config))

    return final_config


@dataclass(frozen=True)
class ServiceConfig:
    """Immutable settings the pipeline runs with."""

    monitored_folder: str
    backup_folder: str
    log_file: Optional[str] = "fbs.log"
    journal: Optional[str] = None
    cleanup_retention_days: int = 7
    file_extensions: Tuple[str, ...] = field(default_factory=tuple)
    max_retries: int = 3
    retry_delay: float = 5
    recursive: bool = True
    use_polling: bool = False
    poll_interval: float = 1.0
    sweep_interval_hours: float = 24
    max_workers: int = 4
    max_pending: int = 256

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfig":
        merged = DEFAULT_CONFIG.copy()
        merged.update(_rename_legacy(data or {}))
        try:
            return cls(
                monitored_folder=str(merged.get("monitored_folder") or ""),
                backup_folder=str(merged.get("backup_folder") or ""),
                log_file=merged.get("log_file"),
                journal=merged.get("journal"),
                cleanup_retention_days=int(merged["cleanup_retention_days"]),
                file_extensions=tuple(_as_extensions(merged.get("file_extensions"))),
                max_retries=int(merged["max_retries"]),
                retry_delay=float(merged["retry_delay"]),
                recursive=_as_bool("recursive", merged["recursive"]),
                use_polling=_as_bool("use_polling", merged["use_polling"]),
                poll_interval=float(merged["poll_interval"]),
                sweep_interval_hours=float(merged["sweep_interval_hours"]),
                max_workers=int(merged["max_workers"]),
                max_pending=int(merged["max_pending"]),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

    def validate(self) -> None:
        if not self.monitored_folder.strip() or not self.backup_folder.strip():
            raise ConfigError("backup_folder or monitored_folder is not properly configured.")
        if self.cleanup_retention_days < 0:
            raise ConfigError("cleanup_retention_days cannot be negative")
        if self.sweep_interval_hours <= 0:
            raise ConfigError("sweep_interval_hours must be positive")
        if self.max_workers < 1 or self.max_pending < 1:
            raise ConfigError("max_workers and max_pending must be at least 1")

        monitored = resolve_path(self.monitored_folder)
        store = resolve_path(self.backup_folder)
        if store == monitored:
            raise ConfigError("backup_folder cannot be the monitored folder")
        if self.recursive and monitored in store.parents:
            # every artifact write would be picked up and backed up again
            raise ConfigError(
                f"backup_folder {store} is inside the recursively monitored folder {monitored}"
            )
