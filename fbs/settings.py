from pathlib import Path
from typing import Any, Dict, List, Optional
from .config import DEFAULT_CONFIG, load_config

def _to_list_arg(value: Optional[List[str]]) -> Optional[List[str]]:
    """
    Normalize CLI --ext arg handling.
    argparse may give None, a list of single string, or multiple entries.
    We want either None or a flat list.
    """
    if value is None:
        return None
    flat = []
    for v in value:
        if isinstance(v, list):
            flat.extend(v)
        else:
            flat.append(v)
    return flat

def build_settings(args: Any, config_path: Optional[str]) -> Dict[str, Any]:
    """
    Build final settings using priority:
      DEFAULTS <- config file <- CLI args (non-None)
    Args:
      args: argparse.Namespace (CLI arguments)
      config_path: explicit config file path (string) or None
    Returns:
      dict with the keys of DEFAULT_CONFIG
    """
    cfg_path = Path(config_path) if config_path else Path("config.yml")
    user_cfg = load_config(cfg_path) if cfg_path.exists() else DEFAULT_CONFIG.copy()

    final = DEFAULT_CONFIG.copy()
    final.update(user_cfg)

    if getattr(args, "monitor", None):
        final["monitored_folder"] = args.monitor

    if getattr(args, "backup_dir", None):
        final["backup_folder"] = args.backup_dir

    if getattr(args, "log", None):
        final["log_file"] = args.log

    if getattr(args, "retention_days", None) is not None:
        final["cleanup_retention_days"] = args.retention_days

    cli_exts = _to_list_arg(getattr(args, "ext", None))
    if cli_exts is not None:
        final["file_extensions"] = cli_exts

    final["file_extensions"] = final.get("file_extensions") or []

    return final
