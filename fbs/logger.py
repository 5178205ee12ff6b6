import json
from datetime import datetime, timezone
from pathlib import Path


def append_log(path: Path, entry: dict) -> None:
    """Append one JSON line to the backup journal."""
    path.parent.mkdir(parents=True, exist_ok=True)
    record = dict(entry)
    record["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record) + "\n")
