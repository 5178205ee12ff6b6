from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

CREATED = "CREATED"
CHANGED = "CHANGED"
DELETED = "DELETED"
RENAMED = "RENAMED"

EVENT_KINDS = (CREATED, CHANGED, DELETED, RENAMED)


@dataclass(frozen=True, slots=True)
class WatchEvent:
    kind: str  # CREATED | CHANGED | DELETED | RENAMED
    path: str
    previous_path: Optional[str] = None  # only for RENAMED
    observed_at: datetime = field(default_factory=datetime.now)


def make_event(
    kind: str,
    path: str,
    previous_path: Optional[str] = None,
    observed_at: Optional[datetime] = None,
) -> WatchEvent:
    k = kind.upper().strip()
    if k not in EVENT_KINDS:
        raise ValueError(f"Unknown event kind: {kind!r}")
    if k == RENAMED and previous_path is None:
        raise ValueError("RENAMED events need a previous_path")
    if k != RENAMED and previous_path is not None:
        raise ValueError(f"{k} events cannot carry a previous_path")

    return WatchEvent(
        kind=k,
        path=str(path),
        previous_path=str(previous_path) if previous_path is not None else None,
        observed_at=observed_at or datetime.now(),
    )
