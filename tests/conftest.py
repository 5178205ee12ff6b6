import logging
from typing import List, Tuple

import pytest

from fbs.logging_config import LogSink


class RecordingSink(LogSink):
    """Keeps every recorded message in memory."""

    def __init__(self):
        super().__init__(logging.getLogger("fbs.tests"))
        self.records: List[Tuple[int, str]] = []

    def record(self, message, level=logging.INFO):
        self.records.append((level, message))

    @property
    def messages(self) -> List[str]:
        return [m for _, m in self.records]

    def count(self, needle: str) -> int:
        return sum(1 for m in self.messages if needle in m)


@pytest.fixture
def sink():
    return RecordingSink()
