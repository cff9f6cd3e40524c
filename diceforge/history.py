"""Bounded, append-only roll history.

The ledger keeps at most ``capacity`` entries and at most ``byte_budget``
bytes of serialized entries, evicting the oldest first. All mutation and
every snapshot happen under one lock, so concurrent appends never lose or
reorder entries.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterator

from pydantic import BaseModel, Field

from diceforge.schemas import HistoryEntry, RollResult

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_BYTE_BUDGET = 512_000


class HistoryFilter(BaseModel):
    """Criteria for ``RollHistory.query``. Unset fields match everything."""

    expression: str | None = None
    source: str | None = None
    since_id: int | None = Field(default=None, description="Only entries with a larger sequence id.")
    min_total: int | None = None
    max_total: int | None = None
    limit: int | None = Field(default=None, ge=0)
    newest_first: bool = False

    def matches(self, entry: HistoryEntry) -> bool:
        result = entry.result
        if self.expression is not None and result.expression != self.expression:
            return False
        if self.source is not None and result.source != self.source:
            return False
        if self.since_id is not None and entry.sequence_id <= self.since_id:
            return False
        if self.min_total is not None and result.total < self.min_total:
            return False
        if self.max_total is not None and result.total > self.max_total:
            return False
        return True


class HistoryQuery:
    """Lazy, restartable view over the ledger.

    Each iteration takes a fresh snapshot, so iterating twice reflects any
    appends made in between.
    """

    def __init__(self, history: RollHistory, criteria: HistoryFilter) -> None:
        self._history = history
        self._criteria = criteria

    def __iter__(self) -> Iterator[HistoryEntry]:
        entries = self._history._snapshot()
        if self._criteria.newest_first:
            entries.reverse()
        remaining = self._criteria.limit
        for entry in entries:
            if remaining is not None and remaining <= 0:
                return
            if self._criteria.matches(entry):
                if remaining is not None:
                    remaining -= 1
                yield entry


class RollHistory:
    def __init__(self, capacity: int = DEFAULT_CAPACITY, byte_budget: int = DEFAULT_BYTE_BUDGET) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")
        if byte_budget < 1:
            raise ValueError(f"History byte budget must be at least 1, got {byte_budget}")
        self.capacity = capacity
        self.byte_budget = byte_budget
        self._entries: deque[tuple[HistoryEntry, int]] = deque()
        self._bytes = 0
        self._next_id = 1
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def byte_size(self) -> int:
        """Aggregate serialized size of the stored entries."""
        return self._bytes

    def append(self, result: RollResult) -> HistoryEntry:
        """Record ``result`` and evict the oldest entries beyond either ceiling.

        The newest entry is always retained, even if it alone exceeds the
        byte budget.
        """
        with self._lock:
            entry = HistoryEntry(sequence_id=self._next_id, result=result)
            self._next_id += 1
            size = len(entry.model_dump_json())
            self._entries.append((entry, size))
            self._bytes += size
            evicted = 0
            while len(self._entries) > 1 and (
                len(self._entries) > self.capacity or self._bytes > self.byte_budget
            ):
                _, old_size = self._entries.popleft()
                self._bytes -= old_size
                evicted += 1
        if evicted:
            logger.debug("Evicted %d history entries (size=%d bytes)", evicted, self._bytes)
        return entry

    def query(self, criteria: HistoryFilter | None = None) -> HistoryQuery:
        """Return entries matching ``criteria``, oldest first unless ``newest_first``."""
        return HistoryQuery(self, criteria or HistoryFilter())

    def recent(self, count: int = 10) -> list[HistoryEntry]:
        """Return up to ``count`` of the most recent entries, newest first."""
        return list(self.query(HistoryFilter(limit=count, newest_first=True)))

    def get(self, sequence_id: int) -> HistoryEntry | None:
        for entry in self._snapshot():
            if entry.sequence_id == sequence_id:
                return entry
        return None

    def clear(self) -> None:
        """Drop every entry. Sequence ids keep increasing afterwards."""
        with self._lock:
            self._entries.clear()
            self._bytes = 0

    def _snapshot(self) -> list[HistoryEntry]:
        with self._lock:
            return [entry for entry, _ in self._entries]
