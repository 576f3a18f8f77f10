"""
Bounded telemetry window.

Keeps the most recent request records in insertion order, evicting the
oldest once capacity is exceeded. A per-service index makes filtered
queries proportional to the service's share of the window rather than its
full size.

Mutations are serialized by a lock; detection rules never read the live
buffer, only :class:`WindowSnapshot` copies taken under that lock.
"""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from meshguard.core.errors import NotFoundError
from meshguard.telemetry.models import TelemetryRecord, utcnow

logger = structlog.get_logger()

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True)
class WindowSnapshot:
    """Immutable, chronological (oldest first) view of recent records."""

    records: tuple[TelemetryRecord, ...]
    taken_at: datetime = field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.records)

    def last(self, n: int) -> tuple[TelemetryRecord, ...]:
        """The ``n`` most recent records, still oldest first."""
        if n <= 0:
            return ()
        return self.records[-n:]


class TelemetryWindow:
    """Insertion-ordered ring of request records with a service index."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._records: OrderedDict[str, TelemetryRecord] = OrderedDict()
        self._by_service: dict[str, deque[str]] = {}
        self._lock = threading.RLock()
        self._evicted = 0

    def append(self, record: TelemetryRecord) -> None:
        """Insert ``record``; evicts the oldest record on overflow."""
        with self._lock:
            if record.id in self._records:
                # ids are unique; a replay of the same record is ignored
                logger.debug("telemetry_duplicate_ignored", record_id=record.id)
                return
            self._records[record.id] = record
            self._by_service.setdefault(record.service, deque()).append(record.id)
            if len(self._records) > self.capacity:
                self._evict_oldest()

    def extend(self, records: list[TelemetryRecord]) -> None:
        for record in records:
            self.append(record)

    def _evict_oldest(self) -> None:
        _, oldest = self._records.popitem(last=False)
        ids = self._by_service[oldest.service]
        ids.popleft()
        if not ids:
            del self._by_service[oldest.service]
        self._evicted += 1

    def query(self, limit: int = 100, service: str | None = None) -> list[TelemetryRecord]:
        """Return the most recent ``limit`` records, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            if service is not None:
                ids = self._by_service.get(service, ())
                return [self._records[rid] for rid in list(ids)[-limit:][::-1]]

            result: list[TelemetryRecord] = []
            for record in reversed(self._records.values()):
                if len(result) >= limit:
                    break
                result.append(record)
            return result

    def find(self, record_id: str) -> TelemetryRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def get(self, record_id: str) -> TelemetryRecord:
        """Return a record by id or raise NotFoundError."""
        record = self.find(record_id)
        if record is None:
            raise NotFoundError(f"Telemetry record {record_id} not found")
        return record

    def snapshot(self, limit: int | None = None) -> WindowSnapshot:
        """Consistent copy of the most recent ``limit`` records (all if None)."""
        with self._lock:
            records = tuple(self._records.values())
        if limit is not None:
            records = records[-limit:] if limit > 0 else ()
        return WindowSnapshot(records=records)

    def services(self) -> list[str]:
        with self._lock:
            return list(self._by_service)

    @property
    def evicted_count(self) -> int:
        return self._evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
