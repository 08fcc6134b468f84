from __future__ import annotations

import re
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

_WS = re.compile(r"\s+")
_NAMED_BIND = re.compile(r"(?<![:\w]):\w+")
_NUMERIC_BIND = re.compile(r"\$\d+")
_VALUES = re.compile(r"VALUES\s*\([^)]+\)", re.IGNORECASE)

MAX_STATEMENT_LENGTH = 200


def sanitize_sql(sql: str) -> str:
    """Statement text safe for logs and metrics: binds masked, VALUES collapsed, length capped."""
    text = _WS.sub(" ", sql).strip()
    text = _NUMERIC_BIND.sub("?", text)
    text = _NAMED_BIND.sub("?", text)
    text = _VALUES.sub("VALUES (?)", text)
    return text[:MAX_STATEMENT_LENGTH]


@dataclass(frozen=True)
class QueryMetric:
    query: str
    duration_ms: float
    timestamp: datetime
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class QueryStats:
    total_queries: int
    successful_queries: int
    failed_queries: int
    average_duration_ms: int
    slow_queries: int


class QueryMetricsBuffer:
    """Bounded FIFO of recent query metrics; the oldest entry is evicted first."""

    def __init__(self, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._items: deque[QueryMetric] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._items.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def record(self, metric: QueryMetric) -> None:
        with self._lock:
            self._items.append(metric)

    def snapshot(self) -> list[QueryMetric]:
        with self._lock:
            return list(self._items)

    def recent(self, n: int) -> list[QueryMetric]:
        if n <= 0:
            return []
        return self.snapshot()[-n:]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def stats(self, slow_threshold_ms: float) -> QueryStats:
        items = self.snapshot()
        total = len(items)
        successful = sum(1 for m in items if m.success)
        avg = sum(m.duration_ms for m in items) / total if total else 0.0
        return QueryStats(
            total_queries=total,
            successful_queries=successful,
            failed_queries=total - successful,
            average_duration_ms=round(avg),
            slow_queries=sum(1 for m in items if m.duration_ms > slow_threshold_ms),
        )
