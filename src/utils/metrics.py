"""Thread-safe running metrics for pipeline stages.

Each stage owns one ``StageMetrics`` instance. Every update goes through a
single lock so that counters and running averages stay consistent when a
stage instance is shared across threads. The numbers are for observability
only; no pipeline decision reads them.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only copy of a stage's counters."""

    processed: int = 0
    average_latency_ms: float = 0.0
    total_time_ms: float = 0.0
    errors: int = 0
    average_confidence: float = 0.0
    operations: int = 0
    items: int = 0


class StageMetrics:
    """Accumulates processed counts, latency, confidence, and errors."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processed = 0
        self._average_latency_ms = 0.0
        self._total_time_ms = 0.0
        self._errors = 0
        self._confidence_sum = 0.0
        self._confidence_count = 0
        self._operations = 0
        self._items = 0

    def record(
        self,
        processed: int,
        elapsed_ms: float,
        confidences: list[float] | None = None,
        operations: int = 0,
        items: int = 0,
    ) -> None:
        """Record one batch of work.

        The running average latency is weighted per processed unit, so a
        batch of ``n`` units taking ``t`` ms contributes ``t`` to the sum
        over ``n`` units.

        Args:
            processed: Number of units (pages, forms) in the batch.
            elapsed_ms: Wall-clock duration of the batch.
            confidences: Per-unit confidence scores to fold into the average.
            operations: Auxiliary operation count (enhancement steps).
            items: Auxiliary item count (elements, fields).
        """
        with self._lock:
            self._total_time_ms += elapsed_ms
            self._operations += operations
            self._items += items
            if processed > 0:
                previous = self._processed
                self._processed += processed
                self._average_latency_ms = (
                    self._average_latency_ms * previous + elapsed_ms
                ) / self._processed
            for confidence in confidences or []:
                self._confidence_sum += confidence
                self._confidence_count += 1

    def record_error(self, count: int = 1) -> None:
        """Increment the error counter."""
        with self._lock:
            self._errors += count

    def snapshot(self) -> MetricsSnapshot:
        """Return a consistent copy of all counters."""
        with self._lock:
            average_confidence = (
                self._confidence_sum / self._confidence_count
                if self._confidence_count
                else 0.0
            )
            return MetricsSnapshot(
                processed=self._processed,
                average_latency_ms=self._average_latency_ms,
                total_time_ms=self._total_time_ms,
                errors=self._errors,
                average_confidence=average_confidence,
                operations=self._operations,
                items=self._items,
            )
