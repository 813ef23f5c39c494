"""Tests for thread-safe stage metrics."""

import threading

import pytest

from src.utils.metrics import MetricsSnapshot, StageMetrics


class TestStageMetrics:
    """Tests for StageMetrics accumulation."""

    def test_empty_snapshot(self) -> None:
        assert StageMetrics().snapshot() == MetricsSnapshot()

    def test_running_average_latency(self) -> None:
        metrics = StageMetrics()
        metrics.record(1, 100.0)
        metrics.record(3, 300.0)
        snap = metrics.snapshot()
        assert snap.processed == 4
        assert snap.average_latency_ms == pytest.approx(100.0)
        assert snap.total_time_ms == pytest.approx(400.0)

    def test_zero_batch_adds_time_only(self) -> None:
        metrics = StageMetrics()
        metrics.record(0, 50.0)
        snap = metrics.snapshot()
        assert snap.processed == 0
        assert snap.average_latency_ms == 0.0
        assert snap.total_time_ms == 50.0

    def test_average_confidence(self) -> None:
        metrics = StageMetrics()
        metrics.record(2, 10.0, confidences=[0.5, 1.0])
        metrics.record(1, 10.0, confidences=[0.0])
        assert metrics.snapshot().average_confidence == pytest.approx(0.5)

    def test_operations_items_and_errors(self) -> None:
        metrics = StageMetrics()
        metrics.record(1, 1.0, operations=4, items=7)
        metrics.record_error()
        metrics.record_error(2)
        snap = metrics.snapshot()
        assert snap.operations == 4
        assert snap.items == 7
        assert snap.errors == 3

    def test_concurrent_updates_are_not_lost(self) -> None:
        metrics = StageMetrics()

        def work() -> None:
            for _ in range(1000):
                metrics.record(1, 1.0)
                metrics.record_error()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snap = metrics.snapshot()
        assert snap.processed == 8000
        assert snap.errors == 8000
        assert snap.average_latency_ms == pytest.approx(1.0)
