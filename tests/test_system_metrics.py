# Copyright (c) Syntropy Systems
"""Tests for background resource sampling."""

import json
import time
from pathlib import Path

from stratbench.system_metrics import (
    SystemMetricsCollector,
    collect_metrics,
    system_metrics_path,
)


class TestSystemMetrics:
    """Tests for system metrics collection."""

    def test_path_next_to_ledger(self, temp_dir: Path) -> None:
        """Test the sampler file name."""
        assert system_metrics_path(temp_dir / "results.csv") == temp_dir / "results.system.jsonl"

    def test_collect_metrics(self) -> None:
        """Test that a snapshot has a timestamp and process memory."""
        record = collect_metrics()

        assert record.timestamp.endswith("Z")
        assert record.process_rss_mb is not None
        assert record.process_rss_mb > 0

    def test_collector_writes_samples(self, temp_dir: Path) -> None:
        """Test that the collector appends JSON lines until stopped."""
        collector = SystemMetricsCollector(temp_dir / "out" / "results.csv", interval=60.0)
        collector.start()
        try:
            deadline = time.monotonic() + 5.0
            while not collector.path.exists() and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            collector.stop()

        lines = collector.path.read_text().splitlines()
        assert len(lines) >= 1
        sample = json.loads(lines[0])
        assert "_timestamp" in sample
        assert "process_rss_mb" in sample

    def test_stop_without_start(self, temp_dir: Path) -> None:
        """Test that stopping an idle collector is harmless."""
        collector = SystemMetricsCollector(temp_dir / "results.csv")
        collector.stop()

        assert not collector.path.exists()
