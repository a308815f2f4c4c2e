# Copyright (c) Syntropy Systems
"""Background resource sampling (CPU, memory) during a benchmark run."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Thread
from typing import TYPE_CHECKING, cast

import psutil
from pydantic import Field

from stratbench.models.base import BenchBaseModel

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_GB = 1024**3
_MB = 1024**2


class SystemMetricRecord(BenchBaseModel):
    """One line of ``<ledger>.system.jsonl``."""

    timestamp: str = Field(alias="_timestamp")
    cpu_percent: float | None = None
    memory_used_gb: float | None = None
    memory_total_gb: float | None = None
    process_rss_mb: float | None = None


def system_metrics_path(ledger_path: Path) -> Path:
    """Sampler output file that sits next to a ledger."""
    return ledger_path.with_name(f"{ledger_path.stem}.system.jsonl")


def collect_metrics(process: psutil.Process | None = None) -> SystemMetricRecord:
    """Take one snapshot; unreadable values are left unset."""
    timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    record = SystemMetricRecord(timestamp=timestamp)

    try:
        record.cpu_percent = psutil.cpu_percent(interval=0.1)
        mem = psutil.virtual_memory()
        record.memory_used_gb = round(cast("int", mem.used) / _GB, 2)
        record.memory_total_gb = round(cast("int", mem.total) / _GB, 2)
    except (AttributeError, OSError, ValueError):
        logger.debug("System memory unavailable", exc_info=True)

    try:
        rss = cast("int", (process or psutil.Process()).memory_info().rss)
        record.process_rss_mb = round(rss / _MB, 1)
    except (psutil.Error, OSError):
        logger.debug("Process memory unavailable", exc_info=True)

    return record


class SystemMetricsCollector:
    """Background collector that periodically samples system metrics.

    Appends one JSON line per sample to ``<ledger stem>.system.jsonl``.
    """

    _interval: float
    _stop_event: Event
    _thread: Thread | None
    _metrics_path: Path
    _process: psutil.Process

    def __init__(self, ledger_path: Path, interval: float = 10.0) -> None:
        """Initialize collector.

        Args:
            ledger_path: Ledger the samples belong to
            interval: Collection interval in seconds

        """
        self._interval = interval
        self._stop_event = Event()
        self._thread = None
        self._metrics_path = system_metrics_path(ledger_path)
        self._process = psutil.Process()

    @property
    def path(self) -> Path:
        """File samples are appended to."""
        return self._metrics_path

    def start(self) -> None:
        """Start background collection."""
        if self._thread is not None:
            return

        self._metrics_path.parent.mkdir(parents=True, exist_ok=True)
        self._stop_event.clear()
        self._thread = Thread(target=self._collection_loop, name="system-metrics", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop background collection."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=2.0)
        self._thread = None

    def _collection_loop(self) -> None:
        """Background collection loop."""
        while not self._stop_event.is_set():
            try:
                self._write_metrics(collect_metrics(self._process))
            except Exception as exc:
                logger.exception("System metrics collection failed", exc_info=exc)

            _ = self._stop_event.wait(timeout=self._interval)

    def _write_metrics(self, record: SystemMetricRecord) -> None:
        """Append one sample."""
        with self._metrics_path.open("a", encoding="utf-8") as f:
            _ = f.write(record.model_dump_json(by_alias=True, exclude_none=True) + "\n")
            _ = f.flush()
