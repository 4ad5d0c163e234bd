"""
Background Workers

Periodic scheduler ticks for the access layer: anomaly detection for every
tracked user, and draining the audit buffer to its sink. The engine owns no
timers: the host starts and stops these workers alongside its own event
loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from warden.engine.constants import ANOMALY_SWEEP_INTERVAL_SEC, AUDIT_FLUSH_INTERVAL_SEC
from warden.engine.models import PatternDeviation

logger = logging.getLogger("WARDEN_SweepWorker")

SweepListener = Callable[[Dict[str, List[PatternDeviation]]], None]


@dataclass
class WorkerStats:
    """Statistics for a background worker."""
    name: str
    started_at: datetime
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    deviations_found: int = 0
    entries_flushed: int = 0


class AnomalySweepWorker:
    """
    Runs `detect_anomalies` for all users on an interval.

    Example:
        worker = AnomalySweepWorker(service, interval_seconds=300)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        service,
        interval_seconds: float = ANOMALY_SWEEP_INTERVAL_SEC,
        listener: Optional[SweepListener] = None,
    ):
        self._service = service
        self.interval = interval_seconds
        self._listener = listener
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stats = WorkerStats(
            name="anomaly_sweep",
            started_at=datetime.now(timezone.utc),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep worker."""
        if self._running:
            return

        self._running = True
        self._stats.started_at = datetime.now(timezone.utc)
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Anomaly sweep worker started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop the sweep worker."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Anomaly sweep worker stopped")

    async def _run_loop(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Anomaly sweep error: {e}")
                self._stats.error_count += 1
                self._stats.last_error = str(e)

    def run_once(self) -> Dict[str, List[PatternDeviation]]:
        """Run one sweep synchronously and return deviations per user."""
        results = self._service.detect_all_anomalies()

        self._stats.run_count += 1
        self._stats.last_run_at = datetime.now(timezone.utc)
        found = sum(len(d) for d in results.values())
        self._stats.deviations_found += found

        if found:
            logger.warning(f"Anomaly sweep: {found} deviations across {len(results)} users")
        else:
            logger.debug("Anomaly sweep: no deviations")

        if self._listener is not None:
            self._listener(results)
        return results

    def get_stats(self) -> WorkerStats:
        return self._stats


class AuditFlushWorker:
    """
    Drains the audit buffer to its sink on an interval.

    Sink writes run in a worker thread so a slow sink never stalls the
    event loop or an evaluation.

    Example:
        worker = AuditFlushWorker(service, interval_seconds=5)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(self, service, interval_seconds: float = AUDIT_FLUSH_INTERVAL_SEC):
        self._service = service
        self.interval = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stats = WorkerStats(
            name="audit_flush",
            started_at=datetime.now(timezone.utc),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the flush worker."""
        if self._running:
            return

        self._running = True
        self._stats.started_at = datetime.now(timezone.utc)
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Audit flush worker started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop the worker after a final drain."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await asyncio.to_thread(self.run_once)
        logger.info("Audit flush worker stopped")

    async def _run_loop(self) -> None:
        """Main worker loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                await asyncio.to_thread(self.run_once)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Audit flush error: {e}")
                self._stats.error_count += 1
                self._stats.last_error = str(e)

    def run_once(self) -> int:
        """Flush once and return the number of acknowledged entries."""
        flushed = self._service.flush_audit()

        self._stats.run_count += 1
        self._stats.last_run_at = datetime.now(timezone.utc)
        self._stats.entries_flushed += flushed
        return flushed

    def get_stats(self) -> WorkerStats:
        return self._stats


__all__ = ["WorkerStats", "AnomalySweepWorker", "AuditFlushWorker"]
