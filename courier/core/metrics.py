"""Delivery metrics and accounting.

Counters are process-wide, persisted alongside the queue, and only
ever move upward (except through an explicit reset or import).
"""

import logging
from dataclasses import replace

from .errors import PersistenceError
from .locks import KeyedLock
from .models import Metrics
from .ports import PersistencePort
from .serialization import METRICS_KEY, decode_metrics, encode_metrics

logger = logging.getLogger(__name__)


class MetricsRecorder:
    """Persisted total/success/failed/dropped counters.

    The in-memory snapshot is authoritative; persistence is
    write-through and best-effort.
    """

    def __init__(self, persistence: PersistencePort, locks: KeyedLock | None = None):
        """Initialize the recorder.

        Args:
            persistence: Backend the counters are written to.
            locks: Shared per-key locks (a private instance if omitted).
        """
        self.persistence = persistence
        self.locks = locks or KeyedLock()
        self._metrics = Metrics()
        self._loaded = False
        self.persistence_failures = 0

    async def load(self) -> Metrics:
        """Load persisted counters once. Subsequent calls are no-ops."""
        async with self.locks.hold(METRICS_KEY):
            await self._ensure_loaded()
            return self._metrics

    async def snapshot(self) -> Metrics:
        """Return the current counters."""
        return await self.load()

    async def increment(
        self,
        total: int = 0,
        successful: int = 0,
        failed: int = 0,
        dropped: int = 0,
    ) -> Metrics:
        """Add to one or more counters and persist the result.

        Raises:
            ValueError: If any delta is negative.
        """
        if min(total, successful, failed, dropped) < 0:
            raise ValueError("metric deltas must be non-negative")

        async with self.locks.hold(METRICS_KEY):
            await self._ensure_loaded()
            self._metrics = replace(
                self._metrics,
                total_errors=self._metrics.total_errors + total,
                successful_errors=self._metrics.successful_errors + successful,
                failed_errors=self._metrics.failed_errors + failed,
                dropped_errors=self._metrics.dropped_errors + dropped,
            )
            await self._persist()
            return self._metrics

    async def replace(self, metrics: Metrics) -> None:
        """Overwrite all counters (used by import)."""
        async with self.locks.hold(METRICS_KEY):
            self._loaded = True
            self._metrics = metrics
            await self._persist()

    async def reset(self) -> None:
        """Zero all counters."""
        await self.replace(Metrics())

    async def _ensure_loaded(self) -> None:
        """Read persisted counters. Caller must hold the metrics lock."""
        if self._loaded:
            return
        self._loaded = True
        try:
            blob = await self.persistence.get(METRICS_KEY)
        except Exception as e:
            self.persistence_failures += 1
            logger.error(f"{PersistenceError(METRICS_KEY, 'read', e)}; starting from zero")
            return
        if blob is None:
            return
        try:
            self._metrics = decode_metrics(blob)
        except ValueError as e:
            logger.warning(f"Discarding unreadable metrics record: {e}")

    async def _persist(self) -> None:
        """Write counters through. Caller must hold the metrics lock."""
        try:
            await self.persistence.set(METRICS_KEY, encode_metrics(self._metrics))
        except Exception as e:
            self.persistence_failures += 1
            logger.error(f"{PersistenceError(METRICS_KEY, 'write', e)}; keeping in-memory counters")
