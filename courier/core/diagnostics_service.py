"""Diagnostics service: implements DiagnosticsPort.

Owns the two small persisted records (settings and user context) and
exposes inspection, export/import and queue maintenance over the queue
store and metrics recorder. Used by the CLI and by the facade.
"""

import logging
from datetime import timedelta
from typing import Any

from .context import ContextManager
from .errors import PersistenceError
from .locks import KeyedLock
from .metrics import MetricsRecorder
from .models import ExportedData, Metrics, QueueSize
from .ports import DiagnosticsPort, PersistencePort
from .queue_store import QueueStore
from .serialization import (
    SETTINGS_KEY,
    USER_CONTEXT_KEY,
    decode_mapping,
    encode_mapping,
)

logger = logging.getLogger(__name__)


class DiagnosticsService(DiagnosticsPort):
    """Core implementation of DiagnosticsPort."""

    def __init__(
        self,
        persistence: PersistencePort,
        store: QueueStore,
        metrics: MetricsRecorder,
        context: ContextManager | None = None,
        locks: KeyedLock | None = None,
    ):
        """Initialize the diagnostics service.

        Args:
            persistence: Backend holding the settings and user-context records.
            store: Queue store to inspect and maintain.
            metrics: Metrics recorder to read and restore.
            context: Live context refreshed on import (optional).
            locks: Shared per-key locks (a private instance if omitted).
        """
        self.persistence = persistence
        self.store = store
        self.metrics = metrics
        self.context = context
        self.locks = locks or KeyedLock()

    async def get_metrics(self) -> Metrics:
        return await self.metrics.snapshot()

    async def get_queue_stats(self) -> QueueSize:
        return await self.store.size()

    async def get_settings(self) -> dict[str, Any]:
        """Return the persisted settings record ({} when absent)."""
        async with self.locks.hold(SETTINGS_KEY):
            return await self._read(SETTINGS_KEY) or {}

    async def save_settings(self, settings: dict[str, Any]) -> None:
        """Merge values into the persisted settings record."""
        async with self.locks.hold(SETTINGS_KEY):
            current = await self._read(SETTINGS_KEY) or {}
            current.update(settings)
            await self._write(SETTINGS_KEY, current)

    async def get_user_context(self) -> dict[str, Any] | None:
        async with self.locks.hold(USER_CONTEXT_KEY):
            return await self._read(USER_CONTEXT_KEY)

    async def save_user_context(self, record: dict[str, Any] | None) -> None:
        """Persist a user-context record; None removes it."""
        async with self.locks.hold(USER_CONTEXT_KEY):
            await self._write(USER_CONTEXT_KEY, record)

    async def export_data(self) -> ExportedData:
        """Snapshot the four persisted records."""
        queue = await self.store.items()
        metrics = await self.metrics.snapshot()
        data = ExportedData(
            queue=tuple(queue),
            user_context=await self.get_user_context(),
            settings=await self.get_settings(),
            metrics=metrics,
        )
        logger.info(f"Exported {len(data.queue)} queued items")
        return data

    async def import_data(self, data: ExportedData) -> None:
        """Replace all four records with exported ones.

        Queue items keep their ids, retry counts and timestamps. The
        queue size bound still applies.
        """
        await self.store.replace_all(list(data.queue))

        async with self.locks.hold(SETTINGS_KEY):
            await self._write(SETTINGS_KEY, dict(data.settings))
        await self.save_user_context(data.user_context)
        if self.context is not None:
            self.context.restore(data.user_context)

        await self.metrics.replace(data.metrics)
        logger.info(
            f"Imported {len(data.queue)} queued items",
            extra={"providers": sorted({item.provider for item in data.queue})},
        )

    async def clear_queue(self, provider: str | None = None) -> int:
        removed = await self.store.clear(provider)
        scope = f" for provider '{provider}'" if provider else ""
        logger.info(f"Cleared {removed} queued items{scope}")
        return removed

    async def prune(self, max_age: timedelta) -> int:
        return await self.store.prune_older_than(max_age)

    async def _read(self, key: str) -> dict[str, Any] | None:
        """Read a mapping record. Caller must hold the key's lock."""
        try:
            blob = await self.persistence.get(key)
        except Exception as e:
            logger.error(str(PersistenceError(key, "read", e)))
            return None
        if blob is None:
            return None
        try:
            return decode_mapping(blob)
        except ValueError as e:
            logger.warning(f"Discarding unreadable record '{key}': {e}")
            return None

    async def _write(self, key: str, record: dict[str, Any] | None) -> None:
        """Write or remove a mapping record. Caller must hold the key's lock."""
        try:
            if record is None:
                await self.persistence.remove(key)
            else:
                await self.persistence.set(key, encode_mapping(record))
        except Exception as e:
            logger.error(str(PersistenceError(key, "write", e)))
