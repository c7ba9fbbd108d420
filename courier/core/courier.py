"""Courier facade: the object host applications talk to.

Wires the context, registry, queue, engine, capture pipeline and
diagnostics together and keeps the persisted user-context and settings
records in step with them. Built by main.bootstrap() or directly in
tests.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .capture import CapturePipeline
from .context import ContextManager
from .delivery import DeliveryEngine
from .diagnostics_service import DiagnosticsService
from .models import Breadcrumb, DrainResult, ErrorLevel, Metrics, NormalizedError, UserContext
from .ports import AdapterPort, PersistencePort
from .queue_store import QueueStore
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)

CURRENT_ADAPTER_SETTING = "current_adapter"


class Courier:
    """Error capture and durable delivery for one process."""

    def __init__(
        self,
        persistence: PersistencePort,
        context: ContextManager,
        registry: AdapterRegistry,
        store: QueueStore,
        engine: DeliveryEngine,
        pipeline: CapturePipeline,
        diagnostics: DiagnosticsService,
    ):
        self.persistence = persistence
        self.context = context
        self.registry = registry
        self.store = store
        self.engine = engine
        self.pipeline = pipeline
        self.diagnostics = diagnostics
        self._started = False

    async def start(self) -> None:
        """Load persisted state, restore context and the current adapter.

        The previously current adapter is re-activated only if it has
        already been registered under the same name.
        """
        if self._started:
            return
        await self.store.load()
        await self.pipeline.metrics.load()
        self.context.restore(await self.diagnostics.get_user_context())

        settings = await self.diagnostics.get_settings()
        previous = settings.get(CURRENT_ADAPTER_SETTING)
        if previous and self.registry.current() is None and self.registry.has(previous):
            try:
                await self.registry.activate(previous)
            except Exception as e:
                logger.warning(f"Could not restore adapter '{previous}': {e}")

        self.engine.start()
        self._started = True
        stats = await self.store.size()
        logger.info(
            f"Courier started with {stats.item_count} pending items",
            extra={"current_adapter": previous},
        )
        self.engine.request_drain()

    async def capture(
        self,
        error: Any,
        overrides: Mapping[str, Any] | None = None,
        provider: str | None = None,
    ) -> NormalizedError | None:
        return await self.pipeline.capture(error, overrides, provider=provider)

    async def capture_message(
        self,
        message: str,
        level: ErrorLevel = ErrorLevel.INFO,
        overrides: Mapping[str, Any] | None = None,
    ) -> NormalizedError | None:
        return await self.pipeline.capture_message(message, level, overrides)

    async def set_user(self, user: UserContext | None) -> None:
        """Set or clear the user, persist it and forward it to the current adapter."""
        self.context.set_user(user)
        await self._context_changed()

    async def set_context(
        self,
        tags: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Merge tags and extra data into the ambient context."""
        if tags:
            self.context.set_tags(tags)
        if extra:
            self.context.set_extra(self.pipeline.normalizer.bound_extra(extra))
        await self._context_changed()

    async def add_breadcrumb(
        self,
        message: str,
        category: str | None = None,
        level: ErrorLevel = ErrorLevel.INFO,
        data: Mapping[str, Any] | None = None,
    ) -> Breadcrumb:
        breadcrumb = self.context.add_breadcrumb(message, category, level, data)
        current = self.registry.current()
        if current is not None:
            try:
                await current.adapter.add_breadcrumb(breadcrumb)
            except Exception as e:
                logger.warning(f"Adapter '{current.name}' rejected breadcrumb: {e}")
        return breadcrumb

    def clear_breadcrumbs(self) -> None:
        self.context.clear_breadcrumbs()

    def register_adapter(self, name: str, adapter: AdapterPort) -> None:
        self.registry.register(name, adapter)

    async def use_adapter(self, name: str, config: dict[str, Any] | None = None) -> None:
        """Activate an adapter and make it the target of new captures.

        Raises:
            AdapterInitError: If the adapter is unknown or fails to
                initialize. The previous adapter stays current.
        """
        record = await self.registry.activate(name, config)
        await self.diagnostics.save_settings({CURRENT_ADAPTER_SETTING: name})

        try:
            await record.adapter.set_context(self.context.as_dict())
            for breadcrumb in self.context.breadcrumbs():
                await record.adapter.add_breadcrumb(breadcrumb)
        except Exception as e:
            logger.warning(f"Failed to push context to adapter '{name}': {e}")

        self.engine.request_drain(name)

    async def remove_adapter(self, name: str) -> None:
        """Unregister an adapter. Its queued items stay queued."""
        record = self.registry.unregister(name)
        if record is None:
            return
        try:
            await record.adapter.close()
        except Exception as e:
            logger.warning(f"Error closing adapter '{name}': {e}")
        settings = await self.diagnostics.get_settings()
        if settings.get(CURRENT_ADAPTER_SETTING) == name:
            await self.diagnostics.save_settings({CURRENT_ADAPTER_SETTING: None})

    async def flush(self) -> DrainResult:
        """Drain every lane now and wait for the pass to finish."""
        return await self.engine.drain()

    async def metrics(self) -> Metrics:
        return await self.diagnostics.get_metrics()

    async def reset(self) -> None:
        """Clear context, queue and counters."""
        self.context.reset()
        await self.diagnostics.save_user_context(None)
        await self.store.clear()
        await self.pipeline.metrics.reset()
        logger.info("Courier state reset")

    async def shutdown(self, timeout: float | None = None) -> None:
        """Let in-flight deliveries settle, then release adapters and storage."""
        await self.engine.shutdown(timeout)
        for record in self.registry.records():
            try:
                await record.adapter.close()
            except Exception as e:
                logger.warning(f"Error closing adapter '{record.name}': {e}")
        await self.persistence.close()
        self._started = False
        logger.info("Courier shut down")

    async def _context_changed(self) -> None:
        await self.diagnostics.save_user_context(self.context.snapshot())
        current = self.registry.current()
        if current is None:
            return
        try:
            await current.adapter.set_context(self.context.as_dict())
        except Exception as e:
            logger.warning(f"Adapter '{current.name}' rejected context: {e}")
