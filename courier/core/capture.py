"""Capture pipeline: raw error input to a queued delivery.

Steps, in order: normalize, merge ambient context, apply overrides,
bound the extra mapping, check the encoded size, run the before_send
filter, enqueue for the target provider, count, and request an
opportunistic drain.

Nothing on this path ever raises into the host application.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from typing import Any

from .context import ContextManager
from .delivery import DeliveryEngine
from .errors import OversizedPayloadError
from .metrics import MetricsRecorder
from .models import ErrorLevel, NormalizedError, UserContext
from .normalizer import ErrorNormalizer
from .queue_store import QueueStore
from .registry import AdapterRegistry
from .serialization import user_from_dict

logger = logging.getLogger(__name__)

# Returning None (or any falsy value) discards the record
BeforeSend = Callable[[NormalizedError], NormalizedError | None | Awaitable[NormalizedError | None]]

_OVERRIDABLE_FIELDS = {"message", "kind", "level", "handled", "source"}


class CapturePipeline:
    """Turns raw errors into queued, provider-tagged records."""

    def __init__(
        self,
        normalizer: ErrorNormalizer,
        context: ContextManager,
        registry: AdapterRegistry,
        store: QueueStore,
        metrics: MetricsRecorder,
        engine: DeliveryEngine | None = None,
        before_send: BeforeSend | None = None,
        environment: str | None = None,
        release: str | None = None,
    ):
        """Initialize the capture pipeline.

        Args:
            normalizer: Converts raw input into NormalizedError.
            context: Ambient user/tags/extra/breadcrumbs merged into records.
            registry: Supplies the current adapter's name.
            store: Queue the records are written to.
            metrics: Recorder for total/dropped counters.
            engine: Engine asked for an opportunistic drain (optional).
            before_send: Filter run on the final record (optional).
            environment: Added as the "environment" tag when set.
            release: Added as the "release" tag when set.
        """
        self.normalizer = normalizer
        self.context = context
        self.registry = registry
        self.store = store
        self.metrics = metrics
        self.engine = engine
        self.before_send = before_send
        self.environment = environment
        self.release = release

    async def capture(
        self,
        raw: Any,
        overrides: Mapping[str, Any] | None = None,
        provider: str | None = None,
        level: ErrorLevel = ErrorLevel.ERROR,
        source: str = "manual",
    ) -> NormalizedError | None:
        """Capture one error.

        Args:
            raw: Exception, string, mapping or any other value.
            overrides: Per-call tags, extra, user or record fields.
            provider: Target provider (the current adapter if omitted).
            level: Severity used when the input does not carry one.
            source: Where the error came from ("manual", "global", ...).

        Returns:
            The queued record, or None if it was filtered, rejected
            or could not be captured.
        """
        try:
            return await self._capture(raw, overrides or {}, provider, level, source)
        except Exception as e:
            logger.error(f"Failed to capture error: {e}", exc_info=True)
            await self._count_lost()
            return None

    async def capture_message(
        self,
        message: str,
        level: ErrorLevel = ErrorLevel.INFO,
        overrides: Mapping[str, Any] | None = None,
        provider: str | None = None,
    ) -> NormalizedError | None:
        """Capture a plain message at the given level."""
        merged = {"kind": "Message", **(overrides or {})}
        return await self.capture(message, merged, provider=provider, level=level)

    async def _capture(
        self,
        raw: Any,
        overrides: Mapping[str, Any],
        provider: str | None,
        level: ErrorLevel,
        source: str,
    ) -> NormalizedError | None:
        target = provider
        if target is None:
            current = self.registry.current()
            if current is None:
                logger.warning("No current adapter and no provider given, error dropped")
                await self.metrics.increment(total=1, dropped=1)
                return None
            target = current.name

        error = self.normalizer.normalize(raw, level=level, source=source)
        error = self._merge_context(error, overrides)

        try:
            self.store.check_item_size(error)
        except OversizedPayloadError as e:
            logger.error(f"Rejected error {error.id} ({error.kind}): {e}")
            await self.metrics.increment(total=1, dropped=1)
            return None

        if self.before_send is not None:
            filtered = await self._run_filter(error)
            if not filtered:
                logger.debug(f"Error {error.id} discarded by before_send filter")
                return None
            error = filtered

        try:
            await self.store.enqueue(error, target)
        except OversizedPayloadError as e:
            # the filter may have grown the record
            logger.error(f"Rejected error {error.id} ({error.kind}): {e}")
            await self.metrics.increment(total=1, dropped=1)
            return None

        await self.metrics.increment(total=1)
        if self.engine is not None:
            self.engine.request_drain(target)
        return error

    def _merge_context(
        self, error: NormalizedError, overrides: Mapping[str, Any]
    ) -> NormalizedError:
        """Layer ambient context, then per-call overrides, onto a record."""
        tags: dict[str, str] = {}
        if self.environment:
            tags["environment"] = self.environment
        if self.release:
            tags["release"] = self.release
        tags.update(self.context.tags)
        tags.update(error.tags)
        tags.update({str(k): str(v) for k, v in (overrides.get("tags") or {}).items()})

        extra = {**self.context.extra, **error.extra, **(overrides.get("extra") or {})}

        user = overrides.get("user", self.context.user)
        if isinstance(user, Mapping):
            user = user_from_dict(dict(user))
        elif user is not None and not isinstance(user, UserContext):
            user = UserContext(id=str(user))

        fields = {k: v for k, v in overrides.items() if k in _OVERRIDABLE_FIELDS}
        if "level" in fields and not isinstance(fields["level"], ErrorLevel):
            fields["level"] = ErrorLevel(str(fields["level"]).lower())

        return replace(
            error,
            tags=tags,
            extra=self.normalizer.bound_extra(extra),
            breadcrumbs=self.context.breadcrumbs(),
            user=user,
            **fields,
        )

    async def _count_lost(self) -> None:
        try:
            await self.metrics.increment(total=1, dropped=1)
        except Exception as e:
            logger.error(f"Failed to count lost error: {e}")

    async def _run_filter(self, error: NormalizedError) -> NormalizedError | None:
        result = self.before_send(error)
        if isinstance(result, Awaitable):
            result = await result
        return result
