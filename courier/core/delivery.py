"""Delivery engine: drains provider lanes through their adapters.

This module implements the retry/backoff/drop policy:

- success removes the item and counts it as successful
- PermanentDeliveryError removes the item and counts it as dropped,
  without consuming a retry slot
- any other failure (transient errors, timeouts, unclassified
  exceptions) bumps retry_count; once it exceeds max_retries the item
  is removed and counted as dropped

Backoff is derived from retry_count rather than stored: an item with
retry_count n is due at timestamp + sum(backoff_delay(k) for k in 1..n).
A periodic sweep re-evaluates due items, so no per-item timers exist.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .errors import PermanentDeliveryError
from .metrics import MetricsRecorder
from .models import AdapterRecord, DeliveryContext, DrainResult, LaneResult, QueueItem
from .ports import ConnectivityPort, DeliveryPort
from .queue_store import QueueStore
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)


def backoff_delay(retry_count: int, base_delay: float, max_delay: float) -> float:
    """Delay in seconds before the attempt that follows failure number retry_count.

    delay = base_delay * 2**retry_count, capped at max_delay. No delay
    applies to an item that has never failed.
    """
    if retry_count <= 0:
        return 0.0
    return min(base_delay * (2**retry_count), max_delay)


class DeliveryEngine(DeliveryPort):
    """Drains due queue items, one independent task per provider lane.

    Lanes never block each other: a slow or hung send in one lane only
    delays that lane, and every send is bounded by send_timeout.
    """

    def __init__(
        self,
        store: QueueStore,
        registry: AdapterRegistry,
        metrics: MetricsRecorder,
        connectivity: ConnectivityPort | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 300.0,
        batch_size: int = 20,
        send_timeout: float = 10.0,
        max_age: timedelta | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize the delivery engine.

        Args:
            store: Queue store holding pending items.
            registry: Registry used to resolve each lane's adapter.
            metrics: Recorder for success/failed/dropped counters.
            connectivity: Connectivity source (always online if omitted).
            max_retries: Retries allowed after the first failed attempt.
            base_delay: Base backoff delay in seconds.
            max_delay: Upper bound for a single backoff delay in seconds.
            batch_size: Items pulled from a lane per batch.
            send_timeout: Timeout in seconds for one send attempt.
            max_age: Items older than this are pruned by sweep() (optional).
            clock: Source of the current time (timezone-aware).
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.registry = registry
        self.metrics = metrics
        self.connectivity = connectivity
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.batch_size = batch_size
        self.send_timeout = send_timeout
        self.max_age = max_age
        self.clock = clock
        self._lanes: dict[str, asyncio.Task[LaneResult]] = {}
        self._background: set[asyncio.Task[DrainResult]] = set()
        self._closing = False
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def closing(self) -> bool:
        return self._closing

    def start(self) -> None:
        """Subscribe to connectivity-restored signals."""
        self._closing = False
        if self.connectivity is not None and self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self._on_online)

    def is_online(self) -> bool:
        if self.connectivity is None:
            return True
        return self.connectivity.is_online()

    def next_attempt_at(self, item: QueueItem) -> datetime:
        """When an item becomes due, recomputed from its retry count."""
        total = sum(
            backoff_delay(k, self.base_delay, self.max_delay)
            for k in range(1, item.retry_count + 1)
        )
        return item.timestamp + timedelta(seconds=total)

    def is_due(self, item: QueueItem, now: datetime | None = None) -> bool:
        return self.next_attempt_at(item) <= (now or self.clock())

    def request_drain(self, provider: str | None = None) -> asyncio.Task[DrainResult] | None:
        """Schedule a background drain if online. Fire-and-forget.

        Returns:
            The scheduled task, or None if nothing was scheduled.
        """
        if self._closing or not self.is_online():
            return None
        try:
            task = asyncio.get_running_loop().create_task(self.drain(provider))
        except RuntimeError:
            logger.debug("No running event loop, opportunistic drain skipped")
            return None
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self, provider: str | None = None) -> DrainResult:
        """Attempt delivery of due items in every lane (or one lane).

        A lane that is already draining is joined rather than restarted,
        so concurrent calls never send the same item twice.
        """
        if self._closing:
            return DrainResult()
        if not self.is_online():
            logger.debug("Offline, drain deferred")
            return DrainResult()

        providers = [provider] if provider is not None else await self.store.providers()
        if not providers:
            return DrainResult()

        tasks = [self._lane_task(name) for name in providers]
        # shield: cancelling one caller must not cancel a lane other callers share
        outcomes = await asyncio.gather(
            *(asyncio.shield(task) for task in tasks), return_exceptions=True
        )

        lanes: list[LaneResult] = []
        for name, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Lane '{name}' failed: {outcome}", exc_info=outcome)
                continue
            lanes.append(outcome)

        result = DrainResult(lanes=tuple(lanes))
        if result.attempted:
            logger.info(
                f"Drain completed: {result.attempted} attempted, "
                f"{result.succeeded} delivered, {result.retried} rescheduled, "
                f"{result.dropped} dropped, {result.skipped} skipped"
            )
        return result

    async def sweep(self) -> DrainResult:
        """Prune expired items, then drain every lane."""
        if self.max_age is not None:
            try:
                await self.store.prune_older_than(self.max_age)
            except Exception as e:
                logger.error(f"Failed to prune queue: {e}", exc_info=True)
        return await self.drain()

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop starting new lanes and let in-flight sends finish.

        Each lane stops after its current item. Whatever has not settled
        within timeout (default: twice the send timeout) is cancelled;
        unfinished items simply stay queued.
        """
        self._closing = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        pending_tasks: set[asyncio.Task] = {*self._lanes.values(), *self._background}
        if not pending_tasks:
            return

        wait_for = timeout if timeout is not None else self.send_timeout * 2
        logger.info(f"Waiting up to {wait_for:.1f}s for {len(pending_tasks)} delivery tasks")
        _, still_running = await asyncio.wait(pending_tasks, timeout=wait_for)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} delivery tasks at shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)

    def _on_online(self) -> None:
        logger.info("Connectivity restored, draining queue")
        self.request_drain()

    def _lane_task(self, provider: str) -> asyncio.Task[LaneResult]:
        existing = self._lanes.get(provider)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.get_running_loop().create_task(
            self._run_lane(provider), name=f"courier-lane-{provider}"
        )
        self._lanes[provider] = task

        def _forget(done: asyncio.Task[LaneResult]) -> None:
            if self._lanes.get(provider) is done:
                del self._lanes[provider]

        task.add_done_callback(_forget)
        return task

    async def _run_lane(self, provider: str) -> LaneResult:
        """Deliver due items for one provider, oldest first.

        Each item is attempted at most once per pass.
        """
        record = self.registry.resolve(provider)
        if record is None or not record.initialized:
            waiting = await self.store.dequeue_batch(provider, limit=self.store.max_size)
            logger.debug(
                f"Adapter '{provider}' is not available, leaving {len(waiting)} items queued"
            )
            return LaneResult(provider=provider, skipped=len(waiting))

        attempted: set[str] = set()
        counts = {"succeeded": 0, "retried": 0, "dropped": 0}

        while not self._closing and self.is_online():
            now = self.clock()
            batch = await self.store.dequeue_batch(
                provider,
                limit=self.batch_size,
                predicate=lambda i: i.id not in attempted and self.is_due(i, now),
            )
            if not batch:
                break

            for item in batch:
                if self._closing:
                    break
                attempted.add(item.id)
                outcome = await self._deliver(record, item)
                if outcome is not None:
                    counts[outcome] += 1

        return LaneResult(
            provider=provider,
            attempted=len(attempted),
            succeeded=counts["succeeded"],
            retried=counts["retried"],
            dropped=counts["dropped"],
        )

    async def _deliver(self, record: AdapterRecord, item: QueueItem) -> str | None:
        """Attempt one send and apply the outcome to the queue and metrics.

        Returns:
            "succeeded", "retried" or "dropped", or None if the item
            vanished from the queue while it was being sent.
        """
        context = DeliveryContext(
            item_id=item.id,
            provider=item.provider,
            attempt=item.retry_count + 1,
            queued_at=item.timestamp,
        )

        try:
            await asyncio.wait_for(
                record.adapter.send(item.error, context), timeout=self.send_timeout
            )
        except PermanentDeliveryError as e:
            logger.warning(
                f"Permanent delivery failure for item {item.id} "
                f"to '{item.provider}', dropping: {e}"
            )
            removed = await self.store.remove(item.id)
            await self.metrics.increment(failed=1, dropped=1 if removed else 0)
            return "dropped" if removed else None
        except TimeoutError:
            logger.warning(
                f"Send of item {item.id} to '{item.provider}' timed out "
                f"after {self.send_timeout}s"
            )
            return await self._reschedule_or_drop(item)
        except Exception as e:
            logger.warning(
                f"Transient delivery failure for item {item.id} "
                f"to '{item.provider}' (attempt {context.attempt}): {e}"
            )
            return await self._reschedule_or_drop(item)

        removed = await self.store.remove(item.id)
        if not removed:
            # evicted or cleared mid-send
            logger.debug(f"Delivered item {item.id} was no longer queued")
            return None
        await self.metrics.increment(successful=1)
        logger.debug(f"Delivered item {item.id} to '{item.provider}'")
        return "succeeded"

    async def _reschedule_or_drop(self, item: QueueItem) -> str | None:
        new_count = item.retry_count + 1
        if new_count > self.max_retries:
            logger.error(
                f"Item {item.id} for '{item.provider}' failed {new_count} times, dropping"
            )
            removed = await self.store.remove(item.id)
            await self.metrics.increment(failed=1, dropped=1 if removed else 0)
            return "dropped" if removed else None

        updated = await self.store.update_retry_count(item.id, new_count)
        await self.metrics.increment(failed=1)
        if updated is None:
            return None
        logger.debug(
            f"Item {item.id} rescheduled for {self.next_attempt_at(updated).isoformat()}"
        )
        return "retried"
