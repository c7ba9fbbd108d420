"""Durable, bounded, ordered store of pending deliveries.

The store keeps an in-memory copy of the queue that is authoritative for
the running process and writes it through to the persistence backend on
every mutation. A failed write is logged as a PersistenceError and the
call carries on in memory: items are best-effort durable, not
transactionally durable.
"""

import logging
import uuid
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .errors import CapacityExceeded, OversizedPayloadError, PersistenceError
from .locks import KeyedLock
from .metrics import MetricsRecorder
from .models import NormalizedError, QueueItem, QueueSize
from .ports import PersistencePort
from .serialization import QUEUE_KEY, decode_queue, encode_error, encode_queue

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueStore:
    """Pending delivery items, ordered oldest first and filterable by provider.

    Overflow policy: when the queue exceeds max_size, the oldest items are
    evicted until it fits again. Each eviction counts as a dropped error.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        metrics: MetricsRecorder,
        max_size: int = 100,
        max_item_bytes: int = 65536,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the queue store.

        Args:
            persistence: Backend the queue blob is written to.
            metrics: Recorder that receives eviction drops.
            max_size: Maximum number of pending items.
            max_item_bytes: Maximum encoded size of a single error record.
            locks: Shared per-key locks (a private instance if omitted).
            clock: Source of the current time (timezone-aware).
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.persistence = persistence
        self.metrics = metrics
        self.max_size = max_size
        self.max_item_bytes = max_item_bytes
        self.locks = locks or KeyedLock()
        self.clock = clock
        self._items: list[QueueItem] = []
        self._loaded = False
        self.persistence_failures = 0

    async def load(self) -> None:
        """Read the persisted queue once. Subsequent calls are no-ops."""
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()

    def check_item_size(self, error: NormalizedError) -> int:
        """Return the encoded size of a record.

        Raises:
            OversizedPayloadError: If the record exceeds max_item_bytes.
        """
        size = len(encode_error(error).encode("utf-8"))
        if size > self.max_item_bytes:
            raise OversizedPayloadError(size, self.max_item_bytes)
        return size

    async def enqueue(self, error: NormalizedError, provider: str) -> str:
        """Add a record for a provider and return the generated item id.

        Raises:
            OversizedPayloadError: If the record exceeds max_item_bytes.
        """
        self.check_item_size(error)

        item = QueueItem(
            id=str(uuid.uuid4()),
            error=error,
            provider=provider,
            retry_count=0,
            timestamp=self.clock(),
        )

        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            self._items.append(item)
            self._items.sort(key=lambda i: i.timestamp)
            evicted = self._evict_overflow()
            await self._persist()

        if evicted:
            logger.warning(str(CapacityExceeded(len(evicted), self.max_size)))
            await self.metrics.increment(dropped=len(evicted))

        logger.debug(f"Queued item {item.id} for provider '{provider}'")
        return item.id

    async def dequeue_batch(
        self,
        provider: str | None = None,
        limit: int = 10,
        predicate: Callable[[QueueItem], bool] | None = None,
    ) -> list[QueueItem]:
        """Return up to limit items, oldest first.

        Items are not removed; the caller removes them once delivered.

        Args:
            provider: Only return items for this provider (optional).
            limit: Maximum number of items to return.
            predicate: Additional filter applied before the limit (optional).
        """
        if limit <= 0:
            return []
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            matching = [
                item
                for item in self._items
                if (provider is None or item.provider == provider)
                and (predicate is None or predicate(item))
            ]
            return matching[:limit]

    async def get(self, item_id: str) -> QueueItem | None:
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            for item in self._items:
                if item.id == item_id:
                    return item
            return None

    async def remove(self, item_id: str) -> bool:
        """Remove an item by id. Returns False if it was not queued."""
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            remaining = [item for item in self._items if item.id != item_id]
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
            await self._persist()
            return True

    async def update_retry_count(
        self, item_id: str, retry_count: int
    ) -> QueueItem | None:
        """Replace an item with a copy carrying a new retry count.

        Returns:
            The updated item, or None if it is no longer queued.

        Raises:
            ValueError: If the new count is lower than the current one.
        """
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            for index, item in enumerate(self._items):
                if item.id == item_id:
                    updated = item.with_retry_count(retry_count)
                    self._items[index] = updated
                    await self._persist()
                    return updated
            return None

    async def prune_older_than(self, max_age: timedelta) -> int:
        """Remove items created more than max_age ago. Returns the count removed."""
        cutoff = self.clock() - max_age
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            kept = [item for item in self._items if item.timestamp > cutoff]
            pruned = len(self._items) - len(kept)
            if pruned:
                self._items = kept
                await self._persist()
        if pruned:
            logger.info(f"Pruned {pruned} queued items older than {max_age}")
            await self.metrics.increment(dropped=pruned)
        return pruned

    async def size(self) -> QueueSize:
        """Summarize the queue: item count, encoded size, oldest timestamp."""
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            items = list(self._items)

        return QueueSize(
            item_count=len(items),
            byte_size=len(encode_queue(items).encode("utf-8")) if items else 0,
            oldest_timestamp=min((i.timestamp for i in items), default=None),
            by_provider=Counter(item.provider for item in items),
            retry_distribution=Counter(item.retry_count for item in items),
        )

    async def clear(self, provider: str | None = None) -> int:
        """Remove all items, or only one provider's. Returns the count removed."""
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            if provider is None:
                removed = len(self._items)
                self._items = []
                await self._remove_record()
            else:
                kept = [item for item in self._items if item.provider != provider]
                removed = len(self._items) - len(kept)
                self._items = kept
                await self._persist()
        return removed

    async def providers(self) -> list[str]:
        """Return providers with at least one pending item, in queue order."""
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            return list(dict.fromkeys(item.provider for item in self._items))

    async def items(self) -> list[QueueItem]:
        async with self.locks.hold(QUEUE_KEY):
            await self._ensure_loaded()
            return list(self._items)

    async def replace_all(self, items: list[QueueItem]) -> None:
        """Overwrite the queue with the given items (used by import).

        The size bound still applies; overflow evicts the oldest items.
        """
        async with self.locks.hold(QUEUE_KEY):
            self._loaded = True
            self._items = sorted(items, key=lambda i: i.timestamp)
            evicted = self._evict_overflow()
            await self._persist()
        if evicted:
            logger.warning(str(CapacityExceeded(len(evicted), self.max_size)))
            await self.metrics.increment(dropped=len(evicted))

    def _evict_overflow(self) -> list[QueueItem]:
        """Drop the oldest items beyond max_size. Caller must hold the queue lock."""
        overflow = len(self._items) - self.max_size
        if overflow <= 0:
            return []
        evicted = self._items[:overflow]
        self._items = self._items[overflow:]
        return evicted

    async def _ensure_loaded(self) -> None:
        """Read the persisted queue. Caller must hold the queue lock."""
        if self._loaded:
            return
        self._loaded = True
        try:
            blob = await self.persistence.get(QUEUE_KEY)
        except Exception as e:
            self.persistence_failures += 1
            logger.error(f"{PersistenceError(QUEUE_KEY, 'read', e)}; starting with an empty queue")
            return
        if blob is None:
            return
        try:
            self._items = sorted(decode_queue(blob), key=lambda i: i.timestamp)
        except ValueError as e:
            logger.warning(f"Discarding unreadable queue record: {e}")
            return
        evicted = self._evict_overflow()
        logger.info(f"Loaded {len(self._items)} pending items from storage")
        if evicted:
            # metrics has its own lock key and never takes the queue lock
            logger.warning(str(CapacityExceeded(len(evicted), self.max_size)))
            await self.metrics.increment(dropped=len(evicted))
            await self._persist()

    async def _persist(self) -> None:
        """Write the queue through. Caller must hold the queue lock."""
        try:
            await self.persistence.set(QUEUE_KEY, encode_queue(self._items))
        except Exception as e:
            self.persistence_failures += 1
            logger.error(f"{PersistenceError(QUEUE_KEY, 'write', e)}; keeping in-memory queue")

    async def _remove_record(self) -> None:
        try:
            await self.persistence.remove(QUEUE_KEY)
        except Exception as e:
            self.persistence_failures += 1
            logger.error(f"{PersistenceError(QUEUE_KEY, 'remove', e)}")
