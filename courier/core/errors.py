"""Error taxonomy for the Courier delivery system.

Capture-path errors never escape to the host application, and
delivery-path errors stay inside the delivery engine. Only activation
failures (AdapterInitError) are raised to callers.
"""


class CourierError(Exception):
    """Base class for all Courier errors."""


class PersistenceError(CourierError):
    """A persistence backend read or write failed.

    Logged by the component that hit it; the operation degrades to
    in-memory only for that call.
    """

    def __init__(self, key: str, operation: str, cause: BaseException | None = None):
        self.key = key
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to {operation} '{key}'{detail}")


class AdapterInitError(CourierError):
    """Adapter activation failed; the current adapter is unchanged."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Adapter '{name}' could not be activated: {reason}")


class DeliveryError(CourierError):
    """Base class for failures signaled by an adapter's send capability."""


class TransientDeliveryError(DeliveryError):
    """Retryable delivery failure (network down, throttled, 5xx)."""


class PermanentDeliveryError(DeliveryError):
    """Non-retryable delivery failure (malformed payload, auth failure)."""


class CapacityExceeded(CourierError):
    """The queue overflowed and its oldest items were evicted.

    Never raised to callers; used to describe evictions in logs.
    """

    def __init__(self, evicted: int, max_size: int):
        self.evicted = evicted
        self.max_size = max_size
        super().__init__(
            f"Queue exceeded {max_size} items, evicted {evicted} oldest"
        )


class OversizedPayloadError(CourierError):
    """A single error record exceeds the configured encoded size."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Encoded record is {size} bytes, limit is {limit}")
