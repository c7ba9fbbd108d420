"""Core domain logic for the Courier delivery system.

This package contains zero external dependencies and represents
the pure delivery logic: queueing, retry policy, capture and
diagnostics. All backends and integrations are handled by the
adapters package.
"""

from .errors import (
    AdapterInitError,
    CapacityExceeded,
    CourierError,
    DeliveryError,
    OversizedPayloadError,
    PermanentDeliveryError,
    PersistenceError,
    TransientDeliveryError,
)
from .models import (
    AdapterRecord,
    Breadcrumb,
    DeliveryContext,
    DrainResult,
    ErrorLevel,
    ExportedData,
    LaneResult,
    Metrics,
    NormalizedError,
    QueueItem,
    QueueSize,
    StackFrame,
    UserContext,
)

__all__ = [
    "AdapterInitError",
    "AdapterRecord",
    "Breadcrumb",
    "CapacityExceeded",
    "CourierError",
    "DeliveryContext",
    "DeliveryError",
    "DrainResult",
    "ErrorLevel",
    "ExportedData",
    "LaneResult",
    "Metrics",
    "NormalizedError",
    "OversizedPayloadError",
    "PermanentDeliveryError",
    "PersistenceError",
    "QueueItem",
    "QueueSize",
    "StackFrame",
    "TransientDeliveryError",
    "UserContext",
]
