"""Port interfaces for the Courier delivery system.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - AdapterPort: Deliver records to one reporting backend
   - PersistencePort: Key-value storage for the persisted records
   - ConnectivityPort: Online/offline state and restore signals

2. **Driving Ports** (adapters/external systems call into core)
   - DeliveryPort: Entry point for drains and periodic sweeps
   - DiagnosticsPort: Inspection, export/import and queue maintenance
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from .models import (
    Breadcrumb,
    DeliveryContext,
    DrainResult,
    ExportedData,
    Metrics,
    NormalizedError,
    QueueSize,
)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class AdapterPort(ABC):
    """Port for delivering error records to one reporting backend.

    Adapters implementing this port wrap a provider SDK or API
    (console, webhook, Sentry, etc.). The core only ever calls
    send/set_context/add_breadcrumb after initialize() succeeded.

    Implementations must signal failure classification themselves:
    - raise TransientDeliveryError when retrying may succeed
    - raise PermanentDeliveryError when retrying cannot succeed
    Any other exception is treated as transient.
    """

    @abstractmethod
    async def initialize(self, config: dict[str, Any] | None) -> None:
        """Prepare the adapter for use.

        Args:
            config: Provider-specific configuration (optional).

        Raises:
            Exception: If the adapter cannot be initialized.
        """

    @abstractmethod
    async def send(self, error: NormalizedError, context: DeliveryContext) -> None:
        """Deliver one error record.

        Args:
            error: The normalized error record.
            context: Attempt information (item id, attempt number, etc.).

        Raises:
            TransientDeliveryError: If delivery may succeed later.
            PermanentDeliveryError: If delivery can never succeed.
        """

    @abstractmethod
    async def set_context(self, context: dict[str, Any]) -> None:
        """Forward the ambient user/tag context to the backend."""

    @abstractmethod
    async def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        """Forward a breadcrumb to the backend."""

    async def close(self) -> None:
        """Release resources held by the adapter (optional)."""


class PersistencePort(ABC):
    """Port for a string key-value persistence backend.

    Values are opaque encoded blobs written under fixed, versioned keys.

    Implementations must handle:
    - Concurrent access from a single event loop
    - Durability of completed set/remove calls
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read a value.

        Returns:
            The stored string, or None if the key is absent.

        Raises:
            Exception: If the backend is unavailable.
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one.

        Raises:
            Exception: If the backend is unavailable.
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is a no-op.

        Raises:
            Exception: If the backend is unavailable.
        """

    async def close(self) -> None:
        """Release resources held by the backend (optional)."""


class ConnectivityPort(ABC):
    """Port for the environment's connectivity state.

    Fires subscribed callbacks when the environment transitions from
    offline to online, which triggers an immediate drain pass.
    """

    @abstractmethod
    def is_online(self) -> bool:
        """Return the current connectivity state."""

    @abstractmethod
    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback fired on offline→online transitions.

        Returns:
            A function that removes the subscription.
        """

    async def start(self) -> None:
        """Begin monitoring (optional)."""

    async def stop(self) -> None:
        """Stop monitoring (optional)."""


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class DeliveryPort(ABC):
    """Port for executing drain and sweep passes.

    Driving port: the sweep scheduler, connectivity signals and the CLI
    invoke these methods. Implemented in the core (delivery.py).
    """

    @abstractmethod
    async def drain(self, provider: str | None = None) -> DrainResult:
        """Attempt delivery of all due items (optionally one lane only).

        Idempotent and safe to call concurrently: a lane that is already
        draining is joined, not restarted.
        """

    @abstractmethod
    async def sweep(self) -> DrainResult:
        """Prune expired items, then drain every lane."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop starting new work and let in-flight sends settle."""


class DiagnosticsPort(ABC):
    """Port for inspection and maintenance operations.

    Driving port: the CLI calls these to inspect or migrate state.
    Implemented in the core (diagnostics_service.py).
    """

    @abstractmethod
    async def get_metrics(self) -> Metrics:
        """Return the current delivery counters."""

    @abstractmethod
    async def get_queue_stats(self) -> QueueSize:
        """Return statistics about the pending queue."""

    @abstractmethod
    async def export_data(self) -> ExportedData:
        """Return the four persisted records."""

    @abstractmethod
    async def import_data(self, data: ExportedData) -> None:
        """Replace the persisted records with exported ones."""

    @abstractmethod
    async def clear_queue(self, provider: str | None = None) -> int:
        """Remove pending items (optionally one provider only).

        Returns:
            Number of items removed.
        """

    @abstractmethod
    async def prune(self, max_age: timedelta) -> int:
        """Remove items created more than max_age ago.

        Returns:
            Number of items removed.
        """
