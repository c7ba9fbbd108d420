"""Domain models for the Courier delivery system.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .ports import AdapterPort


def _freeze(value: Mapping[str, Any]) -> MappingProxyType[str, Any]:
    """Wrap a mapping in a read-only proxy (copying it first)."""
    if isinstance(value, MappingProxyType):
        return value
    return MappingProxyType(dict(value))


class ErrorLevel(Enum):
    """Severity of a captured error or breadcrumb."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass(frozen=True)
class StackFrame:
    """A single frame in a stack trace."""

    function: str | None
    filename: str | None
    lineno: int | None
    colno: int | None = None

    def __post_init__(self) -> None:
        """Validate stack frame invariants on creation."""
        if self.lineno is not None and self.lineno < 0:
            raise ValueError(f"lineno must be non-negative, got {self.lineno}")


@dataclass(frozen=True)
class Breadcrumb:
    """A timestamped diagnostic event preceding an error."""

    message: str
    timestamp: datetime
    category: str | None = None
    level: ErrorLevel = ErrorLevel.INFO
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Convert data dict to read-only proxy."""
        object.__setattr__(self, "data", _freeze(self.data))


@dataclass(frozen=True)
class UserContext:
    """Identity of the user affected by an error."""

    id: str | None = None
    email: str | None = None
    username: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Convert attributes dict to read-only proxy."""
        object.__setattr__(self, "attributes", _freeze(self.attributes))


@dataclass(frozen=True)
class NormalizedError:
    """The canonical error record.

    Not an exception object, not a provider payload, but the format every
    adapter receives. Immutable once enqueued.
    """

    id: str
    message: str
    kind: str  # e.g. "ValueError"
    stack_frames: tuple[StackFrame, ...]
    timestamp: datetime
    tags: Mapping[str, str] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)
    breadcrumbs: tuple[Breadcrumb, ...] = ()
    user: UserContext | None = None
    level: ErrorLevel = ErrorLevel.ERROR
    handled: bool = True
    source: str = "manual"

    def __post_init__(self) -> None:
        """Validate the record and freeze its mappings."""
        if not self.id:
            raise ValueError("id must be a non-empty string")
        if not self.kind:
            raise ValueError("kind must be a non-empty string")
        object.__setattr__(self, "tags", _freeze(self.tags))
        object.__setattr__(self, "extra", _freeze(self.extra))


@dataclass(frozen=True)
class QueueItem:
    """A pending delivery owned by the queue store."""

    id: str
    error: NormalizedError
    provider: str
    retry_count: int
    timestamp: datetime  # creation time

    def __post_init__(self) -> None:
        """Validate queue item invariants on creation."""
        if not self.provider:
            raise ValueError("provider must be a non-empty string")
        if self.retry_count < 0:
            raise ValueError(
                f"retry_count must be non-negative, got {self.retry_count}"
            )

    def with_retry_count(self, retry_count: int) -> "QueueItem":
        """Return a copy carrying a new retry count.

        Raises:
            ValueError: If the new count would decrease the current one.
        """
        if retry_count < self.retry_count:
            raise ValueError(
                f"retry_count cannot decrease ({self.retry_count} -> {retry_count})"
            )
        return replace(self, retry_count=retry_count)


@dataclass
class AdapterRecord:
    """A registered adapter and whether it has been initialized.

    Owned by the adapter registry. Mutable so that activation can flip
    the initialized flag without replacing the record.
    """

    name: str
    adapter: "AdapterPort"
    initialized: bool = False


@dataclass(frozen=True)
class Metrics:
    """Snapshot of the delivery counters."""

    total_errors: int = 0
    successful_errors: int = 0
    failed_errors: int = 0
    dropped_errors: int = 0


@dataclass(frozen=True)
class QueueSize:
    """Statistics about the pending queue."""

    item_count: int
    byte_size: int
    oldest_timestamp: datetime | None  # None if queue is empty
    by_provider: Mapping[str, int] = field(default_factory=dict)
    retry_distribution: Mapping[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Convert mutable dicts to immutable proxies."""
        object.__setattr__(self, "by_provider", MappingProxyType(dict(self.by_provider)))
        object.__setattr__(
            self, "retry_distribution", MappingProxyType(dict(self.retry_distribution))
        )


@dataclass(frozen=True)
class DeliveryContext:
    """Per-attempt information handed to an adapter's send capability."""

    item_id: str
    provider: str
    attempt: int  # 1-based
    queued_at: datetime


@dataclass(frozen=True)
class LaneResult:
    """Summary of one drain pass over a single provider lane."""

    provider: str
    attempted: int = 0
    succeeded: int = 0
    retried: int = 0
    dropped: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class DrainResult:
    """Summary of a drain pass across lanes."""

    lanes: tuple[LaneResult, ...] = ()

    @property
    def attempted(self) -> int:
        return sum(lane.attempted for lane in self.lanes)

    @property
    def succeeded(self) -> int:
        return sum(lane.succeeded for lane in self.lanes)

    @property
    def retried(self) -> int:
        return sum(lane.retried for lane in self.lanes)

    @property
    def dropped(self) -> int:
        return sum(lane.dropped for lane in self.lanes)

    @property
    def skipped(self) -> int:
        return sum(lane.skipped for lane in self.lanes)


@dataclass(frozen=True)
class ExportedData:
    """The four persisted records, for diagnostics and migration."""

    queue: tuple[QueueItem, ...]
    user_context: dict[str, Any] | None
    settings: dict[str, Any]
    metrics: Metrics
