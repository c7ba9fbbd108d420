"""Ambient diagnostic context: user, tags, extra data and breadcrumbs.

This is an explicitly owned object with a defined lifecycle (created at
startup, cleared via reset()) rather than module-level global state.
Nothing here expires implicitly.
"""

import logging
from collections import deque
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from .models import Breadcrumb, ErrorLevel, UserContext
from .serialization import user_from_dict, user_to_dict

logger = logging.getLogger(__name__)


class ContextManager:
    """Holds the process-wide context merged into every captured error."""

    def __init__(
        self,
        max_breadcrumbs: int = 100,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize empty context.

        Args:
            max_breadcrumbs: Size of the breadcrumb ring buffer. When full,
                the oldest breadcrumb is evicted.
            clock: Source of breadcrumb timestamps.
        """
        if max_breadcrumbs <= 0:
            raise ValueError(f"max_breadcrumbs must be positive, got {max_breadcrumbs}")
        self.max_breadcrumbs = max_breadcrumbs
        self.clock = clock
        self._breadcrumbs: deque[Breadcrumb] = deque(maxlen=max_breadcrumbs)
        self._user: UserContext | None = None
        self._tags: dict[str, str] = {}
        self._extra: dict[str, Any] = {}

    @property
    def user(self) -> UserContext | None:
        return self._user

    @property
    def tags(self) -> dict[str, str]:
        return dict(self._tags)

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self._extra)

    def set_user(self, user: UserContext | None) -> None:
        """Set or clear (None) the current user."""
        self._user = user

    def set_tags(self, tags: Mapping[str, Any]) -> None:
        """Merge tags into the current tag set. Values are stored as strings."""
        self._tags.update({str(k): str(v) for k, v in tags.items()})

    def set_extra(self, extra: Mapping[str, Any]) -> None:
        """Merge custom data into the current extra mapping."""
        self._extra.update(extra)

    def add_breadcrumb(
        self,
        message: str,
        category: str | None = None,
        level: ErrorLevel = ErrorLevel.INFO,
        data: Mapping[str, Any] | None = None,
    ) -> Breadcrumb:
        """Append a breadcrumb stamped with the current time."""
        breadcrumb = Breadcrumb(
            message=message,
            timestamp=self.clock(),
            category=category,
            level=level,
            data=data or {},
        )
        self._breadcrumbs.append(breadcrumb)
        return breadcrumb

    def breadcrumbs(self) -> tuple[Breadcrumb, ...]:
        """Return the trail, oldest first."""
        return tuple(self._breadcrumbs)

    def clear_breadcrumbs(self) -> None:
        self._breadcrumbs.clear()

    def reset(self) -> None:
        """Clear user, tags, extra and breadcrumbs."""
        self._breadcrumbs.clear()
        self._user = None
        self._tags.clear()
        self._extra.clear()

    def as_dict(self) -> dict[str, Any]:
        """Context payload forwarded to adapters' set_context."""
        return {
            "user": user_to_dict(self._user) if self._user else None,
            "tags": dict(self._tags),
            "extra": dict(self._extra),
        }

    def snapshot(self) -> dict[str, Any] | None:
        """Return the persisted user-context record, or None when empty."""
        if self._user is None and not self._tags and not self._extra:
            return None
        return self.as_dict()

    def restore(self, record: dict[str, Any] | None) -> None:
        """Load a record produced by snapshot(). Breadcrumbs are untouched."""
        if not record:
            self._user = None
            self._tags = {}
            self._extra = {}
            return
        user = record.get("user")
        self._user = user_from_dict(user) if user else None
        self._tags = {str(k): str(v) for k, v in (record.get("tags") or {}).items()}
        self._extra = dict(record.get("extra") or {})
