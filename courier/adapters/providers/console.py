"""Console provider adapter.

Implements AdapterPort by printing error reports to the terminal with
human-readable formatting. Always succeeds once initialized.
"""

import asyncio
import logging
from typing import Any

from courier.core.models import Breadcrumb, DeliveryContext, NormalizedError
from courier.core.ports import AdapterPort

logger = logging.getLogger(__name__)


class ConsoleProviderAdapter(AdapterPort):
    """Prints delivered errors to stdout."""

    def __init__(self, verbose: bool = False):
        """Initialize console provider adapter.

        Args:
            verbose: If True, include stack frames, extra data and breadcrumbs.
        """
        self.verbose = verbose
        self.initialized = False
        self.context: dict[str, Any] = {}
        self.breadcrumbs: list[Breadcrumb] = []

    async def initialize(self, config: dict[str, Any] | None) -> None:
        if config and "verbose" in config:
            self.verbose = bool(config["verbose"])
        self.initialized = True
        logger.debug(f"Console adapter ready (verbose={self.verbose})")

    async def send(self, error: NormalizedError, context: DeliveryContext) -> None:
        """Print one error report."""
        await asyncio.to_thread(print, self.format_report(error, context))

    async def set_context(self, context: dict[str, Any]) -> None:
        self.context = dict(context)

    async def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        self.breadcrumbs.append(breadcrumb)

    def format_report(self, error: NormalizedError, context: DeliveryContext) -> str:
        """Format a report for one error."""
        lines = [
            "=" * 80,
            f"{error.level.value.upper()}: {error.kind}",
            "=" * 80,
            f"Message: {error.message}",
            f"Error ID: {error.id}",
            f"Timestamp: {error.timestamp.isoformat()}",
            f"Attempt: {context.attempt}",
        ]

        if error.user is not None:
            who = error.user.username or error.user.email or error.user.id
            lines.append(f"User: {who}")

        if error.tags:
            tags_str = ", ".join(f"{k}={v}" for k, v in sorted(error.tags.items()))
            lines.append(f"Tags: {tags_str}")

        if self.verbose:
            lines.extend(self._format_details(error))

        lines.append("=" * 80)
        return "\n".join(lines)

    @staticmethod
    def _format_details(error: NormalizedError) -> list[str]:
        lines = ["", "STACK:"]
        for frame in error.stack_frames:
            location = f"{frame.filename}:{frame.lineno}"
            lines.append(f"  at {frame.function or '<anonymous>'} ({location})")

        if error.extra:
            lines.append("")
            lines.append("EXTRA:")
            for key, value in sorted(error.extra.items()):
                lines.append(f"  {key}: {value}")

        if error.breadcrumbs:
            lines.append("")
            lines.append("BREADCRUMBS:")
            for breadcrumb in error.breadcrumbs:
                category = f"[{breadcrumb.category}] " if breadcrumb.category else ""
                lines.append(
                    f"  {breadcrumb.timestamp.isoformat()} {category}{breadcrumb.message}"
                )
        return lines
