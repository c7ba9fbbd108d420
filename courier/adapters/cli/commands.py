"""CLI command implementations for Courier diagnostics.

Provides human-initiated actions through the command-line interface.

This adapter maps CLI commands (stats, metrics, export, import, flush,
clear, prune) to DiagnosticsPort and DeliveryPort operations. It handles
CLI-specific formatting and error reporting: every command returns a
result dictionary instead of raising.
"""

import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any

from courier.core.models import QueueSize
from courier.core.ports import DeliveryPort, DiagnosticsPort
from courier.core.serialization import decode_export, encode_export, metrics_to_dict

logger = logging.getLogger(__name__)


class CLICommandHandler:
    """Handles CLI commands by delegating to the diagnostics and delivery ports."""

    def __init__(self, diagnostics: DiagnosticsPort, delivery: DeliveryPort):
        """Initialize the CLI command handler.

        Args:
            diagnostics: DiagnosticsPort implementation for inspection and maintenance.
            delivery: DeliveryPort implementation for on-demand drains.
        """
        self.diagnostics = diagnostics
        self.delivery = delivery

    async def stats(self, format: str = "json") -> dict[str, Any]:
        """Report queue statistics.

        Args:
            format: Output format ('json' or 'text').
        """
        stats = await self.diagnostics.get_queue_stats()
        data = {
            "item_count": stats.item_count,
            "byte_size": stats.byte_size,
            "oldest_timestamp": (
                stats.oldest_timestamp.isoformat() if stats.oldest_timestamp else None
            ),
            "by_provider": dict(stats.by_provider),
            "retry_distribution": {str(k): v for k, v in stats.retry_distribution.items()},
        }
        if format == "text":
            return {"status": "success", "operation": "stats", "data": self._format_stats(stats)}
        if format != "json":
            return {
                "status": "error",
                "operation": "stats",
                "message": f"Unsupported format: {format}",
            }
        return {"status": "success", "operation": "stats", "data": data}

    async def metrics(self) -> dict[str, Any]:
        """Report delivery counters."""
        metrics = await self.diagnostics.get_metrics()
        return {"status": "success", "operation": "metrics", "data": metrics_to_dict(metrics)}

    async def export_data(self, path: str | None = None) -> dict[str, Any]:
        """Export persisted state as a JSON document.

        Args:
            path: File to write (the document is returned inline if omitted).
        """
        data = await self.diagnostics.export_data()
        document = encode_export(data)
        if path is None:
            return {"status": "success", "operation": "export", "data": document}

        try:
            await asyncio.to_thread(Path(path).write_text, document, encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write export file: {e}")
            return {"status": "error", "operation": "export", "message": str(e)}

        return {
            "status": "success",
            "operation": "export",
            "message": f"Exported {len(data.queue)} queued items to {path}",
        }

    async def import_data(self, path: str) -> dict[str, Any]:
        """Replace persisted state with an exported JSON document."""
        try:
            document = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            data = decode_export(document)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to import {path}: {e}")
            return {"status": "error", "operation": "import", "message": str(e)}

        await self.diagnostics.import_data(data)
        return {
            "status": "success",
            "operation": "import",
            "message": f"Imported {len(data.queue)} queued items from {path}",
        }

    async def flush(self, provider: str | None = None) -> dict[str, Any]:
        """Drain due items now (optionally one provider only)."""
        result = await self.delivery.drain(provider)
        return {
            "status": "success",
            "operation": "flush",
            "data": {
                "attempted": result.attempted,
                "succeeded": result.succeeded,
                "retried": result.retried,
                "dropped": result.dropped,
                "skipped": result.skipped,
            },
        }

    async def clear(self, provider: str | None = None) -> dict[str, Any]:
        """Remove queued items (optionally one provider only)."""
        removed = await self.diagnostics.clear_queue(provider)
        result: dict[str, Any] = {
            "status": "success",
            "operation": "clear",
            "message": f"Removed {removed} queued items",
        }
        if provider:
            result["provider"] = provider
        return result

    async def prune(self, max_age_hours: float) -> dict[str, Any]:
        """Remove queued items older than max_age_hours."""
        if max_age_hours < 0:
            return {
                "status": "error",
                "operation": "prune",
                "message": f"max_age_hours must be non-negative, got {max_age_hours}",
            }
        removed = await self.diagnostics.prune(timedelta(hours=max_age_hours))
        return {
            "status": "success",
            "operation": "prune",
            "message": f"Pruned {removed} queued items older than {max_age_hours}h",
        }

    @staticmethod
    def _format_stats(stats: QueueSize) -> str:
        """Format queue statistics as human-readable text."""
        lines = [
            f"Pending items: {stats.item_count}",
            f"Encoded size: {stats.byte_size} bytes",
            f"Oldest item: {stats.oldest_timestamp.isoformat() if stats.oldest_timestamp else '-'}",
        ]

        if stats.by_provider:
            lines.append("")
            lines.append("By Provider:")
            for provider, count in sorted(stats.by_provider.items(), key=lambda x: -x[1]):
                lines.append(f"  {provider}: {count}")

        if stats.retry_distribution:
            lines.append("")
            lines.append("By Retry Count:")
            for retries, count in sorted(stats.retry_distribution.items()):
                lines.append(f"  {retries}: {count}")

        return "\n".join(lines)


async def run_command(
    diagnostics: DiagnosticsPort,
    delivery: DeliveryPort,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Run a CLI command.

    Entry point for executing CLI commands. Maps command names to handler methods.

    Args:
        diagnostics: DiagnosticsPort implementation.
        delivery: DeliveryPort implementation.
        command: Command name ('stats', 'metrics', 'export', 'import',
            'flush', 'clear', 'prune').
        args: Dictionary of command arguments.

    Returns:
        Dictionary with command result.

    Raises:
        ValueError: If command is not recognized.
    """
    handler = CLICommandHandler(diagnostics, delivery)

    if command == "stats":
        return await handler.stats(args.get("format", "json"))

    elif command == "metrics":
        return await handler.metrics()

    elif command == "export":
        return await handler.export_data(args.get("path"))

    elif command == "import":
        return await handler.import_data(args["path"])

    elif command == "flush":
        return await handler.flush(args.get("provider"))

    elif command == "clear":
        return await handler.clear(args.get("provider"))

    elif command == "prune":
        return await handler.prune(float(args["max_age_hours"]))

    else:
        raise ValueError(f"Unknown command: {command}")
