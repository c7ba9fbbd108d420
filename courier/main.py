"""Courier entry point and wiring.

Builds persistence, provider and connectivity adapters from Settings,
hands them to the core services through build_courier(), and runs either
the sweep daemon or the diagnostics REPL. Nothing under courier.core
imports from here or from courier.adapters.
"""

import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import Any

from courier.adapters.cli.commands import CLICommandHandler
from courier.adapters.connectivity.http_probe import HttpProbeConnectivity
from courier.adapters.connectivity.static import StaticConnectivity
from courier.adapters.persistence.memory import InMemoryPersistence
from courier.adapters.persistence.sqlite import SQLitePersistence
from courier.adapters.providers.console import ConsoleProviderAdapter
from courier.adapters.providers.webhook import WebhookProviderAdapter
from courier.adapters.scheduler.daemon import DeliveryScheduler
from courier.config import Settings, load_settings
from courier.core.capture import BeforeSend, CapturePipeline
from courier.core.context import ContextManager
from courier.core.courier import Courier
from courier.core.delivery import DeliveryEngine
from courier.core.diagnostics_service import DiagnosticsService
from courier.core.locks import KeyedLock
from courier.core.metrics import MetricsRecorder
from courier.core.normalizer import ErrorNormalizer
from courier.core.ports import AdapterPort, ConnectivityPort, PersistencePort
from courier.core.queue_store import QueueStore
from courier.core.registry import AdapterRegistry


async def _run_cli_interactive(cli_handler: CLICommandHandler) -> None:
    """Run interactive CLI loop.

    Provides a REPL-like interface for diagnostic commands.

    Args:
        cli_handler: CLICommandHandler instance for executing commands.
    """
    logger = logging.getLogger(__name__)
    logger.info("Starting interactive CLI. Type 'help' for available commands or 'exit' to quit.")

    loop = asyncio.get_running_loop()

    while True:
        try:
            command_line = await loop.run_in_executor(None, input, "courier> ")
            command_line = command_line.strip()

            if not command_line:
                continue

            if command_line.lower() == "exit":
                logger.info("Exiting CLI")
                break

            if command_line.lower() == "help":
                _print_cli_help()
                continue

            parts = command_line.split(maxsplit=1)
            command = parts[0].lower()
            args_str = parts[1] if len(parts) > 1 else ""

            try:
                args = json.loads(args_str) if args_str else {}
            except json.JSONDecodeError:
                logger.error("Invalid JSON arguments. Use 'help' for command syntax.")
                continue

            try:
                result = await _execute_cli_command(cli_handler, command, args)
                print(json.dumps(result, indent=2, default=str))
            except Exception as e:
                logger.error(f"Command execution error: {e}", exc_info=True)
                print(json.dumps({"status": "error", "message": str(e)}, indent=2))

        except EOFError:
            # Ctrl+D to exit
            logger.info("EOF received, exiting CLI")
            break
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            continue


async def _execute_cli_command(
    cli_handler: CLICommandHandler,
    command: str,
    args: dict[str, Any],
) -> dict[str, Any]:
    """Execute a CLI command.

    Raises:
        ValueError: If the command is not recognized or a required
            parameter is missing.
    """
    if command == "stats":
        return await cli_handler.stats(format=args.get("format", "json"))

    elif command == "metrics":
        return await cli_handler.metrics()

    elif command == "export":
        return await cli_handler.export_data(path=args.get("path"))

    elif command == "import":
        if "path" not in args:
            raise ValueError("Missing required parameter: path")
        return await cli_handler.import_data(path=args["path"])

    elif command == "flush":
        return await cli_handler.flush(provider=args.get("provider"))

    elif command == "clear":
        return await cli_handler.clear(provider=args.get("provider"))

    elif command == "prune":
        if "max_age_hours" not in args:
            raise ValueError("Missing required parameter: max_age_hours")
        return await cli_handler.prune(max_age_hours=float(args["max_age_hours"]))

    else:
        raise ValueError(f"Unknown command: {command}. Use 'help' for available commands.")


def _print_cli_help() -> None:
    """Print CLI help message."""
    help_text = """
Available Commands (JSON format):

  stats
    Show queue size, oldest item and per-provider counts.
    Example: stats {"format": "text"}

  metrics
    Show total/successful/failed/dropped counters.

  export
    Export queue, context, settings and metrics as JSON.
    Optional: path (returned inline if omitted)
    Example: export {"path": "courier-export.json"}

  import
    Replace persisted state with an exported document.
    Required: path
    Example: import {"path": "courier-export.json"}

  flush
    Drain due items now.
    Optional: provider

  clear
    Remove queued items.
    Optional: provider

  prune
    Remove items older than the given age.
    Required: max_age_hours
    Example: prune {"max_age_hours": 24}

  help
    Show this help message.

  exit
    Exit the CLI.

Note: All commands accept arguments as a single JSON object.
Provide the JSON after the command name on the same line.
    """
    print(help_text)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_persistence(settings: Settings) -> PersistencePort:
    """Instantiate the configured persistence backend."""
    if settings.storage_backend == "sqlite":
        return SQLitePersistence(db_path=settings.storage_sqlite_path)
    return InMemoryPersistence()


def build_provider(settings: Settings) -> AdapterPort:
    """Instantiate the configured provider adapter."""
    if settings.provider_backend == "webhook":
        return WebhookProviderAdapter(
            url=settings.webhook_url or None,
            api_key=settings.webhook_api_key or None,
            timeout_seconds=settings.webhook_timeout_seconds,
        )
    return ConsoleProviderAdapter(verbose=settings.debug)


def build_connectivity(settings: Settings) -> ConnectivityPort:
    """Instantiate the connectivity monitor (static when no probe URL is set)."""
    if settings.connectivity_probe_url:
        return HttpProbeConnectivity(
            probe_url=settings.connectivity_probe_url,
            interval_seconds=settings.connectivity_probe_interval_seconds,
        )
    return StaticConnectivity(online=True)


def build_courier(
    settings: Settings,
    persistence: PersistencePort | None = None,
    connectivity: ConnectivityPort | None = None,
    before_send: BeforeSend | None = None,
) -> Courier:
    """Wire core services around the given (or configured) adapters.

    Args:
        settings: Validated application settings.
        persistence: Persistence backend (built from settings if omitted).
        connectivity: Connectivity monitor (built from settings if omitted).
        before_send: Filter run on every captured record (optional).

    Returns:
        A Courier facade; call start() before capturing.
    """
    persistence = persistence or build_persistence(settings)
    connectivity = connectivity or build_connectivity(settings)
    locks = KeyedLock()

    metrics = MetricsRecorder(persistence, locks=locks)
    store = QueueStore(
        persistence,
        metrics,
        max_size=settings.queue_max_size,
        max_item_bytes=settings.max_item_bytes,
        locks=locks,
    )
    registry = AdapterRegistry()
    context = ContextManager(max_breadcrumbs=settings.max_breadcrumbs)

    engine = DeliveryEngine(
        store=store,
        registry=registry,
        metrics=metrics,
        connectivity=connectivity,
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        batch_size=settings.drain_batch_size,
        send_timeout=settings.send_timeout_seconds,
        max_age=(
            timedelta(hours=settings.queue_max_age_hours)
            if settings.queue_max_age_hours > 0
            else None
        ),
    )
    pipeline = CapturePipeline(
        normalizer=ErrorNormalizer(max_extra_depth=settings.max_extra_depth),
        context=context,
        registry=registry,
        store=store,
        metrics=metrics,
        engine=engine,
        before_send=before_send,
        environment=settings.environment or None,
        release=settings.release or None,
    )
    diagnostics = DiagnosticsService(
        persistence, store, metrics, context=context, locks=locks
    )

    return Courier(
        persistence=persistence,
        context=context,
        registry=registry,
        store=store,
        engine=engine,
        pipeline=pipeline,
        diagnostics=diagnostics,
    )


async def bootstrap() -> None:
    """Start Courier in the configured run mode.

    Settings and logging come first, then the adapters, then the facade
    (which restores persisted state). The configured provider becomes the
    current adapter unless a restored one already is. Connectivity and
    the facade are always torn down on exit.

    Raises:
        SystemExit: If the provider cannot be activated or the run mode
            is unknown.
    """
    settings = load_settings()

    configure_logging(settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.info("Loading Courier delivery system...")

    persistence = build_persistence(settings)
    logger.info(f"Persistence backend: {settings.storage_backend}")
    connectivity = build_connectivity(settings)
    provider = build_provider(settings)
    logger.info(f"Provider adapter: {settings.provider_backend}")

    courier = build_courier(settings, persistence=persistence, connectivity=connectivity)
    courier.register_adapter(settings.provider_backend, provider)

    await connectivity.start()
    await courier.start()

    current = courier.registry.current()
    if current is None or current.name != settings.provider_backend:
        try:
            await courier.use_adapter(settings.provider_backend)
        except Exception as e:
            logger.error(f"Failed to activate provider adapter: {e}")
            await connectivity.stop()
            await courier.shutdown()
            sys.exit(1)

    logger.info(f"Starting in {settings.run_mode} mode...")

    try:
        if settings.run_mode == "daemon":
            scheduler = DeliveryScheduler(
                delivery_port=courier.engine,
                sweep_interval_seconds=settings.sweep_interval_seconds,
                shutdown_timeout_seconds=settings.send_timeout_seconds * 2,
            )
            await scheduler.start()

        elif settings.run_mode == "cli":
            logger.info("CLI mode - Ready for interactive commands")
            cli_handler = CLICommandHandler(courier.diagnostics, courier.engine)
            await _run_cli_interactive(cli_handler)

        else:
            logger.error(f"Unknown run mode: {settings.run_mode}")
            sys.exit(1)

    finally:
        await connectivity.stop()
        await courier.shutdown(settings.send_timeout_seconds * 2)


def main() -> None:
    """Console-script entry point.

    Exit codes:
        0: Successful shutdown
        1: Fatal bootstrap or runtime error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        asyncio.run(bootstrap())
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except asyncio.CancelledError:
        logger.info("Graceful shutdown completed")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
