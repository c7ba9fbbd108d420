"""Daemon scheduler adapter.

Implements a long-running asyncio loop that triggers a delivery sweep
(prune expired items, then drain every lane) at a fixed interval. This
single periodic sweep replaces per-item retry timers.
"""

import asyncio
import logging
import signal
from typing import cast

from courier.core.ports import DeliveryPort

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """Asyncio-based daemon scheduler for periodic delivery sweeps."""

    def __init__(
        self,
        delivery_port: DeliveryPort | None = None,
        sweep_interval_seconds: float = 30.0,
        shutdown_timeout_seconds: float | None = None,
    ):
        """Initialize daemon scheduler.

        Args:
            delivery_port: DeliveryPort implementation to sweep (can be set later).
            sweep_interval_seconds: Interval between sweeps in seconds.
            shutdown_timeout_seconds: Grace period for in-flight sends on stop.
        """
        self.delivery_port = delivery_port
        self.sweep_interval_seconds = sweep_interval_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.running = False
        self._stop_event: asyncio.Event | None = None
        self._sweep_failure_count = 0

    async def start(self) -> None:
        """Run the sweep loop until stop() is called or a signal arrives.

        Raises:
            ValueError: If delivery_port is not set.
        """
        if self.delivery_port is None:
            raise ValueError("delivery_port must be set before starting the scheduler")

        if self.running:
            logger.warning("Delivery scheduler already running")
            return

        self.running = True
        self._stop_event = asyncio.Event()
        logger.info(
            f"Starting delivery scheduler with {self.sweep_interval_seconds}s interval"
        )

        self._setup_signal_handlers()

        try:
            await self._run_loop()
        except asyncio.CancelledError:
            logger.info("Delivery scheduler cancelled")
        except Exception as e:
            logger.error(f"Delivery scheduler error: {e}", exc_info=True)
        finally:
            self.running = False
            await self._shutdown_delivery()
            logger.info("Delivery scheduler stopped")

    async def stop(self) -> None:
        """Ask the loop to exit after the current sweep."""
        if not self.running:
            return

        logger.info("Stopping delivery scheduler...")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            def _handle_signal(sig: int) -> None:
                logger.info(f"Received signal {sig}, initiating graceful shutdown...")
                asyncio.create_task(self.stop())

            loop.add_signal_handler(signal.SIGTERM, _handle_signal, signal.SIGTERM)
            loop.add_signal_handler(signal.SIGINT, _handle_signal, signal.SIGINT)
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.debug("Signal handlers not available on this platform")
        except Exception as e:
            logger.warning(f"Failed to set up signal handlers: {e}")

    async def _run_loop(self) -> None:
        """Main daemon loop."""
        # Type guard: delivery_port is guaranteed to be non-None (checked in start())
        delivery_port = cast(DeliveryPort, self.delivery_port)
        stop_event = cast(asyncio.Event, self._stop_event)

        sweep_number = 0
        loop = asyncio.get_running_loop()

        while self.running:
            sweep_number += 1
            try:
                start_time = loop.time()
                result = await delivery_port.sweep()
                elapsed = loop.time() - start_time
                self._sweep_failure_count = 0

                if result.attempted or result.skipped:
                    logger.info(
                        f"Sweep #{sweep_number} completed in {elapsed:.2f}s: "
                        f"{result.succeeded} delivered, "
                        f"{result.retried} rescheduled, "
                        f"{result.dropped} dropped, "
                        f"{result.skipped} skipped"
                    )
                else:
                    logger.debug(f"Sweep #{sweep_number}: nothing due")

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._sweep_failure_count += 1
                logger.error(
                    f"Error in sweep #{sweep_number}: {e} "
                    f"(consecutive failures: {self._sweep_failure_count})",
                    exc_info=True,
                )
                if self._sweep_failure_count >= 5:
                    logger.critical(
                        f"Delivery sweep has failed {self._sweep_failure_count} "
                        f"consecutive times. Manual intervention may be required."
                    )

            if self.running:
                try:
                    await asyncio.wait_for(
                        stop_event.wait(), timeout=self.sweep_interval_seconds
                    )
                except TimeoutError:
                    pass

    async def _shutdown_delivery(self) -> None:
        if self.delivery_port is None:
            return
        try:
            await self.delivery_port.shutdown(self.shutdown_timeout_seconds)
        except Exception as e:
            logger.error(f"Error shutting down delivery engine: {e}", exc_info=True)

    async def run_single_sweep(self) -> None:
        """Run one sweep on demand (non-daemon mode)."""
        if self.delivery_port is None:
            raise ValueError("delivery_port must be set to run a sweep")

        logger.info("Running single delivery sweep")
        result = await self.delivery_port.sweep()
        logger.info(
            f"Sweep completed: {result.succeeded} delivered, "
            f"{result.retried} rescheduled, {result.dropped} dropped"
        )
