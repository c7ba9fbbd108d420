"""HTTP probe connectivity adapter.

Implements ConnectivityPort by periodically requesting a health URL with
httpx. Any response (even an error status) counts as online; only
transport failures count as offline.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx

from courier.core.ports import ConnectivityPort

logger = logging.getLogger(__name__)


class HttpProbeConnectivity(ConnectivityPort):
    """Polls a URL and fires callbacks on offline to online transitions."""

    def __init__(
        self,
        probe_url: str,
        interval_seconds: float = 15.0,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the probe.

        Args:
            probe_url: URL requested on every probe.
            interval_seconds: Delay between probes.
            timeout_seconds: HTTP timeout for one probe.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.probe_url = probe_url
        self.interval_seconds = interval_seconds
        self.client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)
        self._online = True
        self._callbacks: list[Callable[[], None]] = []
        self._task: asyncio.Task[None] | None = None

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    async def start(self) -> None:
        """Probe once, then keep probing in the background."""
        if self._task is not None:
            return
        await self.probe()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Connectivity probe started for {self.probe_url} "
            f"every {self.interval_seconds}s"
        )

    async def stop(self) -> None:
        """Stop probing and close the httpx client."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.client.aclose()

    async def probe(self) -> bool:
        """Run one probe and update the state. Returns the new state."""
        try:
            await self.client.head(self.probe_url)
            online = True
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False
        self._update(online)
        return online

    def _update(self, online: bool) -> None:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivity restored")
            for callback in list(self._callbacks):
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Connectivity callback failed: {e}", exc_info=True)
        elif was_online and not online:
            logger.warning(f"Connectivity lost (probe to {self.probe_url} failed)")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.probe()
            except Exception as e:
                logger.error(f"Connectivity check failed unexpectedly: {e}", exc_info=True)
