"""Static connectivity adapter.

Implements ConnectivityPort with a flag the host flips explicitly, e.g.
from its own network status hooks.
"""

import logging
from collections.abc import Callable

from courier.core.ports import ConnectivityPort

logger = logging.getLogger(__name__)


class StaticConnectivity(ConnectivityPort):
    """Connectivity state controlled by set_online()."""

    def __init__(self, online: bool = True):
        self._online = online
        self._callbacks: list[Callable[[], None]] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def set_online(self, online: bool) -> None:
        """Update the state; an offline to online change notifies subscribers."""
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
            logger.info("Connectivity lost")
