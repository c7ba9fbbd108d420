"""Adapter registry: name → adapter mapping plus the current adapter.

Previously queued items keep their provider tag, so they continue
draining to their original adapter after the current adapter changes.
"""

import logging
from typing import Any

from .errors import AdapterInitError
from .models import AdapterRecord
from .ports import AdapterPort

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Owns all AdapterRecords; at most one record per name."""

    def __init__(self) -> None:
        self._records: dict[str, AdapterRecord] = {}
        self._current: str | None = None

    def register(self, name: str, adapter: AdapterPort) -> AdapterRecord:
        """Register an adapter under a name. Last registration wins.

        A replaced adapter loses its initialized state; if it was the
        current adapter, nothing is current until the next activation.
        """
        if not name:
            raise ValueError("adapter name must be a non-empty string")
        if name in self._records:
            logger.warning(f"Adapter '{name}' is already registered, overwriting")
            if self._current == name:
                self._current = None
        record = AdapterRecord(name=name, adapter=adapter)
        self._records[name] = record
        return record

    async def activate(self, name: str, config: dict[str, Any] | None = None) -> AdapterRecord:
        """Initialize the named adapter and make it current.

        initialize() is invoked exactly once per activation. The registry
        never retries a failed initialization.

        Raises:
            AdapterInitError: If the name is unknown or initialize() fails.
                The previous current adapter is left unchanged.
        """
        record = self._records.get(name)
        if record is None:
            raise AdapterInitError(name, "not registered")

        try:
            await record.adapter.initialize(config)
        except Exception as e:
            logger.error(f"Failed to initialize adapter '{name}': {e}", exc_info=True)
            raise AdapterInitError(name, str(e) or e.__class__.__name__) from e

        record.initialized = True
        previous = self._current
        self._current = name
        if previous != name:
            logger.info(f"Current adapter switched from {previous!r} to {name!r}")
        return record

    def current(self) -> AdapterRecord | None:
        if self._current is None:
            return None
        return self._records.get(self._current)

    def resolve(self, name: str) -> AdapterRecord | None:
        """Return the record for a name, or None if it is unregistered."""
        return self._records.get(name)

    def unregister(self, name: str) -> AdapterRecord | None:
        """Remove a record. Items queued for it stay queued and are skipped."""
        record = self._records.pop(name, None)
        if record is not None and self._current == name:
            self._current = None
        return record

    def has(self, name: str) -> bool:
        return name in self._records

    def names(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[AdapterRecord]:
        return list(self._records.values())
