"""In-memory persistence adapter.

Implements PersistencePort with a plain dict. Nothing survives the
process; useful for tests and for hosts that opt out of durability.
"""

from courier.core.ports import PersistencePort


class InMemoryPersistence(PersistencePort):
    """Dict-backed key-value store."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return sorted(self._data)
