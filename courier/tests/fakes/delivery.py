"""Fake DeliveryPort implementation for testing."""

from courier.core.models import DrainResult, LaneResult
from courier.core.ports import DeliveryPort


class FakeDeliveryPort(DeliveryPort):
    """Counts sweeps, drains and shutdowns; can be told to fail sweeps."""

    def __init__(self, fail_sweeps: bool = False):
        self.fail_sweeps = fail_sweeps
        self.sweeps = 0
        self.drains: list[str | None] = []
        self.shutdown_timeouts: list[float | None] = []

    async def drain(self, provider: str | None = None) -> DrainResult:
        self.drains.append(provider)
        lane = LaneResult(provider=provider or "console", attempted=1, succeeded=1)
        return DrainResult(lanes=(lane,))

    async def sweep(self) -> DrainResult:
        self.sweeps += 1
        if self.fail_sweeps:
            raise RuntimeError("store unavailable")
        return DrainResult(lanes=(LaneResult(provider="console", succeeded=1),))

    async def shutdown(self, timeout: float | None = None) -> None:
        self.shutdown_timeouts.append(timeout)
