"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeAdapterPort: Scripted send outcomes, captured deliveries
- FakePersistencePort: In-memory key-value store with failure switches
- FakeConnectivityPort: Online flag flipped by the test
- FakeDeliveryPort: Counted sweeps, drains and shutdowns
- FakeClock: Manually advanced time source
- make_error: NormalizedError builder
"""

from .adapter import FakeAdapterPort
from .clock import FakeClock
from .connectivity import FakeConnectivityPort
from .delivery import FakeDeliveryPort
from .persistence import FakePersistencePort
from .records import make_error

__all__ = [
    "FakeAdapterPort",
    "FakeClock",
    "FakeConnectivityPort",
    "FakeDeliveryPort",
    "FakePersistencePort",
    "make_error",
]
