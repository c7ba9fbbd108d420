"""Tests for the Courier facade: startup restore, context forwarding,
flushing and teardown."""

import pytest

from courier.core.capture import CapturePipeline
from courier.core.context import ContextManager
from courier.core.courier import CURRENT_ADAPTER_SETTING, Courier
from courier.core.delivery import DeliveryEngine
from courier.core.diagnostics_service import DiagnosticsService
from courier.core.errors import AdapterInitError
from courier.core.locks import KeyedLock
from courier.core.metrics import MetricsRecorder
from courier.core.models import UserContext
from courier.core.normalizer import ErrorNormalizer
from courier.core.queue_store import QueueStore
from courier.core.registry import AdapterRegistry
from courier.tests.fakes import FakeAdapterPort, FakeConnectivityPort, FakePersistencePort


def build_courier(
    persistence: FakePersistencePort,
    connectivity: FakeConnectivityPort | None = None,
) -> Courier:
    locks = KeyedLock()
    metrics = MetricsRecorder(persistence, locks=locks)
    store = QueueStore(persistence, metrics, locks=locks)
    registry = AdapterRegistry()
    context = ContextManager()
    engine = DeliveryEngine(
        store=store,
        registry=registry,
        metrics=metrics,
        connectivity=connectivity or FakeConnectivityPort(),
        base_delay=0.0,
        send_timeout=1.0,
    )
    pipeline = CapturePipeline(
        normalizer=ErrorNormalizer(),
        context=context,
        registry=registry,
        store=store,
        metrics=metrics,
        engine=engine,
    )
    diagnostics = DiagnosticsService(persistence, store, metrics, context=context, locks=locks)
    return Courier(
        persistence=persistence,
        context=context,
        registry=registry,
        store=store,
        engine=engine,
        pipeline=pipeline,
        diagnostics=diagnostics,
    )


class TestCourierLifecycle:
    """Tests for start, restore and shutdown."""

    @pytest.mark.asyncio
    async def test_capture_and_flush_delivers(self) -> None:
        courier = build_courier(FakePersistencePort())
        adapter = FakeAdapterPort()
        courier.register_adapter("console", adapter)
        await courier.start()
        await courier.use_adapter("console")

        await courier.capture(ValueError("boom"))
        await courier.flush()

        assert adapter.sent_messages == ["boom"]
        metrics = await courier.metrics()
        assert metrics.total_errors == 1
        assert metrics.successful_errors == 1
        await courier.shutdown()

    @pytest.mark.asyncio
    async def test_restart_restores_adapter_and_context(self) -> None:
        persistence = FakePersistencePort()
        first = build_courier(persistence)
        first.register_adapter("console", FakeAdapterPort())
        await first.start()
        await first.use_adapter("console")
        await first.set_user(UserContext(id="u-1", username="ada"))
        await first.set_context(tags={"region": "eu"})
        await first.shutdown()

        second = build_courier(FakePersistencePort(persistence.data))
        adapter = FakeAdapterPort()
        second.register_adapter("console", adapter)
        await second.start()

        assert second.registry.current().name == "console"
        assert second.context.user.id == "u-1"
        assert second.context.tags == {"region": "eu"}
        assert len(adapter.initialize_calls) == 1
        await second.shutdown()

    @pytest.mark.asyncio
    async def test_unregistered_previous_adapter_is_not_restored(self) -> None:
        persistence = FakePersistencePort()
        first = build_courier(persistence)
        first.register_adapter("webhook", FakeAdapterPort())
        await first.start()
        await first.use_adapter("webhook")
        await first.shutdown()

        second = build_courier(FakePersistencePort(persistence.data))
        await second.start()

        assert second.registry.current() is None
        await second.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_closes_adapters_and_persistence(self) -> None:
        persistence = FakePersistencePort()
        courier = build_courier(persistence)
        adapter = FakeAdapterPort()
        courier.register_adapter("console", adapter)
        await courier.start()

        await courier.shutdown()

        assert adapter.closed
        assert persistence.closed


class TestCourierContext:
    """Tests for adapter switching and context forwarding."""

    @pytest.mark.asyncio
    async def test_use_adapter_pushes_context_and_breadcrumbs(self) -> None:
        courier = build_courier(FakePersistencePort())
        adapter = FakeAdapterPort()
        courier.register_adapter("console", adapter)
        await courier.start()
        await courier.set_user(UserContext(id="u-1"))
        await courier.add_breadcrumb("opened settings", category="nav")

        await courier.use_adapter("console")

        assert adapter.contexts[-1]["user"]["id"] == "u-1"
        assert [b.message for b in adapter.breadcrumbs] == ["opened settings"]
        settings = await courier.diagnostics.get_settings()
        assert settings[CURRENT_ADAPTER_SETTING] == "console"
        await courier.shutdown()

    @pytest.mark.asyncio
    async def test_failed_activation_keeps_previous_adapter(self) -> None:
        courier = build_courier(FakePersistencePort())
        courier.register_adapter("console", FakeAdapterPort())
        courier.register_adapter("broken", FakeAdapterPort(init_error=RuntimeError("no key")))
        await courier.start()
        await courier.use_adapter("console")

        with pytest.raises(AdapterInitError):
            await courier.use_adapter("broken")

        assert courier.registry.current().name == "console"
        await courier.shutdown()

    @pytest.mark.asyncio
    async def test_breadcrumbs_forwarded_to_current_adapter(self) -> None:
        courier = build_courier(FakePersistencePort())
        adapter = FakeAdapterPort()
        courier.register_adapter("console", adapter)
        await courier.start()
        await courier.use_adapter("console")

        await courier.add_breadcrumb("clicked pay")

        assert adapter.breadcrumbs[-1].message == "clicked pay"
        await courier.shutdown()

    @pytest.mark.asyncio
    async def test_remove_adapter_keeps_its_items(self) -> None:
        courier = build_courier(FakePersistencePort(), FakeConnectivityPort(online=False))
        adapter = FakeAdapterPort()
        courier.register_adapter("console", adapter)
        await courier.start()
        await courier.use_adapter("console")
        await courier.capture("queued while offline")

        await courier.remove_adapter("console")

        assert adapter.closed
        assert (await courier.store.size()).by_provider == {"console": 1}
        assert courier.registry.current() is None
        await courier.shutdown()

    @pytest.mark.asyncio
    async def test_reset_clears_state(self) -> None:
        persistence = FakePersistencePort()
        courier = build_courier(persistence, FakeConnectivityPort(online=False))
        courier.register_adapter("console", FakeAdapterPort())
        await courier.start()
        await courier.use_adapter("console")
        await courier.set_user(UserContext(id="u-1"))
        await courier.capture("pending")

        await courier.reset()

        assert courier.context.user is None
        assert (await courier.store.size()).item_count == 0
        assert (await courier.metrics()).total_errors == 0
        await courier.shutdown()
