"""Unit tests for the diagnostics service and the export format."""

from datetime import timedelta

import pytest

from courier.core.context import ContextManager
from courier.core.diagnostics_service import DiagnosticsService
from courier.core.locks import KeyedLock
from courier.core.metrics import MetricsRecorder
from courier.core.models import UserContext
from courier.core.queue_store import QueueStore
from courier.core.serialization import (
    SETTINGS_KEY,
    USER_CONTEXT_KEY,
    decode_export,
    encode_export,
)
from courier.tests.fakes import FakeClock, FakePersistencePort, make_error


def build_service(
    persistence: FakePersistencePort, clock: FakeClock, context: ContextManager | None = None
) -> DiagnosticsService:
    locks = KeyedLock()
    metrics = MetricsRecorder(persistence, locks=locks)
    store = QueueStore(persistence, metrics, locks=locks, clock=clock)
    return DiagnosticsService(persistence, store, metrics, context=context, locks=locks)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestDiagnosticsService:
    """Tests for inspection and maintenance."""

    @pytest.mark.asyncio
    async def test_settings_are_merged(self, clock: FakeClock) -> None:
        persistence = FakePersistencePort()
        service = build_service(persistence, clock)

        await service.save_settings({"current_adapter": "console"})
        await service.save_settings({"sample_rate": 0.5})

        assert await service.get_settings() == {
            "current_adapter": "console",
            "sample_rate": 0.5,
        }
        assert SETTINGS_KEY in persistence.data

    @pytest.mark.asyncio
    async def test_user_context_none_removes_record(self, clock: FakeClock) -> None:
        persistence = FakePersistencePort()
        service = build_service(persistence, clock)

        await service.save_user_context({"user": None, "tags": {"a": "b"}, "extra": {}})
        await service.save_user_context(None)

        assert USER_CONTEXT_KEY not in persistence.data
        assert await service.get_user_context() is None

    @pytest.mark.asyncio
    async def test_clear_and_prune(self, clock: FakeClock) -> None:
        service = build_service(FakePersistencePort(), clock)
        await service.store.enqueue(make_error(), "A")
        clock.advance(hours=3)
        await service.store.enqueue(make_error(), "B")
        await service.store.enqueue(make_error(), "B")

        assert await service.prune(timedelta(hours=1)) == 1
        assert await service.clear_queue("B") == 2
        assert (await service.get_queue_stats()).item_count == 0

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, clock: FakeClock) -> None:
        source_context = ContextManager()
        source = build_service(FakePersistencePort(), clock, context=source_context)
        first = await source.store.enqueue(make_error("one"), "A")
        clock.advance(1)
        await source.store.enqueue(make_error("two", extra={"n": [1, 2]}), "B")
        await source.store.update_retry_count(first, 2)
        await source.metrics.increment(total=5, successful=2, failed=1, dropped=1)
        await source.save_settings({"current_adapter": "A"})
        source_context.set_user(UserContext(id="u1", email="a@b.c"))
        await source.save_user_context(source_context.snapshot())

        document = encode_export(await source.export_data())

        target_context = ContextManager()
        target = build_service(FakePersistencePort(), clock, context=target_context)
        await target.import_data(decode_export(document))

        exported = await source.export_data()
        imported = await target.export_data()
        assert imported.queue == exported.queue
        assert imported.settings == exported.settings
        assert imported.user_context == exported.user_context
        assert imported.metrics == exported.metrics
        assert target_context.user == source_context.user


class TestExportFormat:
    """Tests for the JSON export document."""

    def test_unsupported_version_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unsupported export version"):
            decode_export('{"version": 99}')

    def test_malformed_document_rejected(self) -> None:
        with pytest.raises(ValueError):
            decode_export("[]")
        with pytest.raises(ValueError):
            decode_export("{not json")
