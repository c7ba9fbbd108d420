"""Unit tests for the CLI command handler.

Tests verify that each command returns a result dictionary (never
raises for user errors) and that export/import round-trips through a
file.
"""

import json
from pathlib import Path

import pytest

from courier.adapters.cli.commands import CLICommandHandler, run_command
from courier.core.diagnostics_service import DiagnosticsService
from courier.core.locks import KeyedLock
from courier.core.metrics import MetricsRecorder
from courier.core.queue_store import QueueStore
from courier.tests.fakes import (
    FakeClock,
    FakeDeliveryPort,
    FakePersistencePort,
    make_error,
)


def build_diagnostics(clock: FakeClock | None = None) -> DiagnosticsService:
    persistence = FakePersistencePort()
    locks = KeyedLock()
    metrics = MetricsRecorder(persistence, locks=locks)
    store = QueueStore(persistence, metrics, locks=locks, clock=clock or FakeClock())
    return DiagnosticsService(persistence, store, metrics, locks=locks)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def diagnostics(clock: FakeClock) -> DiagnosticsService:
    return build_diagnostics(clock)


@pytest.fixture
def delivery() -> FakeDeliveryPort:
    return FakeDeliveryPort()


@pytest.fixture
def handler(diagnostics: DiagnosticsService, delivery: FakeDeliveryPort) -> CLICommandHandler:
    return CLICommandHandler(diagnostics, delivery)


class TestInspection:
    """Tests for stats and metrics."""

    @pytest.mark.asyncio
    async def test_stats_json(self, handler, diagnostics) -> None:
        await diagnostics.store.enqueue(make_error(), "console")
        await diagnostics.store.enqueue(make_error(), "webhook")

        result = await handler.stats()

        assert result["status"] == "success"
        assert result["data"]["item_count"] == 2
        assert result["data"]["by_provider"] == {"console": 1, "webhook": 1}
        assert result["data"]["retry_distribution"] == {"0": 2}
        json.dumps(result)

    @pytest.mark.asyncio
    async def test_stats_text(self, handler, diagnostics) -> None:
        await diagnostics.store.enqueue(make_error(), "console")

        result = await handler.stats(format="text")

        assert "Pending items: 1" in result["data"]
        assert "  console: 1" in result["data"]

    @pytest.mark.asyncio
    async def test_stats_unknown_format(self, handler) -> None:
        result = await handler.stats(format="xml")

        assert result["status"] == "error"

    @pytest.mark.asyncio
    async def test_metrics(self, handler, diagnostics) -> None:
        await diagnostics.metrics.increment(total=3, successful=2)

        result = await handler.metrics()

        assert result["data"]["total_errors"] == 3
        assert result["data"]["successful_errors"] == 2


class TestMaintenance:
    """Tests for flush, clear and prune."""

    @pytest.mark.asyncio
    async def test_flush_delegates_to_delivery(self, handler, delivery) -> None:
        result = await handler.flush(provider="webhook")

        assert delivery.drains == ["webhook"]
        assert result["data"]["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_clear_one_provider(self, handler, diagnostics) -> None:
        await diagnostics.store.enqueue(make_error(), "console")
        await diagnostics.store.enqueue(make_error(), "webhook")

        result = await handler.clear(provider="console")

        assert result["message"] == "Removed 1 queued items"
        assert result["provider"] == "console"
        assert await diagnostics.store.providers() == ["webhook"]

    @pytest.mark.asyncio
    async def test_prune(self, handler, diagnostics, clock) -> None:
        await diagnostics.store.enqueue(make_error(), "console")
        clock.advance(hours=48)

        result = await handler.prune(max_age_hours=24)

        assert result["status"] == "success"
        assert (await diagnostics.get_queue_stats()).item_count == 0

    @pytest.mark.asyncio
    async def test_prune_rejects_negative_age(self, handler) -> None:
        result = await handler.prune(max_age_hours=-1)

        assert result["status"] == "error"


class TestExportImport:
    """Tests for file-based export and import."""

    @pytest.mark.asyncio
    async def test_export_inline(self, handler, diagnostics) -> None:
        await diagnostics.store.enqueue(make_error("kept"), "console")

        result = await handler.export_data()

        document = json.loads(result["data"])
        assert document["version"] == 1
        assert document["queue"][0]["error"]["message"] == "kept"

    @pytest.mark.asyncio
    async def test_export_then_import_into_fresh_state(
        self, handler, diagnostics, tmp_path: Path
    ) -> None:
        await diagnostics.store.enqueue(make_error("kept"), "console")
        await diagnostics.save_settings({"current_adapter": "console"})
        path = tmp_path / "export.json"

        exported = await handler.export_data(path=str(path))

        target = build_diagnostics()
        imported = await CLICommandHandler(target, FakeDeliveryPort()).import_data(str(path))

        assert exported["status"] == "success"
        assert imported["status"] == "success"
        items = await target.store.items()
        assert [item.error.message for item in items] == ["kept"]
        assert await target.get_settings() == {"current_adapter": "console"}

    @pytest.mark.asyncio
    async def test_import_missing_file(self, handler, tmp_path: Path) -> None:
        result = await handler.import_data(str(tmp_path / "missing.json"))

        assert result["status"] == "error"

    @pytest.mark.asyncio
    async def test_import_malformed_file(self, handler, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text('{"version": 7}', encoding="utf-8")

        result = await handler.import_data(str(path))

        assert result["status"] == "error"
        assert "version" in result["message"]


class TestRunCommand:
    """Tests for the command dispatcher."""

    @pytest.mark.asyncio
    async def test_dispatches_known_command(self, diagnostics, delivery) -> None:
        result = await run_command(diagnostics, delivery, "flush", {})

        assert result["operation"] == "flush"
        assert delivery.drains == [None]

    @pytest.mark.asyncio
    async def test_unknown_command_raises(self, diagnostics, delivery) -> None:
        with pytest.raises(ValueError, match="Unknown command"):
            await run_command(diagnostics, delivery, "explode", {})
