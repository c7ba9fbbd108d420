"""Unit tests for the adapter registry."""

import pytest

from courier.core.errors import AdapterInitError
from courier.core.registry import AdapterRegistry
from courier.tests.fakes import FakeAdapterPort


class TestAdapterRegistry:
    """Tests for registration and activation."""

    @pytest.mark.asyncio
    async def test_activate_initializes_once_and_sets_current(self) -> None:
        registry = AdapterRegistry()
        adapter = FakeAdapterPort()
        registry.register("console", adapter)

        record = await registry.activate("console", {"verbose": True})

        assert record.initialized
        assert registry.current() is record
        assert adapter.initialize_calls == [{"verbose": True}]

    @pytest.mark.asyncio
    async def test_unknown_adapter_raises(self) -> None:
        registry = AdapterRegistry()

        with pytest.raises(AdapterInitError, match="not registered"):
            await registry.activate("missing")

    @pytest.mark.asyncio
    async def test_failed_initialize_keeps_previous_current(self) -> None:
        registry = AdapterRegistry()
        registry.register("good", FakeAdapterPort())
        registry.register("bad", FakeAdapterPort(init_error=RuntimeError("no api key")))
        await registry.activate("good")

        with pytest.raises(AdapterInitError) as exc_info:
            await registry.activate("bad")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert registry.current().name == "good"
        assert not registry.resolve("bad").initialized

    @pytest.mark.asyncio
    async def test_reregistration_replaces_record(self) -> None:
        registry = AdapterRegistry()
        first = FakeAdapterPort()
        second = FakeAdapterPort()
        registry.register("console", first)
        await registry.activate("console")

        registry.register("console", second)

        record = registry.resolve("console")
        assert record.adapter is second
        assert not record.initialized
        assert registry.current() is None

    @pytest.mark.asyncio
    async def test_unregister_clears_current(self) -> None:
        registry = AdapterRegistry()
        registry.register("console", FakeAdapterPort())
        await registry.activate("console")

        registry.unregister("console")

        assert registry.current() is None
        assert not registry.has("console")

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            AdapterRegistry().register("", FakeAdapterPort())

    def test_names_in_registration_order(self) -> None:
        registry = AdapterRegistry()
        registry.register("b", FakeAdapterPort())
        registry.register("a", FakeAdapterPort())

        assert registry.names() == ["b", "a"]
