"""Unit tests for the ambient context manager."""

import pytest

from courier.core.context import ContextManager
from courier.core.models import ErrorLevel, UserContext
from courier.tests.fakes import FakeClock


class TestContextManager:
    """Tests for user, tags, extra and breadcrumbs."""

    def test_breadcrumb_ring_buffer_evicts_oldest(self) -> None:
        context = ContextManager(max_breadcrumbs=2, clock=FakeClock())

        for message in ("one", "two", "three"):
            context.add_breadcrumb(message)

        assert [b.message for b in context.breadcrumbs()] == ["two", "three"]

    def test_breadcrumb_is_timestamped(self) -> None:
        clock = FakeClock()
        context = ContextManager(clock=clock)

        breadcrumb = context.add_breadcrumb(
            "GET /api", category="http", level=ErrorLevel.DEBUG, data={"status": 200}
        )

        assert breadcrumb.timestamp == clock.now
        assert breadcrumb.category == "http"
        assert breadcrumb.data["status"] == 200

    def test_tags_are_merged_as_strings(self) -> None:
        context = ContextManager()
        context.set_tags({"a": 1})
        context.set_tags({"b": True})

        assert context.tags == {"a": "1", "b": "True"}

    def test_snapshot_is_none_when_empty(self) -> None:
        assert ContextManager().snapshot() is None

    def test_snapshot_restore_round_trip(self) -> None:
        context = ContextManager()
        context.set_user(UserContext(id="42", username="ada", attributes={"plan": "pro"}))
        context.set_tags({"region": "eu"})
        context.set_extra({"flags": ["x"]})

        restored = ContextManager()
        restored.restore(context.snapshot())

        assert restored.user == context.user
        assert restored.tags == {"region": "eu"}
        assert restored.extra == {"flags": ["x"]}

    def test_reset_clears_everything(self) -> None:
        context = ContextManager()
        context.set_user(UserContext(id="1"))
        context.set_tags({"a": "b"})
        context.add_breadcrumb("x")

        context.reset()

        assert context.user is None
        assert context.tags == {}
        assert context.breadcrumbs() == ()

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            ContextManager(max_breadcrumbs=0)
