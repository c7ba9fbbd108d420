"""Tests for the connectivity adapters."""

import asyncio

import httpx
import pytest

from courier.adapters.connectivity.http_probe import HttpProbeConnectivity
from courier.adapters.connectivity.static import StaticConnectivity


class TestStaticConnectivity:
    """Tests for the host-controlled flag."""

    def test_restore_notifies_subscribers(self) -> None:
        connectivity = StaticConnectivity(online=False)
        calls: list[str] = []
        connectivity.subscribe(lambda: calls.append("restored"))

        connectivity.set_online(True)
        connectivity.set_online(True)

        assert connectivity.is_online()
        assert calls == ["restored"]

    def test_going_offline_does_not_notify(self) -> None:
        connectivity = StaticConnectivity()
        calls: list[str] = []
        connectivity.subscribe(lambda: calls.append("restored"))

        connectivity.set_online(False)

        assert not connectivity.is_online()
        assert calls == []

    def test_unsubscribe(self) -> None:
        connectivity = StaticConnectivity(online=False)
        calls: list[str] = []
        unsubscribe = connectivity.subscribe(lambda: calls.append("restored"))

        unsubscribe()
        unsubscribe()
        connectivity.set_online(True)

        assert calls == []

    def test_failing_callback_does_not_block_others(self) -> None:
        connectivity = StaticConnectivity(online=False)
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("callback bug")

        connectivity.subscribe(broken)
        connectivity.subscribe(lambda: calls.append("restored"))

        connectivity.set_online(True)

        assert calls == ["restored"]


class TestHttpProbeConnectivity:
    """Tests for the HTTP probe using httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_check_tracks_transport_failures(self) -> None:
        reachable = {"value": True}

        def handler(request: httpx.Request) -> httpx.Response:
            if not reachable["value"]:
                raise httpx.ConnectError("unreachable", request=request)
            return httpx.Response(204)

        connectivity = HttpProbeConnectivity(
            "https://health.example.com/", transport=httpx.MockTransport(handler)
        )
        calls: list[str] = []
        connectivity.subscribe(lambda: calls.append("restored"))

        reachable["value"] = False
        assert await connectivity.probe() is False
        assert not connectivity.is_online()

        reachable["value"] = True
        assert await connectivity.probe() is True
        assert connectivity.is_online()
        assert calls == ["restored"]
        await connectivity.stop()

    @pytest.mark.asyncio
    async def test_error_status_still_counts_as_online(self) -> None:
        connectivity = HttpProbeConnectivity(
            "https://health.example.com/",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )

        assert await connectivity.probe() is True
        await connectivity.stop()

    @pytest.mark.asyncio
    async def test_start_checks_once_then_stop_cancels_loop(self) -> None:
        probes: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            probes.append(request.method)
            return httpx.Response(200)

        connectivity = HttpProbeConnectivity(
            "https://health.example.com/",
            interval_seconds=60,
            transport=httpx.MockTransport(handler),
        )

        await connectivity.start()
        await connectivity.stop()

        assert probes == ["HEAD"]
        assert connectivity._task is None

    @pytest.mark.asyncio
    async def test_background_loop_survives_unexpected_errors(self) -> None:
        requests: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(len(requests))
            if len(requests) == 2:
                raise RuntimeError("transport bug")
            return httpx.Response(200)

        connectivity = HttpProbeConnectivity(
            "https://health.example.com/",
            interval_seconds=0.01,
            transport=httpx.MockTransport(handler),
        )

        await connectivity.start()
        await asyncio.sleep(0.1)

        assert connectivity._task is not None
        assert not connectivity._task.done()
        assert len(requests) > 2
        assert connectivity.is_online()
        await connectivity.stop()
