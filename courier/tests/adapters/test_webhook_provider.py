"""Tests for the webhook provider adapter using httpx.MockTransport."""

import json
from dataclasses import replace
from datetime import datetime, timezone

import httpx
import pytest

from courier.adapters.providers.webhook import WebhookProviderAdapter
from courier.core.errors import PermanentDeliveryError, TransientDeliveryError
from courier.core.models import Breadcrumb, DeliveryContext
from courier.tests.fakes import make_error

URL = "https://collector.example.com/errors"


def delivery_context(attempt: int = 1) -> DeliveryContext:
    return DeliveryContext(
        item_id="item-1",
        provider="webhook",
        attempt=attempt,
        queued_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


async def ready_adapter(handler, api_key: str | None = None) -> WebhookProviderAdapter:
    adapter = WebhookProviderAdapter(
        url=URL, api_key=api_key, transport=httpx.MockTransport(handler)
    )
    await adapter.initialize(None)
    return adapter


class TestWebhookDelivery:
    """Tests for request shape and status classification."""

    @pytest.mark.asyncio
    async def test_success_posts_record(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        adapter = await ready_adapter(handler, api_key="secret")
        await adapter.set_context({"user": {"id": "u-1"}, "tags": {}, "extra": {}})

        await adapter.send(make_error("boom"), delivery_context(attempt=2))
        await adapter.close()

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Idempotency-Key"] == "item-1"
        body = json.loads(request.content)
        assert body["error"]["message"] == "boom"
        assert body["context"]["user"]["id"] == "u-1"
        assert body["delivery"]["attempt"] == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [408, 429, 500, 503])
    async def test_retryable_status_is_transient(self, status: int) -> None:
        adapter = await ready_adapter(lambda request: httpx.Response(status))

        with pytest.raises(TransientDeliveryError):
            await adapter.send(make_error(), delivery_context())
        await adapter.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 413])
    async def test_client_error_is_permanent(self, status: int) -> None:
        adapter = await ready_adapter(lambda request: httpx.Response(status))

        with pytest.raises(PermanentDeliveryError):
            await adapter.send(make_error(), delivery_context())
        await adapter.close()

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = await ready_adapter(handler)

        with pytest.raises(TransientDeliveryError, match="failed"):
            await adapter.send(make_error(), delivery_context())
        await adapter.close()

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        adapter = await ready_adapter(handler)

        with pytest.raises(TransientDeliveryError, match="timed out"):
            await adapter.send(make_error(), delivery_context())
        await adapter.close()


class TestWebhookLifecycle:
    """Tests for initialization and context handling."""

    @pytest.mark.asyncio
    async def test_initialize_without_url_fails(self) -> None:
        adapter = WebhookProviderAdapter()

        with pytest.raises(ValueError, match="url"):
            await adapter.initialize(None)

    @pytest.mark.asyncio
    async def test_config_overrides_constructor(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200)

        adapter = WebhookProviderAdapter(
            url=URL, transport=httpx.MockTransport(handler)
        )
        await adapter.initialize({"url": "https://other.example.com/hook"})

        await adapter.send(make_error(), delivery_context())
        await adapter.close()

        assert seen == ["https://other.example.com/hook"]

    @pytest.mark.asyncio
    async def test_send_before_initialize_is_transient(self) -> None:
        adapter = WebhookProviderAdapter(url=URL)

        with pytest.raises(TransientDeliveryError):
            await adapter.send(make_error(), delivery_context())

    @pytest.mark.asyncio
    async def test_breadcrumbs_travel_with_the_record(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        adapter = await ready_adapter(handler)
        crumb = Breadcrumb(
            message="clicked pay", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        await adapter.add_breadcrumb(Breadcrumb(message="pushed separately", timestamp=crumb.timestamp))

        await adapter.send(replace(make_error(), breadcrumbs=(crumb,)), delivery_context())
        await adapter.close()

        assert [b["message"] for b in bodies[0]["error"]["breadcrumbs"]] == ["clicked pay"]
