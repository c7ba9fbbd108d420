"""Webhook provider adapter.

Implements AdapterPort by POSTing each error record as JSON to an HTTP
collector. Classifies failures for the delivery engine:

- network errors, timeouts, 408, 425, 429 and 5xx are transient
- any other 4xx is permanent (the same request will never succeed)
"""

import logging
from typing import Any

import httpx

from courier.core.errors import PermanentDeliveryError, TransientDeliveryError
from courier.core.models import Breadcrumb, DeliveryContext, NormalizedError
from courier.core.ports import AdapterPort
from courier.core.serialization import error_to_dict

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


class WebhookProviderAdapter(AdapterPort):
    """Delivers error records to an HTTP endpoint."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize webhook provider adapter.

        Args:
            url: Endpoint receiving POSTed records (may be given at initialize()).
            api_key: Bearer token sent with every request (optional).
            timeout_seconds: HTTP timeout per request.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.url = url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.context: dict[str, Any] = {}

    async def initialize(self, config: dict[str, Any] | None) -> None:
        """Create the HTTP client.

        Raises:
            ValueError: If no URL was configured.
        """
        config = config or {}
        self.url = config.get("url", self.url)
        self.api_key = config.get("api_key", self.api_key)
        self.timeout_seconds = float(config.get("timeout_seconds", self.timeout_seconds))
        if not self.url:
            raise ValueError("webhook url is required")

        await self.close()
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )
        logger.info(f"Webhook adapter ready for {self.url}")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, error: NormalizedError, context: DeliveryContext) -> None:
        """POST one record.

        Raises:
            TransientDeliveryError: Network failure, timeout, 408/425/429 or 5xx.
            PermanentDeliveryError: Any other non-2xx response.
        """
        if self._client is None or self.url is None:
            raise TransientDeliveryError("webhook adapter is not initialized")

        payload = {
            "error": error_to_dict(error),
            "context": self.context,
            "delivery": {
                "item_id": context.item_id,
                "provider": context.provider,
                "attempt": context.attempt,
                "queued_at": context.queued_at.isoformat(),
            },
        }

        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Idempotency-Key": context.item_id},
            )
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(f"webhook request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransientDeliveryError(f"webhook request failed: {e}") from e

        status = response.status_code
        if status < 300:
            logger.debug(f"Webhook accepted error {error.id} (HTTP {status})")
            return
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            raise TransientDeliveryError(f"webhook returned HTTP {status}")
        raise PermanentDeliveryError(f"webhook rejected error with HTTP {status}")

    async def set_context(self, context: dict[str, Any]) -> None:
        self.context = dict(context)

    async def add_breadcrumb(self, breadcrumb: Breadcrumb) -> None:
        """No-op: every posted record already carries its breadcrumb trail."""
