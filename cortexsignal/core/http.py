from __future__ import annotations

import logging
from typing import Any

import httpx

from cortexsignal.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class WebhookClient:
    def __init__(self, timeout: float = 120.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def post_json(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None
    ) -> httpx.Response:
        """POST a JSON body once and return the response; anything but 2xx raises UpstreamError."""
        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("webhook_post_failed", extra={"event": "webhook_post_failed", "error": str(exc)})
            raise UpstreamError(f"Failed to reach {url}: {exc}") from exc

        if not response.is_success:
            body = response.text[:300]
            logger.warning(
                "webhook_post_failed",
                extra={"event": "webhook_post_failed", "status": response.status_code, "error": body},
            )
            raise UpstreamError(f"Webhook API error: {response.status_code} - {body}")
        return response
