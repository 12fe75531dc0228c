from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from cortexsignal.core.errors import DispatchError, UpstreamError
from cortexsignal.core.http import WebhookClient
from cortexsignal.core.tiers import RequestKind

logger = logging.getLogger(__name__)

PROGRESS_STEPS = 3
TRADING_PLAN_DETAILS = "Generate a comprehensive trading plan based on the market conditions."

ProgressCallback = Callable[[int], Awaitable[None]]


@dataclass(frozen=True)
class AnalysisRequest:
    user_id: int
    kind: RequestKind
    ai: str
    market: str
    symbol: str
    timeframe: str
    indicators: tuple[str, ...]


@dataclass(frozen=True)
class DispatchResult:
    kind: RequestKind
    text: str | None
    latency_ms: int


def build_payload(request: AnalysisRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "userId": request.user_id,
        "marketType": request.market,
        "symbol": request.symbol,
        "timeframe": request.timeframe,
        "ai": request.ai,
        "type": request.kind.value,
        "indicators": list(request.indicators),
    }
    if request.kind is RequestKind.TRADING_PLAN:
        payload["plan_details"] = TRADING_PLAN_DETAILS
    return payload


def _plan_text(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    text = body.get("trading_plan_text") or body.get("text")
    return str(text) if text else None


class AnalysisDispatcher:
    """Single POST to the analysis webhook, reporting stages 0..3 through `progress`.

    The pauses between stages are pacing only; the webhook reports no
    incremental progress of its own.
    """

    def __init__(
        self,
        client: WebhookClient,
        webhook_url: str,
        step_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.webhook_url = webhook_url
        self.step_delay = max(0.0, float(step_delay))
        self._sleep = sleep

    async def _pause(self) -> None:
        if self.step_delay:
            await self._sleep(self.step_delay)

    async def dispatch(self, request: AnalysisRequest, progress: ProgressCallback) -> DispatchResult:
        started = time.monotonic()
        await progress(0)
        await self._pause()
        await progress(1)

        try:
            response = await self.client.post_json(self.webhook_url, build_payload(request))
        except UpstreamError as exc:
            raise DispatchError(str(exc)) from exc

        text: str | None = None
        if request.kind is RequestKind.TRADING_PLAN:
            try:
                text = _plan_text(response.json())
            except ValueError as exc:
                raise DispatchError(f"Webhook returned invalid JSON: {exc}") from exc

        await self._pause()
        await progress(2)
        await self._pause()
        await progress(PROGRESS_STEPS)

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "analysis_dispatched",
            extra={
                "event": "analysis_dispatched",
                "user_id": request.user_id,
                "kind": request.kind.value,
                "latency_ms": latency_ms,
            },
        )
        return DispatchResult(kind=request.kind, text=text, latency_ms=latency_ms)
