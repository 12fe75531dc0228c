from __future__ import annotations

import pytest

from cortexsignal.core.errors import DispatchError, ValidationError
from cortexsignal.core.tiers import TIERS, RequestKind
from cortexsignal.services.dispatcher import DispatchResult
from cortexsignal.services.quota import RejectReason
from cortexsignal.services.sessions import MemorySessionStore, SessionRecord
from cortexsignal.services.wizard import (
    ChoosingMarket,
    ChoosingSymbol,
    ChoosingTimeframe,
    Idle,
    PickMarket,
    PickSymbol,
    PickTimeframe,
    ReadyToDispatch,
    Start,
    WizardService,
    encode_event,
    parse_event,
    state_from_record,
)

USER = 1001
SIGNAL = RequestKind.SIGNAL
PLAN = RequestKind.TRADING_PLAN


class Clock:
    def __init__(self, now: int = 1_735_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds * 1000


class DummyDispatcher:
    def __init__(self, fail: bool = False, text: str | None = None) -> None:
        self.fail = fail
        self.text = text
        self.requests = []

    async def dispatch(self, request, progress) -> DispatchResult:
        self.requests.append(request)
        await progress(0)
        await progress(1)
        if self.fail:
            raise DispatchError("Webhook API error: 502 - bad gateway")
        await progress(2)
        await progress(3)
        return DispatchResult(kind=request.kind, text=self.text, latency_ms=1)


async def _noop_progress(stage: int) -> None:
    return None


def _service(dispatcher: DummyDispatcher | None = None, clock: Clock | None = None):
    store = MemorySessionStore()
    service = WizardService(store, dispatcher or DummyDispatcher(), clock=clock or Clock(), today=lambda: "2025-01-01")
    return service, store


async def _walk(service: WizardService, kind=SIGNAL, market="forex", symbol="EUR/USD", timeframe="1h"):
    step = await service.handle(USER, Start(kind))
    if step.rejection:
        return step
    await service.handle(USER, PickMarket(kind, market))
    await service.handle(USER, PickSymbol(kind, market, symbol))
    return await service.handle(USER, PickTimeframe(kind, timeframe))


def test_event_encoding_round_trips_through_callback_data() -> None:
    events = [
        Start(SIGNAL),
        PickMarket(PLAN, "crypto"),
        PickSymbol(SIGNAL, "forex", "EUR/USD"),
        PickTimeframe(PLAN, "1month"),
    ]
    for event in events:
        data = encode_event(event)
        assert len(data.encode("utf-8")) <= 64
        assert parse_event(data) == event


@pytest.mark.parametrize("data", ["", "menu", "wiz:signal", "wiz:scalp:start", "wiz:signal:market", "wiz:signal:jump:x"])
def test_parse_event_rejects_malformed_data(data: str) -> None:
    with pytest.raises(ValidationError):
        parse_event(data)


def test_state_is_derived_from_record_fields() -> None:
    record = SessionRecord()
    assert state_from_record(record, SIGNAL) == Idle()
    record.selected_ai = "gpt4"
    assert state_from_record(record, SIGNAL) == ChoosingMarket(SIGNAL, "gpt4")
    record.selected_market_type = "forex"
    assert state_from_record(record, PLAN) == ChoosingSymbol(PLAN, "gpt4", "forex")
    record.selected_symbol = "EUR/USD"
    assert state_from_record(record, SIGNAL) == ChoosingTimeframe(SIGNAL, "gpt4", "forex", "EUR/USD")
    record.selected_timeframe = "1h"
    assert state_from_record(record, SIGNAL) == ReadyToDispatch(SIGNAL, "gpt4", "forex", "EUR/USD", "1h")


@pytest.mark.asyncio
async def test_start_without_ai_is_rejected_and_changes_nothing() -> None:
    service, store = _service()
    step = await service.handle(USER, Start(SIGNAL))
    assert step.rejection is not None
    assert step.rejection.reason is RejectReason.NO_AI
    assert await store.get(USER) is None


@pytest.mark.asyncio
async def test_locked_ai_cannot_be_selected() -> None:
    service, _ = _service()
    step = await service.select_ai(USER, "deepseek")
    assert step.rejection is not None and step.rejection.reason is RejectReason.AI_LOCKED
    step = await service.select_ai(USER, "gpt4")
    assert step.rejection is None
    assert (await service.load(USER)).selected_ai == "gpt4"


@pytest.mark.asyncio
async def test_successful_signal_updates_counters_once_and_clears_selection() -> None:
    dispatcher = DummyDispatcher()
    service, _ = _service(dispatcher)
    await service.select_ai(USER, "gpt4")

    step = await _walk(service)
    assert step.state == ReadyToDispatch(SIGNAL, "gpt4", "forex", "EUR/USD", "1h")
    outcome = await service.run(USER, step.state, _noop_progress)

    assert outcome.ok
    record = await service.load(USER)
    assert record.signal_count == 1
    assert record.total_signal_count == 1
    assert record.ai_usage["gpt4"] == 1
    assert record.forex_usage == 1
    assert record.selected_market_type is None
    assert record.selected_symbol is None
    assert record.selected_timeframe is None
    assert record.selected_ai == "gpt4"
    assert dispatcher.requests[0].indicators == TIERS["freemium"].indicators


@pytest.mark.asyncio
async def test_failed_dispatch_leaves_counters_untouched() -> None:
    service, _ = _service(DummyDispatcher(fail=True))
    await service.select_ai(USER, "gpt4")

    step = await _walk(service)
    outcome = await service.run(USER, step.state, _noop_progress)

    assert not outcome.ok
    assert "502" in outcome.error
    record = await service.load(USER)
    assert record.signal_count == 0
    assert record.total_signal_count == 0
    assert record.ai_usage["gpt4"] == 0
    assert record.forex_usage == 0
    assert record.last_signal_time == 0
    assert (record.selected_market_type, record.selected_symbol, record.selected_timeframe) == (None, None, None)


@pytest.mark.asyncio
async def test_trading_plan_uses_its_own_counter() -> None:
    service, _ = _service(DummyDispatcher(text="plan"))
    await service.select_ai(USER, "gpt4")

    step = await _walk(service, kind=PLAN, market="crypto", symbol="BTC/USD", timeframe="4h")
    outcome = await service.run(USER, step.state, _noop_progress)

    assert outcome.text == "plan"
    assert outcome.record.trading_plan_count == 1
    assert outcome.record.signal_count == 0
    assert outcome.record.crypto_usage == 1


@pytest.mark.asyncio
async def test_freemium_user_is_capped_at_three_signals() -> None:
    clock = Clock()
    service, _ = _service(clock=clock)
    await service.select_ai(USER, "gpt4")

    for _ in range(3):
        step = await _walk(service)
        assert (await service.run(USER, step.state, _noop_progress)).ok
        clock.advance(301)

    step = await service.handle(USER, Start(SIGNAL))
    assert step.rejection is not None
    assert step.rejection.reason is RejectReason.DAILY_LIMIT
    assert (await service.load(USER)).signal_count == 3


@pytest.mark.asyncio
async def test_second_request_inside_cooldown_is_rejected() -> None:
    clock = Clock()
    service, _ = _service(clock=clock)
    await service.select_ai(USER, "gpt4")
    step = await _walk(service)
    await service.run(USER, step.state, _noop_progress)

    clock.advance(10)
    step = await service.handle(USER, Start(SIGNAL))
    assert step.rejection is not None
    assert step.rejection.reason is RejectReason.COOLDOWN
    assert step.rejection.retry_after == 290
    assert (await service.load(USER)).signal_count == 1


@pytest.mark.asyncio
async def test_quota_is_checked_again_before_dispatch() -> None:
    service, store = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(PLAN))
    await service.handle(USER, PickMarket(PLAN, "forex"))
    await service.handle(USER, PickSymbol(PLAN, "forex", "GBP/USD"))

    # A parallel wizard used up the only trading plan of the day.
    record = await store.get(USER)
    record.trading_plan_count = 1
    await store.put(USER, record)

    step = await service.handle(USER, PickTimeframe(PLAN, "1h"))
    assert step.rejection is not None and step.rejection.reason is RejectReason.DAILY_LIMIT


@pytest.mark.asyncio
async def test_timeframe_without_symbol_resets_the_wizard() -> None:
    service, _ = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(SIGNAL))
    await service.handle(USER, PickMarket(SIGNAL, "forex"))

    step = await service.handle(USER, PickTimeframe(SIGNAL, "1h"))
    assert step.rejection is not None
    assert step.rejection.reason is RejectReason.INCOMPLETE
    record = await service.load(USER)
    assert record.selected_market_type is None
    assert record.signal_count == 0


@pytest.mark.asyncio
async def test_pick_without_ai_resets_the_wizard() -> None:
    service, _ = _service()
    step = await service.handle(USER, PickSymbol(SIGNAL, "forex", "EUR/USD"))
    assert step.rejection is not None and step.rejection.reason is RejectReason.INCOMPLETE


@pytest.mark.asyncio
async def test_symbol_must_belong_to_market() -> None:
    service, _ = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(SIGNAL))
    step = await service.handle(USER, PickSymbol(SIGNAL, "forex", "BTC/USD"))
    assert step.rejection is not None and step.rejection.reason is RejectReason.INVALID_CHOICE


@pytest.mark.asyncio
async def test_start_clears_a_stale_selection() -> None:
    service, store = _service()
    await service.select_ai(USER, "gpt4")
    record = await store.get(USER)
    record.selected_market_type = "crypto"
    record.selected_symbol = "SOL/USD"
    await store.put(USER, record)

    step = await service.handle(USER, Start(SIGNAL))
    assert step.state == ChoosingMarket(SIGNAL, "gpt4")
    record = await store.get(USER)
    assert record.selected_market_type is None and record.selected_symbol is None


@pytest.mark.asyncio
async def test_upgrade_sets_tier_and_date() -> None:
    service, _ = _service()
    record = await service.upgrade(USER, "premium")
    assert record.tier == "premium"
    assert record.last_upgrade_date == "2025-01-01"
    with pytest.raises(ValidationError):
        await service.upgrade(USER, "diamond")


@pytest.mark.asyncio
async def test_quota_rejection_at_timeframe_clears_the_selection() -> None:
    service, store = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(PLAN))
    await service.handle(USER, PickMarket(PLAN, "forex"))
    await service.handle(USER, PickSymbol(PLAN, "forex", "EUR/USD"))
    record = await store.get(USER)
    record.trading_plan_count = 1
    await store.put(USER, record)

    step = await service.handle(USER, PickTimeframe(PLAN, "1h"))

    assert step.rejection is not None and step.rejection.reason is RejectReason.DAILY_LIMIT
    record = await store.get(USER)
    assert (record.selected_market_type, record.selected_symbol, record.selected_timeframe) == (None, None, None)
    assert record.selected_ai == "gpt4"


@pytest.mark.asyncio
async def test_cooldown_rejection_at_timeframe_clears_the_selection() -> None:
    clock = Clock()
    service, store = _service(clock=clock)
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(SIGNAL))
    await service.handle(USER, PickMarket(SIGNAL, "crypto"))
    await service.handle(USER, PickSymbol(SIGNAL, "crypto", "BTC/USD"))
    record = await store.get(USER)
    record.last_signal_time = clock.now - 1000
    await store.put(USER, record)

    step = await service.handle(USER, PickTimeframe(SIGNAL, "4h"))

    assert step.rejection is not None and step.rejection.reason is RejectReason.COOLDOWN
    assert not (await store.get(USER)).has_selection


@pytest.mark.asyncio
async def test_invalid_symbol_keeps_the_wizard_open() -> None:
    service, store = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(SIGNAL))
    await service.handle(USER, PickMarket(SIGNAL, "forex"))
    await service.handle(USER, PickSymbol(SIGNAL, "forex", "DOGE/USD"))
    assert (await store.get(USER)).selected_market_type == "forex"


@pytest.mark.asyncio
async def test_abandon_clears_a_half_finished_wizard() -> None:
    service, store = _service()
    await service.select_ai(USER, "gpt4")
    await service.handle(USER, Start(SIGNAL))
    await service.handle(USER, PickMarket(SIGNAL, "forex"))

    record = await service.abandon(USER)

    assert not record.has_selection
    assert not (await store.get(USER)).has_selection
    assert record.selected_ai == "gpt4"


@pytest.mark.asyncio
async def test_abandon_without_a_wizard_writes_nothing() -> None:
    service, store = _service()
    await service.abandon(USER)
    assert await store.get(USER) is None
