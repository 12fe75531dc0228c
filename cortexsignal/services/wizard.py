"""Request wizard: AI -> request kind -> market -> symbol -> timeframe -> dispatch.

The wizard position is not stored as such; it is derived from the selection
fields of the session record every time an event arrives. Each state class
carries only the fields that are known at that point, and `transition`
returns either the next state or a `Rejection`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

from cortexsignal.core.catalog import AI_BACKENDS, MARKET_SYMBOLS, TIMEFRAMES, symbols_for
from cortexsignal.core.errors import DispatchError, ValidationError
from cortexsignal.core.tiers import TIERS, RequestKind, get_tier
from cortexsignal.services.dispatcher import AnalysisDispatcher, AnalysisRequest, ProgressCallback
from cortexsignal.services.quota import (
    RejectReason,
    Rejection,
    check_entry,
    local_today,
    now_ms,
    record_success,
)
from cortexsignal.services.sessions import SessionRecord, SessionStore, load_or_create

logger = logging.getLogger(__name__)

CALLBACK_PREFIX = "wiz"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class ChoosingMarket:
    kind: RequestKind
    ai: str


@dataclass(frozen=True)
class ChoosingSymbol:
    kind: RequestKind
    ai: str
    market: str


@dataclass(frozen=True)
class ChoosingTimeframe:
    kind: RequestKind
    ai: str
    market: str
    symbol: str


@dataclass(frozen=True)
class ReadyToDispatch:
    kind: RequestKind
    ai: str
    market: str
    symbol: str
    timeframe: str


WizardState = Union[Idle, ChoosingMarket, ChoosingSymbol, ChoosingTimeframe, ReadyToDispatch]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Start:
    kind: RequestKind


@dataclass(frozen=True)
class PickMarket:
    kind: RequestKind
    market: str


@dataclass(frozen=True)
class PickSymbol:
    kind: RequestKind
    market: str
    symbol: str


@dataclass(frozen=True)
class PickTimeframe:
    kind: RequestKind
    timeframe: str


WizardEvent = Union[Start, PickMarket, PickSymbol, PickTimeframe]


def encode_event(event: WizardEvent) -> str:
    base = f"{CALLBACK_PREFIX}:{event.kind.value}"
    if isinstance(event, Start):
        return f"{base}:start"
    if isinstance(event, PickMarket):
        return f"{base}:market:{event.market}"
    if isinstance(event, PickSymbol):
        return f"{base}:symbol:{event.market}:{event.symbol}"
    return f"{base}:tf:{event.timeframe}"


def parse_event(data: str) -> WizardEvent:
    parts = (data or "").split(":", 4)
    if len(parts) < 3 or parts[0] != CALLBACK_PREFIX:
        raise ValidationError(f"not a wizard callback: {data!r}")
    try:
        kind = RequestKind(parts[1])
    except ValueError as exc:
        raise ValidationError(f"unknown request kind in {data!r}") from exc

    step = parts[2]
    if step == "start" and len(parts) == 3:
        return Start(kind)
    if step == "market" and len(parts) == 4:
        return PickMarket(kind, parts[3])
    if step == "symbol" and len(parts) == 5:
        return PickSymbol(kind, parts[3], parts[4])
    if step == "tf" and len(parts) == 4:
        return PickTimeframe(kind, parts[3])
    raise ValidationError(f"malformed wizard callback: {data!r}")


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------

def state_from_record(record: SessionRecord, kind: RequestKind) -> WizardState:
    ai = record.selected_ai
    market = record.selected_market_type
    symbol = record.selected_symbol
    timeframe = record.selected_timeframe
    if not ai:
        return Idle()
    if not market:
        return ChoosingMarket(kind, ai)
    if not symbol:
        return ChoosingSymbol(kind, ai, market)
    if not timeframe:
        return ChoosingTimeframe(kind, ai, market, symbol)
    return ReadyToDispatch(kind, ai, market, symbol, timeframe)


def apply_state(record: SessionRecord, state: WizardState) -> None:
    record.selected_market_type = getattr(state, "market", None)
    record.selected_symbol = getattr(state, "symbol", None)
    record.selected_timeframe = getattr(state, "timeframe", None)


def _incomplete() -> Rejection:
    return Rejection(RejectReason.INCOMPLETE, "❌ Missing selection. Please start over.")


def _invalid(what: str, value: str) -> Rejection:
    return Rejection(RejectReason.INVALID_CHOICE, f"Unknown {what}: {value}")


def _locked(ai_id: str) -> Rejection:
    backend = AI_BACKENDS.get(ai_id)
    label = backend.label if backend else ai_id
    return Rejection(RejectReason.AI_LOCKED, f"🚫 {label} is not available in your current plan.")


def transition(state: WizardState, event: WizardEvent, record: SessionRecord, at_ms: int) -> WizardState | Rejection:
    if isinstance(event, Start):
        rejection = check_entry(record, event.kind, at_ms)
        if rejection:
            return rejection
        ai = record.selected_ai or ""
        if not get_tier(record.tier).allows_ai(ai):
            return _locked(ai)
        return ChoosingMarket(event.kind, ai)

    if isinstance(state, Idle):
        return _incomplete()
    ai = state.ai

    if isinstance(event, PickMarket):
        if event.market not in MARKET_SYMBOLS:
            return _invalid("market", event.market)
        return ChoosingSymbol(event.kind, ai, event.market)

    if isinstance(event, PickSymbol):
        if event.market not in MARKET_SYMBOLS:
            return _invalid("market", event.market)
        if event.symbol not in symbols_for(event.market):
            return _invalid("symbol", event.symbol)
        return ChoosingTimeframe(event.kind, ai, event.market, event.symbol)

    # PickTimeframe
    if event.timeframe not in TIMEFRAMES:
        return _invalid("timeframe", event.timeframe)
    if not isinstance(state, (ChoosingTimeframe, ReadyToDispatch)):
        return _incomplete()
    # Counters only move on success, so a second wizard opened in parallel is caught here.
    rejection = check_entry(record, event.kind, at_ms)
    if rejection:
        return rejection
    return ReadyToDispatch(event.kind, ai, state.market, state.symbol, event.timeframe)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@dataclass
class WizardStep:
    record: SessionRecord
    state: WizardState | None = None
    rejection: Rejection | None = None


@dataclass
class DispatchOutcome:
    record: SessionRecord
    ok: bool
    text: str | None = None
    error: str | None = None


class WizardService:
    def __init__(
        self,
        store: SessionStore,
        dispatcher: AnalysisDispatcher,
        clock: Callable[[], int] = now_ms,
        today: Callable[[], str] = local_today,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.today = today

    async def load(self, user_id: int) -> SessionRecord:
        return await load_or_create(self.store, user_id, self.today())

    async def save(self, user_id: int, record: SessionRecord) -> None:
        await self.store.put(user_id, record)

    async def select_ai(self, user_id: int, ai_id: str) -> WizardStep:
        record = await self.load(user_id)
        if ai_id not in AI_BACKENDS:
            return WizardStep(record, rejection=_invalid("AI model", ai_id))
        if not get_tier(record.tier).allows_ai(ai_id):
            return WizardStep(record, rejection=_locked(ai_id))
        record.selected_ai = ai_id
        await self.save(user_id, record)
        return WizardStep(record)

    async def upgrade(self, user_id: int, tier: str) -> SessionRecord:
        if tier not in TIERS:
            raise ValidationError(f"unknown tier {tier!r}")
        record = await self.load(user_id)
        record.tier = tier
        record.last_upgrade_date = self.today()
        await self.save(user_id, record)
        logger.info("tier_upgraded", extra={"event": "tier_upgraded", "user_id": user_id, "kind": tier})
        return record

    async def abandon(self, user_id: int) -> SessionRecord:
        """Leave any wizard in progress, e.g. when the user goes back to the main menu."""
        record = await self.load(user_id)
        if record.has_selection:
            record.clear_selection()
            await self.save(user_id, record)
        return record

    async def handle(self, user_id: int, event: WizardEvent) -> WizardStep:
        record = await self.load(user_id)
        result = transition(state_from_record(record, event.kind), event, record, self.clock())
        if isinstance(result, Rejection):
            # Only a rejected market or symbol pick keeps the wizard open for another try.
            ends_wizard = result.reason is RejectReason.INCOMPLETE or isinstance(event, (Start, PickTimeframe))
            if ends_wizard and record.has_selection:
                record.clear_selection()
                await self.save(user_id, record)
            logger.info(
                "wizard_rejected",
                extra={"event": "wizard_rejected", "user_id": user_id, "kind": event.kind.value, "status": result.reason.value},
            )
            return WizardStep(record, rejection=result)

        apply_state(record, result)
        await self.save(user_id, record)
        return WizardStep(record, state=result)

    async def run(self, user_id: int, ready: ReadyToDispatch, progress: ProgressCallback) -> DispatchOutcome:
        """Dispatch a completed selection. The selection is cleared whatever happens."""
        record = await self.load(user_id)
        request = AnalysisRequest(
            user_id=user_id,
            kind=ready.kind,
            ai=ready.ai,
            market=ready.market,
            symbol=ready.symbol,
            timeframe=ready.timeframe,
            indicators=get_tier(record.tier).indicators,
        )
        try:
            result = await self.dispatcher.dispatch(request, progress)
            record_success(record, ready.kind, ready.ai, ready.market, self.clock(), self.today())
            return DispatchOutcome(record, ok=True, text=result.text)
        except DispatchError as exc:
            logger.warning(
                "dispatch_failed",
                extra={"event": "dispatch_failed", "user_id": user_id, "kind": ready.kind.value, "error": str(exc)},
            )
            return DispatchOutcome(record, ok=False, error=str(exc))
        finally:
            record.clear_selection()
            await self.save(user_id, record)
