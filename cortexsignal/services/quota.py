from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from cortexsignal.core.catalog import LOCAL_TZ
from cortexsignal.core.tiers import RequestKind, get_tier
from cortexsignal.services.sessions import SessionRecord


class RejectReason(str, Enum):
    NO_AI = "no_ai"
    AI_LOCKED = "ai_locked"
    COOLDOWN = "cooldown"
    DAILY_LIMIT = "daily_limit"
    INVALID_CHOICE = "invalid_choice"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason
    message: str
    retry_after: int = 0


_KIND_LABEL = {
    RequestKind.SIGNAL: "signal",
    RequestKind.TRADING_PLAN: "trading plan",
}


def now_ms() -> int:
    return int(time.time() * 1000)


def local_today(now: datetime | None = None) -> str:
    """Calendar day (YYYY-MM-DD) on the UTC+7 quota clock."""
    moment = now.astimezone(LOCAL_TZ) if now else datetime.now(LOCAL_TZ)
    return moment.date().isoformat()


def usage_today(record: SessionRecord, kind: RequestKind) -> int:
    return record.signal_count if kind is RequestKind.SIGNAL else record.trading_plan_count


def last_request_ms(record: SessionRecord, kind: RequestKind) -> int:
    return record.last_signal_time if kind is RequestKind.SIGNAL else record.last_trading_plan_time


def cooldown_remaining(record: SessionRecord, kind: RequestKind, at_ms: int) -> int:
    """Whole seconds left before another request of this kind is allowed; 0 when free."""
    limits = get_tier(record.tier).limit_for(kind)
    elapsed = at_ms - last_request_ms(record, kind)
    window = limits.cooldown_seconds * 1000
    if elapsed >= window:
        return 0
    return math.ceil((window - elapsed) / 1000)


def check_entry(record: SessionRecord, kind: RequestKind, at_ms: int) -> Rejection | None:
    """Guard for opening a wizard: AI chosen, cooldown elapsed, daily count below the limit."""
    if not record.selected_ai:
        return Rejection(RejectReason.NO_AI, "Please choose an AI model first!")

    label = _KIND_LABEL[kind]
    wait = cooldown_remaining(record, kind, at_ms)
    if wait > 0:
        return Rejection(
            RejectReason.COOLDOWN,
            f"⏳ Cooldown active. Please wait {wait} seconds before asking for another {label}.",
            retry_after=wait,
        )

    limits = get_tier(record.tier).limit_for(kind)
    if usage_today(record, kind) >= limits.daily_limit:
        return Rejection(
            RejectReason.DAILY_LIMIT,
            f"🚫 Daily {label} limit reached. Upgrade your plan for more!",
        )
    return None


def record_success(
    record: SessionRecord,
    kind: RequestKind,
    ai_id: str,
    market: str | None,
    at_ms: int,
    today: str,
) -> None:
    """Book one completed request. Called once, only after the analysis service answered."""
    if kind is RequestKind.SIGNAL:
        record.signal_count += 1
        record.total_signal_count += 1
        record.last_signal_time = at_ms
        record.last_signal_date = today
    else:
        record.trading_plan_count += 1
        record.last_trading_plan_time = at_ms
        record.last_trading_plan_date = today

    record.ai_usage[ai_id] = record.ai_usage.get(ai_id, 0) + 1
    if market == "forex":
        record.forex_usage += 1
    elif market == "crypto":
        record.crypto_usage += 1
