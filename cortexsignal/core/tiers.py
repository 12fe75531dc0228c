from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from cortexsignal.core.catalog import INDICATOR_GROUPS


class RequestKind(str, Enum):
    SIGNAL = "signal"
    TRADING_PLAN = "trading_plan"


@dataclass(frozen=True)
class KindLimits:
    daily_limit: int
    cooldown_seconds: int


@dataclass(frozen=True)
class TierPolicy:
    name: str
    icon: str
    signal: KindLimits
    trading_plan: KindLimits
    ai: tuple[str, ...]
    indicators: tuple[str, ...]

    @property
    def daily_limit(self) -> int:
        return self.signal.daily_limit

    @property
    def trading_plan_limit(self) -> int:
        return self.trading_plan.daily_limit

    @property
    def cooldown(self) -> int:
        return self.signal.cooldown_seconds

    @property
    def indicator_limit(self) -> int:
        return len(self.indicators)

    def limit_for(self, kind: RequestKind) -> KindLimits:
        return self.signal if kind is RequestKind.SIGNAL else self.trading_plan

    def allows_ai(self, ai_id: str) -> bool:
        return ai_id in self.ai


DEFAULT_TIER = "freemium"

TIERS = MappingProxyType(
    {
        "freemium": TierPolicy(
            name="freemium",
            icon="🆓",
            signal=KindLimits(daily_limit=3, cooldown_seconds=300),
            trading_plan=KindLimits(daily_limit=1, cooldown_seconds=300),
            ai=("gpt4",),
            indicators=INDICATOR_GROUPS["freemium"],
        ),
        "premium": TierPolicy(
            name="premium",
            icon="⭐",
            signal=KindLimits(daily_limit=10, cooldown_seconds=60),
            trading_plan=KindLimits(daily_limit=3, cooldown_seconds=60),
            ai=("gpt4", "gemini"),
            indicators=INDICATOR_GROUPS["premium"],
        ),
        "pro": TierPolicy(
            name="pro",
            icon="⚡",
            signal=KindLimits(daily_limit=30, cooldown_seconds=5),
            trading_plan=KindLimits(daily_limit=7, cooldown_seconds=5),
            ai=("gpt4", "deepseek", "gemini"),
            indicators=INDICATOR_GROUPS["pro"],
        ),
    }
)


def get_tier(name: str | None) -> TierPolicy:
    """Unknown or missing tier names fall back to freemium."""
    return TIERS.get(name or DEFAULT_TIER, TIERS[DEFAULT_TIER])


def required_tier_for(ai_id: str) -> TierPolicy | None:
    for tier in TIERS.values():
        if tier.allows_ai(ai_id):
            return tier
    return None
