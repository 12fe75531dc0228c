from __future__ import annotations

import pytest

from cortexsignal.core.catalog import INDICATOR_GROUPS
from cortexsignal.core.tiers import TIERS, RequestKind, get_tier, required_tier_for


def test_tier_table_limits() -> None:
    free, premium, pro = TIERS["freemium"], TIERS["premium"], TIERS["pro"]
    assert (free.daily_limit, free.trading_plan_limit, free.cooldown) == (3, 1, 300)
    assert (premium.daily_limit, premium.trading_plan_limit, premium.cooldown) == (10, 3, 60)
    assert (pro.daily_limit, pro.trading_plan_limit, pro.cooldown) == (30, 7, 5)


def test_tier_ai_access() -> None:
    assert TIERS["freemium"].ai == ("gpt4",)
    assert TIERS["premium"].allows_ai("gemini")
    assert not TIERS["premium"].allows_ai("deepseek")
    assert set(TIERS["pro"].ai) == {"gpt4", "gemini", "deepseek"}


def test_indicator_counts_follow_groups() -> None:
    for name, tier in TIERS.items():
        assert tier.indicators == INDICATOR_GROUPS[name]
    assert [TIERS[n].indicator_limit for n in ("freemium", "premium", "pro")] == [7, 15, 29]


def test_limits_are_per_kind() -> None:
    tier = TIERS["premium"]
    assert tier.limit_for(RequestKind.SIGNAL).daily_limit == 10
    assert tier.limit_for(RequestKind.TRADING_PLAN).daily_limit == 3
    assert tier.limit_for(RequestKind.TRADING_PLAN).cooldown_seconds == 60


def test_unknown_tier_falls_back_to_freemium() -> None:
    assert get_tier("gold").name == "freemium"
    assert get_tier(None).name == "freemium"


def test_required_tier_for_ai() -> None:
    assert required_tier_for("gpt4").name == "freemium"
    assert required_tier_for("gemini").name == "premium"
    assert required_tier_for("deepseek").name == "pro"
    assert required_tier_for("claude") is None


def test_tier_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        TIERS["freemium"] = TIERS["pro"]  # type: ignore[index]
