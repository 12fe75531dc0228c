"""Compiled-in catalogs: AI backends, markets, timeframes and indicator groups."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from zoneinfo import ZoneInfo

# Quota days roll over at midnight WIB (UTC+7).
LOCAL_TZ = ZoneInfo("Asia/Jakarta")


@dataclass(frozen=True)
class AIBackend:
    id: str
    name: str
    label: str


AI_BACKENDS = MappingProxyType(
    {
        "gpt4": AIBackend(id="gpt4", name="GPT 4.1", label="GPT 4.1"),
        "gemini": AIBackend(id="gemini", name="Gemini", label="Gemini 2.5 Pro"),
        "deepseek": AIBackend(id="deepseek", name="Deepseek", label="Deepseek R1-0528"),
    }
)

MARKET_SYMBOLS = MappingProxyType(
    {
        "forex": ("XAU/USD", "EUR/USD", "GBP/USD", "USD/JPY", "AUD/USD"),
        "crypto": ("BTC/USD", "ETH/USD", "BNB/USD", "SOL/USD", "DOGE/USD"),
    }
)

TIMEFRAMES = ("1min", "5min", "15min", "30min", "1h", "2h", "4h", "1day", "1week", "1month")

_FREEMIUM_INDICATORS = (
    "Support & Resist",
    "Volume",
    "MACD",
    "Candlestick Pattern",
    "Stochastic",
    "Stop Level",
    "Relative Stock Index",
)

_PREMIUM_INDICATORS = (
    "Support & Resist",
    "Volume",
    "MACD",
    "Candlestick Pattern",
    "Stochastic",
    "Stop Level",
    "Fair Value Gap",
    "Momentum",
    "Bollinger",
    "Relative Stock Index",
    "Order Block",
    "Trend",
    "System (Long/Short)",
    "ADX",
    "Parabolic SAR",
)

_PRO_INDICATORS = (
    "Relative Stock Index",
    "MACD",
    "Bollinger",
    "Volume",
    "Fibonacci",
    "Fair Value Gap",
    "Stochastic",
    "Candlestick Pattern",
    "Recent Price Action",
    "Support & Resist",
    "Trend",
    "Trend ROC",
    "CCI",
    "Momentum",
    "Baseline",
    "Volatility Filter",
    "Stop Level",
    "Order Block",
    "Liquidity Block",
    "System (Long/Short)",
    "Bull/Bear Cross",
    "ADX",
    "Explosion",
    "Parabolic SAR",
    "ATR",
    "Pivot Points",
    "Forex Swing Trader",
    "EMA",
    "SMA",
)

INDICATOR_GROUPS = MappingProxyType(
    {
        "freemium": _FREEMIUM_INDICATORS,
        "premium": _PREMIUM_INDICATORS,
        "pro": _PRO_INDICATORS,
    }
)


def ai_name(ai_id: str | None) -> str:
    backend = AI_BACKENDS.get(ai_id or "")
    return backend.name if backend else "❌ Not selected"


def symbols_for(market: str) -> tuple[str, ...]:
    return MARKET_SYMBOLS.get(market, ())
