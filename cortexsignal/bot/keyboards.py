from __future__ import annotations

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from cortexsignal.core.catalog import AI_BACKENDS, MARKET_SYMBOLS, TIMEFRAMES, symbols_for
from cortexsignal.core.tiers import TIERS, RequestKind, get_tier
from cortexsignal.services.wizard import PickMarket, PickSymbol, PickTimeframe, Start, encode_event

_MARKET_BUTTONS = {"forex": "📈 Forex", "crypto": "💰 Crypto"}


def start_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="⚙️ Choose AI", callback_data="menu:ai")
    kb.button(text="💎 View Plans", callback_data="menu:upgrade")
    kb.button(text="📄 Main Menu", callback_data="menu")
    kb.adjust(1)
    return kb.as_markup()


def help_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="📄 Main Menu", callback_data="menu")
    kb.button(text="💎 View Plans", callback_data="menu:upgrade")
    kb.adjust(1)
    return kb.as_markup()


def main_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="🔁 Change AI", callback_data="menu:ai")
    kb.button(text="📡 Ask Signal", callback_data=encode_event(Start(RequestKind.SIGNAL)))
    kb.button(text="📝 Trading Plan", callback_data=encode_event(Start(RequestKind.TRADING_PLAN)))
    kb.button(text="💎 Plan Status", callback_data="menu:status")
    kb.button(text="📈 Stats", callback_data="menu:stats")
    kb.button(text="⬆️ Upgrade", callback_data="menu:upgrade")
    kb.adjust(1, 1, 1, 2, 1)
    return kb.as_markup()


def back_to_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="🔙 Back to Main Menu", callback_data="menu")
    return kb.as_markup()


def ai_menu(tier_name: str) -> InlineKeyboardMarkup:
    tier = get_tier(tier_name)
    kb = InlineKeyboardBuilder()
    for backend in AI_BACKENDS.values():
        if tier.allows_ai(backend.id):
            kb.button(text=f"✅ {backend.label}", callback_data=f"ai:use:{backend.id}")
        else:
            kb.button(text=f"🔒 {backend.label}", callback_data=f"ai:lock:{backend.id}")
    kb.button(text="🔙 Back to Main Menu", callback_data="menu")
    kb.adjust(1)
    return kb.as_markup()


def locked_ai_menu(upgrade_url: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="⚡ Upgrade Now", url=upgrade_url)
    kb.button(text="🔙 Back to AI Menu", callback_data="menu:ai")
    kb.adjust(1)
    return kb.as_markup()


def market_menu(kind: RequestKind) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for market in MARKET_SYMBOLS:
        kb.button(text=_MARKET_BUTTONS.get(market, market), callback_data=encode_event(PickMarket(kind, market)))
    kb.button(text="🔙 Back to Main Menu", callback_data="menu")
    kb.adjust(len(MARKET_SYMBOLS), 1)
    return kb.as_markup()


def symbol_menu(kind: RequestKind, market: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    symbols = symbols_for(market)
    for symbol in symbols:
        kb.button(text=symbol, callback_data=encode_event(PickSymbol(kind, market, symbol)))
    kb.button(text="🔙 Back", callback_data=encode_event(Start(kind)))
    kb.adjust(*([3] * (len(symbols) // 3)), len(symbols) % 3 or 3, 1)
    return kb.as_markup()


def timeframe_menu(kind: RequestKind, market: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for timeframe in TIMEFRAMES:
        kb.button(text=timeframe, callback_data=encode_event(PickTimeframe(kind, timeframe)))
    kb.button(text="🔙 Back", callback_data=encode_event(PickMarket(kind, market)))
    kb.adjust(*([4] * (len(TIMEFRAMES) // 4)), len(TIMEFRAMES) % 4 or 4, 1)
    return kb.as_markup()


def upgrade_menu(current_tier: str, self_upgrade: bool, upgrade_url: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    rows: list[int] = []
    for tier in TIERS.values():
        if tier.name in (current_tier, "freemium"):
            continue
        text = f"{tier.icon} {tier.name.capitalize()} ({tier.daily_limit} signals/day)"
        if self_upgrade:
            kb.button(text=text, callback_data=f"upgrade:{tier.name}")
        else:
            kb.button(text=text, url=upgrade_url)
        rows.append(1)
    kb.button(text="🔙 Back to Main Menu", callback_data="menu")
    kb.adjust(*rows, 1)
    return kb.as_markup()


def admin_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="📢 Broadcast Message", callback_data="admin:broadcast")
    kb.button(text="🔄 Reset All Daily Limits", callback_data="admin:reset:confirm")
    kb.button(text="📊 Show Global Stats", callback_data="admin:stats")
    kb.adjust(1)
    return kb.as_markup()


def reset_confirm_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="✅ Yes, Reset All", callback_data="admin:reset:execute")
    kb.button(text="❌ No, Cancel", callback_data="admin:cancel")
    kb.adjust(2)
    return kb.as_markup()
