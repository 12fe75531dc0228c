from __future__ import annotations

from cortexsignal.core.catalog import AI_BACKENDS, INDICATOR_GROUPS, ai_name
from cortexsignal.core.fmt import safe_html
from cortexsignal.core.tiers import TIERS, RequestKind, get_tier
from cortexsignal.services.admin import BroadcastReport, GlobalStats, ResetReport
from cortexsignal.services.dispatcher import PROGRESS_STEPS
from cortexsignal.services.sessions import SessionRecord

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def progress_bar(used: int, total: int) -> str:
    ratio = min(used / total, 1) if total else 1
    filled = int(ratio * 10)
    return f"{'▰' * filled}{'▱' * (10 - filled)} {used}/{total}"


def dynamic_progress_bar(step: int, total: int = PROGRESS_STEPS) -> str:
    filled = min(int(step / total * 10), 10)
    return f"{'▰' * filled}{'▱' * (10 - filled)} - {round(step / total * 100)}%"


def _pct(part: int, whole: int) -> str:
    if whole <= 0:
        return "0"
    return f"{part / whole * 100:.1f}"


def _date(value: str | None) -> str:
    return value or "N/A"


def _kind_label(kind: RequestKind) -> str:
    return "signal" if kind is RequestKind.SIGNAL else "trading plan"


# ---------------------------------------------------------------------------
# Menus
# ---------------------------------------------------------------------------

def welcome_text() -> str:
    free, premium, pro = TIERS["freemium"], TIERS["premium"], TIERS["pro"]
    return (
        "👋 Welcome to <b>CortexSignal AI Bot</b>!\n\n"
        "Get premium trading signals for Forex and Crypto powered by multiple AI models. "
        "Choose your plan and start now!\n\n"
        "💼 <b>Available Plans:</b>\n"
        f"⭐️ Freemium: {free.daily_limit} signals/day + {free.indicator_limit} Indicators\n"
        f"✨ Premium: {premium.daily_limit} signals/day + {premium.indicator_limit} Indicators\n"
        f"🚀 Pro: {pro.daily_limit} signals/day + access to all AIs + {pro.indicator_limit} Indicators\n\n"
        "👇 Select an option to continue:"
    )


def help_text() -> str:
    lines = [
        "🤖 <b>CortexSignal AI Trading Bot Help Guide</b>\n",
        "📌 <b>Commands:</b>",
        "/start – Restart the bot",
        "/help – Show this help menu",
        "/menu – Open the main menu",
        "/status – View your current plan and signal count",
        "/stats – View your usage stats\n",
        "🧠 <b>AI Models:</b>",
        "Choose from multiple AI engines in the main menu. Higher plans unlock more models.\n",
        "📈 <b>How to Request a Signal:</b>",
        "1. Tap <b>Ask Signal</b> (or <b>Trading Plan</b>) in the menu.",
        "2. Select Market Type (Forex or Crypto).",
        "3. Choose your Symbol and Timeframe.",
        "4. Get your result (subject to your plan limits).\n",
        "⭐️ <b>Plans:</b>",
    ]
    for tier in TIERS.values():
        lines.append(
            f"- {tier.name.capitalize()}: {tier.daily_limit} signals/day, "
            f"{tier.trading_plan_limit} trading plans/day, {tier.cooldown}s cooldown"
        )
    lines.append("\nHappy trading! 🚀")
    return "\n".join(lines)


def main_menu_text(record: SessionRecord, additional: str = "") -> str:
    tier = get_tier(record.tier)
    text = (
        f"🧠 AI: {ai_name(record.selected_ai)} | 📊 Tier: {tier.name.upper()}\n"
        f"📊 Signals today: {record.signal_count}/{tier.daily_limit}"
    )
    if additional:
        text += f"\n{additional}"
    return text


def ai_menu_text() -> str:
    return (
        "🤖 <b>Choose an AI model:</b>\n\n"
        "Each AI is trained with different strategies. You can switch between them anytime.\n\n"
        "🔹 GPT 4.1 — Balanced &amp; safe signals (Freemium)\n"
        "🔹 Gemini 2.5 Pro — Balanced &amp; safe signals (Premium)\n"
        "🔹 Deepseek — smarter entry/exit with DeepThink R1 (Pro)\n\n"
        "👇 Pick your AI to continue:"
    )


def ai_selected_notice(ai_id: str) -> str:
    return f"✅ {AI_BACKENDS[ai_id].label} selected!"


def locked_ai_text(ai_id: str, required_tier: str) -> str:
    return (
        f"💡 <b>{AI_BACKENDS[ai_id].label} is locked.</b>\n"
        f"Upgrade to <b>{required_tier.capitalize()}</b> to unlock this AI model."
    )


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------

def market_prompt(kind: RequestKind) -> str:
    if kind is RequestKind.SIGNAL:
        return "🌐 <b>Select a market type for the signal:</b>"
    return "📝 <b>Select a market type for your trading plan:</b>"


def symbol_prompt(kind: RequestKind, market: str) -> str:
    if kind is RequestKind.SIGNAL:
        return f"📊 <b>Select a symbol for {market}:</b>"
    return "📊 <b>Select a symbol for your trading plan:</b>"


def timeframe_prompt(kind: RequestKind, symbol: str) -> str:
    if kind is RequestKind.SIGNAL:
        return f"⏰ <b>Select a timeframe for {symbol}:</b>"
    return "⏰ <b>Select a timeframe for your trading plan:</b>"


def generating_notice(kind: RequestKind) -> str:
    if kind is RequestKind.SIGNAL:
        return "🔍 Generating signal, please wait..."
    return "📝 Generating trading plan, please wait..."


def generating_text(kind: RequestKind, ai: str, market: str, symbol: str, timeframe: str) -> str:
    if kind is RequestKind.SIGNAL:
        return (
            f"Generating a <b>{market.upper()}</b> signal for <b>{symbol}</b> "
            f"on <b>{timeframe}</b> using <b>{ai_name(ai)}</b>..."
        )
    return f"Generating a trading plan for <b>{symbol}</b> on <b>{timeframe}</b> using <b>{ai_name(ai)}</b>..."


def progress_text(kind: RequestKind, stage: int) -> str:
    label = _kind_label(kind)
    if stage <= 0:
        head = "Processing your request..."
    elif stage == 1:
        head = "Analyzing Chart Pattern and All indicator..."
    elif stage < PROGRESS_STEPS:
        head = f"AI Analyzing the best {label}..."
    elif kind is RequestKind.SIGNAL:
        head = "✅ Signal generated successfully!"
    else:
        head = "✅ Your trading plan has been sent! Check your chat for details."
    return f"{head}\n{dynamic_progress_bar(stage)}"


def dispatch_failed_text(kind: RequestKind, error: str) -> str:
    return f"❌ Failed to generate {_kind_label(kind)}. Error: {safe_html(error)}"


def signal_delivered_text() -> str:
    return "Your signal has been sent to you! Check your chat for the detailed signal."


# ---------------------------------------------------------------------------
# Status screens
# ---------------------------------------------------------------------------

def plan_status_text(record: SessionRecord) -> str:
    tier = get_tier(record.tier)
    return (
        "🧾 <b>YOUR PLAN STATUS</b>\n\n"
        f"🆔 Tier: {tier.icon} {tier.name.upper()}\n"
        f"📊 Signals today: {progress_bar(record.signal_count, tier.daily_limit)}\n"
        f"📝 Trading Plans today: {progress_bar(record.trading_plan_count, tier.trading_plan_limit)}\n"
        f"📈 Total Signals Generated: {record.total_signal_count}\n"
        f"⏱️ Cooldown: {tier.cooldown}s\n"
        f"💎 Indicators available: {tier.indicator_limit}\n"
        f"🗓️ Last Upgrade: {_date(record.last_upgrade_date)}\n"
        f"⏳ Tier Expiry: {_date(record.tier_expiry_date)}\n\n"
        f"👤 Joined: {_date(record.join_date)}"
    )


def usage_stats_text(record: SessionRecord) -> str:
    markets = record.forex_usage + record.crypto_usage
    ai_total = sum(record.ai_usage.get(ai_id, 0) for ai_id in AI_BACKENDS)
    lines = [
        "📊 <b>YOUR USAGE STATS</b>\n",
        "🌐 <b>Market Usage:</b>",
        f"  📈 Forex: {_pct(record.forex_usage, markets)}%",
        f"  💰 Crypto: {_pct(record.crypto_usage, markets)}%\n",
        "🧠 <b>AI Model Usage:</b>",
    ]
    for backend in AI_BACKENDS.values():
        lines.append(f"  🔹 {backend.name}: {_pct(record.ai_usage.get(backend.id, 0), ai_total)}%")
    lines.append(f"\nTotal Signals Generated: {record.total_signal_count}")
    return "\n".join(lines)


def upgrade_text(record: SessionRecord) -> str:
    tier = get_tier(record.tier)
    return (
        "💎 <b>Upgrade Options</b>\n\n"
        f"Current plan: {tier.name.upper()}\n"
        f"Today's signal usage: {record.signal_count}/{tier.daily_limit}\n"
        f"Today's trading plan usage: {record.trading_plan_count}/{tier.trading_plan_limit}\n"
        f"Indicators on this plan: {len(INDICATOR_GROUPS[tier.name])}"
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def admin_panel_text() -> str:
    return "⚙️ <b>Admin Panel</b>"


def broadcast_prompt_text() -> str:
    return (
        "📝 Please send the message you want to broadcast to all users. "
        "I will send it exactly as you type/send it (text, photo, sticker, ...)."
    )


def broadcast_done_text(report: BroadcastReport) -> str:
    return f"✅ Broadcast finished!\nSent to {report.sent} users. Failed for {report.failed} users."


def reset_confirm_text() -> str:
    return (
        "⚠️ Are you sure you want to reset ALL daily signal and trading plan limits for ALL users? "
        "This action cannot be undone."
    )


def reset_done_text(report: ResetReport) -> str:
    return f"✅ All daily limits have been reset for {report.reset} users. Failed for {report.failed} users."


def global_stats_text(stats: GlobalStats) -> str:
    lines = ["📊 <b>GLOBAL BOT STATS</b>\n", f"Total Users: {stats.total_users}"]
    for name, count in stats.tiers.items():
        lines.append(f"  - {name.capitalize()}: {count}")
    lines.append("")
    lines.append(f"Total Signals Generated (today/since last reset): {stats.signals_today}")
    lines.append(f"Total Trading Plans Generated (today/since last reset): {stats.trading_plans_today}")
    if stats.errors:
        lines.append(f"\n⚠️ Unreadable session records: {stats.errors}")
    return "\n".join(lines)
