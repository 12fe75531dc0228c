from __future__ import annotations

from cortexsignal.bot import keyboards
from cortexsignal.bot.templates import (
    dispatch_failed_text,
    dynamic_progress_bar,
    main_menu_text,
    progress_bar,
    progress_text,
    usage_stats_text,
)
from cortexsignal.core.catalog import MARKET_SYMBOLS
from cortexsignal.core.tiers import TIERS, RequestKind
from cortexsignal.services.sessions import SessionRecord


def _callback_data(markup) -> list[str]:
    return [button.callback_data for row in markup.inline_keyboard for button in row if button.callback_data]


def test_every_callback_fits_telegram_limit() -> None:
    markups = [
        keyboards.start_menu(),
        keyboards.help_menu(),
        keyboards.main_menu(),
        keyboards.back_to_menu(),
        keyboards.admin_menu(),
        keyboards.reset_confirm_menu(),
        keyboards.upgrade_menu("freemium", True, "https://example.test/upgrade"),
    ]
    markups += [keyboards.ai_menu(name) for name in TIERS]
    for kind in RequestKind:
        markups.append(keyboards.market_menu(kind))
        for market in MARKET_SYMBOLS:
            markups.append(keyboards.symbol_menu(kind, market))
            markups.append(keyboards.timeframe_menu(kind, market))

    for markup in markups:
        for data in _callback_data(markup):
            assert len(data.encode("utf-8")) <= 64, data


def test_ai_menu_locks_models_above_the_tier() -> None:
    data = _callback_data(keyboards.ai_menu("freemium"))
    assert "ai:use:gpt4" in data
    assert "ai:lock:gemini" in data
    assert "ai:lock:deepseek" in data
    assert not any(d.startswith("ai:lock:") for d in _callback_data(keyboards.ai_menu("pro")))


def test_upgrade_menu_links_out_when_self_upgrade_is_off() -> None:
    markup = keyboards.upgrade_menu("freemium", False, "https://example.test/upgrade")
    urls = [button.url for row in markup.inline_keyboard for button in row if button.url]
    assert urls == ["https://example.test/upgrade", "https://example.test/upgrade"]
    assert _callback_data(markup) == ["menu"]


def test_progress_bars() -> None:
    assert progress_bar(0, 3) == "▱▱▱▱▱▱▱▱▱▱ 0/3"
    assert progress_bar(5, 3) == "▰▰▰▰▰▰▰▰▰▰ 5/3"
    assert dynamic_progress_bar(0) == "▱▱▱▱▱▱▱▱▱▱ - 0%"
    assert dynamic_progress_bar(1) == "▰▰▰▱▱▱▱▱▱▱ - 33%"
    assert dynamic_progress_bar(3) == "▰▰▰▰▰▰▰▰▰▰ - 100%"


def test_progress_text_ends_with_success_line() -> None:
    assert progress_text(RequestKind.SIGNAL, 3).startswith("✅ Signal generated")
    assert progress_text(RequestKind.TRADING_PLAN, 0).startswith("Processing")


def test_main_menu_shows_selection_and_count() -> None:
    record = SessionRecord(selected_ai="gemini", signal_count=2, tier="premium")
    text = main_menu_text(record, "Please try again.")
    assert "AI: Gemini |" in text
    assert "2/10" in text
    assert text.endswith("Please try again.")
    assert "Not selected" in main_menu_text(SessionRecord())


def test_usage_stats_without_history_has_no_division_error() -> None:
    text = usage_stats_text(SessionRecord())
    assert "Forex: 0%" in text


def test_failure_text_escapes_upstream_body() -> None:
    text = dispatch_failed_text(RequestKind.SIGNAL, "Webhook API error: 500 - <html>")
    assert "&lt;html&gt;" in text
