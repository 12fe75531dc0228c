from __future__ import annotations

import logging
from contextlib import suppress

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message

from cortexsignal.bot.keyboards import (
    ai_menu,
    back_to_menu,
    help_menu,
    locked_ai_menu,
    main_menu,
    market_menu,
    start_menu,
    symbol_menu,
    timeframe_menu,
    upgrade_menu,
)
from cortexsignal.bot.templates import (
    ai_menu_text,
    ai_selected_notice,
    dispatch_failed_text,
    generating_notice,
    generating_text,
    help_text,
    locked_ai_text,
    main_menu_text,
    market_prompt,
    plan_status_text,
    progress_text,
    signal_delivered_text,
    symbol_prompt,
    timeframe_prompt,
    upgrade_text,
    usage_stats_text,
    welcome_text,
)
from cortexsignal.core.container import ServiceHub
from cortexsignal.core.errors import ValidationError
from cortexsignal.core.tiers import RequestKind, required_tier_for
from cortexsignal.services.quota import RejectReason
from cortexsignal.services.wizard import (
    CALLBACK_PREFIX,
    ChoosingMarket,
    ChoosingSymbol,
    ChoosingTimeframe,
    ReadyToDispatch,
    parse_event,
)

router = Router()
_hub: ServiceHub | None = None
logger = logging.getLogger(__name__)


def init_handlers(hub: ServiceHub) -> None:
    global _hub
    _hub = hub


def _require_hub() -> ServiceHub:
    if _hub is None:
        raise RuntimeError("Handlers not initialized")
    return _hub


async def _edit(callback: CallbackQuery, text: str, reply_markup: InlineKeyboardMarkup | None = None) -> None:
    # Telegram rejects edits that leave the message unchanged; nothing to do then.
    with suppress(TelegramBadRequest):
        await callback.message.edit_text(text, reply_markup=reply_markup)


class _StatusMessage:
    """The one message whose text follows the dispatch progress."""

    def __init__(self, bot: Bot, chat_id: int, kind: RequestKind) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.kind = kind
        self.message_id: int | None = None

    async def report(self, stage: int) -> None:
        text = progress_text(self.kind, stage)
        try:
            if self.message_id is None:
                sent = await self.bot.send_message(chat_id=self.chat_id, text=text)
                self.message_id = sent.message_id
            else:
                await self.bot.edit_message_text(text=text, chat_id=self.chat_id, message_id=self.message_id)
        except TelegramAPIError as exc:
            logger.warning("status_update_failed", extra={"event": "status_update_failed", "error": str(exc)})

    async def fail(self, error: str) -> None:
        text = dispatch_failed_text(self.kind, error)
        with suppress(TelegramAPIError):
            if self.message_id is None:
                await self.bot.send_message(chat_id=self.chat_id, text=text)
            else:
                await self.bot.edit_message_text(text=text, chat_id=self.chat_id, message_id=self.message_id)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@router.message(Command("start"))
async def start_cmd(message: Message) -> None:
    hub = _require_hub()
    if message.from_user:
        # Persist right away so the user is reachable by admin broadcasts.
        record = await hub.wizard_service.load(message.from_user.id)
        await hub.wizard_service.save(message.from_user.id, record)
    await message.answer(welcome_text(), reply_markup=start_menu())


@router.message(Command("menu"))
async def menu_cmd(message: Message) -> None:
    if not message.from_user:
        return
    record = await _require_hub().wizard_service.abandon(message.from_user.id)
    await message.answer(main_menu_text(record), reply_markup=main_menu())


@router.message(Command("help"))
async def help_cmd(message: Message) -> None:
    await message.answer(help_text(), reply_markup=help_menu())


@router.message(Command("status"))
async def status_cmd(message: Message) -> None:
    if not message.from_user:
        return
    record = await _require_hub().wizard_service.load(message.from_user.id)
    await message.answer(plan_status_text(record), reply_markup=back_to_menu())


@router.message(Command("stats"))
async def stats_cmd(message: Message) -> None:
    if not message.from_user:
        return
    record = await _require_hub().wizard_service.load(message.from_user.id)
    await message.answer(usage_stats_text(record), reply_markup=back_to_menu())


# ---------------------------------------------------------------------------
# Menus
# ---------------------------------------------------------------------------

@router.callback_query(F.data == "menu")
async def menu_callback(callback: CallbackQuery) -> None:
    record = await _require_hub().wizard_service.abandon(callback.from_user.id)
    await _edit(callback, main_menu_text(record), main_menu())
    await callback.answer()


@router.callback_query(F.data == "menu:ai")
async def ai_menu_callback(callback: CallbackQuery) -> None:
    record = await _require_hub().wizard_service.load(callback.from_user.id)
    await _edit(callback, ai_menu_text(), ai_menu(record.tier))
    await callback.answer()


@router.callback_query(F.data.startswith("ai:use:"))
async def ai_select_callback(callback: CallbackQuery) -> None:
    hub = _require_hub()
    ai_id = (callback.data or "").split(":", 2)[2]
    step = await hub.wizard_service.select_ai(callback.from_user.id, ai_id)
    if step.rejection:
        await callback.answer(step.rejection.message, show_alert=True)
        return
    await callback.answer(ai_selected_notice(ai_id))
    await _edit(callback, main_menu_text(step.record), main_menu())


@router.callback_query(F.data.startswith("ai:lock:"))
async def ai_locked_callback(callback: CallbackQuery) -> None:
    hub = _require_hub()
    ai_id = (callback.data or "").split(":", 2)[2]
    tier = required_tier_for(ai_id)
    if tier is None:
        await callback.answer("Unknown AI model.", show_alert=True)
        return
    await callback.answer("🚫 This AI is not available in your current plan.", show_alert=True)
    await callback.message.answer(
        locked_ai_text(ai_id, tier.name),
        reply_markup=locked_ai_menu(hub.settings.upgrade_url),
    )


@router.callback_query(F.data == "menu:status")
async def plan_status_callback(callback: CallbackQuery) -> None:
    record = await _require_hub().wizard_service.load(callback.from_user.id)
    await _edit(callback, plan_status_text(record), back_to_menu())
    await callback.answer()


@router.callback_query(F.data == "menu:stats")
async def usage_stats_callback(callback: CallbackQuery) -> None:
    record = await _require_hub().wizard_service.load(callback.from_user.id)
    await _edit(callback, usage_stats_text(record), back_to_menu())
    await callback.answer()


@router.callback_query(F.data == "menu:upgrade")
async def upgrade_menu_callback(callback: CallbackQuery) -> None:
    hub = _require_hub()
    record = await hub.wizard_service.load(callback.from_user.id)
    await _edit(
        callback,
        upgrade_text(record),
        upgrade_menu(record.tier, hub.settings.self_upgrade_enabled, hub.settings.upgrade_url),
    )
    await callback.answer()


@router.callback_query(F.data.startswith("upgrade:"))
async def upgrade_callback(callback: CallbackQuery) -> None:
    hub = _require_hub()
    if not hub.settings.self_upgrade_enabled:
        await callback.answer("Upgrades are handled on the upgrade page.", show_alert=True)
        return
    tier = (callback.data or "").split(":", 1)[1]
    try:
        record = await hub.wizard_service.upgrade(callback.from_user.id, tier)
    except ValidationError:
        await callback.answer("Unknown plan.", show_alert=True)
        return
    await callback.answer(f"✅ Upgraded to {tier.capitalize()}!")
    await _edit(callback, main_menu_text(record), main_menu())


# ---------------------------------------------------------------------------
# Request wizard
# ---------------------------------------------------------------------------

@router.callback_query(F.data.startswith(f"{CALLBACK_PREFIX}:"))
async def wizard_callback(callback: CallbackQuery) -> None:
    hub = _require_hub()
    try:
        event = parse_event(callback.data or "")
    except ValidationError:
        await callback.answer("Unknown action.", show_alert=True)
        return

    step = await hub.wizard_service.handle(callback.from_user.id, event)
    if step.rejection:
        await callback.answer(step.rejection.message, show_alert=True)
        if step.rejection.reason is RejectReason.INCOMPLETE:
            await _edit(callback, main_menu_text(step.record, "Please try again."), main_menu())
        return

    state = step.state
    if isinstance(state, ChoosingMarket):
        await _edit(callback, market_prompt(state.kind), market_menu(state.kind))
    elif isinstance(state, ChoosingSymbol):
        await _edit(callback, symbol_prompt(state.kind, state.market), symbol_menu(state.kind, state.market))
    elif isinstance(state, ChoosingTimeframe):
        await _edit(callback, timeframe_prompt(state.kind, state.symbol), timeframe_menu(state.kind, state.market))
    elif isinstance(state, ReadyToDispatch):
        await _dispatch(callback, state)
        return
    await callback.answer()


async def _dispatch(callback: CallbackQuery, ready: ReadyToDispatch) -> None:
    hub = _require_hub()
    user_id = callback.from_user.id
    chat_id = callback.message.chat.id

    await callback.answer(generating_notice(ready.kind))
    await callback.message.answer(generating_text(ready.kind, ready.ai, ready.market, ready.symbol, ready.timeframe))

    status = _StatusMessage(callback.bot, chat_id, ready.kind)
    outcome = await hub.wizard_service.run(user_id, ready, status.report)
    if outcome.ok:
        if ready.kind is RequestKind.SIGNAL:
            await callback.message.answer(signal_delivered_text())
        elif outcome.text:
            # Relayed verbatim; the analysis service formats its own text.
            await callback.message.answer(outcome.text, parse_mode=None)
    else:
        await status.fail(outcome.error or "unknown error")
        await callback.message.answer("Please try again later.")

    await callback.message.answer(main_menu_text(outcome.record), reply_markup=main_menu())
