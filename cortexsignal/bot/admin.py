from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware, F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from cortexsignal.bot.keyboards import admin_menu, reset_confirm_menu
from cortexsignal.bot.templates import (
    admin_panel_text,
    broadcast_done_text,
    broadcast_prompt_text,
    global_stats_text,
    reset_confirm_text,
    reset_done_text,
)
from cortexsignal.core.container import ServiceHub
from cortexsignal.services.admin import AdminService

router = Router()
_hub: ServiceHub | None = None
logger = logging.getLogger(__name__)

ACCESS_DENIED = "🚫 Access Denied"


def init_admin_handlers(hub: ServiceHub) -> None:
    global _hub
    _hub = hub


def _require_hub() -> ServiceHub:
    if _hub is None:
        raise RuntimeError("Admin handlers not initialized")
    return _hub


async def _deny_non_admin(callback: CallbackQuery) -> bool:
    if _require_hub().admin_service.is_admin(callback.from_user.id):
        return False
    await callback.answer(ACCESS_DENIED, show_alert=True)
    return True


@router.message(Command("admin"))
async def admin_cmd(message: Message) -> None:
    hub = _require_hub()
    if not message.from_user or not hub.admin_service.is_admin(message.from_user.id):
        await message.answer(f"{ACCESS_DENIED}: You are not an admin.")
        return
    await message.answer(admin_panel_text(), reply_markup=admin_menu())


@router.callback_query(F.data == "admin:broadcast")
async def broadcast_start_callback(callback: CallbackQuery) -> None:
    if await _deny_non_admin(callback):
        return
    await _require_hub().admin_service.begin_broadcast(callback.from_user.id)
    await callback.answer()
    await callback.message.answer(broadcast_prompt_text())


@router.callback_query(F.data == "admin:reset:confirm")
async def reset_confirm_callback(callback: CallbackQuery) -> None:
    if await _deny_non_admin(callback):
        return
    await callback.answer()
    await callback.message.answer(reset_confirm_text(), reply_markup=reset_confirm_menu())


@router.callback_query(F.data == "admin:reset:execute")
async def reset_execute_callback(callback: CallbackQuery) -> None:
    if await _deny_non_admin(callback):
        return
    await callback.answer()
    await callback.message.answer("⏳ Resetting all daily limits, please wait...")
    try:
        report = await _require_hub().admin_service.reset_all_limits(callback.from_user.id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("admin_reset_failed", extra={"event": "admin_reset_failed", "error": str(exc)})
        await callback.message.answer("❌ Failed to reset all daily limits.")
        return
    await callback.message.answer(reset_done_text(report))


@router.callback_query(F.data == "admin:stats")
async def global_stats_callback(callback: CallbackQuery) -> None:
    if await _deny_non_admin(callback):
        return
    await callback.answer()
    try:
        stats = await _require_hub().admin_service.global_stats(callback.from_user.id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("admin_stats_failed", extra={"event": "admin_stats_failed", "error": str(exc)})
        await callback.message.answer("❌ Failed to retrieve global stats.")
        return
    await callback.message.answer(global_stats_text(stats))


@router.callback_query(F.data == "admin:cancel")
async def cancel_callback(callback: CallbackQuery) -> None:
    if await _deny_non_admin(callback):
        return
    await callback.answer()
    await callback.message.answer("Action cancelled.")


class BroadcastModeMiddleware(BaseMiddleware):
    """Consumes a pending broadcast on the next message, whichever handler ends up with it.

    The result reaches handlers as `broadcast_armed`; a command sent instead of
    the broadcast content therefore cancels the broadcast.
    """

    def __init__(self, admin_service: AdminService) -> None:
        self.admin_service = admin_service

    async def __call__(
        self,
        handler: Callable[[Message, dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: dict[str, Any],
    ) -> Any:
        armed = False
        if event.from_user:
            armed = await self.admin_service.consume_broadcast_mode(event.from_user.id)
        data["broadcast_armed"] = armed
        return await handler(event, data)


# Registered last: commands and callbacks above take precedence.
@router.message()
async def broadcast_capture(message: Message, broadcast_armed: bool = False) -> None:
    hub = _require_hub()
    if not broadcast_armed or not message.from_user:
        return
    if (message.text or "").startswith("/"):
        await message.answer("Broadcast cancelled.")
        return

    await message.answer("⏳ Broadcasting message, please wait...")
    try:
        report = await hub.admin_service.broadcast(
            message.from_user.id,
            lambda user_id: message.copy_to(chat_id=user_id),
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("broadcast_failed", extra={"event": "broadcast_failed", "error": str(exc)})
        await message.answer("❌ Failed to read user sessions for broadcast.")
        return
    await message.answer(broadcast_done_text(report))
