from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from cortexsignal.bot import admin as admin_handlers
from cortexsignal.bot import handlers
from cortexsignal.core.config import get_settings
from cortexsignal.core.container import build_hub
from cortexsignal.core.logging import setup_logging
from cortexsignal.workers.scheduler import WorkerScheduler

logger = logging.getLogger(__name__)


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    bot = Bot(token=settings.telegram_bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    hub = build_hub(settings, bot)
    handlers.init_handlers(hub)
    admin_handlers.init_admin_handlers(hub)

    dp = Dispatcher()
    dp.message.outer_middleware(admin_handlers.BroadcastModeMiddleware(hub.admin_service))
    dp.include_router(handlers.router)
    # Holds the catch-all broadcast capture, so it must come after every other router.
    dp.include_router(admin_handlers.router)

    scheduler = WorkerScheduler(hub)
    scheduler.start()
    logger.info("bot_started", extra={"event": "bot_started", "count": len(settings.admin_ids_list())})
    try:
        await dp.start_polling(bot)
    finally:
        scheduler.stop()
        await hub.close()
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
