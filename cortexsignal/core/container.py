from __future__ import annotations

from dataclasses import dataclass

from aiogram import Bot

from cortexsignal.core.config import Settings
from cortexsignal.core.http import WebhookClient
from cortexsignal.services.admin import AdminService
from cortexsignal.services.daily_reset import DailyResetService
from cortexsignal.services.dispatcher import AnalysisDispatcher
from cortexsignal.services.sessions import (
    FileSessionStore,
    MemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from cortexsignal.services.wizard import WizardService


@dataclass
class ServiceHub:
    bot: Bot
    settings: Settings
    store: SessionStore
    http: WebhookClient
    wizard_service: WizardService
    admin_service: AdminService
    daily_reset_service: DailyResetService

    async def close(self) -> None:
        await self.http.close()
        if isinstance(self.store, RedisSessionStore):
            await self.store.close()


def build_store(settings: Settings) -> SessionStore:
    backend = settings.session_backend.strip().lower()
    if backend == "redis":
        return RedisSessionStore.from_url(settings.redis_url)
    if backend == "memory":
        return MemorySessionStore()
    if backend != "file":
        raise ValueError(f"Unknown session backend: {settings.session_backend}")
    return FileSessionStore(settings.sessions_dir)


def build_hub(settings: Settings, bot: Bot) -> ServiceHub:
    store = build_store(settings)
    http = WebhookClient(timeout=settings.analysis_timeout_sec)
    dispatcher = AnalysisDispatcher(http, settings.analysis_webhook_url, step_delay=settings.progress_step_delay_sec)
    return ServiceHub(
        bot=bot,
        settings=settings,
        store=store,
        http=http,
        wizard_service=WizardService(store, dispatcher),
        admin_service=AdminService(store, settings.admin_ids_list(), send_delay=settings.broadcast_delay_sec),
        daily_reset_service=DailyResetService(store),
    )
