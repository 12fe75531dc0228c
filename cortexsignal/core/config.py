from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True)

    telegram_bot_token: str = ""
    admin_ids: str = "1224691426"
    log_level: str = "INFO"

    analysis_webhook_url: str = "https://berlaskhristian.app.n8n.cloud/webhook/ask-market"
    analysis_timeout_sec: float = 120.0
    progress_step_delay_sec: float = 1.0

    session_backend: str = "file"
    sessions_dir: str = "./sessions"
    redis_url: str = "redis://localhost:6379/0"

    broadcast_delay_sec: float = 0.05
    daily_reset_hour: int = 0
    daily_reset_minute: int = 0

    upgrade_url: str = "https://your-upgrade-page.com"
    self_upgrade_enabled: bool = True

    def admin_ids_list(self) -> list[int]:
        out: list[int] = []
        for item in self.admin_ids.split(","):
            item = item.strip()
            if item.lstrip("-").isdigit():
                out.append(int(item))
        return out


@lru_cache
def get_settings() -> Settings:
    return Settings()
