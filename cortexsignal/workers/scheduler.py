from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from cortexsignal.core.catalog import LOCAL_TZ
from cortexsignal.core.container import ServiceHub

logger = logging.getLogger(__name__)


class WorkerScheduler:
    def __init__(self, hub: ServiceHub) -> None:
        self.hub = hub
        self.settings = hub.settings
        self.scheduler = AsyncIOScheduler(timezone=LOCAL_TZ)

    async def _reset_daily_limits(self) -> None:
        try:
            report = await self.hub.daily_reset_service.run()
            logger.info(
                "daily_limits_reset",
                extra={"event": "daily_limits_reset", "count": report.reset, "status": f"failed={report.failed}"},
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("daily_reset_task_failed", extra={"event": "daily_reset_task_failed", "error": str(exc)})

    def start(self) -> None:
        self.scheduler.add_job(
            self._reset_daily_limits,
            CronTrigger(hour=self.settings.daily_reset_hour, minute=self.settings.daily_reset_minute, timezone=LOCAL_TZ),
            id="daily_reset",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
