from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from cortexsignal.core.errors import SessionStoreError
from cortexsignal.services.quota import local_today
from cortexsignal.services.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class DailyResetReport:
    reset: int = 0
    unchanged: int = 0
    failed: int = 0


class DailyResetService:
    def __init__(self, store: SessionStore, today: Callable[[], str] = local_today) -> None:
        self.store = store
        self.today = today

    async def run(self) -> DailyResetReport:
        """Zero the daily counters of every record not yet stamped with today's date."""
        today = self.today()
        report = DailyResetReport()
        for entry in await self.store.list_all():
            if not entry.ok:
                logger.warning("daily_reset_record_unreadable", extra={"event": "daily_reset_record_unreadable", "error": entry.error})
                report.failed += 1
                continue
            record = entry.record
            if record.last_signal_date == today:
                report.unchanged += 1
                continue
            record.signal_count = 0
            record.trading_plan_count = 0
            record.last_signal_date = today
            record.last_trading_plan_date = today
            try:
                await self.store.put(entry.user_id, record)
                report.reset += 1
            except SessionStoreError as exc:
                logger.warning("daily_reset_write_failed", extra={"event": "daily_reset_write_failed", "user_id": entry.user_id, "error": str(exc)})
                report.failed += 1
        logger.info(
            "daily_reset_done",
            extra={"event": "daily_reset_done", "count": report.reset, "status": f"unchanged={report.unchanged} failed={report.failed}"},
        )
        return report
