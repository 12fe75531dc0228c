from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from cortexsignal.core.errors import SessionStoreError
from cortexsignal.core.tiers import TIERS
from cortexsignal.services.quota import local_today
from cortexsignal.services.sessions import SessionStore, load_or_create

logger = logging.getLogger(__name__)


@dataclass
class BroadcastReport:
    sent: int = 0
    failed: int = 0


@dataclass
class ResetReport:
    reset: int = 0
    failed: int = 0


@dataclass
class GlobalStats:
    total_users: int = 0
    tiers: dict[str, int] = field(default_factory=lambda: {name: 0 for name in TIERS})
    signals_today: int = 0
    trading_plans_today: int = 0
    errors: int = 0


class AdminService:
    """Operations over every stored session. All of them need an id from the admin allow-list."""

    def __init__(
        self,
        store: SessionStore,
        admin_ids: list[int],
        send_delay: float = 0.05,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Callable[[], str] = local_today,
    ) -> None:
        self.store = store
        self.admin_ids = frozenset(int(x) for x in admin_ids)
        self.send_delay = send_delay
        self._sleep = sleep
        self.today = today

    def is_admin(self, user_id: int) -> bool:
        return int(user_id) in self.admin_ids

    def _require_admin(self, user_id: int) -> None:
        if not self.is_admin(user_id):
            raise PermissionError("Only configured admins can run admin operations.")

    async def begin_broadcast(self, admin_id: int) -> None:
        self._require_admin(admin_id)
        record = await load_or_create(self.store, admin_id, self.today())
        record.admin_broadcast_mode = True
        await self.store.put(admin_id, record)

    async def consume_broadcast_mode(self, user_id: int) -> bool:
        """True when this message is the one an admin asked to broadcast. The flag is cleared either way."""
        record = await load_or_create(self.store, user_id, self.today())
        if not record.admin_broadcast_mode:
            return False
        record.admin_broadcast_mode = False
        await self.store.put(user_id, record)
        return self.is_admin(user_id)

    async def broadcast(self, admin_id: int, send: Callable[[int], Awaitable[Any]]) -> BroadcastReport:
        self._require_admin(admin_id)
        report = BroadcastReport()
        for entry in await self.store.list_all():
            if not entry.ok:
                logger.warning("broadcast_record_unreadable", extra={"event": "broadcast_record_unreadable", "error": entry.error})
                report.failed += 1
                continue
            if entry.user_id == admin_id:
                continue
            try:
                await send(entry.user_id)
                report.sent += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "broadcast_send_failed",
                    extra={"event": "broadcast_send_failed", "user_id": entry.user_id, "error": str(exc)},
                )
                report.failed += 1
            if self.send_delay:
                await self._sleep(self.send_delay)
        logger.info("broadcast_done", extra={"event": "broadcast_done", "user_id": admin_id, "count": report.sent})
        return report

    async def reset_all_limits(self, admin_id: int) -> ResetReport:
        self._require_admin(admin_id)
        today = self.today()
        report = ResetReport()
        for entry in await self.store.list_all():
            if not entry.ok:
                report.failed += 1
                continue
            record = entry.record
            record.signal_count = 0
            record.trading_plan_count = 0
            record.last_signal_date = today
            record.last_trading_plan_date = today
            try:
                await self.store.put(entry.user_id, record)
                report.reset += 1
            except SessionStoreError as exc:
                logger.warning("limit_reset_failed", extra={"event": "limit_reset_failed", "user_id": entry.user_id, "error": str(exc)})
                report.failed += 1
        logger.info("limits_reset_by_admin", extra={"event": "limits_reset_by_admin", "user_id": admin_id, "count": report.reset})
        return report

    async def global_stats(self, admin_id: int) -> GlobalStats:
        self._require_admin(admin_id)
        stats = GlobalStats()
        for entry in await self.store.list_all():
            if not entry.ok:
                stats.errors += 1
                continue
            record = entry.record
            stats.total_users += 1
            stats.tiers[record.tier] = stats.tiers.get(record.tier, 0) + 1
            stats.signals_today += record.signal_count
            stats.trading_plans_today += record.trading_plan_count
        return stats
