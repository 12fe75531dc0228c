from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import orjson

from cortexsignal.core.catalog import AI_BACKENDS
from cortexsignal.core.errors import SessionStoreError
from cortexsignal.core.tiers import DEFAULT_TIER

logger = logging.getLogger(__name__)

# attribute name -> key in the persisted JSON document
_FIELD_KEYS: tuple[tuple[str, str], ...] = (
    ("tier", "tier"),
    ("signal_count", "signalCount"),
    ("trading_plan_count", "tradingPlanCount"),
    ("total_signal_count", "totalSignalCount"),
    ("last_signal_time", "lastSignalTime"),
    ("last_trading_plan_time", "lastTradingPlanTime"),
    ("last_signal_date", "lastSignalDate"),
    ("last_trading_plan_date", "lastTradingPlanDate"),
    ("join_date", "joinDate"),
    ("last_upgrade_date", "lastUpgradeDate"),
    ("tier_expiry_date", "tierExpiryDate"),
    ("ai_usage", "aiUsage"),
    ("forex_usage", "forexUsage"),
    ("crypto_usage", "cryptoUsage"),
    ("selected_ai", "selectedAI"),
    ("selected_market_type", "selectedMarketType"),
    ("selected_symbol", "selectedSymbol"),
    ("selected_timeframe", "selectedTimeframe"),
)
_INT_FIELDS = {
    "signal_count",
    "trading_plan_count",
    "total_signal_count",
    "last_signal_time",
    "last_trading_plan_time",
    "forex_usage",
    "crypto_usage",
}
_KNOWN_KEYS = {key for _, key in _FIELD_KEYS} | {"adminBroadcastMode"}


def _default_ai_usage() -> dict[str, int]:
    return {ai_id: 0 for ai_id in AI_BACKENDS}


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class SessionRecord:
    tier: str = DEFAULT_TIER
    signal_count: int = 0
    trading_plan_count: int = 0
    total_signal_count: int = 0
    last_signal_time: int = 0
    last_trading_plan_time: int = 0
    last_signal_date: str | None = None
    last_trading_plan_date: str | None = None
    join_date: str | None = None
    last_upgrade_date: str | None = None
    tier_expiry_date: str | None = None
    ai_usage: dict[str, int] = field(default_factory=_default_ai_usage)
    forex_usage: int = 0
    crypto_usage: int = 0
    selected_ai: str | None = None
    selected_market_type: str | None = None
    selected_symbol: str | None = None
    selected_timeframe: str | None = None
    admin_broadcast_mode: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, today: str) -> "SessionRecord":
        return cls(
            last_signal_date=today,
            last_trading_plan_date=today,
            join_date=today,
            last_upgrade_date=today,
        )

    @classmethod
    def from_dict(cls, data: Any) -> "SessionRecord":
        if not isinstance(data, dict):
            raise SessionStoreError(f"session document must be an object, got {type(data).__name__}")
        record = cls()
        try:
            for attr, key in _FIELD_KEYS:
                if key not in data:
                    continue
                value = data[key]
                if attr in _INT_FIELDS:
                    setattr(record, attr, int(value or 0))
                elif attr == "ai_usage":
                    usage = _default_ai_usage()
                    usage.update({str(k): int(v or 0) for k, v in dict(value or {}).items()})
                    record.ai_usage = usage
                elif attr == "tier":
                    record.tier = str(value or DEFAULT_TIER)
                else:
                    setattr(record, attr, _opt_str(value))
        except (TypeError, ValueError) as exc:
            raise SessionStoreError(f"malformed session field: {exc}") from exc
        record.admin_broadcast_mode = bool(data.get("adminBroadcastMode", False))
        record.extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}
        return record

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        for attr, key in _FIELD_KEYS:
            value = getattr(self, attr)
            out[key] = dict(value) if isinstance(value, dict) else value
        if self.admin_broadcast_mode:
            out["adminBroadcastMode"] = True
        return out

    @property
    def has_selection(self) -> bool:
        return any((self.selected_market_type, self.selected_symbol, self.selected_timeframe))

    def clear_selection(self) -> None:
        """Drop the wizard-in-progress choices. The chosen AI is a standing preference and stays."""
        self.selected_market_type = None
        self.selected_symbol = None
        self.selected_timeframe = None


@dataclass
class StoredSession:
    """One entry of a full-store scan; `record` is None when the entry could not be read."""

    user_id: int | None
    record: SessionRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None and self.user_id is not None


class SessionStore(Protocol):
    async def get(self, user_id: int) -> SessionRecord | None: ...

    async def put(self, user_id: int, record: SessionRecord) -> None: ...

    async def list_all(self) -> list[StoredSession]: ...


def _decode(raw: bytes) -> SessionRecord:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise SessionStoreError(f"invalid JSON: {exc}") from exc
    return SessionRecord.from_dict(data)


def _encode(record: SessionRecord) -> bytes:
    return orjson.dumps(record.to_dict(), option=orjson.OPT_INDENT_2)


async def load_or_create(store: SessionStore, user_id: int, today: str) -> SessionRecord:
    """Per-interaction load: a missing or unreadable record starts over with defaults."""
    try:
        record = await store.get(user_id)
    except SessionStoreError as exc:
        logger.warning("session_decode_error", extra={"event": "session_decode_error", "user_id": user_id, "error": str(exc)})
        record = None
    return record if record is not None else SessionRecord.new(today)


class FileSessionStore:
    """One `<user_id>.json` document per user inside `directory`."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, user_id: int) -> Path:
        return self.directory / f"{int(user_id)}.json"

    async def get(self, user_id: int) -> SessionRecord | None:
        path = self._path(user_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SessionStoreError(f"cannot read {path.name}: {exc}") from exc
        return _decode(raw)

    async def put(self, user_id: int, record: SessionRecord) -> None:
        path = self._path(user_id)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(_encode(record))
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise SessionStoreError(f"cannot write {path.name}: {exc}") from exc

    async def list_all(self) -> list[StoredSession]:
        out: list[StoredSession] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                user_id = int(path.stem)
            except ValueError:
                out.append(StoredSession(user_id=None, error=f"unexpected file name {path.name}"))
                continue
            try:
                out.append(StoredSession(user_id=user_id, record=_decode(path.read_bytes())))
            except (OSError, SessionStoreError) as exc:
                out.append(StoredSession(user_id=user_id, error=str(exc)))
        return out


class RedisSessionStore:
    """Same contract as FileSessionStore, one `session:<user_id>` key per user."""

    def __init__(self, redis, prefix: str = "session:") -> None:
        self.redis = redis
        self.prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisSessionStore":
        from redis.asyncio import Redis

        return cls(Redis.from_url(redis_url, decode_responses=False))

    async def close(self) -> None:
        if hasattr(self.redis, "aclose"):
            await self.redis.aclose()
            return
        await self.redis.close()

    async def get(self, user_id: int) -> SessionRecord | None:
        raw = await self.redis.get(f"{self.prefix}{int(user_id)}")
        if not raw:
            return None
        return _decode(raw)

    async def put(self, user_id: int, record: SessionRecord) -> None:
        await self.redis.set(f"{self.prefix}{int(user_id)}", _encode(record))

    async def list_all(self) -> list[StoredSession]:
        out: list[StoredSession] = []
        async for key in self.redis.scan_iter(match=f"{self.prefix}*"):
            name = key.decode("utf-8") if isinstance(key, bytes) else str(key)
            try:
                user_id = int(name[len(self.prefix):])
            except ValueError:
                out.append(StoredSession(user_id=None, error=f"unexpected key {name}"))
                continue
            try:
                raw = await self.redis.get(name)
                if not raw:
                    continue
                out.append(StoredSession(user_id=user_id, record=_decode(raw)))
            except SessionStoreError as exc:
                out.append(StoredSession(user_id=user_id, error=str(exc)))
        out.sort(key=lambda entry: entry.user_id or 0)
        return out


class MemorySessionStore:
    """Process-local store; keeps encoded documents so it behaves like the persistent ones."""

    def __init__(self) -> None:
        self._docs: dict[int, bytes] = {}

    async def get(self, user_id: int) -> SessionRecord | None:
        raw = self._docs.get(int(user_id))
        return _decode(raw) if raw is not None else None

    async def put(self, user_id: int, record: SessionRecord) -> None:
        self._docs[int(user_id)] = _encode(record)

    async def list_all(self) -> list[StoredSession]:
        out: list[StoredSession] = []
        for user_id in sorted(self._docs):
            try:
                out.append(StoredSession(user_id=user_id, record=_decode(self._docs[user_id])))
            except SessionStoreError as exc:
                out.append(StoredSession(user_id=user_id, error=str(exc)))
        return out

    def put_raw(self, user_id: int, raw: bytes) -> None:
        self._docs[int(user_id)] = raw
