from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Callable, Protocol

from redis.asyncio import Redis
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.core.config import Settings, get_settings
from musterai.core.errors import QuotaExceededError
from musterai.domain.models import QuotaWindow


logger = logging.getLogger(__name__)

ACTION_DOC_GEN = "doc_gen"
ACTION_ENHANCE_CONTENT = "enhance_content"
ACTION_GENERATE_QUIZ = "generate_quiz"
ACTION_GENERATE_SCENARIO = "generate_scenario"
ACTION_GENERATE_FLASHCARDS = "generate_flashcards"
ACTION_WRONG_ANSWER_EXPLANATION = "wrong_answer_explanation"
ACTION_SCENARIO_DEBRIEF = "scenario_debrief"

TRAINING_ACTIONS = (
    ACTION_ENHANCE_CONTENT,
    ACTION_GENERATE_QUIZ,
    ACTION_GENERATE_SCENARIO,
    ACTION_GENERATE_FLASHCARDS,
    ACTION_WRONG_ANSWER_EXPLANATION,
    ACTION_SCENARIO_DEBRIEF,
)

# An insert can lose a race to a concurrent first admission; one retry sees the row.
_ADMIT_ATTEMPTS = 2


@dataclass(frozen=True)
class QuotaKey:
    # Windows are keyed by action plus the subject being limited (org or user).
    action: str
    subject_key: str

    def __str__(self) -> str:
        return f"{self.action}:{self.subject_key}"


@dataclass(frozen=True)
class QuotaPolicy:
    ceiling: int
    window_s: int

    @property
    def window_ms(self) -> int:
        return int(self.window_s * 1000)


def document_generation_policy(settings: Settings | None = None) -> QuotaPolicy:
    resolved = settings or get_settings()
    return QuotaPolicy(ceiling=resolved.quota_doc_gen_limit, window_s=resolved.quota_doc_gen_window_s)


def training_policy(settings: Settings | None = None) -> QuotaPolicy:
    resolved = settings or get_settings()
    return QuotaPolicy(ceiling=resolved.quota_training_limit, window_s=resolved.quota_training_window_s)


class QuotaLedgerLike(Protocol):
    async def admit(self, key: QuotaKey, window_ms: int, ceiling: int) -> bool:
        ...


def _utc_now_s() -> float:
    return time.time()


class QuotaLedger:
    """Fixed-window admission counters stored in ``quota_windows``.

    Every admission runs as one write transaction of conditional statements;
    the row is never read and written back, so concurrent callers cannot both
    observe spare capacity.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Allow time injection for deterministic window rollover tests.
        self._time_provider = time_provider or _utc_now_s

    async def admit(self, key: QuotaKey, window_ms: int, ceiling: int) -> bool:
        now_ms = int(self._time_provider() * 1000)
        for _attempt in range(_ADMIT_ATTEMPTS):
            outcome = await self._try_admit(key, window_ms=window_ms, ceiling=ceiling, now_ms=now_ms)
            if outcome is not None:
                return outcome
        logger.info("quota_rejected key=%s ceiling=%s", key, ceiling)
        return False

    async def _try_admit(
        self, key: QuotaKey, *, window_ms: int, ceiling: int, now_ms: int
    ) -> bool | None:
        # Returns True when admitted, None when the row state is unresolved or full.
        if ceiling < 1:
            # A zero ceiling admits nothing and never creates or resets a window.
            return False
        cutoff_ms = now_ms - window_ms
        async with self._session_factory() as session:
            async with session.begin():
                # Increment only while the window is live and below the ceiling.
                incremented = await session.execute(
                    update(QuotaWindow)
                    .where(
                        QuotaWindow.action == key.action,
                        QuotaWindow.subject_key == key.subject_key,
                        QuotaWindow.window_start_ms >= cutoff_ms,
                        QuotaWindow.count < ceiling,
                    )
                    .values(count=QuotaWindow.count + 1, last_attempt_ms=now_ms)
                    .execution_options(synchronize_session=False)
                )
                if incremented.rowcount == 1:
                    return True

                # Expired windows are reset to a fresh count of one.
                reset = await session.execute(
                    update(QuotaWindow)
                    .where(
                        QuotaWindow.action == key.action,
                        QuotaWindow.subject_key == key.subject_key,
                        QuotaWindow.window_start_ms < cutoff_ms,
                    )
                    .values(count=1, window_start_ms=now_ms, last_attempt_ms=now_ms)
                    .execution_options(synchronize_session=False)
                )
                if reset.rowcount == 1:
                    logger.debug("quota_window_reset key=%s", key)
                    return True

                inserted = await session.execute(self._insert_first_window(session, key, now_ms))
                if inserted.rowcount == 1:
                    return True
        return None

    def _insert_first_window(self, session: AsyncSession, key: QuotaKey, now_ms: int):
        # First admission for a key; existing rows are left untouched.
        dialect = session.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        return (
            insert_fn(QuotaWindow)
            .values(
                action=key.action,
                subject_key=key.subject_key,
                count=1,
                window_start_ms=now_ms,
                last_attempt_ms=now_ms,
            )
            .on_conflict_do_nothing(index_elements=["action", "subject_key"])
        )


_FIXED_WINDOW_LUA = r"""
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local ceiling = tonumber(ARGV[3])

local data = redis.call("HMGET", KEYS[1], "count", "window_start")
local count = tonumber(data[1])
local window_start = tonumber(data[2])

if count == nil or window_start == nil or (now_ms - window_start) > window_ms then
  if ceiling < 1 then
    return 0
  end
  redis.call("HSET", KEYS[1], "count", 1, "window_start", now_ms, "last_attempt", now_ms)
  return 1
end

if count >= ceiling then
  return 0
end

redis.call("HINCRBY", KEYS[1], "count", 1)
redis.call("HSET", KEYS[1], "last_attempt", now_ms)
return 1
"""


_redis_pool: Redis | None = None
_redis_loop: asyncio.AbstractEventLoop | None = None
_redis_lock = asyncio.Lock()


async def _get_redis() -> Redis:
    # Cache Redis connections per event loop to avoid reconnecting per request.
    global _redis_pool, _redis_loop
    current_loop = asyncio.get_running_loop()
    if _redis_pool is not None and _redis_loop == current_loop:
        return _redis_pool
    if _redis_pool is not None and _redis_loop != current_loop:
        _redis_pool = None
    async with _redis_lock:
        if _redis_pool is None:
            settings = get_settings()
            _redis_pool = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            _redis_loop = current_loop
    return _redis_pool


class RedisQuotaLedger:
    """Same fixed-window algorithm evaluated as a single Redis Lua script."""

    def __init__(
        self,
        *,
        redis: Redis | None = None,
        prefix: str | None = None,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._redis = redis
        self._prefix = prefix or get_settings().quota_redis_prefix
        self._time_provider = time_provider or _utc_now_s

    async def admit(self, key: QuotaKey, window_ms: int, ceiling: int) -> bool:
        redis = self._redis or await _get_redis()
        now_ms = int(self._time_provider() * 1000)
        result = await redis.eval(
            _FIXED_WINDOW_LUA,
            1,
            f"{self._prefix}:{key}",
            now_ms,
            window_ms,
            ceiling,
        )
        admitted = int(result) == 1
        if not admitted:
            logger.info("quota_rejected key=%s ceiling=%s backend=redis", key, ceiling)
        return admitted


async def enforce_quota(ledger: QuotaLedgerLike, key: QuotaKey, policy: QuotaPolicy) -> None:
    # Raise instead of returning False so callers cannot forget to check.
    admitted = await ledger.admit(key, policy.window_ms, policy.ceiling)
    if not admitted:
        raise QuotaExceededError(
            "Rate limit exceeded. Please try again later.",
            key=str(key),
            limit=policy.ceiling,
            window_s=policy.window_s,
        )


def build_quota_ledger(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
) -> QuotaLedgerLike:
    resolved = settings or get_settings()
    backend = (resolved.quota_backend or "sql").lower()
    if backend == "redis":
        return RedisQuotaLedger(prefix=resolved.quota_redis_prefix)
    return QuotaLedger(session_factory)
