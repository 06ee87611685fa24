"""Redis cache for rendered statement responses.

Key layout (``-`` stands for an absent filter):
    account:statement:{from}:{to}:{dim}:{entity}:{bank}:{window}:{seller}:{role}:{sort}
    account:day:{date}:statement:{dim}:{entity}:{bank}:{window}:{seller}:{role}
    account:day:{date}:breakdown:{dim}:{entity}:{bank}:{window}:{seller}:{role}:{sort}

A ledger mutation on day D drops ``account:day:{D}:*``, every
``account:statement:*`` entry, and the day-1 views of the following months
(their OPENING_BALANCE line carries D's month forward). Closing a month
drops the ranges and those same day-1 views. Range entries are short-lived
and cheap to rebuild, so the broad sweep is preferred over tracking which
ranges cover D.

The cache is best-effort: Redis failures are logged and behave as a miss.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import date

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings
from src.pos_common.datetime_utils import business_today, month_bounds, month_key, next_month
from src.pos_common.enums import Dimension, Role, SortOrder
from src.pos_common.redis_client import get_redis
from src.pos_sales.domain.models import EntityFilter

logger = logging.getLogger(__name__)

RedisProvider = Callable[[], Awaitable[aioredis.Redis]]

_SCAN_BATCH = 500


def _part(value: str | None) -> str:
    return value if value else "-"


def following_month_starts(month: str, limit: int | None = None) -> list[date]:
    """Day 1 of each later month, up to the current one, whose opening carries ``month``."""
    limit = settings.STATEMENT_MAX_LOOKBACK_MONTHS if limit is None else limit
    current = month_key(business_today())
    starts: list[date] = []
    nxt = next_month(month)
    while nxt <= current and len(starts) < limit:
        starts.append(month_bounds(nxt)[0])
        nxt = next_month(nxt)
    return starts


def _opening_patterns(month: str) -> list[str]:
    return [f"account:day:{d.isoformat()}:*" for d in following_month_starts(month)]


def _scope_parts(entity_id: str | None, scope: EntityFilter) -> str:
    return ":".join(
        _part(v) for v in (entity_id, scope.bank_id, scope.window_id, scope.seller_id)
    )


def statement_key(
    start: date,
    end: date,
    dimension: Dimension,
    entity_id: str | None,
    scope: EntityFilter,
    role: Role,
    sort: SortOrder,
) -> str:
    return (
        f"account:statement:{start.isoformat()}:{end.isoformat()}:{dimension.value}:"
        f"{_scope_parts(entity_id, scope)}:{role.value}:{sort.value}"
    )


def day_statement_key(
    day: date, dimension: Dimension, entity_id: str | None, scope: EntityFilter, role: Role
) -> str:
    return (
        f"account:day:{day.isoformat()}:statement:{dimension.value}:"
        f"{_scope_parts(entity_id, scope)}:{role.value}"
    )


def breakdown_key(
    day: date,
    dimension: Dimension,
    entity_id: str | None,
    scope: EntityFilter,
    role: Role,
    sort: SortOrder,
) -> str:
    return (
        f"account:day:{day.isoformat()}:breakdown:{dimension.value}:"
        f"{_scope_parts(entity_id, scope)}:{role.value}:{sort.value}"
    )


class StatementCache:
    def __init__(self, redis_provider: RedisProvider | None = None) -> None:
        self._redis_provider = redis_provider or get_redis

    async def get(self, key: str) -> str | None:
        try:
            redis = await self._redis_provider()
            payload = await redis.get(key)
        except RedisError as exc:
            logger.warning("Statement cache read failed for %s: %s", key, exc)
            return None
        if payload is not None:
            logger.debug("Statement cache hit: %s", key)
        return payload

    async def set(self, key: str, payload: str, ttl_seconds: int) -> None:
        try:
            redis = await self._redis_provider()
            await redis.set(key, payload, ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("Statement cache write failed for %s: %s", key, exc)

    async def invalidate_day(self, day: date) -> int:
        """Drop cached views of ``day``, every range statement and later month openings."""
        return await self._delete_patterns(
            [f"account:day:{day.isoformat()}:*", "account:statement:*"]
            + _opening_patterns(month_key(day))
        )

    async def invalidate_month_close(self, month: str) -> int:
        """Drop range statements and the month openings that follow ``month``."""
        return await self._delete_patterns(["account:statement:*"] + _opening_patterns(month))

    async def _delete_patterns(self, patterns: list[str]) -> int:
        deleted = 0
        try:
            redis = await self._redis_provider()
            for pattern in patterns:
                batch: list[str] = []
                async for key in redis.scan_iter(match=pattern, count=_SCAN_BATCH):
                    batch.append(key)
                    if len(batch) >= _SCAN_BATCH:
                        deleted += await redis.delete(*batch)
                        batch = []
                if batch:
                    deleted += await redis.delete(*batch)
        except RedisError as exc:
            logger.warning("Statement cache invalidation failed for %s: %s", patterns, exc)
            return deleted
        logger.info("Statement cache invalidated %d keys (%s)", deleted, ", ".join(patterns))
        return deleted
