# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/admission/stores.py

Almacenes de contadores del controlador de admisión.

Ambos backends cumplen el mismo contrato: incrementar las ventanas hora y
día en UNA unidad atómica, y solo si ninguna está llena. Una denegación no
deja ningún contador incrementado.

- SqlCounterStore (default): dos INSERT ... ON CONFLICT DO UPDATE ... WHERE
  count < cap RETURNING count en una sola transacción; si alguno no devuelve
  fila, rollback.
- RedisCounterStore (RATE_LIMIT_BACKEND=redis): script Lua que revisa ambas
  llaves y luego hace INCR + EXPIRE, en un solo viaje.

Autor: WedAI
Fecha: 2026-01-20
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.generation.enums import WindowKind
from app.modules.generation.models import RateLimitCounter
from app.shared.database.dialect import upsert_insert

from .identity import CallerIdentity

logger = logging.getLogger(__name__)

HOUR_TTL_SECONDS = 3600 + 60
DAY_TTL_SECONDS = 86400 + 60


@dataclass
class WindowCounts:
    """Conteos de ambas ventanas tras (o en lugar de) consumir."""
    allowed: bool
    hourly_count: int
    daily_count: int


class CounterStore(Protocol):
    async def consume(
        self,
        identity: CallerIdentity,
        hourly_cap: int,
        daily_cap: int,
        hour_start: datetime,
        day_start: datetime,
    ) -> WindowCounts: ...

    async def peek(
        self,
        identity: CallerIdentity,
        hour_start: datetime,
        day_start: datetime,
    ) -> Tuple[int, int]: ...


# =============================================================================
# SQL
# =============================================================================

class SqlCounterStore:
    """
    Contadores en rate_limit_counters.

    Usa su propia sesión: la admisión se confirma (o revierte) aunque la
    transacción del request falle después.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        if session_factory is None:
            from app.shared.database.database import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    async def consume(
        self,
        identity: CallerIdentity,
        hourly_cap: int,
        daily_cap: int,
        hour_start: datetime,
        day_start: datetime,
    ) -> WindowCounts:
        if hourly_cap > 0 and daily_cap > 0:
            async with self.session_factory() as session:
                try:
                    hourly = await self._increment(session, identity, WindowKind.HOUR, hour_start, hourly_cap)
                    daily = None
                    if hourly is not None:
                        daily = await self._increment(session, identity, WindowKind.DAY, day_start, daily_cap)

                    if hourly is not None and daily is not None:
                        await session.commit()
                        return WindowCounts(allowed=True, hourly_count=hourly, daily_count=daily)

                    await session.rollback()
                except Exception:
                    await session.rollback()
                    raise

        hourly, daily = await self.peek(identity, hour_start, day_start)
        return WindowCounts(allowed=False, hourly_count=hourly, daily_count=daily)

    async def peek(
        self,
        identity: CallerIdentity,
        hour_start: datetime,
        day_start: datetime,
    ) -> Tuple[int, int]:
        stmt = select(RateLimitCounter.window_kind, RateLimitCounter.count).where(
            RateLimitCounter.identifier_type == identity.identifier_type,
            RateLimitCounter.identifier == identity.identifier,
            or_(
                and_(RateLimitCounter.window_kind == WindowKind.HOUR, RateLimitCounter.window_start == hour_start),
                and_(RateLimitCounter.window_kind == WindowKind.DAY, RateLimitCounter.window_start == day_start),
            ),
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        counts = {kind: count for kind, count in rows}
        return counts.get(WindowKind.HOUR, 0), counts.get(WindowKind.DAY, 0)

    @staticmethod
    async def _increment(
        session: AsyncSession,
        identity: CallerIdentity,
        kind: WindowKind,
        window_start: datetime,
        cap: int,
    ) -> Optional[int]:
        """Incrementa si count < cap; devuelve el nuevo conteo o None si está lleno."""
        table = RateLimitCounter.__table__
        stmt = upsert_insert(session, table).values(
            identifier=identity.identifier,
            identifier_type=identity.identifier_type,
            window_kind=kind,
            window_start=window_start,
            count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.identifier_type, table.c.identifier, table.c.window_kind, table.c.window_start],
            set_={"count": table.c.count + 1},
            where=table.c.count < cap,
        ).returning(table.c.count)
        return (await session.execute(stmt)).scalar_one_or_none()


# =============================================================================
# REDIS
# =============================================================================

# KEYS[1]=hora, KEYS[2]=día; ARGV: cap_hora, cap_día, ttl_hora, ttl_día
CONSUME_SCRIPT = """
local h = tonumber(redis.call('GET', KEYS[1]) or '0')
local d = tonumber(redis.call('GET', KEYS[2]) or '0')
if h >= tonumber(ARGV[1]) or d >= tonumber(ARGV[2]) then
    return {0, h, d}
end
h = redis.call('INCR', KEYS[1])
if h == 1 then redis.call('EXPIRE', KEYS[1], ARGV[3]) end
d = redis.call('INCR', KEYS[2])
if d == 1 then redis.call('EXPIRE', KEYS[2], ARGV[4]) end
return {1, h, d}
"""


class RedisCounterStore:
    """
    Contadores en Redis.

    Llaves:
        rl:generation:{identifier_type}:{identifier}:h:{epoch_inicio_hora}
        rl:generation:{identifier_type}:{identifier}:d:{epoch_inicio_día}
    """

    def __init__(self, client_provider: Optional[Callable[[], Awaitable[Any]]] = None):
        if client_provider is None:
            from app.shared.redis import get_async_redis_client
            client_provider = get_async_redis_client
        self._client_provider = client_provider

    @staticmethod
    def build_keys(identity: CallerIdentity, hour_start: datetime, day_start: datetime) -> Tuple[str, str]:
        prefix = f"rl:generation:{identity.identifier_type.value}:{identity.identifier}"
        return (
            f"{prefix}:h:{int(hour_start.timestamp())}",
            f"{prefix}:d:{int(day_start.timestamp())}",
        )

    async def consume(
        self,
        identity: CallerIdentity,
        hourly_cap: int,
        daily_cap: int,
        hour_start: datetime,
        day_start: datetime,
    ) -> WindowCounts:
        client = await self._client_provider()
        script = client.register_script(CONSUME_SCRIPT)
        keys = list(self.build_keys(identity, hour_start, day_start))
        allowed, hourly, daily = await script(
            keys=keys,
            args=[hourly_cap, daily_cap, HOUR_TTL_SECONDS, DAY_TTL_SECONDS],
        )
        return WindowCounts(allowed=bool(int(allowed)), hourly_count=int(hourly), daily_count=int(daily))

    async def peek(
        self,
        identity: CallerIdentity,
        hour_start: datetime,
        day_start: datetime,
    ) -> Tuple[int, int]:
        client = await self._client_provider()
        hourly, daily = await client.mget(*self.build_keys(identity, hour_start, day_start))
        return int(hourly or 0), int(daily or 0)


__all__ = [
    "WindowCounts",
    "CounterStore",
    "SqlCounterStore",
    "RedisCounterStore",
    "CONSUME_SCRIPT",
]
