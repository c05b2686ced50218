# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/admission/controller.py

Controlador de admisión por tier (límites por hora y por día).

check_and_consume() consume un lugar en ambas ventanas o en ninguna.
Una denegación reporta remaining=0 en la ventana agotada y el restante real
en la otra.

reset_at:
- inicio de la siguiente hora
- inicio del siguiente día UTC si SOLO la ventana diaria está agotada

La llamada al almacén está acotada por ADMISSION_TIMEOUT_SECONDS; timeout o
error del almacén -> BackingStoreUnavailable (500, falla cerrado).

Autor: WedAI
Fecha: 2026-01-20
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from redis.exceptions import RedisError
from sqlalchemy.exc import OperationalError

from app.modules.generation.enums import Tier
from app.observability.metrics import record_admission
from app.shared.config.settings_generation import GenerationSettings, get_generation_settings
from app.shared.errors import BackingStoreUnavailable

from .identity import CallerIdentity
from .stores import CounterStore, RedisCounterStore, SqlCounterStore, WindowCounts

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """Resultado de la admisión."""
    allowed: bool
    tier: Tier
    hourly_remaining: int
    daily_remaining: int
    reset_at: datetime
    hourly_limit: int
    daily_limit: int

    def retry_after_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return max(1, int((self.reset_at - now).total_seconds() + 0.999))

    def rate_limit_payload(self) -> Dict[str, Any]:
        return {
            "hourly_remaining": self.hourly_remaining,
            "daily_remaining": self.daily_remaining,
            "reset_at": self.reset_at.isoformat(),
        }


def window_bounds(now: datetime) -> Tuple[datetime, datetime, datetime, datetime]:
    """(inicio_hora, inicio_día, siguiente_hora, siguiente_día) en UTC."""
    now = now.astimezone(timezone.utc)
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    day_start = hour_start.replace(hour=0)
    return hour_start, day_start, hour_start + timedelta(hours=1), day_start + timedelta(days=1)


def build_store(settings: GenerationSettings) -> CounterStore:
    if settings.rate_limit_backend == "redis":
        return RedisCounterStore()
    return SqlCounterStore()


class AdmissionController:
    """
    Decide si el llamador puede hacer otra solicitud de generación.
    """

    def __init__(
        self,
        store: Optional[CounterStore] = None,
        settings: Optional[GenerationSettings] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.settings = settings or get_generation_settings()
        self.store = store or build_store(self.settings)
        self.timeout_seconds = timeout_seconds or self.settings.admission_timeout_seconds

    async def check_and_consume(
        self,
        identity: CallerIdentity,
        tier: Tier,
        now: Optional[datetime] = None,
    ) -> Decision:
        """
        Consume un lugar en ambas ventanas si ninguna está llena.

        Raises:
            BackingStoreUnavailable: timeout o error del almacén de contadores
        """
        hourly_cap, daily_cap = self.settings.caps_for(tier.value)
        hour_start, day_start, next_hour, next_day = window_bounds(now or datetime.now(timezone.utc))

        counts = await self._bounded(
            self.store.consume(identity, hourly_cap, daily_cap, hour_start, day_start)
        )
        decision = self._decide(counts, tier, hourly_cap, daily_cap, next_hour, next_day)

        record_admission(tier.value, decision.allowed)
        if decision.allowed:
            logger.debug(
                "Admission granted: identifier=%s tier=%s hourly_remaining=%d daily_remaining=%d",
                identity.identifier, tier.value, decision.hourly_remaining, decision.daily_remaining,
            )
        else:
            logger.info(
                "Admission denied: identifier=%s type=%s tier=%s hourly=%d/%d daily=%d/%d",
                identity.identifier, identity.identifier_type.value, tier.value,
                counts.hourly_count, hourly_cap, counts.daily_count, daily_cap,
            )
        return decision

    async def remaining(
        self,
        identity: CallerIdentity,
        tier: Tier,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Cupo restante sin consumir (respuestas deduplicadas)."""
        hourly_cap, daily_cap = self.settings.caps_for(tier.value)
        hour_start, day_start, next_hour, next_day = window_bounds(now or datetime.now(timezone.utc))

        hourly, daily = await self._bounded(self.store.peek(identity, hour_start, day_start))
        counts = WindowCounts(
            allowed=hourly < hourly_cap and daily < daily_cap,
            hourly_count=hourly,
            daily_count=daily,
        )
        return self._decide(counts, tier, hourly_cap, daily_cap, next_hour, next_day)

    async def _bounded(self, awaitable):
        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await awaitable
        except TimeoutError as e:
            logger.error("Admission store timed out after %.1fs", self.timeout_seconds)
            raise BackingStoreUnavailable("admission check timed out") from e
        except (OperationalError, RedisError) as e:
            logger.error("Admission store error: %s", e)
            raise BackingStoreUnavailable(f"admission store unavailable: {e}") from e

    @staticmethod
    def _decide(
        counts: WindowCounts,
        tier: Tier,
        hourly_cap: int,
        daily_cap: int,
        next_hour: datetime,
        next_day: datetime,
    ) -> Decision:
        hourly_remaining = max(0, hourly_cap - counts.hourly_count)
        daily_remaining = max(0, daily_cap - counts.daily_count)
        reset_at = next_hour

        if not counts.allowed:
            hourly_exhausted = counts.hourly_count >= hourly_cap
            daily_exhausted = counts.daily_count >= daily_cap
            if hourly_exhausted:
                hourly_remaining = 0
            if daily_exhausted:
                daily_remaining = 0
                if not hourly_exhausted:
                    reset_at = next_day

        return Decision(
            allowed=counts.allowed,
            tier=tier,
            hourly_remaining=hourly_remaining,
            daily_remaining=daily_remaining,
            reset_at=reset_at,
            hourly_limit=hourly_cap,
            daily_limit=daily_cap,
        )


__all__ = ["Decision", "AdmissionController", "window_bounds", "build_store"]
