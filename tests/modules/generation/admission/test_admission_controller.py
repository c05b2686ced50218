# -*- coding: utf-8 -*-
"""
Tests del controlador de admisión con SqlCounterStore.

Cubre:
- Límites por tier en ventanas hora / día
- Una denegación no incrementa contadores
- reset_at: siguiente hora, o siguiente día si solo la diaria está agotada
- remaining() no consume
- Timeout del almacén -> BackingStoreUnavailable

Autor: WedAI
Fecha: 2026-01-20
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.modules.generation.admission import (
    AdmissionController,
    SqlCounterStore,
    WindowCounts,
    resolve_identity,
    window_bounds,
)
from app.modules.generation.enums import Tier
from app.shared.config.settings_generation import GenerationSettings
from app.shared.errors import BackingStoreUnavailable

pytestmark = pytest.mark.anyio

NOON = datetime(2026, 3, 14, 12, 15, tzinfo=timezone.utc)


@pytest.fixture
def controller(session_factory):
    return AdmissionController(store=SqlCounterStore(session_factory), settings=GenerationSettings())


def test_window_bounds():
    hour_start, day_start, next_hour, next_day = window_bounds(NOON)
    assert hour_start == datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    assert day_start == datetime(2026, 3, 14, 0, 0, tzinfo=timezone.utc)
    assert next_hour == datetime(2026, 3, 14, 13, 0, tzinfo=timezone.utc)
    assert next_day == datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)


async def test_anonymous_gets_three_then_denied(controller):
    identity = resolve_identity(None, "sess-anon", "10.0.0.1")

    remaining = []
    for _ in range(3):
        decision = await controller.check_and_consume(identity, Tier.ANONYMOUS, now=NOON)
        assert decision.allowed is True
        remaining.append(decision.hourly_remaining)
    assert remaining == [2, 1, 0]

    denied = await controller.check_and_consume(identity, Tier.ANONYMOUS, now=NOON)
    assert denied.allowed is False
    assert denied.hourly_remaining == 0
    assert denied.daily_remaining == 0
    assert denied.reset_at == datetime(2026, 3, 14, 13, 0, tzinfo=timezone.utc)
    assert denied.retry_after_seconds(NOON) == 45 * 60


async def test_identities_are_counted_separately(controller):
    first = resolve_identity(None, "sess-a", "10.0.0.1")
    second = resolve_identity(None, "sess-b", "10.0.0.1")

    for _ in range(3):
        await controller.check_and_consume(first, Tier.ANONYMOUS, now=NOON)

    assert (await controller.check_and_consume(first, Tier.ANONYMOUS, now=NOON)).allowed is False
    assert (await controller.check_and_consume(second, Tier.ANONYMOUS, now=NOON)).allowed is True


async def test_account_id_equal_to_an_ip_has_its_own_counters(controller):
    by_ip = resolve_identity(None, None, "10.0.0.7")
    by_account = resolve_identity("10.0.0.7", None, "10.0.0.8")

    for _ in range(3):
        await controller.check_and_consume(by_ip, Tier.ANONYMOUS, now=NOON)

    decision = await controller.check_and_consume(by_account, Tier.AUTHENTICATED, now=NOON)
    assert decision.allowed is True
    assert decision.hourly_remaining == 29
    assert decision.daily_remaining == 99

    ip_left = await controller.remaining(by_ip, Tier.ANONYMOUS, now=NOON)
    assert ip_left.hourly_remaining == 0


async def test_authenticated_daily_cap_across_hours(controller):
    identity = resolve_identity("user-daily", None, "10.0.0.1")
    day = datetime(2026, 3, 14, 0, 30, tzinfo=timezone.utc)

    # 30 por hora durante 3 horas + 10 en la cuarta = 100
    for hour in range(4):
        now = day + timedelta(hours=hour)
        for _ in range(30 if hour < 3 else 10):
            assert (await controller.check_and_consume(identity, Tier.AUTHENTICATED, now=now)).allowed

    now = day + timedelta(hours=3)
    denied = await controller.check_and_consume(identity, Tier.AUTHENTICATED, now=now)
    assert denied.allowed is False
    assert denied.daily_remaining == 0
    assert denied.hourly_remaining == 20
    assert denied.reset_at == datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)


async def test_denial_does_not_consume(controller, session_factory):
    identity = resolve_identity(None, "sess-full", "10.0.0.1")
    for _ in range(5):
        await controller.check_and_consume(identity, Tier.ANONYMOUS, now=NOON)

    hour_start, day_start, _, _ = window_bounds(NOON)
    hourly, daily = await SqlCounterStore(session_factory).peek(identity, hour_start, day_start)
    assert (hourly, daily) == (3, 3)


async def test_next_hour_opens_new_window_for_premium(controller):
    identity = resolve_identity("user-premium", None, "10.0.0.1")
    settings = GenerationSettings(premium_hourly_limit=2, premium_daily_limit=500)
    limited = AdmissionController(store=controller.store, settings=settings)

    for _ in range(2):
        await limited.check_and_consume(identity, Tier.PREMIUM, now=NOON)
    assert (await limited.check_and_consume(identity, Tier.PREMIUM, now=NOON)).allowed is False

    later = NOON + timedelta(hours=1)
    decision = await limited.check_and_consume(identity, Tier.PREMIUM, now=later)
    assert decision.allowed is True
    assert decision.daily_remaining == 497


async def test_remaining_does_not_consume(controller):
    identity = resolve_identity("user-peek", None, "10.0.0.1")
    await controller.check_and_consume(identity, Tier.AUTHENTICATED, now=NOON)

    first = await controller.remaining(identity, Tier.AUTHENTICATED, now=NOON)
    second = await controller.remaining(identity, Tier.AUTHENTICATED, now=NOON)

    assert first.hourly_remaining == second.hourly_remaining == 29
    assert first.daily_remaining == 99


async def test_concurrent_requests_never_exceed_cap(controller):
    identity = resolve_identity(None, "sess-race", "10.0.0.1")

    decisions = await asyncio.gather(*[
        controller.check_and_consume(identity, Tier.ANONYMOUS, now=NOON) for _ in range(6)
    ])

    assert sum(1 for d in decisions if d.allowed) == 3


class _SlowStore:
    async def consume(self, *args, **kwargs) -> WindowCounts:
        await asyncio.sleep(1)
        return WindowCounts(allowed=True, hourly_count=1, daily_count=1)

    async def peek(self, *args, **kwargs):
        await asyncio.sleep(1)
        return 0, 0


async def test_store_timeout_is_unavailable():
    controller = AdmissionController(store=_SlowStore(), settings=GenerationSettings(), timeout_seconds=0.05)
    identity = resolve_identity(None, None, "10.0.0.9")

    with pytest.raises(BackingStoreUnavailable):
        await controller.check_and_consume(identity, Tier.ANONYMOUS, now=NOON)
