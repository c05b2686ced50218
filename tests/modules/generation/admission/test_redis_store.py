# -*- coding: utf-8 -*-
"""
Tests de RedisCounterStore con un cliente simulado.

Autor: WedAI
Fecha: 2026-01-20
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.modules.generation.admission import AdmissionController, RedisCounterStore, resolve_identity
from app.modules.generation.admission.stores import CONSUME_SCRIPT, DAY_TTL_SECONDS, HOUR_TTL_SECONDS
from app.modules.generation.enums import Tier
from app.shared.config.settings_generation import GenerationSettings
from app.shared.errors import BackingStoreUnavailable

pytestmark = pytest.mark.anyio

HOUR = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
DAY = datetime(2026, 3, 14, 0, 0, tzinfo=timezone.utc)


def _client(script_result=None, mget_result=None, script_error=None):
    script = AsyncMock(return_value=script_result, side_effect=script_error)
    client = MagicMock()
    client.register_script = MagicMock(return_value=script)
    client.mget = AsyncMock(return_value=mget_result or [None, None])
    return client, script


def _store(client) -> RedisCounterStore:
    async def provider():
        return client
    return RedisCounterStore(client_provider=provider)


def test_keys_include_identifier_type_and_window_start():
    identity = resolve_identity(None, "sess-1", "10.0.0.1")
    hour_key, day_key = RedisCounterStore.build_keys(identity, HOUR, DAY)

    assert hour_key == f"rl:generation:anonymous:sess-1:h:{int(HOUR.timestamp())}"
    assert day_key == f"rl:generation:anonymous:sess-1:d:{int(DAY.timestamp())}"


async def test_consume_runs_single_script():
    client, script = _client(script_result=[1, 2, 5])
    identity = resolve_identity("user-1", None, None)

    counts = await _store(client).consume(identity, 30, 100, HOUR, DAY)

    assert counts.allowed is True
    assert (counts.hourly_count, counts.daily_count) == (2, 5)
    client.register_script.assert_called_once_with(CONSUME_SCRIPT)
    kwargs = script.await_args.kwargs
    assert kwargs["keys"] == list(RedisCounterStore.build_keys(identity, HOUR, DAY))
    assert kwargs["args"] == [30, 100, HOUR_TTL_SECONDS, DAY_TTL_SECONDS]


async def test_consume_denied():
    client, _ = _client(script_result=[0, 3, 3])
    counts = await _store(client).consume(resolve_identity(None, "s", None), 3, 3, HOUR, DAY)

    assert counts.allowed is False
    assert counts.hourly_count == 3


async def test_peek_reads_both_keys():
    client, _ = _client(mget_result=[b"4", None])

    assert await _store(client).peek(resolve_identity("u", None, None), HOUR, DAY) == (4, 0)


async def test_redis_error_maps_to_unavailable():
    client, _ = _client(script_error=RedisConnectionError("down"))
    controller = AdmissionController(store=_store(client), settings=GenerationSettings())

    with pytest.raises(BackingStoreUnavailable):
        await controller.check_and_consume(resolve_identity(None, None, "1.2.3.4"), Tier.ANONYMOUS)
