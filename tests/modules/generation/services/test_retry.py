# -*- coding: utf-8 -*-
"""
Tests de RetryPolicy y CancellationToken.

Autor: WedAI
Fecha: 2026-01-21
"""

import asyncio

import httpx
import pytest

from app.modules.generation.services.retry import (
    CancellationToken,
    OperationCancelled,
    RetryPolicy,
    is_transient,
)
from app.shared.errors import UpstreamProviderError

pytestmark = pytest.mark.anyio


class _Flaky:
    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


async def test_transient_error_is_retried():
    op = _Flaky(UpstreamProviderError("503", status_code=503, retryable=True))

    assert await RetryPolicy(max_attempts=2, backoff_base=0.001).run(op) == "ok"
    assert op.calls == 2


async def test_non_transient_error_is_not_retried():
    op = _Flaky(UpstreamProviderError("bad request", status_code=400, retryable=False))

    with pytest.raises(UpstreamProviderError):
        await RetryPolicy(max_attempts=3, backoff_base=0.001).run(op)
    assert op.calls == 1


async def test_attempts_are_bounded():
    op = _Flaky(*[httpx.ConnectError("down") for _ in range(5)])

    with pytest.raises(httpx.ConnectError):
        await RetryPolicy(max_attempts=3, backoff_base=0.001).run(op)
    assert op.calls == 3


async def test_cancelled_token_stops_before_first_attempt():
    token = CancellationToken()
    token.cancel()
    op = _Flaky()

    with pytest.raises(OperationCancelled):
        await RetryPolicy().run(op, token=token)
    assert op.calls == 0


async def test_cancel_interrupts_backoff():
    token = CancellationToken()
    op = _Flaky(UpstreamProviderError("timeout", retryable=True))
    policy = RetryPolicy(max_attempts=2, backoff_base=30.0)

    async def cancel_soon():
        await asyncio.sleep(0.05)
        token.cancel()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(OperationCancelled):
        async with asyncio.timeout(5):
            await policy.run(op, token=token)
    await canceller
    assert op.calls == 1


def test_invalid_max_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_delay_grows_exponentially():
    policy = RetryPolicy(backoff_base=1.0, backoff_factor=2.0, jitter=0.0, max_delay=3.0)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]


@pytest.mark.parametrize(
    "exc, expected",
    [
        (UpstreamProviderError("x", retryable=True), True),
        (UpstreamProviderError("x", retryable=False), False),
        (httpx.ReadTimeout("slow"), True),
        (ValueError("boom"), False),
    ],
)
def test_is_transient(exc, expected):
    assert is_transient(exc) is expected
