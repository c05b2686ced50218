# -*- coding: utf-8 -*-
"""
Tests del flujo completo de GenerationService con proveedor falso.

Cubre:
- Éxito: completed con resultado y processing_time_ms
- Duplicados concurrentes: una sola llamada upstream
- Denegación por límite: sin solicitud creada
- Fallo upstream: failed con error y tiempo
- Cobro opcional por generación: débito y créditos insuficientes

Autor: WedAI
Fecha: 2026-01-22
"""

import asyncio

import pytest
from sqlalchemy import func, select

from app.modules.billing.credits import Ledger
from app.modules.generation.admission import AdmissionController, SqlCounterStore, resolve_identity
from app.modules.generation.enums import RequestStatus, Tier
from app.modules.generation.models import GenerationRequest
from app.modules.generation.services import (
    CancellationToken,
    GenerationCommand,
    GenerationService,
    GenerationTracker,
    OutcomeStatus,
)
from app.shared.errors import InsufficientCredits, UpstreamProviderError

pytestmark = pytest.mark.anyio


def _command(identity=None, prompt="Retrato estilo acuarela", image="QUJD"):
    return GenerationCommand(
        identity=identity or resolve_identity(None, "sess-svc", "10.0.0.1"),
        image_data=image,
        image_type="image/jpeg",
        prompt=prompt,
        style="watercolor",
        user_agent="pytest",
    )


@pytest.fixture
def build_service(session_factory, fake_provider, generation_settings):
    def _build(settings=None, provider=None, token=None):
        settings = settings or generation_settings
        return GenerationService(
            session_factory=session_factory,
            admission=AdmissionController(store=SqlCounterStore(session_factory), settings=settings),
            tracker=GenerationTracker(
                session_factory=session_factory,
                poll_interval_seconds=settings.dedup_poll_interval_seconds,
                wait_timeout_seconds=settings.dedup_wait_timeout_seconds,
            ),
            provider=provider or fake_provider,
            settings=settings,
            cancellation_token=token or CancellationToken(),
        )
    return _build


async def _request_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(GenerationRequest))).scalar_one()


async def test_successful_generation(build_service, fake_provider, session_factory):
    outcome = await build_service().generate(_command())

    assert outcome.status == OutcomeStatus.COMPLETED
    assert outcome.deduplicated is False
    assert outcome.data == {"imageUrl": "data:image/jpeg;base64,PORTRAIT", "text": "Listo: Retrato estilo acuar"}
    assert outcome.decision.hourly_remaining == 2
    assert outcome.tier == Tier.ANONYMOUS
    assert fake_provider.calls == 1

    stored = await GenerationTracker(session_factory=session_factory).get(outcome.request_id)
    assert stored.status == RequestStatus.COMPLETED
    assert stored.processing_time_ms is not None
    assert stored.styles == ["watercolor"]


async def test_concurrent_duplicates_call_upstream_once(build_service, fake_provider):
    fake_provider.gate = asyncio.Event()
    service = build_service()

    async def release():
        await fake_provider.started.wait()
        await asyncio.sleep(0.2)
        fake_provider.gate.set()

    releaser = asyncio.ensure_future(release())
    first, second = await asyncio.gather(
        service.generate(_command()),
        service.generate(_command()),
    )
    await releaser

    assert fake_provider.calls == 1
    assert first.status == second.status == OutcomeStatus.COMPLETED
    assert first.request_id == second.request_id
    assert first.data == second.data
    assert sorted([first.deduplicated, second.deduplicated]) == [False, True]


async def test_sequential_repeat_is_a_new_request(build_service, fake_provider):
    service = build_service()
    first = await service.generate(_command())
    second = await service.generate(_command())

    assert fake_provider.calls == 2
    assert first.request_id != second.request_id


async def test_denied_request_creates_no_work(build_service, fake_provider, session_factory):
    service = build_service()
    identity = resolve_identity(None, "sess-limit", "10.0.0.1")
    for n in range(3):
        assert (await service.generate(_command(identity, prompt=f"prompt {n}"))).status == OutcomeStatus.COMPLETED

    denied = await service.generate(_command(identity, prompt="prompt 4"))

    assert denied.status == OutcomeStatus.DENIED
    assert denied.decision.allowed is False
    assert denied.request_id is None
    assert fake_provider.calls == 3
    assert await _request_count(session_factory) == 3


async def test_upstream_failure_marks_failed(build_service, fake_provider, session_factory):
    fake_provider.errors = [UpstreamProviderError("Gemini API error: 400 - bad", status_code=400)]

    outcome = await build_service().generate(_command())

    assert outcome.status == OutcomeStatus.FAILED
    assert "400" in outcome.error
    assert fake_provider.calls == 1
    stored = await GenerationTracker(session_factory=session_factory).get(outcome.request_id)
    assert stored.status == RequestStatus.FAILED
    assert stored.processing_time_ms is not None
    assert "400" in stored.error_message


async def test_transient_upstream_failure_is_retried(build_service, fake_provider):
    fake_provider.errors = [UpstreamProviderError("Gemini API error: 503", status_code=503, retryable=True)]

    outcome = await build_service().generate(_command())

    assert outcome.status == OutcomeStatus.COMPLETED
    assert fake_provider.calls == 2


async def test_cancelled_token_fails_request(build_service, fake_provider):
    token = CancellationToken()
    token.cancel()

    outcome = await build_service(token=token).generate(_command())

    assert outcome.status == OutcomeStatus.FAILED
    assert fake_provider.calls == 0


async def test_credit_cost_debits_account(build_service, generation_settings, session_factory):
    settings = generation_settings.model_copy(update={"credit_cost": 2})
    async with session_factory() as session:
        await Ledger().credit(session, "user-paying", 5)
        await session.commit()

    identity = resolve_identity("user-paying", None, "10.0.0.1")
    outcome = await build_service(settings=settings).generate(_command(identity))

    assert outcome.status == OutcomeStatus.COMPLETED
    assert outcome.tier == Tier.PREMIUM
    async with session_factory() as session:
        assert (await Ledger().get_balance(session, "user-paying")).total == 3
    stored = await GenerationTracker(session_factory=session_factory).get(outcome.request_id)
    assert stored.credits_consumed == 2


async def test_insufficient_credits_fails_request(build_service, generation_settings, fake_provider, session_factory):
    settings = generation_settings.model_copy(update={"credit_cost": 2})
    identity = resolve_identity("user-broke", None, "10.0.0.1")

    with pytest.raises(InsufficientCredits):
        await build_service(settings=settings).generate(_command(identity))

    assert fake_provider.calls == 0
    async with session_factory() as session:
        stored = (await session.execute(select(GenerationRequest))).scalar_one()
    assert stored.status == RequestStatus.FAILED
