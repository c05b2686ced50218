# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/generation_service.py

Flujo de una solicitud de generación de retrato:

    1. ¿Hay una solicitud idéntica en vuelo? -> esperar su resultado
    2. Admisión (check_and_consume); denegada -> 429 sin crear trabajo
    3. Alta en el tracker; si una gemela ganó la carrera -> esperarla
    4. Débito de créditos (solo si GENERATION_CREDIT_COST > 0 y hay cuenta)
    5. pending -> processing
    6. Llamada upstream bajo RetryPolicy
    7. processing -> completed | failed, con processing_time_ms en ambos casos

Los pasos 4-7 corren en una tarea protegida con asyncio.shield: si el
cliente se desconecta, la tarea sigue y el estado se finaliza igual.

Autor: WedAI
Fecha: 2026-01-22
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.billing.credits import Ledger, LedgerEntryKind
from app.modules.generation.admission import (
    AdmissionController,
    CallerIdentity,
    Decision,
    resolve_tier,
)
from app.modules.generation.enums import RequestStatus, Tier
from app.observability.metrics import GENERATION_LATENCY_SECONDS, GENERATION_OUTCOME_TOTAL
from app.shared.config.settings_generation import GenerationSettings, get_generation_settings
from app.shared.database.database import session_scope
from app.shared.errors import BackingStoreUnavailable, UpstreamProviderError

from .retry import CancellationToken, OperationCancelled, RetryPolicy
from .tracker import GenerationTracker, compute_content_hash
from .upstream import ImageProvider, get_upstream_provider

logger = logging.getLogger(__name__)


# =============================================================================
# CANCELACIÓN EN APAGADO
# =============================================================================

_shutdown_token = CancellationToken()
_background_tasks: Set[asyncio.Task] = set()


def get_shutdown_token() -> CancellationToken:
    return _shutdown_token


def reset_shutdown_token() -> CancellationToken:
    """Nuevo token al arrancar la app (el anterior pudo quedar cancelado)."""
    global _shutdown_token
    _shutdown_token = CancellationToken()
    return _shutdown_token


async def drain_background_tasks(timeout_seconds: float = 10.0) -> None:
    """Cancela reintentos pendientes y espera a que las tareas finalicen su estado."""
    _shutdown_token.cancel()
    if not _background_tasks:
        return
    logger.info("Waiting for %d in-flight generation task(s)", len(_background_tasks))
    done, pending = await asyncio.wait(set(_background_tasks), timeout=timeout_seconds)
    if pending:
        logger.warning("%d generation task(s) still running at shutdown", len(pending))


# =============================================================================
# DTOs
# =============================================================================

@dataclass
class GenerationCommand:
    identity: CallerIdentity
    image_data: str
    image_type: str
    prompt: str
    style: str
    user_agent: Optional[str] = None


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    DENIED = "denied"


@dataclass
class GenerationOutcome:
    status: OutcomeStatus
    decision: Decision
    request_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    deduplicated: bool = False
    processing_time_ms: int = 0
    tier: Tier = field(default=Tier.ANONYMOUS)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# =============================================================================
# SERVICIO
# =============================================================================

class GenerationService:
    """
    Orquesta admisión, deduplicación, débito opcional y llamada upstream.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        admission: Optional[AdmissionController] = None,
        tracker: Optional[GenerationTracker] = None,
        provider: Optional[ImageProvider] = None,
        retry_policy: Optional[RetryPolicy] = None,
        ledger: Optional[Ledger] = None,
        settings: Optional[GenerationSettings] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ):
        self.settings = settings or get_generation_settings()
        if session_factory is None:
            from app.shared.database.database import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory
        self.admission = admission or AdmissionController(settings=self.settings)
        self.tracker = tracker or GenerationTracker(session_factory=session_factory)
        self.provider = provider or get_upstream_provider()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.retry_max_attempts,
            backoff_base=self.settings.retry_backoff_base_seconds,
        )
        self.ledger = ledger or Ledger()
        self.cancellation_token = cancellation_token or get_shutdown_token()

    async def generate(self, command: GenerationCommand) -> GenerationOutcome:
        """
        Raises:
            InsufficientCredits: cobro activado y saldo insuficiente (402)
            BackingStoreUnavailable: admisión o base de datos no disponibles (500)
        """
        started = time.perf_counter()
        identity = command.identity
        content_hash = compute_content_hash(command.image_data, command.prompt)
        tier = await self._resolve_tier(identity.user_id)

        # 1. Duplicado en vuelo: no consume cupo ni se reenvía upstream
        twin = await self.tracker.find_in_flight(identity.identifier, content_hash)
        if twin is not None:
            decision = await self.admission.remaining(identity, tier)
            return await self._await_twin(twin.id, decision, tier, started)

        # 2. Admisión
        decision = await self.admission.check_and_consume(identity, tier)
        if not decision.allowed:
            GENERATION_OUTCOME_TOTAL.labels(outcome="denied").inc()
            return GenerationOutcome(
                status=OutcomeStatus.DENIED,
                decision=decision,
                processing_time_ms=_elapsed_ms(started),
                tier=tier,
            )

        # 3. Alta (el índice único parcial resuelve carreras)
        submitted = await self.tracker.submit(
            identity,
            content_hash,
            styles=[command.style],
            user_agent=command.user_agent,
        )
        if not submitted.created:
            return await self._await_twin(submitted.request.id, decision, tier, started)

        # 4-7. Protegido de la cancelación del request
        task = asyncio.ensure_future(
            self._execute(submitted.request.id, command, decision, tier, started)
        )
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return await asyncio.shield(task)

    async def _resolve_tier(self, user_id: Optional[str]) -> Tier:
        try:
            async with self.session_factory() as session:
                return await resolve_tier(session, user_id)
        except OperationalError as e:
            raise BackingStoreUnavailable(f"tier resolution failed: {e.orig}") from e

    async def _execute(
        self,
        request_id: str,
        command: GenerationCommand,
        decision: Decision,
        tier: Tier,
        started: float,
    ) -> GenerationOutcome:
        try:
            credits = await self._charge(request_id, command.identity)
            await self.tracker.mark_processing(request_id, credits_consumed=credits)
        except Exception as e:
            await self._finalize_failed(request_id, str(e) or type(e).__name__, _elapsed_ms(started))
            raise

        upstream_started = time.perf_counter()
        try:
            content = await self.retry_policy.run(
                lambda: self.provider.generate(command.image_data, command.image_type, command.prompt),
                token=self.cancellation_token,
            )
        except (UpstreamProviderError, OperationCancelled) as e:
            elapsed = _elapsed_ms(started)
            message = getattr(e, "message", None) or str(e)
            logger.error("Portrait generation failed: request=%s error=%s", request_id, message)
            await self.tracker.mark_failed(request_id, message, elapsed)
            GENERATION_OUTCOME_TOTAL.labels(outcome="failed").inc()
            return GenerationOutcome(
                status=OutcomeStatus.FAILED,
                decision=decision,
                request_id=request_id,
                error=message,
                processing_time_ms=elapsed,
                tier=tier,
            )
        except Exception as e:
            await self._finalize_failed(request_id, f"Internal error: {e}", _elapsed_ms(started))
            raise
        finally:
            GENERATION_LATENCY_SECONDS.observe(time.perf_counter() - upstream_started)

        data = content.to_dict()
        elapsed = _elapsed_ms(started)
        await self.tracker.mark_completed(request_id, data, elapsed)
        GENERATION_OUTCOME_TOTAL.labels(outcome="completed").inc()
        logger.info("Portrait generated: request=%s tier=%s processing_time_ms=%d", request_id, tier.value, elapsed)

        return GenerationOutcome(
            status=OutcomeStatus.COMPLETED,
            decision=decision,
            request_id=request_id,
            data=data,
            processing_time_ms=elapsed,
            tier=tier,
        )

    async def _charge(self, request_id: str, identity: CallerIdentity) -> int:
        """Débito por generación; 0 si el cobro está desactivado o no hay cuenta."""
        cost = self.settings.credit_cost
        if cost <= 0 or not identity.user_id:
            return 0
        async with session_scope(self.session_factory) as session:
            await self.ledger.debit(
                session,
                identity.user_id,
                cost,
                kind=LedgerEntryKind.USAGE,
                reference=request_id,
                description=f"Portrait generation {request_id}",
            )
        return cost

    async def _finalize_failed(self, request_id: str, error: str, elapsed_ms: int) -> None:
        try:
            await self.tracker.mark_failed(request_id, error, elapsed_ms)
        except Exception as e:
            logger.error("Could not finalize generation request %s as failed: %s", request_id, e)

    async def _await_twin(
        self,
        twin_id: str,
        decision: Decision,
        tier: Tier,
        started: float,
    ) -> GenerationOutcome:
        logger.info("Waiting for in-flight duplicate: request=%s", twin_id)
        GENERATION_OUTCOME_TOTAL.labels(outcome="deduplicated").inc()
        try:
            finished = await self.tracker.wait_for_outcome(twin_id)
        except UpstreamProviderError as e:
            return GenerationOutcome(
                status=OutcomeStatus.FAILED,
                decision=decision,
                request_id=twin_id,
                error=e.message,
                deduplicated=True,
                processing_time_ms=_elapsed_ms(started),
                tier=tier,
            )

        if finished.status == RequestStatus.COMPLETED:
            return GenerationOutcome(
                status=OutcomeStatus.COMPLETED,
                decision=decision,
                request_id=twin_id,
                data=finished.result,
                deduplicated=True,
                processing_time_ms=_elapsed_ms(started),
                tier=tier,
            )

        return GenerationOutcome(
            status=OutcomeStatus.FAILED,
            decision=decision,
            request_id=twin_id,
            error=finished.error_message or "Portrait generation failed",
            deduplicated=True,
            processing_time_ms=_elapsed_ms(started),
            tier=tier,
        )


__all__ = [
    "GenerationCommand",
    "GenerationOutcome",
    "GenerationService",
    "OutcomeStatus",
    "get_shutdown_token",
    "reset_shutdown_token",
    "drain_background_tasks",
]
