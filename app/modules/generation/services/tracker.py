# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/tracker.py

Rastreo de solicitudes de generación.

Máquina de estados:
    pending -> processing -> {completed | failed}
    pending -> failed        (p. ej. créditos insuficientes antes de procesar)

Cada transición es un UPDATE condicional sobre el estado de origen esperado,
en su propia transacción corta. Si no afecta ninguna fila, la transición es
ilegal (InvalidStateTransition). Los estados terminales no cambian.

Deduplicación: el índice único parcial (identifier, content_hash) para
status en vuelo resuelve las carreras; el perdedor espera (polling) el
resultado de la solicitud gemela.

Autor: WedAI
Fecha: 2026-01-21
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.generation.admission import CallerIdentity
from app.modules.generation.enums import IN_FLIGHT_STATUSES, RequestStatus
from app.modules.generation.models import GenerationRequest
from app.shared.config.settings_generation import get_generation_settings
from app.shared.database.database import session_scope
from app.shared.errors import BackingStoreUnavailable, InvalidStateTransition, UpstreamProviderError

logger = logging.getLogger(__name__)

_MAX_SUBMIT_ATTEMPTS = 3


def compute_content_hash(image_data: str, prompt: str) -> str:
    """sha256(imageData + prompt) en hex."""
    return hashlib.sha256((image_data + prompt).encode("utf-8")).hexdigest()


@dataclass
class SubmitResult:
    request: GenerationRequest
    created: bool


class GenerationTracker:
    """Persistencia y transiciones de GenerationRequest."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        poll_interval_seconds: Optional[float] = None,
        wait_timeout_seconds: Optional[float] = None,
    ):
        settings = get_generation_settings()
        if session_factory is None:
            from app.shared.database.database import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory
        self.poll_interval_seconds = poll_interval_seconds or settings.dedup_poll_interval_seconds
        self.wait_timeout_seconds = wait_timeout_seconds or settings.dedup_wait_timeout_seconds

    # ------------------------------------------------------------------
    # Lecturas
    # ------------------------------------------------------------------

    async def get(self, request_id: str) -> Optional[GenerationRequest]:
        async with self.session_factory() as session:
            return await session.get(GenerationRequest, request_id)

    async def find_in_flight(self, identifier: str, content_hash: str) -> Optional[GenerationRequest]:
        stmt = select(GenerationRequest).where(
            GenerationRequest.identifier == identifier,
            GenerationRequest.content_hash == content_hash,
            GenerationRequest.status.in_(IN_FLIGHT_STATUSES),
        )
        async with self.session_factory() as session:
            return (await session.execute(stmt)).scalars().first()

    # ------------------------------------------------------------------
    # Alta
    # ------------------------------------------------------------------

    async def submit(
        self,
        identity: CallerIdentity,
        content_hash: str,
        *,
        styles: Iterable[str] = (),
        user_agent: Optional[str] = None,
    ) -> SubmitResult:
        """
        Crea la solicitud en pending o devuelve la gemela en vuelo.

        Returns:
            SubmitResult(request, created=False) si otra solicitud idéntica
            ganó la carrera del índice único.
        """
        for _ in range(_MAX_SUBMIT_ATTEMPTS):
            request = GenerationRequest(
                content_hash=content_hash,
                identifier=identity.identifier,
                identifier_type=identity.identifier_type,
                user_id=identity.user_id,
                session_id=identity.session_id,
                ip_address=identity.ip_address,
                user_agent=user_agent,
                styles=list(styles),
                status=RequestStatus.PENDING,
            )
            try:
                async with session_scope(self.session_factory) as session:
                    session.add(request)
                logger.info(
                    "Generation request created: id=%s identifier=%s hash=%s",
                    request.id, identity.identifier, content_hash[:12],
                )
                return SubmitResult(request=request, created=True)
            except IntegrityError:
                twin = await self.find_in_flight(identity.identifier, content_hash)
                if twin is not None:
                    logger.info("Generation request deduplicated: twin=%s identifier=%s", twin.id, identity.identifier)
                    return SubmitResult(request=twin, created=False)
                # La gemela terminó entre el INSERT y la lectura: reintentar el alta

        raise BackingStoreUnavailable(
            f"could not register generation request for {identity.identifier} after {_MAX_SUBMIT_ATTEMPTS} attempts"
        )

    # ------------------------------------------------------------------
    # Transiciones
    # ------------------------------------------------------------------

    async def mark_processing(self, request_id: str, *, credits_consumed: int = 0) -> None:
        await self._transition(
            request_id,
            (RequestStatus.PENDING,),
            RequestStatus.PROCESSING,
            credits_consumed=credits_consumed,
        )

    async def mark_completed(
        self,
        request_id: str,
        result: Dict[str, Any],
        processing_time_ms: int,
    ) -> None:
        await self._transition(
            request_id,
            (RequestStatus.PROCESSING,),
            RequestStatus.COMPLETED,
            result=result,
            processing_time_ms=processing_time_ms,
            completed_at=datetime.now(timezone.utc),
        )

    async def mark_failed(
        self,
        request_id: str,
        error: str,
        processing_time_ms: Optional[int] = None,
    ) -> None:
        await self._transition(
            request_id,
            IN_FLIGHT_STATUSES,
            RequestStatus.FAILED,
            error_message=error[:2000],
            processing_time_ms=processing_time_ms,
            completed_at=datetime.now(timezone.utc),
        )

    async def _transition(
        self,
        request_id: str,
        expected: Iterable[RequestStatus],
        target: RequestStatus,
        **values: Any,
    ) -> None:
        expected = tuple(expected)
        stmt = (
            update(GenerationRequest)
            .where(
                GenerationRequest.id == request_id,
                GenerationRequest.status.in_(expected),
            )
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self.session_factory) as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise InvalidStateTransition(
                    request_id,
                    expected="|".join(s.value for s in expected),
                    target=target.value,
                )
        logger.debug("Generation request %s -> %s", request_id, target.value)

    # ------------------------------------------------------------------
    # Espera de duplicados
    # ------------------------------------------------------------------

    async def wait_for_outcome(self, request_id: str) -> GenerationRequest:
        """
        Espera (polling) hasta que la solicitud llegue a un estado terminal.

        Raises:
            LookupError: la solicitud no existe
            UpstreamProviderError: se agotó GENERATION_DEDUP_WAIT_TIMEOUT_SECONDS
        """
        try:
            async with asyncio.timeout(self.wait_timeout_seconds):
                while True:
                    request = await self.get(request_id)
                    if request is None:
                        raise LookupError(f"Generation request not found: {request_id}")
                    if request.status.is_terminal:
                        return request
                    await asyncio.sleep(self.poll_interval_seconds)
        except TimeoutError as e:
            raise UpstreamProviderError(
                f"Timed out waiting for in-flight request {request_id}",
                retryable=True,
            ) from e


__all__ = ["GenerationTracker", "SubmitResult", "compute_content_hash"]
