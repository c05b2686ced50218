# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/processor.py

Orquestación de un evento de pago verificado:

    admit (Idempotency Gate) -> dispatch (Event Dispatcher) -> record_outcome

Las tres fases comparten la transacción del llamador; el commit lo hace la
ruta (o el script de replay) después de process().

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.errors import DuplicateEvent, HandlerFailure, ValidationError

from .dispatcher import DispatchResult, EventDispatcher
from .events import PaymentEventModel, parse_payment_event
from .idempotency import AdmitResult, IdempotencyGate

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    event_id: str
    event_type: str
    duplicate: bool = False
    success: bool = True
    processed: bool = False
    error: Optional[str] = None
    credits_applied: int = 0

    @property
    def outcome(self) -> str:
        """Etiqueta para métricas: duplicate | success | failure."""
        if self.duplicate:
            return "duplicate"
        return "success" if self.success else "failure"

    def raise_for_outcome(self) -> None:
        """
        Raises:
            DuplicateEvent: el evento ya estaba procesado
            HandlerFailure: el handler falló (outcome=failure ya registrado)
        """
        if self.duplicate:
            raise DuplicateEvent(self.event_id)
        if not self.success:
            raise HandlerFailure(self.event_id, self.error or "unknown error")


class WebhookProcessor:
    """Gate + Dispatcher para un evento ya autenticado."""

    def __init__(
        self,
        gate: Optional[IdempotencyGate] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.gate = gate or IdempotencyGate()
        self.dispatcher = dispatcher or EventDispatcher()

    async def process(self, session: AsyncSession, event: PaymentEventModel) -> ProcessResult:
        admitted = await self.gate.admit(session, event)
        if admitted == AdmitResult.ALREADY_PROCESSED:
            return ProcessResult(event_id=event.id, event_type=event.type, duplicate=True)

        return await self._dispatch_and_record(session, event)

    async def replay_failed(self, session: AsyncSession, event_id: str) -> Optional[ProcessResult]:
        """
        Re-despacha un evento con outcome=failure desde su payload guardado.

        Returns:
            None si el evento no existe o no estaba en failure (otro proceso
            lo re-admitió o ya tuvo éxito).
        """
        stored = await self.gate.get_stored_event(session, event_id)
        if stored is None:
            logger.warning("Replay skipped: event not found event_id=%s", event_id)
            return None

        try:
            event = parse_payment_event(stored.payload)
        except ValidationError as e:
            logger.error("Replay skipped: stored payload invalid event_id=%s error=%s", event_id, e.message)
            return None

        if not await self.gate.readmit_failed(session, event_id):
            logger.info("Replay skipped: event not in failure state event_id=%s", event_id)
            return None

        logger.info("Replaying payment event: event_id=%s type=%s", event_id, event.type)
        return await self._dispatch_and_record(session, event)

    async def _dispatch_and_record(self, session: AsyncSession, event: PaymentEventModel) -> ProcessResult:
        result: DispatchResult = await self.dispatcher.dispatch(session, event)
        await self.gate.record_outcome(session, event.id, success=result.success, error=result.error)

        if not result.success:
            logger.error(
                "Payment event failed: event_id=%s type=%s error=%s",
                event.id, event.type, result.error,
            )

        return ProcessResult(
            event_id=event.id,
            event_type=event.type,
            success=result.success,
            processed=result.processed,
            error=result.error,
            credits_applied=result.credits_applied,
        )


__all__ = ["ProcessResult", "WebhookProcessor"]
