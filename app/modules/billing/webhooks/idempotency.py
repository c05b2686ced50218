# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/idempotency.py

Idempotency gate para eventos de pago.

- admit(): INSERT dentro de un SAVEPOINT; el IntegrityError de la llave
  única es la señal de duplicado (no hay lectura previa).
- Un registro con outcome=failure se re-admite con un UPDATE condicional
  (solo un re-admisor concurrente gana).
- record_outcome(): guarda success/failure y processed_at.

admit, dispatch y record_outcome corren en la MISMA transacción del
llamador: si el proceso cae entre admit y record_outcome, el rollback deja
el evento sin registro y el reenvío del proveedor lo procesa de nuevo.

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.billing.models import IdempotencyOutcome, IdempotencyRecord, PaymentEvent
from .events import PaymentEventModel

logger = logging.getLogger(__name__)


class AdmitResult(str, Enum):
    NEW = "new"
    ALREADY_PROCESSED = "already_processed"


class IdempotencyGate:
    """Decide, de forma atómica, si un event_id debe procesarse."""

    async def admit(self, session: AsyncSession, event: PaymentEventModel) -> AdmitResult:
        """
        Inserta PaymentEvent + IdempotencyRecord(pending) si el evento es nuevo.

        Si ya existe, intenta re-admitirlo solo cuando su outcome es failure.
        """
        try:
            async with session.begin_nested():
                session.add(PaymentEvent(event_id=event.id, event_type=event.type, payload=event.raw))
                session.add(IdempotencyRecord(
                    event_id=event.id,
                    event_type=event.type,
                    outcome=IdempotencyOutcome.PENDING,
                ))
                await session.flush()
        except IntegrityError:
            if await self.readmit_failed(session, event.id):
                return AdmitResult.NEW
            logger.info("Duplicate payment event skipped: event_id=%s type=%s", event.id, event.type)
            return AdmitResult.ALREADY_PROCESSED

        logger.debug("Payment event admitted: event_id=%s type=%s", event.id, event.type)
        return AdmitResult.NEW

    async def readmit_failed(self, session: AsyncSession, event_id: str) -> bool:
        """
        failure -> pending con un UPDATE condicional.

        Returns:
            True si esta llamada ganó la re-admisión.
        """
        stmt = (
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.event_id == event_id,
                IdempotencyRecord.outcome == IdempotencyOutcome.FAILURE,
            )
            .values(
                outcome=IdempotencyOutcome.PENDING,
                attempts=IdempotencyRecord.attempts + 1,
                error=None,
                processed_at=None,
            )
            .returning(IdempotencyRecord.id)
            .execution_options(synchronize_session=False)
        )
        readmitted = (await session.execute(stmt)).first() is not None
        if readmitted:
            logger.info("Failed payment event re-admitted: event_id=%s", event_id)
        return readmitted

    async def record_outcome(
        self,
        session: AsyncSession,
        event_id: str,
        *,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        outcome = IdempotencyOutcome.SUCCESS if success else IdempotencyOutcome.FAILURE
        await session.execute(
            update(IdempotencyRecord)
            .where(IdempotencyRecord.event_id == event_id)
            .values(
                outcome=outcome,
                error=None if success else (error or "unknown error")[:2000],
                processed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        logger.info("Payment event outcome: event_id=%s outcome=%s", event_id, outcome.value)

    async def get_record(self, session: AsyncSession, event_id: str) -> Optional[IdempotencyRecord]:
        stmt = (
            select(IdempotencyRecord)
            .where(IdempotencyRecord.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def get_stored_event(self, session: AsyncSession, event_id: str) -> Optional[PaymentEvent]:
        stmt = select(PaymentEvent).where(PaymentEvent.event_id == event_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def list_failed(self, session: AsyncSession, limit: int = 100) -> list[str]:
        """event_ids con outcome=failure, más antiguos primero."""
        stmt = (
            select(IdempotencyRecord.event_id)
            .where(IdempotencyRecord.outcome == IdempotencyOutcome.FAILURE)
            .order_by(IdempotencyRecord.id)
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())


__all__ = ["AdmitResult", "IdempotencyGate"]
