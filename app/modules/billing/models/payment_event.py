# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/models/payment_event.py

Modelos ORM para la recepción idempotente de webhooks de pago.

- PaymentEvent (payment_events): copia inmutable del evento recibido
- IdempotencyRecord (payment_idempotency): outcome del procesamiento

Un único registro por event_id; la violación de la llave única es la
señal de duplicado.

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base, JSONType, as_db_enum


class IdempotencyOutcome(str, Enum):
    """Resultado del procesamiento de un evento."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class PaymentEvent(Base):
    """
    Evento de pago tal como lo envió el proveedor.

    Tabla: payment_events
    """

    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Tipo original del proveedor (checkout.session.completed, ...)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<PaymentEvent event_id={self.event_id} type={self.event_type}>"


class IdempotencyRecord(Base):
    """
    Registro de procesamiento de un evento.

    Tabla: payment_idempotency

    outcome:
    - pending: admitido, aún sin resultado (solo visible si algo externo cortó la transacción)
    - success: procesado
    - failure: el handler falló; puede re-admitirse por redelivery o replay manual
    """

    __tablename__ = "payment_idempotency"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    outcome: Mapped[IdempotencyOutcome] = mapped_column(
        as_db_enum(IdempotencyOutcome, name="idempotency_outcome"),
        nullable=False,
        default=IdempotencyOutcome.PENDING,
    )

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<IdempotencyRecord event_id={self.event_id} outcome={self.outcome}>"


__all__ = [
    "IdempotencyOutcome",
    "PaymentEvent",
    "IdempotencyRecord",
]
