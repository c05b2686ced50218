# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/models/payment_customer.py

Modelos ORM de clientes y auditoría de pagos.

- PaymentCustomer (payment_customers): customer id del proveedor → cuenta
- PaymentLog (payment_logs): auditoría de payment_intent.succeeded / payment_failed.
  Solo registro: nunca toca el saldo.

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

from datetime import datetime
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

from app.shared.database.base import Base, JSONType


class PaymentCustomer(Base):
    """
    Vínculo entre el customer del proveedor y la cuenta de WedAI.

    Tabla: payment_customers
    """

    __tablename__ = "payment_customers"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    provider_customer_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<PaymentCustomer customer={self.provider_customer_id} account={self.account_id}>"


class PaymentLog(Base):
    """
    Auditoría de intentos de pago.

    Tabla: payment_logs
    """

    __tablename__ = "payment_logs"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    provider_payment_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    error_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # "metadata" está reservado por la Base declarativa
    log_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<PaymentLog payment={self.provider_payment_id} status={self.status}>"


__all__ = [
    "PaymentCustomer",
    "PaymentLog",
]
