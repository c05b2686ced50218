# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/models/subscription.py

Modelo ORM de suscripciones del proveedor de pagos.

Se hace upsert por provider_subscription_id para que el handler sea
conmutativo respecto al orden de llegada de eventos.

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base


class Subscription(Base):
    """
    Tabla: user_subscriptions
    """

    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    provider_subscription_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    provider_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    current_period_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Subscription id={self.provider_subscription_id} account={self.account_id} status={self.status}>"


__all__ = ["Subscription"]
