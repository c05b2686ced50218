# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credits/models.py

Modelos ORM del ledger de créditos.

- AccountBalance: saldo materializado por cuenta (paid + bonus)
- LedgerEntry: log append-only de movimientos

Invariante: para cada cuenta,
    paid_credits  == Σ ledger_entries.paid_delta
    bonus_credits == Σ ledger_entries.bonus_delta

Autor: WedAI
Fecha: 2025-12-30
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base, as_db_enum
from .enums import LedgerEntryKind


class AccountBalance(Base):
    """
    Saldo de créditos de una cuenta (denormalizado para lectura rápida).

    Tabla: account_balances

    Solo el Ledger muta esta tabla. Ambas bolsas son >= 0 (CHECK).
    """

    __tablename__ = "account_balances"
    __table_args__ = (
        CheckConstraint("paid_credits >= 0", name="paid_non_negative"),
        CheckConstraint("bonus_credits >= 0", name="bonus_non_negative"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    paid_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    bonus_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def total(self) -> int:
        return self.paid_credits + self.bonus_credits

    def __repr__(self) -> str:
        return f"<AccountBalance account={self.account_id} paid={self.paid_credits} bonus={self.bonus_credits}>"


class LedgerEntry(Base):
    """
    Ledger inmutable de movimientos de créditos.

    Tabla: ledger_entries

    - amount = paid_delta + bonus_delta (con signo)
    - balance_after: saldo total de la cuenta tras aplicar el movimiento
    - Nunca se actualiza ni se borra
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="amount_nonzero"),
        Index("ix_ledger_entries_account_created", "account_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    account_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    kind: Mapped[LedgerEntryKind] = mapped_column(
        as_db_enum(LedgerEntryKind, name="ledger_entry_kind"),
        nullable=False,
    )

    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry id={self.id} account={self.account_id} amount={self.amount:+d} after={self.balance_after}>"


__all__ = [
    "AccountBalance",
    "LedgerEntry",
]
