# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credits/repositories.py

Repositorios del ledger de créditos.

Las lecturas de saldo usan columnas (no entidades) para no depender del
identity map: los UPDATE ... RETURNING cambian la fila sin pasar por el ORM.

Autor: WedAI
Fecha: 2025-12-30
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .enums import LedgerEntryKind
from .models import AccountBalance, LedgerEntry

logger = logging.getLogger(__name__)


class AccountBalanceRepository:
    """Acceso atómico a la tabla account_balances."""

    async def get_buckets(
        self,
        session: AsyncSession,
        account_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[tuple[int, int]]:
        """
        Devuelve (paid, bonus) o None si la cuenta no tiene fila de saldo.

        for_update=True toma un row lock en PostgreSQL (en SQLite se ignora).
        """
        stmt = select(AccountBalance.paid_credits, AccountBalance.bonus_credits).where(
            AccountBalance.account_id == account_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return int(row[0]), int(row[1])

    async def ensure_exists(self, session: AsyncSession, account_id: str) -> bool:
        """
        Crea la fila de saldo (0, 0) si no existe.

        Usa SAVEPOINT para tolerar el IntegrityError de una creación
        concurrente sin invalidar la transacción del llamador.

        Returns:
            True si la fila se creó en esta llamada.
        """
        exists = await session.scalar(
            select(AccountBalance.id).where(AccountBalance.account_id == account_id)
        )
        if exists is not None:
            return False

        try:
            async with session.begin_nested():
                session.add(AccountBalance(account_id=account_id, paid_credits=0, bonus_credits=0))
                await session.flush()
        except IntegrityError:
            logger.debug("AccountBalance already exists for account %s (concurrent create)", account_id)
            return False

        logger.info("AccountBalance created for account %s", account_id)
        return True

    async def increment(
        self,
        session: AsyncSession,
        account_id: str,
        *,
        paid_delta: int = 0,
        bonus_delta: int = 0,
    ) -> tuple[int, int]:
        """
        UPDATE ... SET bucket = bucket + n RETURNING paid, bonus.

        Un único statement condicional: no hay lectura previa que pueda quedar obsoleta.
        """
        stmt = (
            update(AccountBalance)
            .where(AccountBalance.account_id == account_id)
            .values(
                paid_credits=AccountBalance.paid_credits + paid_delta,
                bonus_credits=AccountBalance.bonus_credits + bonus_delta,
                updated_at=func.now(),
            )
            .returning(AccountBalance.paid_credits, AccountBalance.bonus_credits)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            raise LookupError(f"AccountBalance missing for account {account_id}")
        return int(row[0]), int(row[1])

    async def compare_and_swap(
        self,
        session: AsyncSession,
        account_id: str,
        *,
        expected: tuple[int, int],
        new: tuple[int, int],
    ) -> bool:
        """
        Escribe (paid, bonus) = new solo si la fila sigue valiendo `expected`.

        Returns:
            True si el swap se aplicó; False si otro escritor ganó la carrera.
        """
        stmt = (
            update(AccountBalance)
            .where(
                AccountBalance.account_id == account_id,
                AccountBalance.paid_credits == expected[0],
                AccountBalance.bonus_credits == expected[1],
            )
            .values(paid_credits=new[0], bonus_credits=new[1], updated_at=func.now())
            .returning(AccountBalance.id)
            .execution_options(synchronize_session=False)
        )
        return (await session.execute(stmt)).first() is not None


class LedgerEntryRepository:
    """Inserción y agregados del ledger (append-only)."""

    async def create(
        self,
        session: AsyncSession,
        *,
        account_id: str,
        kind: LedgerEntryKind,
        paid_delta: int,
        bonus_delta: int,
        balance_after: int,
        reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        amount = paid_delta + bonus_delta
        if amount == 0:
            raise ValueError("ledger entry amount cannot be zero")

        entry = LedgerEntry(
            account_id=account_id,
            amount=amount,
            paid_delta=paid_delta,
            bonus_delta=bonus_delta,
            kind=kind,
            reference=reference,
            description=description,
            balance_after=balance_after,
        )
        session.add(entry)
        await session.flush()

        logger.debug(
            "LedgerEntry created: account=%s amount=%+d after=%d kind=%s",
            account_id, amount, balance_after, kind.value,
        )
        return entry

    async def list_for_account(
        self,
        session: AsyncSession,
        account_id: str,
        *,
        limit: int = 50,
    ) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.id.desc())
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())

    async def sum_deltas(self, session: AsyncSession, account_id: str) -> tuple[int, int]:
        """Σ paid_delta, Σ bonus_delta de la cuenta (verificación de conservación)."""
        stmt = select(
            func.coalesce(func.sum(LedgerEntry.paid_delta), 0),
            func.coalesce(func.sum(LedgerEntry.bonus_delta), 0),
        ).where(LedgerEntry.account_id == account_id)
        row = (await session.execute(stmt)).one()
        return int(row[0]), int(row[1])

    async def totals_by_kind(self, session: AsyncSession, account_id: str) -> tuple[int, int]:
        """
        Devuelve (total_comprado, total_usado) de la cuenta.
        """
        purchased = func.coalesce(
            func.sum(case((LedgerEntry.kind == LedgerEntryKind.PURCHASE, LedgerEntry.amount), else_=0)),
            0,
        )
        used = func.coalesce(
            func.sum(case((LedgerEntry.kind == LedgerEntryKind.USAGE, -LedgerEntry.amount), else_=0)),
            0,
        )
        row = (await session.execute(
            select(purchased, used).where(LedgerEntry.account_id == account_id)
        )).one()
        return int(row[0]), int(row[1])


__all__ = [
    "AccountBalanceRepository",
    "LedgerEntryRepository",
]
