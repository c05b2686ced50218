# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credits/services.py

Ledger de créditos: única puerta de escritura sobre account_balances.

Operaciones:
- credit: abono atómico (UPDATE ... RETURNING) + un LedgerEntry
- debit: cargo con compare-and-swap; consume bonus antes que paid
- grant_bonus: abono a la bolsa bonus
- get_balance / get_summary: consultas

Cada operación corre dentro de un SAVEPOINT del llamador y está acotada por
LEDGER_TIMEOUT_SECONDS; si el almacén no responde se falla cerrado con
BackingStoreUnavailable.

Autor: WedAI
Fecha: 2025-12-30
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.observability.metrics import CREDITS_APPLIED_TOTAL, CREDITS_CONSUMED_TOTAL
from app.shared.config.settings_payments import get_payments_settings
from app.shared.errors import BackingStoreUnavailable, InsufficientCredits, ValidationError

from .enums import CreditBucket, LedgerEntryKind
from .repositories import AccountBalanceRepository, LedgerEntryRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSnapshot:
    """Saldo de una cuenta en un instante."""
    account_id: str
    paid: int
    bonus: int

    @property
    def total(self) -> int:
        return self.paid + self.bonus


@dataclass(frozen=True)
class CreditSummary:
    """Resumen de créditos para mostrar al usuario."""
    account_id: str
    total_available: int
    paid: int
    bonus: int
    total_purchased: int
    total_used: int


def _validate_amount(amount: object) -> int:
    # bool es subclase de int: se rechaza explícitamente
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"amount must be a positive integer, got {amount!r}")
    return amount


class Ledger:
    """
    Servicio del ledger de créditos.
    """

    def __init__(
        self,
        balance_repo: Optional[AccountBalanceRepository] = None,
        entry_repo: Optional[LedgerEntryRepository] = None,
        timeout_seconds: Optional[float] = None,
        max_cas_retries: Optional[int] = None,
    ):
        settings = get_payments_settings()
        self.balance_repo = balance_repo or AccountBalanceRepository()
        self.entry_repo = entry_repo or LedgerEntryRepository()
        self.timeout_seconds = timeout_seconds or settings.ledger_timeout_seconds
        self.max_cas_retries = max_cas_retries or settings.ledger_max_cas_retries

    @asynccontextmanager
    async def _bounded(self, op: str) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                yield
        except TimeoutError as e:
            logger.error("Ledger %s timed out after %.1fs", op, self.timeout_seconds)
            raise BackingStoreUnavailable(f"ledger {op} timed out") from e
        except OperationalError as e:
            logger.error("Ledger %s backing store error: %s", op, e)
            raise BackingStoreUnavailable(f"ledger {op} failed: {e.orig}") from e

    # ------------------------------------------------------------------
    # Escrituras
    # ------------------------------------------------------------------

    async def credit(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        *,
        kind: LedgerEntryKind = LedgerEntryKind.PURCHASE,
        reference: Optional[str] = None,
        description: Optional[str] = None,
        bucket: CreditBucket = CreditBucket.PAID,
    ) -> BalanceSnapshot:
        """
        Abona `amount` créditos a la cuenta (crea la fila de saldo si hace falta).

        Raises:
            ValidationError: amount no es un entero positivo
            BackingStoreUnavailable: timeout o error del almacén
        """
        amount = _validate_amount(amount)
        paid_delta = amount if bucket == CreditBucket.PAID else 0
        bonus_delta = amount if bucket == CreditBucket.BONUS else 0

        async with self._bounded("credit"):
            async with session.begin_nested():
                await self.balance_repo.ensure_exists(session, account_id)
                paid, bonus = await self.balance_repo.increment(
                    session, account_id, paid_delta=paid_delta, bonus_delta=bonus_delta
                )
                await self.entry_repo.create(
                    session,
                    account_id=account_id,
                    kind=kind,
                    paid_delta=paid_delta,
                    bonus_delta=bonus_delta,
                    balance_after=paid + bonus,
                    reference=reference,
                    description=description,
                )

        CREDITS_APPLIED_TOTAL.labels(kind=kind.value).inc(amount)
        logger.info(
            "Credits added: account=%s credits=%+d balance=%d kind=%s ref=%s",
            account_id, amount, paid + bonus, kind.value, reference,
        )
        return BalanceSnapshot(account_id=account_id, paid=paid, bonus=bonus)

    async def grant_bonus(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        *,
        description: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> BalanceSnapshot:
        """Abona créditos de cortesía a la bolsa bonus."""
        return await self.credit(
            session,
            account_id,
            amount,
            kind=LedgerEntryKind.BONUS,
            reference=reference,
            description=description,
            bucket=CreditBucket.BONUS,
        )

    async def debit(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        *,
        kind: LedgerEntryKind = LedgerEntryKind.USAGE,
        reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> BalanceSnapshot:
        """
        Debita `amount` créditos: primero de bonus, el resto de paid.

        Lectura (FOR UPDATE en PostgreSQL) + compare-and-swap sobre (paid, bonus),
        reintentando si otro escritor modificó la fila entre medias.

        Raises:
            InsufficientCredits: saldo total < amount (sin mutación)
            ValidationError: amount no es un entero positivo
            BackingStoreUnavailable: timeout, error del almacén o contención persistente
        """
        amount = _validate_amount(amount)

        async with self._bounded("debit"):
            async with session.begin_nested():
                for attempt in range(1, self.max_cas_retries + 1):
                    current = await self.balance_repo.get_buckets(session, account_id, for_update=True)
                    paid, bonus = current or (0, 0)
                    if paid + bonus < amount:
                        raise InsufficientCredits(available=paid + bonus, required=amount)

                    from_bonus = min(bonus, amount)
                    from_paid = amount - from_bonus
                    new = (paid - from_paid, bonus - from_bonus)

                    swapped = await self.balance_repo.compare_and_swap(
                        session, account_id, expected=(paid, bonus), new=new
                    )
                    if swapped:
                        await self.entry_repo.create(
                            session,
                            account_id=account_id,
                            kind=kind,
                            paid_delta=-from_paid,
                            bonus_delta=-from_bonus,
                            balance_after=new[0] + new[1],
                            reference=reference,
                            description=description,
                        )
                        break

                    logger.debug("Debit CAS conflict: account=%s attempt=%d", account_id, attempt)
                else:
                    raise BackingStoreUnavailable(
                        f"debit contention for account {account_id} after {self.max_cas_retries} attempts"
                    )

        CREDITS_CONSUMED_TOTAL.labels(kind=kind.value).inc(amount)
        logger.info(
            "Credits deducted: account=%s credits=%d bonus_used=%d balance=%d kind=%s",
            account_id, amount, from_bonus, new[0] + new[1], kind.value,
        )
        return BalanceSnapshot(account_id=account_id, paid=new[0], bonus=new[1])

    # ------------------------------------------------------------------
    # Lecturas
    # ------------------------------------------------------------------

    async def get_balance(self, session: AsyncSession, account_id: str) -> BalanceSnapshot:
        async with self._bounded("get_balance"):
            buckets = await self.balance_repo.get_buckets(session, account_id)
        paid, bonus = buckets or (0, 0)
        return BalanceSnapshot(account_id=account_id, paid=paid, bonus=bonus)

    async def get_summary(self, session: AsyncSession, account_id: str) -> CreditSummary:
        """
        Resumen: disponible, paid, bonus, total comprado y total usado.
        """
        async with self._bounded("get_summary"):
            buckets = await self.balance_repo.get_buckets(session, account_id)
            purchased, used = await self.entry_repo.totals_by_kind(session, account_id)
        paid, bonus = buckets or (0, 0)
        return CreditSummary(
            account_id=account_id,
            total_available=paid + bonus,
            paid=paid,
            bonus=bonus,
            total_purchased=purchased,
            total_used=used,
        )


__all__ = [
    "Ledger",
    "BalanceSnapshot",
    "CreditSummary",
]
