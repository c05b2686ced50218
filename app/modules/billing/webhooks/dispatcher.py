# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/dispatcher.py

Dispatcher de eventos de pago verificados.

Tabla de despacho:
- checkout_completed:   resuelve la cuenta y acredita créditos (Ledger.credit)
- payment_succeeded:    auditoría en payment_logs (no toca saldo)
- payment_failed:       auditoría en payment_logs (no toca saldo)
- subscription_created: upsert por provider_subscription_id
- other:                sin efectos; processed=True y success para que el
                        proveedor no lo reenvíe

Cada handler corre en un SAVEPOINT: si falla, sus escrituras parciales se
revierten y el resultado es DispatchResult(success=False, error=...).
Los handlers no asumen orden de llegada.

Autor: WedAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.billing.credit_packages import credits_for_amount
from app.modules.billing.credits import Ledger, LedgerEntryKind
from app.modules.billing.models import PaymentCustomer, PaymentLog, Subscription
from app.shared.database.dialect import upsert_insert
from app.shared.errors import BackingStoreUnavailable

from .events import (
    CheckoutCompleted,
    EventKind,
    PaymentEventModel,
    PaymentFailed,
    PaymentSucceeded,
    SubscriptionCreated,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Resultado de despachar un evento."""
    success: bool
    processed: bool
    error: Optional[str] = None
    credits_applied: int = 0


class CustomerNotFound(LookupError):
    """No se pudo resolver la cuenta dueña de un customer del proveedor."""

    def __init__(self, customer_id: Optional[str]):
        super().__init__(f"Customer not found: {customer_id}")
        self.customer_id = customer_id


class PaymentCustomerRepository:
    """customer id del proveedor → account id."""

    async def get_account_id(self, session: AsyncSession, customer_id: str) -> Optional[str]:
        stmt = select(PaymentCustomer.account_id).where(
            PaymentCustomer.provider_customer_id == customer_id
        )
        return await session.scalar(stmt)

    async def link(self, session: AsyncSession, customer_id: str, account_id: str) -> None:
        """Crea el vínculo; tolera la creación concurrente del mismo customer."""
        try:
            async with session.begin_nested():
                session.add(PaymentCustomer(provider_customer_id=customer_id, account_id=account_id))
                await session.flush()
            logger.info("Payment customer linked: customer=%s account=%s", customer_id, account_id)
        except IntegrityError:
            logger.debug("Payment customer already linked: customer=%s", customer_id)


Handler = Callable[[AsyncSession, PaymentEventModel], Awaitable[DispatchResult]]


class EventDispatcher:
    """
    Mapea cada EventKind a su handler.
    """

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        customers: Optional[PaymentCustomerRepository] = None,
    ):
        self.ledger = ledger or Ledger()
        self.customers = customers or PaymentCustomerRepository()
        self._handlers: Dict[EventKind, Handler] = {
            EventKind.CHECKOUT_COMPLETED: self._handle_checkout_completed,
            EventKind.PAYMENT_SUCCEEDED: self._handle_payment_log,
            EventKind.PAYMENT_FAILED: self._handle_payment_log,
            EventKind.SUBSCRIPTION_CREATED: self._handle_subscription_created,
        }

    async def dispatch(self, session: AsyncSession, event: PaymentEventModel) -> DispatchResult:
        """
        Ejecuta el handler del evento dentro de un SAVEPOINT.

        BackingStoreUnavailable se propaga: la transacción completa se revierte
        y el proveedor reenviará el evento.
        """
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.info("Unhandled payment event type: %s (%s)", event.type, event.id)
            return DispatchResult(success=True, processed=True)

        try:
            async with session.begin_nested():
                return await handler(session, event)
        except BackingStoreUnavailable:
            raise
        except OperationalError as e:
            raise BackingStoreUnavailable(f"dispatch of {event.id} failed: {e.orig}") from e
        except Exception as e:
            logger.warning(
                "Payment event handler failed: event_id=%s type=%s error=%s",
                event.id, event.type, e,
            )
            return DispatchResult(success=False, processed=False, error=str(e) or type(e).__name__)

    # ------------------------------------------------------------------
    # Resolución de cuenta
    # ------------------------------------------------------------------

    async def _resolve_account(
        self,
        session: AsyncSession,
        customer_id: Optional[str],
        metadata: dict,
    ) -> str:
        """
        customer → cuenta vía payment_customers; si no está vinculado, usa
        metadata.user_id y crea el vínculo.
        """
        if customer_id:
            account_id = await self.customers.get_account_id(session, customer_id)
            if account_id:
                return account_id

        fallback = metadata.get("user_id")
        if fallback:
            account_id = str(fallback)
            if customer_id:
                await self.customers.link(session, customer_id, account_id)
            return account_id

        raise CustomerNotFound(customer_id)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_checkout_completed(self, session: AsyncSession, event: CheckoutCompleted) -> DispatchResult:
        checkout = event.data.object
        account_id = await self._resolve_account(session, checkout.customer, checkout.metadata)
        credits = credits_for_amount(checkout.amount_total)

        logger.info(
            "Processing checkout.session.completed: session=%s account=%s amount=%s credits=%d",
            checkout.id, account_id, checkout.amount_total, credits,
        )

        if credits <= 0:
            logger.warning("Checkout without credits to apply: session=%s amount=%s", checkout.id, checkout.amount_total)
            return DispatchResult(success=True, processed=True, credits_applied=0)

        await self.ledger.credit(
            session,
            account_id,
            credits,
            kind=LedgerEntryKind.PURCHASE,
            reference=checkout.payment_intent,
            description=f"Credit purchase - Session {checkout.id}",
        )
        return DispatchResult(success=True, processed=True, credits_applied=credits)

    async def _handle_payment_log(self, session: AsyncSession, event: PaymentSucceeded | PaymentFailed) -> DispatchResult:
        intent = event.data.object
        account_id = None
        if intent.customer:
            account_id = await self.customers.get_account_id(session, intent.customer)

        failed = event.kind == EventKind.PAYMENT_FAILED
        error = intent.last_payment_error if failed else None

        session.add(PaymentLog(
            provider_payment_id=intent.id,
            provider_customer_id=intent.customer,
            account_id=account_id,
            event_id=event.id,
            event_type=event.type,
            amount_cents=intent.amount,
            currency=intent.currency,
            status="failed" if failed else "succeeded",
            error_code=error.code if error else None,
            error_message=error.message if error else None,
            log_metadata=intent.metadata,
        ))
        await session.flush()

        logger.info("Payment %s logged: payment=%s amount=%d", "failure" if failed else "success", intent.id, intent.amount)
        return DispatchResult(success=True, processed=True)

    async def _handle_subscription_created(self, session: AsyncSession, event: SubscriptionCreated) -> DispatchResult:
        sub = event.data.object
        account_id = await self._resolve_account(session, sub.customer, sub.metadata)

        values = {
            "provider_subscription_id": sub.id,
            "provider_customer_id": sub.customer,
            "account_id": account_id,
            "status": sub.status,
            "plan_id": sub.plan_id,
            "current_period_start": sub.to_datetime(sub.current_period_start),
            "current_period_end": sub.to_datetime(sub.current_period_end),
            "cancel_at_period_end": sub.cancel_at_period_end,
        }
        table = Subscription.__table__
        stmt = upsert_insert(session, table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.provider_subscription_id],
            set_={
                "status": stmt.excluded.status,
                "plan_id": stmt.excluded.plan_id,
                "current_period_start": stmt.excluded.current_period_start,
                "current_period_end": stmt.excluded.current_period_end,
                "cancel_at_period_end": stmt.excluded.cancel_at_period_end,
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)

        logger.info("Subscription upserted: subscription=%s account=%s status=%s", sub.id, account_id, sub.status)
        return DispatchResult(success=True, processed=True)


__all__ = [
    "DispatchResult",
    "EventDispatcher",
    "PaymentCustomerRepository",
    "CustomerNotFound",
]
