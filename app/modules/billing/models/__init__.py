# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/models/__init__.py

Punto único de import para los modelos ORM de billing.
Este módulo NO importa services ni routers para evitar imports circulares.

Uso:
    from app.modules.billing.models import PaymentEvent, IdempotencyRecord, AccountBalance

Autor: WedAI
Fecha: 2026-01-11
"""

from app.modules.billing.credits.models import (
    AccountBalance,
    LedgerEntry,
)

from app.modules.billing.models.payment_event import (
    IdempotencyOutcome,
    PaymentEvent,
    IdempotencyRecord,
)

from app.modules.billing.models.payment_customer import (
    PaymentCustomer,
    PaymentLog,
)

from app.modules.billing.models.subscription import Subscription


__all__ = [
    # Credits models
    "AccountBalance",
    "LedgerEntry",
    # Webhook models
    "IdempotencyOutcome",
    "PaymentEvent",
    "IdempotencyRecord",
    # Customers / audit
    "PaymentCustomer",
    "PaymentLog",
    "Subscription",
]
