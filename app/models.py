# -*- coding: utf-8 -*-
"""
backend/app/models.py

Registro central de modelos ORM: importar este módulo deja todas las tablas
declaradas en Base.metadata (create_all, tests, diagnósticos).

Autor: WedAI
Fecha: 2026-01-20
"""

from app.shared.database.base import Base

from app.modules.billing.models import (  # noqa: F401
    AccountBalance,
    LedgerEntry,
    PaymentEvent,
    IdempotencyRecord,
    PaymentCustomer,
    PaymentLog,
    Subscription,
)
from app.modules.generation.models import (  # noqa: F401
    RateLimitCounter,
    GenerationRequest,
    ApiKey,
)

__all__ = [
    "Base",
    "AccountBalance",
    "LedgerEntry",
    "PaymentEvent",
    "IdempotencyRecord",
    "PaymentCustomer",
    "PaymentLog",
    "Subscription",
    "RateLimitCounter",
    "GenerationRequest",
    "ApiKey",
]
