# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/__init__.py

Webhooks de billing: firma, parsing, idempotencia y despacho de eventos.

Autor: WedAI
Fecha: 2025-12-29
"""

from .signature import (
    build_signature_header,
    compute_signature,
    require_valid_signature,
    verify_webhook_signature,
)
from .events import (
    EventKind,
    CheckoutCompleted,
    PaymentSucceeded,
    PaymentFailed,
    SubscriptionCreated,
    UnknownEvent,
    PaymentEventModel,
    parse_payment_event,
)
from .idempotency import AdmitResult, IdempotencyGate
from .dispatcher import DispatchResult, EventDispatcher, PaymentCustomerRepository
from .processor import ProcessResult, WebhookProcessor

__all__ = [
    "build_signature_header",
    "compute_signature",
    "require_valid_signature",
    "verify_webhook_signature",
    "EventKind",
    "CheckoutCompleted",
    "PaymentSucceeded",
    "PaymentFailed",
    "SubscriptionCreated",
    "UnknownEvent",
    "PaymentEventModel",
    "parse_payment_event",
    "AdmitResult",
    "IdempotencyGate",
    "DispatchResult",
    "EventDispatcher",
    "PaymentCustomerRepository",
    "ProcessResult",
    "WebhookProcessor",
]
