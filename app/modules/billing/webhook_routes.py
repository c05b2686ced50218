# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhook_routes.py

Rutas de webhooks de pago.

Endpoint:
- POST /billing/webhooks/stripe   (también bajo /api)

Respuestas:
- 200 {received, processed, event_type} | {received, skipped, event_type}
- 400 falta Stripe-Signature o body mal formado (no se persiste nada)
- 401 firma inválida
- 500 fallo del handler (registrado con outcome=failure), webhook sin
  configurar o almacén no disponible (vía JSONExceptionMiddleware, sin
  registro: el reenvío del proveedor lo procesa de nuevo)

Autor: WedAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.observability.metrics import (
    WEBHOOKS_PROCESSING_SECONDS,
    WEBHOOKS_VERIFIED_TOTAL,
    record_webhook_outcome,
)
from app.shared.config.settings_payments import get_payments_settings
from app.shared.database.database import get_async_session
from app.shared.errors import DuplicateEvent, HandlerFailure, ValidationError

from .webhooks.events import parse_payment_event
from .webhooks.processor import WebhookProcessor
from .webhooks.signature import _allow_insecure, verify_webhook_signature

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

router = APIRouter(
    prefix="/billing/webhooks",
    tags=["billing:webhooks"],
)


def get_webhook_processor() -> WebhookProcessor:
    """Dependency: processor con Gate y Dispatcher por defecto."""
    return WebhookProcessor()


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
)
async def stripe_billing_webhook(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    Webhook de Stripe para billing.

    Procesa eventos:
    - checkout.session.completed: aplica créditos a la cuenta
    - payment_intent.succeeded / payment_intent.payment_failed: auditoría
    - customer.subscription.created: upsert de la suscripción

    Requiere header Stripe-Signature para validación.
    """
    settings = get_payments_settings()
    started = time.perf_counter()

    raw_body = await request.body()
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    secret = settings.stripe_webhook_secret or ""
    if not secret and not _allow_insecure():
        logger.error("Webhook configuration error: STRIPE_WEBHOOK_SECRET not set")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured",
        )

    if not verify_webhook_signature(
        raw_body,
        sig_header,
        secret,
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    ):
        WEBHOOKS_VERIFIED_TOTAL.labels(provider=PROVIDER, result="failure").inc()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )
    WEBHOOKS_VERIFIED_TOTAL.labels(provider=PROVIDER, result="success").inc()

    try:
        event = parse_payment_event(raw_body)
    except ValidationError as e:
        logger.warning("Malformed webhook body: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )

    logger.info("Billing webhook received: type=%s id=%s", event.type, event.id)

    result = await processor.process(session, event)
    # El outcome (incluido failure) se persiste antes de responder
    await session.commit()

    record_webhook_outcome(result.outcome, provider=PROVIDER)
    WEBHOOKS_PROCESSING_SECONDS.labels(provider=PROVIDER).observe(time.perf_counter() - started)

    try:
        result.raise_for_outcome()
    except DuplicateEvent:
        return {"received": True, "skipped": True, "event_type": event.type}
    except HandlerFailure as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Webhook processing error: {e.error}",
        )

    return {"received": True, "processed": result.processed, "event_type": event.type}


__all__ = ["router", "get_webhook_processor"]
