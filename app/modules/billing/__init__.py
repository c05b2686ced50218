# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/__init__.py

Módulo de billing: ledger de créditos y webhooks de pago.

Exporta un router unificado que incluye:
- /billing/webhooks/stripe

Autor: WedAI
Fecha: 2025-12-29
"""

from fastapi import APIRouter

from .webhook_routes import router as billing_webhook_router

router = APIRouter(tags=["billing"])
router.include_router(billing_webhook_router)

__all__ = ["router"]
