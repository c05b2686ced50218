# -*- coding: utf-8 -*-
"""
backend/app/routes/master_routes.py

Router maestro con dos capas:
  - /api/... (interno/estable)
  - rutas públicas sin prefijo

Ambas capas montan los mismos módulos (billing, generation), de modo que
/billing/webhooks/stripe y /api/billing/webhooks/stripe son equivalentes.

Autor: WedAI
Fecha: 2025-11-11
"""
from __future__ import annotations

import logging

from fastapi import APIRouter

from app.modules.billing import router as billing_router
from app.modules.generation import router as generation_router

logger = logging.getLogger(__name__)

# Capas principales
api = APIRouter(prefix="/api")
public = APIRouter(prefix="")  # sin prefijo

_loaded: list[str] = []  # trazabilidad/debug


def _include(target: APIRouter, router: APIRouter, name: str) -> None:
    """Incluye un router en la capa dada y registra trazabilidad en logs."""
    target.include_router(router)
    _loaded.append(f"{target.prefix or '/'}:{name}")
    logger.debug(
        "Router '%s' montado en prefix '%s'",
        name,
        target.prefix or "/",
    )


for _layer in (api, public):
    _include(_layer, billing_router, "billing")
    _include(_layer, generation_router, "generation")


def loaded_routers() -> list[str]:
    return list(_loaded)


__all__ = ["api", "public", "loaded_routers"]

# Fin del archivo backend/app/routes/master_routes.py
