# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/__init__.py

Módulo de generación de retratos: admisión por tier, deduplicación y
proveedor upstream.

Exporta:
- router: /generation/portraits, /generation/requests/{id}

Autor: WedAI
Fecha: 2026-01-20
"""

from .routes import router

__all__ = ["router"]
