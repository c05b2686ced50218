# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credit_packages.py

Tabla de conversión monto pagado (centavos) → créditos.

Los montos de los paquetes vendidos se mapean con una tabla fija; cualquier
otro monto recibe floor(centavos / 50). La tabla puede reemplazarse con la
variable CREDIT_AMOUNT_TABLE_JSON, p. ej. '{"499": 10, "999": 25}'.

Autor: WedAI
Fecha: 2025-12-13
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Optional

from app.shared.config.settings_payments import get_payments_settings

logger = logging.getLogger(__name__)


# Paquetes por defecto: USD (4.99 / 9.99 / 24.99) y precios promocionales
DEFAULT_AMOUNT_TABLE: Dict[int, int] = {
    499: 10,
    999: 25,
    2499: 75,
    250: 10,
    500: 25,
    1250: 75,
}


def _parse_table(raw: str) -> Optional[Dict[int, int]]:
    """
    Parsea el JSON de la tabla. Devuelve None (y loggea) si no es válido.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse CREDIT_AMOUNT_TABLE_JSON: %s. Using default table.", e)
        return None

    if not isinstance(data, dict):
        logger.warning("CREDIT_AMOUNT_TABLE_JSON must be a JSON object. Using default table.")
        return None

    table: Dict[int, int] = {}
    for key, value in data.items():
        try:
            cents, credits = int(key), int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid credit table entry %r: %r", key, value)
            continue
        if cents <= 0 or credits < 0:
            logger.warning("Ignoring non-positive credit table entry %r: %r", key, value)
            continue
        table[cents] = credits
    return table


def get_amount_table() -> Dict[int, int]:
    """
    Tabla vigente centavos → créditos (override por env o la de por defecto).
    """
    raw = get_payments_settings().credit_amount_table_json
    if raw:
        table = _parse_table(raw)
        if table is not None:
            return table
    return dict(DEFAULT_AMOUNT_TABLE)


def credits_for_amount(amount_cents: Optional[int]) -> int:
    """
    Créditos que corresponden a un pago de `amount_cents`.

    Ejemplos:
        >>> credits_for_amount(999)
        25
        >>> credits_for_amount(1000)
        20
    """
    if not amount_cents or amount_cents <= 0:
        return 0
    table = get_amount_table()
    if amount_cents in table:
        return table[amount_cents]
    return amount_cents // get_payments_settings().cents_per_credit_fallback


__all__ = [
    "DEFAULT_AMOUNT_TABLE",
    "get_amount_table",
    "credits_for_amount",
]
