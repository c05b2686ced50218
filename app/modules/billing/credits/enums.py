# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credits/enums.py

Enums para el ledger de créditos.

Autor: WedAI
Fecha: 2025-12-30
"""

from enum import Enum


class LedgerEntryKind(str, Enum):
    """
    Tipo de movimiento en el ledger de créditos.
    """
    PURCHASE = "purchase"                   # Compra confirmada por webhook (+paid)
    USAGE = "usage"                         # Consumo por generación (-bonus, luego -paid)
    BONUS = "bonus"                         # Créditos de cortesía (+bonus)
    ADMIN_ADJUSTMENT = "admin_adjustment"   # Ajuste manual


class CreditBucket(str, Enum):
    """
    Bolsa de saldo a la que se abona un crédito.
    """
    PAID = "paid"
    BONUS = "bonus"


__all__ = [
    "LedgerEntryKind",
    "CreditBucket",
]
