# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_payments.py

Configuración de pagos y créditos para WedAI.

Descripción:
    Centraliza el secreto del webhook del proveedor de pagos, la tolerancia
    de firma, los límites del ledger y la tabla de conversión monto → créditos.

Autor: WedAI
Fecha: 25/10/2025
"""

from __future__ import annotations

import os
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentsSettings(BaseSettings):
    """Configuración del sistema de pagos y del ledger de créditos."""

    # =========================================================================
    # FEATURE FLAGS
    # =========================================================================

    payments_enabled: bool = Field(
        default=True,
        description="Habilita la recepción de webhooks de pago"
    )

    # =========================================================================
    # STRIPE
    # =========================================================================

    stripe_webhook_secret: Optional[str] = Field(
        default=None,
        description="Secreto de firma del webhook (whsec_...)"
    )

    stripe_webhook_tolerance_seconds: int = Field(
        default=300,
        description="Tolerancia para validación de timestamp de webhooks (5 minutos)"
    )

    @field_validator('stripe_webhook_secret', mode='before')
    @classmethod
    def _load_webhook_secret(cls, v: Optional[str]) -> Optional[str]:
        """Fallback a STRIPE_WEBHOOK_SECRET env var si no está en settings."""
        if v:
            return v
        return os.getenv("STRIPE_WEBHOOK_SECRET")

    # =========================================================================
    # SEGURIDAD
    # =========================================================================

    allow_insecure_webhooks: bool = Field(
        default=False,
        description="Permite webhooks sin validación de firma (SOLO DESARROLLO)"
    )

    # =========================================================================
    # LEDGER DE CRÉDITOS
    # =========================================================================

    ledger_timeout_seconds: float = Field(
        default=5.0,
        description="Límite de tiempo por operación del ledger; al agotarse falla cerrado"
    )

    ledger_max_cas_retries: int = Field(
        default=5,
        description="Reintentos de compare-and-swap en débitos concurrentes"
    )

    credit_amount_table_json: Optional[str] = Field(
        default=None,
        description="Tabla JSON {centavos: créditos} que reemplaza la tabla por defecto"
    )

    cents_per_credit_fallback: int = Field(
        default=50,
        description="Centavos por crédito para montos fuera de la tabla"
    )

    # =========================================================================
    # CONFIGURACIÓN DE PYDANTIC
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton global
_payments_settings: Optional[PaymentsSettings] = None


def get_payments_settings() -> PaymentsSettings:
    """
    Obtiene la instancia global de configuración de pagos.

    Returns:
        PaymentsSettings: Configuración de pagos
    """
    global _payments_settings
    if _payments_settings is None:
        _payments_settings = PaymentsSettings()
    return _payments_settings


def reset_payments_settings() -> None:
    """Descarta el singleton (útil en tests que cambian variables de entorno)."""
    global _payments_settings
    _payments_settings = None


__all__ = [
    "PaymentsSettings",
    "get_payments_settings",
    "reset_payments_settings",
]
# Fin del archivo backend/app/shared/config/settings_payments.py
