# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_generation.py

Configuración del módulo de generación de retratos.

Incluye:
- Límites por tier (por hora / por día) del controlador de admisión.
- Backend de contadores (sql | redis) y timeout de admisión.
- Proveedor upstream (Gemini): URL, API key, timeouts y política de reintentos.
- Costo en créditos por generación (0 = desactivado).

Autor: WedAI
Fecha: 25/10/2025
"""

from __future__ import annotations

from typing import Literal, Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenerationSettings(BaseSettings):
    """Configuración de admisión y del proveedor upstream."""

    # =========================================================================
    # LÍMITES POR TIER
    # =========================================================================

    anonymous_hourly_limit: int = Field(default=3, validation_alias="RATE_LIMIT_ANONYMOUS_HOURLY")
    anonymous_daily_limit: int = Field(default=3, validation_alias="RATE_LIMIT_ANONYMOUS_DAILY")
    authenticated_hourly_limit: int = Field(default=30, validation_alias="RATE_LIMIT_AUTHENTICATED_HOURLY")
    authenticated_daily_limit: int = Field(default=100, validation_alias="RATE_LIMIT_AUTHENTICATED_DAILY")
    premium_hourly_limit: int = Field(default=100, validation_alias="RATE_LIMIT_PREMIUM_HOURLY")
    premium_daily_limit: int = Field(default=500, validation_alias="RATE_LIMIT_PREMIUM_DAILY")

    # =========================================================================
    # ADMISIÓN
    # =========================================================================

    rate_limit_backend: Literal["sql", "redis"] = Field(
        default="sql",
        validation_alias="RATE_LIMIT_BACKEND",
        description="Almacén de contadores: sql (por defecto) o redis",
    )

    admission_timeout_seconds: float = Field(
        default=3.0,
        validation_alias="ADMISSION_TIMEOUT_SECONDS",
        description="Límite de la verificación de admisión; al agotarse se responde 500",
    )

    # =========================================================================
    # PROVEEDOR UPSTREAM
    # =========================================================================

    upstream_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        validation_alias="GENERATION_UPSTREAM_BASE_URL",
    )
    upstream_model: str = Field(
        default="gemini-2.5-flash-image-preview",
        validation_alias="GENERATION_UPSTREAM_MODEL",
    )
    upstream_api_key: Optional[SecretStr] = Field(default=None, validation_alias="GEMINI_API_KEY")
    upstream_connect_timeout_seconds: float = Field(default=10.0, validation_alias="GENERATION_UPSTREAM_CONNECT_TIMEOUT_SECONDS")
    upstream_timeout_seconds: float = Field(default=60.0, validation_alias="GENERATION_UPSTREAM_TIMEOUT_SECONDS")

    retry_max_attempts: int = Field(default=2, validation_alias="GENERATION_RETRY_MAX_ATTEMPTS")
    retry_backoff_base_seconds: float = Field(default=1.0, validation_alias="GENERATION_RETRY_BACKOFF_BASE_SECONDS")

    # =========================================================================
    # DEDUP / CRÉDITOS
    # =========================================================================

    dedup_poll_interval_seconds: float = Field(default=0.5, validation_alias="GENERATION_DEDUP_POLL_INTERVAL_SECONDS")
    dedup_wait_timeout_seconds: float = Field(default=150.0, validation_alias="GENERATION_DEDUP_WAIT_TIMEOUT_SECONDS")

    credit_cost: int = Field(
        default=0,
        validation_alias="GENERATION_CREDIT_COST",
        description="Créditos a debitar por generación (0 = sin cobro)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def caps_for(self, tier: str) -> tuple[int, int]:
        """Devuelve (límite_por_hora, límite_por_día) para el tier dado."""
        if tier == "premium":
            return self.premium_hourly_limit, self.premium_daily_limit
        if tier == "authenticated":
            return self.authenticated_hourly_limit, self.authenticated_daily_limit
        return self.anonymous_hourly_limit, self.anonymous_daily_limit


# Singleton global
_generation_settings: Optional[GenerationSettings] = None


def get_generation_settings() -> GenerationSettings:
    """Obtiene la instancia global de configuración de generación."""
    global _generation_settings
    if _generation_settings is None:
        _generation_settings = GenerationSettings()
    return _generation_settings


def reset_generation_settings() -> None:
    """Descarta el singleton (útil en tests que cambian variables de entorno)."""
    global _generation_settings
    _generation_settings = None


__all__ = [
    "GenerationSettings",
    "get_generation_settings",
    "reset_generation_settings",
]
# Fin del archivo backend/app/shared/config/settings_generation.py
