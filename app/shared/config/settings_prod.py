# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_prod.py

Overrides de PRODUCCIÓN: solo variables de entorno (sin .env), logs JSON,
esquema por migraciones y CORS cerrado salvo CORS_ORIGINS explícito.

Autor: WedAI
Fecha: 2025-09-18
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from .settings_base import BaseAppSettings


class ProdSettings(BaseAppSettings):
    python_env: Literal["development", "test", "production"] = "production"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "pretty", "plain"] = "json"

    db_create_all: bool = False

    # "*" se rechaza en main._configure_cors
    allowed_origins: str = Field(default="*", validation_alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=None,
        extra="ignore",
    )


__all__ = ["ProdSettings"]
# Fin del archivo backend/app/shared/config/settings_prod.py
