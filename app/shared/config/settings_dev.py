# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_dev.py

Overrides para desarrollo local: SQLite con creación de tablas al arrancar,
logs DEBUG legibles y CORS abierto al servidor de Vite del cliente web.

Autor: WedAI
Fecha: 2025-09-18
"""

from pydantic import Field

from .settings_base import BaseAppSettings


class DevSettings(BaseAppSettings):
    """Configuración para entorno de desarrollo."""

    python_env: str = "development"

    log_level: str = "DEBUG"
    log_format: str = "plain"

    db_create_all: bool = True
    db_echo_sql: bool = False

    allowed_origins: str = Field(default="http://localhost:5173,http://127.0.0.1:5173", validation_alias="CORS_ORIGINS")


__all__ = ["DevSettings"]
# Fin del archivo backend/app/shared/config/settings_dev.py
