# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_testing.py

Overrides para la suite de tests.

- La sesión de base de datos la inyecta tests/conftest.py (SQLite por test);
  db_url solo la usa el health check.
- Sin creación de tablas en el lifespan: conftest las crea por engine.

Autor: WedAI
Fecha: 2025-09-18
"""

from pydantic import SecretStr
from pydantic_settings import SettingsConfigDict

from .settings_base import BaseAppSettings


class EnvTestingSettings(BaseAppSettings):
    python_env: str = "test"

    log_level: str = "WARNING"
    log_format: str = "pretty"

    db_url: str = "sqlite+aiosqlite:///:memory:"
    db_create_all: bool = False

    jwt_secret_key: SecretStr = SecretStr("test-secret-for-wedai-suite-please-change")

    model_config = SettingsConfigDict(
        env_file=".env.test",
        env_file_encoding="utf-8",
        extra="ignore",
    )


__all__ = ["EnvTestingSettings"]
# Fin del archivo backend/app/shared/config/settings_testing.py
