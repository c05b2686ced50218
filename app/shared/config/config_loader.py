# -*- coding: utf-8 -*-
"""
backend/app/shared/config/config_loader.py

Selección de settings por PYTHON_ENV y validaciones de arranque.

Además de las validaciones propias de BaseAppSettings, revisa la coherencia
con los settings de pagos y de generación:
- producción sin STRIPE_WEBHOOK_SECRET -> error (los webhooks fallarían cerrados)
- RATE_LIMIT_BACKEND=redis sin REDIS_URL -> error
- sin GEMINI_API_KEY -> aviso (toda generación terminará en failed)

Autor: WedAI
Fecha: 2026-01-23
"""

import logging
import os
from functools import lru_cache
from typing import Type

from .settings_base import BaseAppSettings
from .settings_dev import DevSettings
from .settings_generation import get_generation_settings
from .settings_payments import get_payments_settings
from .settings_prod import ProdSettings
from .settings_testing import EnvTestingSettings

logger = logging.getLogger(__name__)

_BY_ENV: dict[str, Type[BaseAppSettings]] = {
    "production": ProdSettings,
    "test": EnvTestingSettings,
}


def _check_modules(settings: BaseAppSettings) -> None:
    payments = get_payments_settings()
    generation = get_generation_settings()

    if settings.is_prod and not payments.stripe_webhook_secret:
        raise ValueError("STRIPE_WEBHOOK_SECRET es obligatorio en producción")

    if generation.rate_limit_backend == "redis" and not settings.redis_url:
        raise ValueError("RATE_LIMIT_BACKEND=redis requiere REDIS_URL")

    if not settings.is_test and generation.upstream_api_key is None:
        logger.warning("GEMINI_API_KEY no configurada: las generaciones fallarán")


@lru_cache(maxsize=1)
def get_settings() -> BaseAppSettings:
    """
    Instancia (una vez) los settings del entorno actual.

    Raises:
        ValueError: configuración insegura o incoherente
    """
    env = os.getenv("PYTHON_ENV", "development").strip().lower()
    settings = _BY_ENV.get(env, DevSettings)()

    settings._security_checks()
    _check_modules(settings)
    return settings


__all__ = ["get_settings"]
# Fin del archivo backend/app/shared/config/config_loader.py
