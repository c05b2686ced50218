# -*- coding: utf-8 -*-
"""
backend/app/shared/config/__init__.py

Punto único de acceso a la configuración:
    from app.shared.config import settings

El objeto `settings` es un proxy perezoso sobre get_settings(): no instancia
nada al importar, así los tests pueden fijar PYTHON_ENV antes del primer uso.
"""

from __future__ import annotations

from typing import Any, Callable

from .config_loader import get_settings
from .settings_payments import get_payments_settings
from .settings_generation import get_generation_settings


class _SettingsProxy:
    __slots__ = ("_base_getter",)

    def __init__(self, base_getter: Callable[[], object]) -> None:
        object.__setattr__(self, "_base_getter", base_getter)

    def __getattr__(self, name: str) -> Any:
        base = object.__getattribute__(self, "_base_getter")()
        return getattr(base, name)


settings = _SettingsProxy(get_settings)

__all__ = [
    "settings",
    "get_settings",
    "get_payments_settings",
    "get_generation_settings",
]
# Fin del archivo
