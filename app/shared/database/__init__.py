# -*- coding: utf-8 -*-
"""
backend/app/shared/database/__init__.py

Re-exporta utilidades comunes de base de datos.

Autor: WedAI
Fecha: 2025-10-18
"""

from __future__ import annotations

from .database import (
    engine,
    SessionLocal,
    build_engine,
    build_sessionmaker,
    get_async_session,
    get_session_factory,
    session_scope,
    check_database_health,
    init_models,
)
from .base import Base, NAMING_CONVENTION, JSONType, as_db_enum

__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "NAMING_CONVENTION",
    "JSONType",
    "as_db_enum",
    "build_engine",
    "build_sessionmaker",
    "get_async_session",
    "get_session_factory",
    "session_scope",
    "check_database_health",
    "init_models",
]

# Fin del archivo backend/app/shared/database/__init__.py
