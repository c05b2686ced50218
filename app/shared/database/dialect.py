# -*- coding: utf-8 -*-
"""
backend/app/shared/database/dialect.py

INSERT con soporte de ON CONFLICT según el dialecto de la sesión.

PostgreSQL y SQLite (>= 3.24) comparten la sintaxis
INSERT ... ON CONFLICT (...) DO UPDATE ... WHERE ... RETURNING,
pero SQLAlchemy expone la construcción en módulos distintos.

Autor: WedAI
Fecha: 2026-01-14
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(session: AsyncSession, table: Any):
    """
    Devuelve `insert(table)` del dialecto de la sesión (con .on_conflict_do_update).

    Raises:
        NotImplementedError: dialecto sin ON CONFLICT
    """
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"ON CONFLICT upsert not supported for dialect {name!r}")


__all__ = ["upsert_insert"]
