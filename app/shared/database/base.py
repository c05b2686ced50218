# -*- coding: utf-8 -*-
"""
backend/app/shared/database/base.py

Base declarativa y convención de nombres para modelos ORM.

Este módulo proporciona:
- Base: clase base declarativa de SQLAlchemy
- NAMING_CONVENTION: convención de nombres para constraints
- as_db_enum: helper para mapear enums Python a columnas portables
  (VARCHAR + CHECK) que funcionan igual en PostgreSQL y SQLite

Autor: WedAI
Fecha: 2025-10-18
"""

from __future__ import annotations

from enum import Enum
from typing import Type

from sqlalchemy import JSON
from sqlalchemy import Enum as SAEnum
from sqlalchemy import MetaData
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# ===== NAMING CONVENTION =====
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


# JSON portable: JSONB en PostgreSQL, JSON (texto) en SQLite
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ===== BASE DECLARATIVA =====
class Base(DeclarativeBase):
    """
    Base declarativa para todos los modelos ORM de WedAI.
    Incluye convención de nombres para constraints.
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# ===== HELPER PARA ENUMS =====
def as_db_enum(enum_cls: Type[Enum], name: str | None = None) -> SAEnum:
    """
    Devuelve un tipo Enum de SQLAlchemy no nativo basado en un Enum de Python.

    Uso típico:

        from app.shared.database.base import Base, as_db_enum
        from .enums import IdempotencyOutcome

        class IdempotencyRecord(Base):
            outcome: Mapped[IdempotencyOutcome] = mapped_column(
                as_db_enum(IdempotencyOutcome, name="idempotency_outcome"),
                nullable=False,
            )

    - Persiste el `.value` del enum (no el nombre del miembro).
    - Genera un CHECK constraint en lugar de un tipo ENUM nativo, de modo
      que el mismo modelo sirve para PostgreSQL y SQLite.
    """
    enum_name = name or getattr(enum_cls, "__db_enum_name__", enum_cls.__name__.lower())

    def _values(_: object) -> list[str]:
        return [e.value for e in enum_cls]  # type: ignore[arg-type]

    return SAEnum(
        enum_cls,
        name=enum_name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=_values,
        validate_strings=True,
    )


__all__ = ["Base", "NAMING_CONVENTION", "JSONType", "as_db_enum"]

# Fin del archivo backend/app/shared/database/base.py
