# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/models.py

Modelos ORM del módulo de generación.

- RateLimitCounter (rate_limit_counters): contador por identificador y ventana
- GenerationRequest (generation_requests): solicitud rastreada de generación
- ApiKey (api_keys): llaves de servicio (solo se guarda el sha256)

Autor: WedAI
Fecha: 2026-01-20
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base, JSONType, as_db_enum
from .enums import IdentifierType, RequestStatus, WindowKind

# Predicado del índice único parcial: solo solicitudes en vuelo
_IN_FLIGHT_PREDICATE = text("status IN ('pending', 'processing')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitCounter(Base):
    """
    Contador de solicitudes por (tipo e identificador, tipo de ventana, inicio
    de ventana). El tipo forma parte de la llave: un user id igual a una IP
    no comparte cupo con esa IP.

    Tabla: rate_limit_counters

    count nunca supera el cap del tier: el incremento es condicional
    (ON CONFLICT DO UPDATE ... WHERE count < cap).
    """

    __tablename__ = "rate_limit_counters"
    __table_args__ = (
        UniqueConstraint(
            "identifier_type", "identifier", "window_kind", "window_start",
            name="uq_rate_limit_counters_window",
        ),
        CheckConstraint("count >= 0", name="count_non_negative"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    identifier: Mapped[str] = mapped_column(String(255), nullable=False)

    identifier_type: Mapped[IdentifierType] = mapped_column(
        as_db_enum(IdentifierType, name="identifier_type"),
        nullable=False,
    )

    window_kind: Mapped[WindowKind] = mapped_column(
        as_db_enum(WindowKind, name="window_kind"),
        nullable=False,
    )

    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<RateLimitCounter {self.identifier} {self.window_kind} {self.window_start} count={self.count}>"


class GenerationRequest(Base):
    """
    Solicitud de generación de retrato.

    Tabla: generation_requests

    - Índice único parcial (identifier, content_hash) para status en vuelo:
      dos envíos idénticos concurrentes no crean dos trabajos.
    - Las filas terminales se conservan para auditoría.
    """

    __tablename__ = "generation_requests"
    __table_args__ = (
        Index(
            "uq_generation_requests_in_flight",
            "identifier",
            "content_hash",
            unique=True,
            postgresql_where=_IN_FLIGHT_PREDICATE,
            sqlite_where=_IN_FLIGHT_PREDICATE,
        ),
        Index("ix_generation_requests_identifier_created", "identifier", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    identifier_type: Mapped[IdentifierType] = mapped_column(
        as_db_enum(IdentifierType, name="identifier_type"),
        nullable=False,
    )

    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    styles: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    status: Mapped[RequestStatus] = mapped_column(
        as_db_enum(RequestStatus, name="generation_request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    credits_consumed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Resultado del upstream; lo leen los duplicados que esperaban en vuelo
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<GenerationRequest id={self.id} status={self.status} identifier={self.identifier}>"


class ApiKey(Base):
    """
    Llave de API para llamadas servicio a servicio.

    Tabla: api_keys

    La llave en claro solo se muestra al crearla; aquí se guarda su sha256.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    key_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    permissions: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    rate_limit_per_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ApiKey name={self.key_name} active={self.is_active}>"


__all__ = [
    "RateLimitCounter",
    "GenerationRequest",
    "ApiKey",
]
