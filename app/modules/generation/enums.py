# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/enums.py

Enums del módulo de generación.

Autor: WedAI
Fecha: 2026-01-20
"""

from enum import Enum


class IdentifierType(str, Enum):
    """
    Origen del identificador con el que se cuentan las solicitudes.
    Prioridad: cuenta > sesión anónima > IP.
    """
    USER = "user"
    ANONYMOUS = "anonymous"
    IP = "ip"


class Tier(str, Enum):
    """Nivel de límites del llamador."""
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    PREMIUM = "premium"          # Cuenta con saldo (paid + bonus) > 0


class RequestStatus(str, Enum):
    """
    Ciclo de vida: pending -> processing -> {completed | failed}
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED)


IN_FLIGHT_STATUSES = (RequestStatus.PENDING, RequestStatus.PROCESSING)


class WindowKind(str, Enum):
    HOUR = "hour"
    DAY = "day"


__all__ = [
    "IdentifierType",
    "Tier",
    "RequestStatus",
    "IN_FLIGHT_STATUSES",
    "WindowKind",
]
