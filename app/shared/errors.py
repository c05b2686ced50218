# -*- coding: utf-8 -*-
"""
backend/app/shared/errors.py

Errores de dominio de WedAI.

Objetivo:
- Definir excepciones semánticas que los servicios lanzan sin acoplarse a FastAPI.
- Permitir que los ruteadores traduzcan cada excepción a su código HTTP:

    SignatureInvalid         -> 401
    DuplicateEvent           -> 200 (skipped)
    HandlerFailure           -> 500
    InsufficientCredits      -> 402
    UpstreamProviderError    -> 500
    ValidationError          -> 400
    InvalidStateTransition   -> 500
    BackingStoreUnavailable  -> 500

Autor: WedAI
Fecha: 2025-11-22
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """
    Error base de la aplicación.
    """

    error_code: str = "APP_ERROR"

    def __init__(self, message: str = "Application error") -> None:
        super().__init__(message)
        self.message = message


class SignatureInvalid(AppError):
    """
    La firma del webhook no coincide o el timestamp está fuera de tolerancia.
    """

    error_code = "SIGNATURE_INVALID"

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(message)


class DuplicateEvent(AppError):
    """
    El evento ya fue procesado. No es un error para el proveedor: se responde 200.
    """

    error_code = "DUPLICATE_EVENT"

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event already processed: {event_id}")
        self.event_id = event_id


class HandlerFailure(AppError):
    """
    El handler del evento falló; el resultado queda registrado y no se reintenta.
    """

    error_code = "HANDLER_FAILURE"

    def __init__(self, event_id: str, error: str) -> None:
        super().__init__(f"Handler failed for {event_id}: {error}")
        self.event_id = event_id
        self.error = error


class InsufficientCredits(AppError):
    """
    Saldo insuficiente para un débito. No se aplica ninguna mutación.
    """

    error_code = "INSUFFICIENT_CREDITS"

    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"Insufficient credits: available={available}, required={required}")
        self.available = available
        self.required = required


class UpstreamProviderError(AppError):
    """
    Fallo del proveedor de generación (HTTP, timeout o respuesta sin imagen).
    """

    error_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ValidationError(AppError):
    """
    Entrada mal formada. No se persiste nada.
    """

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(message)


class InvalidStateTransition(AppError):
    """
    Transición no permitida en la máquina de estados de una solicitud.
    """

    error_code = "INVALID_STATE_TRANSITION"

    def __init__(self, request_id: str, expected: str, target: str) -> None:
        super().__init__(
            f"Invalid transition for request {request_id}: expected={expected} target={target}"
        )
        self.request_id = request_id
        self.expected = expected
        self.target = target


class BackingStoreUnavailable(AppError):
    """
    Timeout o caída del almacén (DB/Redis). Se falla cerrado.
    """

    error_code = "BACKING_STORE_UNAVAILABLE"

    def __init__(self, message: str = "Backing store unavailable") -> None:
        super().__init__(message)


__all__ = [
    "AppError",
    "SignatureInvalid",
    "DuplicateEvent",
    "HandlerFailure",
    "InsufficientCredits",
    "UpstreamProviderError",
    "ValidationError",
    "InvalidStateTransition",
    "BackingStoreUnavailable",
]
# Fin del archivo backend/app/shared/errors.py
