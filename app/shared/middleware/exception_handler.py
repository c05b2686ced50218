# -*- coding: utf-8 -*-
"""
backend/app/shared/middleware/exception_handler.py

Middleware ASGI más externo de la app:

- Asigna el request_id (X-Request-ID entrante o uno nuevo), lo publica en
  request.state y en el contextvar de logging, y lo devuelve en la respuesta.
- Convierte excepciones no manejadas en JSON:
    BackingStoreUnavailable -> 500 (DB/Redis caídos, se falla cerrado)
    cualquier otra          -> 500
  con cuerpo {error, details, error_code, request_id}.

Autor: WedAI
Fecha: 2026-01-28
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.shared.config.logging_config import request_id_var
from app.shared.errors import AppError, BackingStoreUnavailable

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 64


def get_request_id(request: Request) -> str:
    """X-Request-ID del cliente (truncado) o un id nuevo."""
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if incoming:
        return incoming[:_MAX_REQUEST_ID_LENGTH]
    return uuid.uuid4().hex[:16]


def error_payload(exc: Exception, request_id: str) -> tuple[int, dict]:
    if isinstance(exc, BackingStoreUnavailable):
        return 500, {
            "error": "Service temporarily unavailable",
            "details": exc.message,
            "error_code": exc.error_code,
            "request_id": request_id,
        }
    return 500, {
        "error": "Internal server error",
        "details": exc.message if isinstance(exc, AppError) else type(exc).__name__,
        "error_code": exc.error_code if isinstance(exc, AppError) else "INTERNAL_SERVER_ERROR",
        "request_id": request_id,
    }


class JSONExceptionMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id(request)
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            if isinstance(e, BackingStoreUnavailable):
                logger.error("backing_store_unavailable path=%s error=%s", request.url.path, e.message)
            else:
                logger.exception("unhandled_exception method=%s path=%s", request.method, request.url.path)
            status_code, content = error_payload(e, request_id)
            response = JSONResponse(status_code=status_code, content=content)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["JSONExceptionMiddleware", "get_request_id", "error_payload", "REQUEST_ID_HEADER"]
# Fin del archivo backend/app/shared/middleware/exception_handler.py
