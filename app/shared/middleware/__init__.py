# -*- coding: utf-8 -*-
"""
backend/app/shared/middleware/__init__.py

Middlewares HTTP de la app: request_id + errores JSON, y log por request.
"""

from .exception_handler import REQUEST_ID_HEADER, JSONExceptionMiddleware, get_request_id
from .request_logging import RequestLoggingMiddleware

__all__ = [
    "REQUEST_ID_HEADER",
    "JSONExceptionMiddleware",
    "RequestLoggingMiddleware",
    "get_request_id",
]
