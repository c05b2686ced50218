# -*- coding: utf-8 -*-
"""
backend/app/shared/middleware/request_logging.py

Una línea de log por request: método, path, status, duración e IP.
5xx se registran como WARNING; /metrics y /health no se registran.

Autor: WedAI
Fecha: 2026-01-28
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.shared.http_utils.request_meta import get_client_ip

logger = logging.getLogger(__name__)

DEFAULT_SKIP_PREFIXES = ("/metrics", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, skip_prefixes: Iterable[str] = DEFAULT_SKIP_PREFIXES):
        super().__init__(app)
        self.skip_prefixes = tuple(skip_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path.startswith(self.skip_prefixes):
            return await call_next(request)

        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            logger.log(
                logging.WARNING if status >= 500 else logging.INFO,
                "request_completed method=%s path=%s status=%d duration_ms=%.1f ip=%s",
                request.method,
                path,
                status,
                (time.perf_counter() - started) * 1000,
                get_client_ip(request),
            )


__all__ = ["RequestLoggingMiddleware"]
# Fin del archivo backend/app/shared/middleware/request_logging.py
