# -*- coding: utf-8 -*-
"""
backend/app/observability/prom.py

Exposición Prometheus de WedAI.

- PrometheusMiddleware: conteo y latencia HTTP por plantilla de ruta
  (/generation/requests/{request_id}, no el id concreto)
- GET /metrics: familias HTTP + las de dominio de app.observability.metrics
- Con PROMETHEUS_MULTIPROC_DIR (varios workers de uvicorn) se agregan los
  archivos de todos los procesos
- METRICS_ENABLED=false no monta nada

Autor: WedAI
Fecha: 07/11/2025
"""
from __future__ import annotations

import logging
import os
from time import perf_counter

from fastapi import FastAPI
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.shared.config import get_settings

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
HTTP_REQUEST_SECONDS = Histogram(
    "http_request_duration_seconds",
    "Duración de requests HTTP (segundos)",
    ["method", "route"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        if request.url.path == METRICS_PATH:
            return await call_next(request)

        started = perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            route = _route_template(request)
            HTTP_REQUEST_SECONDS.labels(request.method, route).observe(perf_counter() - started)
            HTTP_REQUESTS_TOTAL.labels(request.method, route, status).inc()


def _registry() -> CollectorRegistry:
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return REGISTRY


def setup_observability(app: FastAPI) -> None:
    """Middleware HTTP + endpoint /metrics (si METRICS_ENABLED)."""
    if not get_settings().metrics_enabled:
        logger.info("Prometheus deshabilitado (METRICS_ENABLED=false)")
        return

    # Registra las familias de dominio en el REGISTRY por defecto
    from app.observability import metrics  # noqa: F401

    app.add_middleware(PrometheusMiddleware)
    registry = _registry()

    @app.get(METRICS_PATH, include_in_schema=False)
    def prometheus_metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


__all__ = ["setup_observability", "PrometheusMiddleware", "METRICS_PATH"]
# Fin del archivo backend/app/observability/prom.py
