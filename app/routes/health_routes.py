# -*- coding: utf-8 -*-
"""
backend/app/routes/health_routes.py

GET /health

- database: SELECT 1 con timeout de 2 s
- redis: PING, solo si RATE_LIMIT_BACKEND=redis (si no, "not_used")
- upstream: si GEMINI_API_KEY está configurada (no se llama al proveedor)

status = "ok" si los almacenes en uso responden, "degraded" si no.
Siempre 200: el orquestador decide con el campo status.

Autor: WedAI
Fecha: 2025-11-17
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from app.shared.config import get_generation_settings, get_settings
from app.shared.database.database import check_database_health
from app.shared.redis import RedisClientManager

router = APIRouter(tags=["health"])


async def _redis_status(backend: str) -> str:
    if backend != "redis":
        return "not_used"
    return "ok" if await RedisClientManager.get_instance().ping() else "unreachable"


@router.get(
    "/health",
    summary="Health check del backend",
)
async def health_check() -> dict:
    settings = get_settings()
    generation = get_generation_settings()

    db_ok = await check_database_health(timeout_s=2.0)
    redis_status = await _redis_status(generation.rate_limit_backend)
    healthy = db_ok and redis_status in ("ok", "not_used")

    return {
        "status": "ok" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.python_env,
        "checks": {
            "database": "ok" if db_ok else "unreachable",
            "redis": redis_status,
            "upstream_configured": generation.upstream_api_key is not None,
        },
        "service": {
            "name": settings.app_name,
            "version": settings.app_version,
        },
    }

# Fin del archivo backend/app/routes/health_routes.py
