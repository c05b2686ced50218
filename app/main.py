# -*- coding: utf-8 -*-
"""
backend/app/main.py

Punto de entrada principal del backend de WedAI.

Ajustes clave:
- Configuración vía app.shared.config (pydantic-settings)
- Logging central (plain/pretty/json) antes de montar routers
- Observabilidad Prometheus (/metrics) vía app.observability.prom
- Apagado ordenado: las generaciones en vuelo finalizan su estado antes de
  cerrar clientes HTTP y Redis
- CORS registrado al final para ejecutarse primero

Autor: WedAI
Fecha: 17/11/2025
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

# ---------------------------------------------------------------------------
# Cargar .env ANTES de cualquier import que lea settings
# En PROD: override=False para respetar variables del entorno
# ---------------------------------------------------------------------------
from dotenv import load_dotenv

_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"  # backend/.env
_PYTHON_ENV = os.getenv("PYTHON_ENV", "development").strip().strip('"').strip("'").lower()
load_dotenv(dotenv_path=_ENV_PATH, override=_PYTHON_ENV == "development")

import anyio
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from app.observability.prom import setup_observability
from app.shared.config import get_settings
from app.shared.config.logging_config import setup_logging
from app.shared.middleware import JSONExceptionMiddleware, RequestLoggingMiddleware
from app.shared.utils.json_response import UTF8JSONResponse, json_response_utf8

_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_format)
logger = logging.getLogger(__name__)

logger.info("[dotenv] Loaded %s (PYTHON_ENV=%s)", _ENV_PATH, _PYTHON_ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ────────── STARTUP ──────────
    from app.modules.generation.services import reset_shutdown_token

    reset_shutdown_token()

    settings = get_settings()
    if settings.db_create_all:
        from app.shared.database import init_models

        await init_models()

    from app.routes.master_routes import loaded_routers

    logger.info("🟢 Backend de WedAI iniciado (env=%s)", settings.python_env)
    logger.debug("Routers montados: %s", loaded_routers())
    try:
        yield
    finally:
        # ────────── SHUTDOWN ──────────
        logger.info("🔴 Iniciando shutdown ordenado...")
        with anyio.CancelScope(shield=True):
            from app.modules.generation.services import close_upstream_provider, drain_background_tasks
            from app.shared.redis.client import close_async_redis_client

            try:
                # Primero las generaciones: cancelan reintentos y marcan failed
                await drain_background_tasks()
            except Exception as e:
                logger.error("❌ Error drenando generaciones en vuelo: %s", e)

            try:
                await close_upstream_provider()
                logger.info("🖼️ Cliente del proveedor de imágenes cerrado")
            except Exception as e:
                logger.warning("⚠️ Error cerrando cliente upstream: %s", e)

            try:
                await close_async_redis_client()
            except Exception as e:
                logger.warning("⚠️ Error cerrando Redis: %s", e)

        logger.info("🔴 Backend de WedAI apagado.")


openapi_tags = [
    {"name": "generation", "description": "Generación de retratos, límites por tier y deduplicación"},
    {"name": "billing:webhooks", "description": "Webhooks del proveedor de pagos y créditos"},
    {"name": "health", "description": "Estado del servicio"},
]

app = FastAPI(
    title="WedAI API",
    description="API del backend de WedAI",
    version=_settings.app_version,
    lifespan=lifespan,
    openapi_tags=openapi_tags,
    default_response_class=UTF8JSONResponse,
)


# ═══════════════════════════════════════════════════════════════════════════════
# CORS
# ═══════════════════════════════════════════════════════════════════════════════
def _configure_cors(app_instance: FastAPI) -> dict:
    """
    Configura CORS middleware.

    - "*" solo: sin credenciales (los navegadores rechazan "*" + credentials)
    - Lista explícita: con credenciales
    - Producción sin CORS_ORIGINS explícito: CORS deshabilitado (fail-closed)

    Returns:
        dict con la configuración aplicada para logging.
    """
    settings = get_settings()
    origins_list = settings.get_cors_origins()
    is_wildcard_only = origins_list == ["*"]

    if settings.is_prod and is_wildcard_only and os.getenv("ALLOW_CORS_WILDCARD_IN_PROD") != "1":
        logger.error(
            "❌ REFUSING WILDCARD CORS IN PRODUCTION! "
            "Set CORS_ORIGINS or ALLOW_CORS_WILDCARD_IN_PROD=1 to override."
        )
        return {"cors_disabled": True, "allow_origins": []}

    if "*" in origins_list and not is_wildcard_only:
        logger.warning("⚠️ CORS: Filtrando '*' de origins porque hay otros origins explícitos.")
        origins_list = [o for o in origins_list if o != "*"]

    cors_config = {
        "allow_origins": origins_list,
        "allow_credentials": not is_wildcard_only,
        "allow_methods": ["*"] if is_wildcard_only else ["GET", "POST", "OPTIONS"],
        "allow_headers": ["*"],
        "expose_headers": ["Retry-After", "X-Request-ID"],
        "max_age": 600,
    }

    logger.info(
        "🌐 CORS origins=%s credentials=%s",
        cors_config["allow_origins"],
        cors_config["allow_credentials"],
    )
    app_instance.add_middleware(CORSMiddleware, **cors_config)
    return cors_config


# El orden real de ejecución de middlewares en Starlette es inverso al registro.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(JSONExceptionMiddleware)

# Observabilidad Prometheus (/metrics)
setup_observability(app)

# CORS middleware - se registra al final para ejecutarse primero
_cors_config = _configure_cors(app)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException con charset UTF-8 explícito."""
    return json_response_utf8(
        content={"detail": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


# Incluye router maestro
from app.routes import router as main_router

app.include_router(main_router)


@app.get("/")
async def root():
    return {"service": "WedAI Backend", "status": "active"}


if __name__ == "__main__":
    settings = get_settings()
    enable_reload = settings.is_dev and os.getenv("DISABLE_RELOAD", "").lower() not in ("true", "1", "yes")

    logger.info("🔧 Starting server with reload=%s (env=%s)", enable_reload, settings.python_env)

    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=enable_reload,
        reload_excludes=["tests/*", "*.log", "**/*.md"] if enable_reload else None,
    )

# Fin del archivo backend/app/main.py
