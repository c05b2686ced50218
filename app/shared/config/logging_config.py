# -*- coding: utf-8 -*-
"""
backend/app/shared/config/logging_config.py

Configuración centralizada de logging para WedAI.

- plain/pretty: una línea legible por registro (desarrollo)
- json: python-json-logger (producción)
- Cada registro lleva `request_id`, tomado del contextvar que fija
  JSONExceptionMiddleware; fuera de un request vale "-".

Autor: WedAI
Fecha: 24/10/2025
"""

import logging
import logging.config
from contextvars import ContextVar
from typing import Literal

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Loggers de librerías que registran cada operación a nivel INFO/DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
    fmt: Literal["plain", "pretty", "json"] = "plain"
) -> None:
    """
    Configura el logging raíz de la aplicación.

    Args:
        level: Nivel de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Formato de salida (plain, pretty, json)

    Ejemplos:
        >>> setup_logging("DEBUG", "plain")
        >>> setup_logging("INFO", "json")
    """
    formatters = {
        "default": {
            "format": "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s]: %(message)s"
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(request_id)s %(message)s",
            "rename_fields": {"levelname": "level", "asctime": "ts"},
        },
    }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if fmt == "json" else "default",
                "filters": ["request_id"],
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {
            "handlers": ["console"],
            "level": level.upper(),
        },
    })


__all__ = ["setup_logging", "request_id_var", "RequestIdFilter"]
# Fin del archivo backend/app/shared/config/logging_config.py
