# -*- coding: utf-8 -*-
"""
backend/app/shared/database/database.py

SQLAlchemy async: asyncpg en producción (compatible con PgBouncer, sin
prepared/statement cache) y aiosqlite en desarrollo/tests.

Provee:
- engine (create_async_engine)
- SessionLocal (async_sessionmaker)
- Dependencia FastAPI: get_async_session
- context manager: session_scope()
- check_database_health()
- init_models() para crear tablas en SQLite/desarrollo

Notas:
- SQLite: el driver deja de abrir transacciones por su cuenta y cada
  transacción empieza con BEGIN IMMEDIATE. Así los SAVEPOINT quedan dentro
  de una transacción real (su RELEASE no confirma nada) y los escritores
  concurrentes se serializan en lugar de fallar con "database is locked".
- Los timeouts de conexión (asyncpg: timeout, command_timeout) y el
  SET SESSION statement_timeout solo se aplican con PostgreSQL.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.shared.config import settings
from app.shared.database.base import Base

logger = logging.getLogger(__name__)


def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


# Nombres únicos para prepared statements (evita colisiones en PgBouncer transaction mode)
def _prepared_statement_name_func() -> str:
    return f"__asyncpg_{uuid4().hex[:8]}__"


def build_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Construye el AsyncEngine para la URL dada (por defecto DATABASE_URL).

    - PostgreSQL: NullPool (el pool lo maneja PgBouncer) y connect_args de asyncpg.
    - SQLite: transacciones explícitas (enable_sqlite_transactions); cada
      conexión de aiosqlite corre en su hilo.
    """
    url = url or settings.database_url
    echo = settings.db_echo_sql if echo is None else echo

    if _is_postgres(url):
        connect_args = {
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "prepared_statement_name_func": _prepared_statement_name_func,
            "server_settings": {"search_path": "public"},
            "timeout": float(settings.db_connect_timeout_s),
            "command_timeout": float(settings.db_command_timeout_s),
        }
        return create_async_engine(
            url,
            poolclass=NullPool,
            echo=echo,
            execution_options={"prepared_statement_cache_size": 0},
            connect_args=connect_args,
        )

    async_engine = create_async_engine(url, echo=echo)
    if _is_sqlite(url):
        enable_sqlite_transactions(async_engine)
    return async_engine


def enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Control de transacciones explícito para pysqlite/aiosqlite.

    SQLite no tiene bloqueo por fila: BEGIN IMMEDIATE toma el bloqueo de
    escritura al inicio, que cumple el papel de FOR UPDATE.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


engine = build_engine()
SessionLocal = build_sessionmaker(engine)

logger.debug("[DB] engine=%s echo=%s", engine.url.render_as_string(hide_password=True), engine.echo)


# ── Hook de configuración por sesión
async def _configure_session(session: AsyncSession) -> None:
    """
    SET SESSION statement_timeout para limitar consultas largas (solo PostgreSQL).
    """
    bind = session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    await session.execute(
        text(f"SET SESSION statement_timeout = {int(settings.db_session_statement_timeout_ms)}")
    )


# ── Dependencias FastAPI
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Fábrica de sesiones para servicios que abren transacciones cortas propias
    (admisión, tracker). Se sustituye en tests vía dependency_overrides.
    """
    return SessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Sesión por request: commit si el handler termina bien, rollback si lanza.
    """
    async with SessionLocal() as session:
        await _configure_session(session)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Context manager reutilizable en scripts/tests
@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Abre una sesión, hace commit al salir sin error y rollback si hay excepción.
    """
    factory = factory or SessionLocal
    async with factory() as session:
        await _configure_session(session)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Health check
async def check_database_health(timeout_s: float = 3.0, sql: str = "SELECT 1") -> bool:
    """
    Verifica conectividad a la base de datos.

    Args:
        timeout_s: Tiempo máximo de espera en segundos
        sql: Query SQL a ejecutar (default: "SELECT 1")

    Returns:
        True si la conexión es exitosa, False en caso contrario
    """
    try:
        async with asyncio.timeout(timeout_s):
            async with engine.connect() as conn:
                await conn.execute(text(sql))
        return True
    except Exception as e:
        logger.warning("[DB] health check failed: %s", e)
        return False


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Crea las tablas declaradas en Base.metadata (desarrollo / SQLite)."""
    import app.models  # noqa: F401  registra todos los modelos en Base.metadata

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[DB] tablas creadas/verificadas en %s", bind.dialect.name)


__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "build_engine",
    "build_sessionmaker",
    "enable_sqlite_transactions",
    "get_async_session",
    "get_session_factory",
    "session_scope",
    "check_database_health",
    "init_models",
]
# Fin del archivo backend/app/shared/database/database.py
