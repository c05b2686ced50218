# -*- coding: utf-8 -*-
"""
backend/app/shared/redis/client.py

Cliente Redis asíncrono (singleton) para WedAI.
Lo usa el backend Redis de contadores de admisión (RATE_LIMIT_BACKEND=redis).

Características:
- Conexión perezosa (nada bloquea al importar)
- Un único cliente compartido
- A diferencia de un caché, aquí la ausencia de Redis NO es silenciosa:
  el contador falla cerrado, así que get_client() lanza BackingStoreUnavailable

Autor: WedAI
Fecha: 2026-01-12
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import redis.asyncio as aioredis

from app.shared.errors import BackingStoreUnavailable

logger = logging.getLogger(__name__)


class RedisClientManager:
    """
    Administra un único cliente Redis asíncrono compartido.
    """

    _instance: Optional["RedisClientManager"] = None

    @classmethod
    def get_instance(cls) -> "RedisClientManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    async def reset_instance_async(cls) -> None:
        """Cierra y descarta el singleton (shutdown y tests)."""
        if cls._instance is not None:
            await cls._instance.close()
        cls._instance = None

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_url = redis_url or os.getenv("REDIS_URL")
        self._client: Optional[aioredis.Redis] = None
        self._connect_lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self._redis_url)

    async def get_client(self) -> aioredis.Redis:
        """
        Devuelve el cliente (conexión perezosa con PING de verificación).

        Raises:
            BackingStoreUnavailable: si REDIS_URL no está configurado o no hay conexión.
        """
        if self._client is not None:
            return self._client

        if not self.is_configured:
            raise BackingStoreUnavailable("REDIS_URL not configured")

        async with self._connect_lock:
            if self._client is not None:
                return self._client
            client = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            try:
                await client.ping()
            except aioredis.RedisError as e:
                logger.warning("RedisClientManager: connection failed: %s", e)
                await client.aclose()
                raise BackingStoreUnavailable(f"Redis unavailable: {e}") from e

            logger.info("RedisClientManager: connected pid=%d", os.getpid())
            self._client = client
            return client

    async def ping(self) -> bool:
        try:
            client = await self.get_client()
            await client.ping()
            return True
        except (BackingStoreUnavailable, aioredis.RedisError) as e:
            logger.warning("RedisClientManager: ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except aioredis.RedisError as e:
            logger.warning("RedisClientManager: close error: %s", e)
        finally:
            self._client = None


async def get_async_redis_client() -> aioredis.Redis:
    """Devuelve el cliente Redis canónico (lanza BackingStoreUnavailable si no hay)."""
    return await RedisClientManager.get_instance().get_client()


async def close_async_redis_client() -> None:
    await RedisClientManager.reset_instance_async()


__all__ = [
    "get_async_redis_client",
    "close_async_redis_client",
    "RedisClientManager",
]
# Fin del archivo backend/app/shared/redis/client.py
