# -*- coding: utf-8 -*-
"""
backend/app/shared/redis/__init__.py

Cliente Redis asíncrono compartido.
"""

from .client import (
    get_async_redis_client,
    close_async_redis_client,
    RedisClientManager,
)

__all__ = [
    "get_async_redis_client",
    "close_async_redis_client",
    "RedisClientManager",
]
