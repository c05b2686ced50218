# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/api_keys.py

Llaves de API para llamadas servicio a servicio al endpoint de generación.

- Se guarda solo sha256(llave); la llave en claro se devuelve una vez al crearla.
- La comparación final es en tiempo constante (hmac.compare_digest).
- Una llave inactiva o vencida no es válida.

Autor: WedAI
Fecha: 2026-01-22
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.generation.models import ApiKey

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "wedai_"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def _as_utc(value: datetime) -> datetime:
    # SQLite devuelve datetimes naive
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ApiKeyService:

    async def create(
        self,
        session: AsyncSession,
        name: str,
        *,
        permissions: Iterable[str] = ("generation",),
        rate_limit_per_hour: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> Tuple[ApiKey, str]:
        """Crea la llave y devuelve (registro, llave_en_claro)."""
        raw_key = generate_api_key()
        api_key = ApiKey(
            key_name=name,
            key_hash=hash_api_key(raw_key),
            permissions=list(permissions),
            rate_limit_per_hour=rate_limit_per_hour,
            expires_at=expires_at,
            is_active=True,
        )
        session.add(api_key)
        await session.flush()
        logger.info("API key created: name=%s", name)
        return api_key, raw_key

    async def validate(
        self,
        session: AsyncSession,
        raw_key: str,
        now: Optional[datetime] = None,
    ) -> Optional[ApiKey]:
        """
        Devuelve la ApiKey si la llave es válida (y registra last_used_at);
        None en otro caso.
        """
        if not raw_key:
            return None

        digest = hash_api_key(raw_key)
        api_key = await session.scalar(select(ApiKey).where(ApiKey.key_hash == digest))
        if api_key is None or not hmac.compare_digest(api_key.key_hash, digest):
            logger.info("API key rejected: unknown key")
            return None

        now = now or datetime.now(timezone.utc)
        if not api_key.is_active:
            logger.info("API key rejected: inactive name=%s", api_key.key_name)
            return None
        if api_key.expires_at is not None and _as_utc(api_key.expires_at) <= now:
            logger.info("API key rejected: expired name=%s", api_key.key_name)
            return None

        await session.execute(
            update(ApiKey)
            .where(ApiKey.id == api_key.id)
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return api_key

    async def deactivate(self, session: AsyncSession, name: str) -> bool:
        result = await session.execute(
            update(ApiKey)
            .where(ApiKey.key_name == name, ApiKey.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


__all__ = ["ApiKeyService", "hash_api_key", "generate_api_key", "API_KEY_PREFIX"]
