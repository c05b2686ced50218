# -*- coding: utf-8 -*-
"""
Tests de ApiKeyService.

Autor: WedAI
Fecha: 2026-01-22
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.modules.generation.models import ApiKey
from app.modules.generation.services.api_keys import API_KEY_PREFIX, ApiKeyService, hash_api_key

pytestmark = pytest.mark.anyio


async def test_create_stores_only_hash(db_session):
    service = ApiKeyService()
    record, raw_key = await service.create(db_session, "partner-a", rate_limit_per_hour=50)
    await db_session.commit()

    assert raw_key.startswith(API_KEY_PREFIX)
    stored = (await db_session.execute(select(ApiKey))).scalar_one()
    assert stored.key_hash == hash_api_key(raw_key)
    assert raw_key not in stored.key_hash
    assert stored.rate_limit_per_hour == 50
    assert stored.permissions == ["generation"]


async def test_validate_accepts_active_key_and_tracks_usage(db_session):
    service = ApiKeyService()
    _, raw_key = await service.create(db_session, "partner-b")
    await db_session.commit()

    found = await service.validate(db_session, raw_key)
    await db_session.commit()

    assert found is not None
    assert found.key_name == "partner-b"
    stored = await db_session.scalar(
        select(ApiKey).where(ApiKey.key_name == "partner-b").execution_options(populate_existing=True)
    )
    assert stored.last_used_at is not None


async def test_validate_rejects_unknown_and_empty(db_session):
    service = ApiKeyService()
    assert await service.validate(db_session, "wedai_nope") is None
    assert await service.validate(db_session, "") is None


async def test_validate_rejects_expired(db_session):
    service = ApiKeyService()
    past = datetime.now(timezone.utc) - timedelta(days=1)
    _, raw_key = await service.create(db_session, "old-partner", expires_at=past)
    await db_session.commit()

    assert await service.validate(db_session, raw_key) is None


async def test_deactivate(db_session):
    service = ApiKeyService()
    _, raw_key = await service.create(db_session, "partner-c")
    await db_session.commit()

    assert await service.deactivate(db_session, "partner-c") is True
    await db_session.commit()
    assert await service.deactivate(db_session, "partner-c") is False

    db_session.expire_all()
    assert await service.validate(db_session, raw_key) is None
