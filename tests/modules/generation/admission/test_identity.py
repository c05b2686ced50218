# -*- coding: utf-8 -*-
"""
Tests de resolución de identidad y tier.

Autor: WedAI
Fecha: 2026-01-20
"""

import pytest

from app.modules.billing.credits import Ledger
from app.modules.generation.admission import resolve_identity, resolve_tier
from app.modules.generation.enums import IdentifierType, Tier


def test_user_wins_over_session_and_ip():
    identity = resolve_identity("user-1", "sess-1", "10.0.0.1")
    assert identity.identifier == "user-1"
    assert identity.identifier_type == IdentifierType.USER
    assert identity.session_id == "sess-1"


def test_session_wins_over_ip():
    identity = resolve_identity(None, "sess-1", "10.0.0.1")
    assert identity.identifier == "sess-1"
    assert identity.identifier_type == IdentifierType.ANONYMOUS


def test_ip_is_the_fallback():
    identity = resolve_identity("  ", "", "10.0.0.1")
    assert identity.identifier == "10.0.0.1"
    assert identity.identifier_type == IdentifierType.IP
    assert identity.user_id is None


def test_missing_ip_uses_unknown():
    identity = resolve_identity(None, None, None)
    assert identity.identifier == "unknown"
    assert identity.identifier_type == IdentifierType.IP


@pytest.mark.anyio
async def test_resolve_tier(db_session):
    assert await resolve_tier(db_session, None) == Tier.ANONYMOUS
    assert await resolve_tier(db_session, "user-free") == Tier.AUTHENTICATED

    await Ledger().grant_bonus(db_session, "user-rich", 5)
    await db_session.commit()
    assert await resolve_tier(db_session, "user-rich") == Tier.PREMIUM
