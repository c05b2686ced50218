# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/admission/identity.py

Resolución de identidad y tier del llamador.

Autor: WedAI
Fecha: 2026-01-20
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.billing.credits.repositories import AccountBalanceRepository
from app.modules.generation.enums import IdentifierType, Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Identificador con el que se cuentan las solicitudes del llamador."""
    identifier: str
    identifier_type: IdentifierType
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None


def resolve_identity(
    user_id: Optional[str],
    session_id: Optional[str],
    client_ip: Optional[str],
) -> CallerIdentity:
    """
    Prioridad: cuenta > sesión anónima > IP.
    """
    user_id = (user_id or "").strip() or None
    session_id = (session_id or "").strip() or None
    client_ip = (client_ip or "").strip() or "unknown"

    if user_id:
        identifier, kind = user_id, IdentifierType.USER
    elif session_id:
        identifier, kind = session_id, IdentifierType.ANONYMOUS
    else:
        identifier, kind = client_ip, IdentifierType.IP

    return CallerIdentity(
        identifier=identifier,
        identifier_type=kind,
        user_id=user_id,
        session_id=session_id,
        ip_address=client_ip,
    )


async def resolve_tier(
    session: AsyncSession,
    account_id: Optional[str],
    balance_repo: Optional[AccountBalanceRepository] = None,
) -> Tier:
    """
    premium si la cuenta tiene saldo (paid + bonus) > 0; authenticated si hay
    cuenta; anonymous en otro caso.
    """
    if not account_id:
        return Tier.ANONYMOUS

    repo = balance_repo or AccountBalanceRepository()
    buckets = await repo.get_buckets(session, account_id)
    if buckets and sum(buckets) > 0:
        return Tier.PREMIUM
    return Tier.AUTHENTICATED


__all__ = ["CallerIdentity", "resolve_identity", "resolve_tier"]
