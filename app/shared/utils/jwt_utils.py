# -*- coding: utf-8 -*-
"""
backend/app/shared/utils/jwt_utils.py

JWT helpers para WedAI. La autenticación la emite un proveedor externo;
aquí solo se decodifica el bearer token para obtener el `sub` (user id).

- decode_token(token)
- get_subject(token)
- create_access_token(data, expires_delta?)  (scripts y tests)

Autor: WedAI
Actualizado: 2025-10-16
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt, ExpiredSignatureError
import logging

from app.shared.config import settings

logger = logging.getLogger(__name__)


def _decode_options() -> dict:
    # Sin audiencia configurada no se valida el claim `aud`
    return {"verify_aud": bool(settings.jwt_audience)}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crea un JWT firmado con el secreto configurado.
    """
    to_encode = data.copy()
    iat = datetime.now(timezone.utc)
    to_encode.update({"iat": iat, "exp": iat + (expires_delta or timedelta(minutes=60))})
    if settings.jwt_audience:
        to_encode.setdefault("aud", settings.jwt_audience)
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decodifica y valida un JWT. Devuelve None si es inválido o expiró.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=_decode_options(),
        )
    except ExpiredSignatureError as e:
        logger.warning("Token expirado: %s", e)
        return None
    except JWTError as e:
        logger.warning("Token inválido: %s", e)
        return None


def get_subject(token: Optional[str]) -> Optional[str]:
    """Devuelve el claim `sub` de un token válido, o None."""
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


__all__ = ["create_access_token", "decode_token", "get_subject"]
# Fin del módulo jwt_utils.py
