# -*- coding: utf-8 -*-
"""
backend/app/shared/http_utils/request_meta.py

Metadatos del request que usa la generación de retratos:

- get_client_ip: último recurso de identidad para el control de admisión
  (cuenta > sesión > IP). Solo confía en X-Forwarded-For / X-Real-IP con
  TRUST_PROXY_HEADERS=true; si no, un cliente podría rotar su IP por header.
- get_bearer_token: JWT del proveedor de identidad (el `sub` es la cuenta).
- get_user_agent: se guarda en la solicitud rastreada.

Autor: WedAI
Fecha: 2025-12-18
"""
from __future__ import annotations

import ipaddress
import os
from typing import Optional

from starlette.requests import Request

_MAX_IP_LENGTH = 64
_MAX_USER_AGENT_LENGTH = 512


def _trust_proxy_headers() -> bool:
    return os.getenv("TRUST_PROXY_HEADERS", "false").lower() in ("true", "1", "yes")


def _valid_ip(value: str) -> Optional[str]:
    value = value.strip()
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return None
    return value[:_MAX_IP_LENGTH]


def get_client_ip(request: Request) -> str:
    """
    IP del cliente, o "unknown".

    Con TRUST_PROXY_HEADERS=true: primer IP válida de X-Forwarded-For,
    luego X-Real-IP, luego la IP del socket.
    """
    if _trust_proxy_headers():
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = _valid_ip(forwarded.split(",")[0])
            if ip:
                return ip
        real_ip = _valid_ip(request.headers.get("x-real-ip") or "")
        if real_ip:
            return real_ip

    if request.client and request.client.host:
        return request.client.host[:_MAX_IP_LENGTH]

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    ua = (request.headers.get("user-agent") or "").strip()
    return ua[:_MAX_USER_AGENT_LENGTH] or None


def get_bearer_token(request: Request) -> Optional[str]:
    """Token de `Authorization: Bearer <token>` o None."""
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


__all__ = [
    "get_client_ip",
    "get_user_agent",
    "get_bearer_token",
]
