# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/webhooks/signature.py

Verificación de firmas de webhooks de Stripe (HMAC-SHA256 local, sin SDK).

Formato del header Stripe-Signature:
    t=<unix_ts>,v1=<hex>[,v1=<hex>...][,v0=<hex>]

Firma esperada:
    HMAC-SHA256(secret, f"{t}." + body)

IMPORTANTE:
- El bypass inseguro SOLO funciona en PYTHON_ENV=development con
  PAYMENTS_ALLOW_INSECURE_WEBHOOKS=true. Con PYTHON_ENV=test nunca.
- La comparación es en tiempo constante (hmac.compare_digest).

Autor: WedAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
import time
from typing import Dict, List, Optional

from app.shared.errors import SignatureInvalid

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT CHECKS
# =============================================================================

def _is_development_environment() -> bool:
    """
    Solo en desarrollo se permite el bypass de verificación.

    NOTA: "test" NO es desarrollo; los tests deben ser fail-closed.
    """
    python_env = os.getenv("PYTHON_ENV", "production").lower()
    return python_env in ("development", "dev", "local")


def _allow_insecure() -> bool:
    """
    Determina si se permite el bypass de verificación de firmas.

    REGLAS:
    1. PAYMENTS_ALLOW_INSECURE_WEBHOOKS debe ser "true"
    2. ADEMÁS, debe ser entorno de desarrollo
    3. PYTHON_ENV == "test" nunca hace bypass
    """
    python_env = os.getenv("PYTHON_ENV", "production").lower()
    if python_env == "test":
        return False

    allow_flag = os.getenv("PAYMENTS_ALLOW_INSECURE_WEBHOOKS", "false").lower() == "true"
    is_dev = _is_development_environment()

    if allow_flag and not is_dev:
        logger.error(
            "SECURITY VIOLATION: PAYMENTS_ALLOW_INSECURE_WEBHOOKS=true en entorno "
            "no-desarrollo. Ignorando flag y forzando verificación real."
        )
        return False

    if allow_flag and is_dev:
        logger.warning("DESARROLLO: verificación de webhooks deshabilitada.")
        return True

    return False


# =============================================================================
# HEADER / FIRMA
# =============================================================================

def parse_signature_header(signature_header: str) -> Dict[str, List[str]]:
    """Parsea "t=..,v1=..,v1=.." en {"t": [...], "v1": [...]}."""
    elements: Dict[str, List[str]] = {}
    for item in signature_header.split(","):
        item = item.strip()
        if "=" in item:
            key, value = item.split("=", 1)
            elements.setdefault(key.strip(), []).append(value.strip())
    return elements


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    """HMAC-SHA256 hex de f"{timestamp}." + payload."""
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(
        secret.encode("utf-8"),
        msg=signed_payload,
        digestmod=hashlib.sha256,
    ).hexdigest()


def build_signature_header(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Construye un header Stripe-Signature válido (scripts de replay y tests)."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(payload, ts, secret)}"


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    webhook_secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """
    Verifica la firma de un webhook.

    Args:
        payload: Body crudo del request
        signature_header: Header Stripe-Signature
        webhook_secret: Secret del webhook (whsec_...)
        tolerance_seconds: Tolerancia de timestamp (default 5 minutos)
        now: Reloj inyectable (epoch seconds) para tests

    Returns:
        True si la firma es válida, False en caso contrario
    """
    if _allow_insecure():
        return True

    if not signature_header:
        logger.warning("Webhook rechazado: falta header Stripe-Signature")
        return False

    if not webhook_secret:
        logger.error("Webhook rechazado: STRIPE_WEBHOOK_SECRET no configurado")
        return False

    elements = parse_signature_header(signature_header)
    timestamp_str = elements.get("t", [None])[0]
    signatures_v1 = elements.get("v1", [])

    if not timestamp_str:
        logger.warning("Webhook rechazado: timestamp no encontrado en header")
        return False

    if not signatures_v1:
        logger.warning("Webhook rechazado: firma v1 no encontrada en header")
        return False

    try:
        timestamp = int(timestamp_str)
    except ValueError:
        logger.warning("Webhook rechazado: timestamp inválido %r", timestamp_str)
        return False

    current = int(time.time() if now is None else now)
    if abs(current - timestamp) > tolerance_seconds:
        logger.warning(
            "Webhook rechazado: timestamp fuera de tolerancia. diff=%ss tolerance=%ss",
            abs(current - timestamp), tolerance_seconds,
        )
        return False

    expected_signature = compute_signature(payload, timestamp, webhook_secret)
    for sig in signatures_v1:
        if hmac.compare_digest(expected_signature, sig):
            logger.debug("Webhook: firma verificada correctamente")
            return True

    logger.warning("Webhook rechazado: ninguna firma v1 coincide")
    return False


def require_valid_signature(
    payload: bytes,
    signature_header: Optional[str],
    webhook_secret: str,
    tolerance_seconds: int = 300,
) -> None:
    """
    Igual que verify_webhook_signature pero lanza SignatureInvalid si falla.
    """
    if not verify_webhook_signature(payload, signature_header, webhook_secret, tolerance_seconds):
        raise SignatureInvalid()


__all__ = [
    "verify_webhook_signature",
    "require_valid_signature",
    "parse_signature_header",
    "compute_signature",
    "build_signature_header",
    "_is_development_environment",
    "_allow_insecure",
]

# Fin del archivo backend/app/modules/billing/webhooks/signature.py
