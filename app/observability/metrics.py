# -*- coding: utf-8 -*-
"""
backend/app/observability/metrics.py

Métricas de dominio de WedAI (REGISTRY por defecto, servidas en /metrics).

- Webhooks de pago: verificación y outcome de negocio
- Créditos aplicados / consumidos
- Decisiones de admisión por tier
- Generaciones: outcome y latencia

Autor: WedAI
Fecha: 08/11/2025
"""

from prometheus_client import Counter, Histogram

# --------------------------------------------------------------------------
# Webhooks
# --------------------------------------------------------------------------
WEBHOOKS_VERIFIED_TOTAL = Counter(
    "payments_webhook_verified_total",
    "Total webhooks por resultado de verificación (success/failure)",
    ["provider", "result"],
)
WEBHOOKS_OUTCOME_TOTAL = Counter(
    "payments_webhook_outcome_total",
    "Total webhooks por outcome de negocio (success/duplicate/failure)",
    ["provider", "outcome"],
)
WEBHOOKS_PROCESSING_SECONDS = Histogram(
    "payments_webhook_processing_seconds",
    "Tiempo de procesamiento de webhooks (segundos)",
    ["provider"],
)

# --------------------------------------------------------------------------
# Ledger
# --------------------------------------------------------------------------
CREDITS_APPLIED_TOTAL = Counter(
    "credits_applied_total",
    "Créditos acreditados por tipo de movimiento",
    ["kind"],
)
CREDITS_CONSUMED_TOTAL = Counter(
    "credits_consumed_total",
    "Créditos debitados por tipo de movimiento",
    ["kind"],
)

# --------------------------------------------------------------------------
# Admisión y generación
# --------------------------------------------------------------------------
ADMISSION_DECISIONS_TOTAL = Counter(
    "admission_decisions_total",
    "Decisiones del controlador de admisión",
    ["tier", "allowed"],
)
GENERATION_OUTCOME_TOTAL = Counter(
    "generation_requests_total",
    "Solicitudes de generación por outcome (completed/failed/deduplicated/denied)",
    ["outcome"],
)
GENERATION_LATENCY_SECONDS = Histogram(
    "generation_upstream_latency_seconds",
    "Latencia de la llamada al proveedor upstream (segundos)",
    buckets=(0.5, 1, 2.5, 5, 10, 20, 30, 60, 120),
)


def record_admission(tier: str, allowed: bool) -> None:
    ADMISSION_DECISIONS_TOTAL.labels(tier=tier, allowed=str(allowed).lower()).inc()


def record_webhook_outcome(outcome: str, provider: str = "stripe") -> None:
    WEBHOOKS_OUTCOME_TOTAL.labels(provider=provider, outcome=outcome).inc()


__all__ = [
    "WEBHOOKS_VERIFIED_TOTAL",
    "WEBHOOKS_OUTCOME_TOTAL",
    "WEBHOOKS_PROCESSING_SECONDS",
    "CREDITS_APPLIED_TOTAL",
    "CREDITS_CONSUMED_TOTAL",
    "ADMISSION_DECISIONS_TOTAL",
    "GENERATION_OUTCOME_TOTAL",
    "GENERATION_LATENCY_SECONDS",
    "record_admission",
    "record_webhook_outcome",
]
# Fin del archivo backend/app/observability/metrics.py
