# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/__init__.py

Servicios del módulo de generación.

Autor: WedAI
Fecha: 2026-01-21
"""

from .retry import CancellationToken, OperationCancelled, RetryPolicy
from .tracker import GenerationTracker, SubmitResult, compute_content_hash
from .upstream import GeminiImageProvider, GeneratedContent, get_upstream_provider, close_upstream_provider
from .api_keys import ApiKeyService, hash_api_key
from .generation_service import (
    GenerationCommand,
    GenerationOutcome,
    GenerationService,
    OutcomeStatus,
    drain_background_tasks,
    reset_shutdown_token,
)

__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "RetryPolicy",
    "GenerationTracker",
    "SubmitResult",
    "compute_content_hash",
    "GeminiImageProvider",
    "GeneratedContent",
    "get_upstream_provider",
    "close_upstream_provider",
    "ApiKeyService",
    "hash_api_key",
    "GenerationCommand",
    "GenerationOutcome",
    "GenerationService",
    "OutcomeStatus",
    "drain_background_tasks",
    "reset_shutdown_token",
]
