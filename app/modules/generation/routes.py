# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/routes.py

Rutas del módulo de generación.

Endpoints:
- POST /generation/portraits            (también bajo /api)
- GET  /generation/requests/{request_id}

Respuestas de POST /generation/portraits:
- 200 {success, data, style, request_id, deduplicated, processing_time_ms, rate_limit}
- 400 body inválido
- 401 API key inválida
- 402 créditos insuficientes (solo con GENERATION_CREDIT_COST > 0)
- 429 límite alcanzado (+ Retry-After)
- 500 fallo upstream, interno o almacén no disponible

Autor: WedAI
Fecha: 2026-01-22
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.shared.database.database import get_async_session, get_session_factory
from app.shared.errors import BackingStoreUnavailable, InsufficientCredits
from app.shared.http_utils.request_meta import get_bearer_token, get_client_ip, get_user_agent
from app.shared.utils.jwt_utils import get_subject

from .admission import resolve_identity
from .schemas import GenerationRequestStatus, PortraitRequest, PortraitResponse, RateLimitInfo
from .services import (
    ApiKeyService,
    GenerationCommand,
    GenerationService,
    GenerationTracker,
    OutcomeStatus,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Missing required fields: imageData, imageType, prompt, style"

router = APIRouter(
    prefix="/generation",
    tags=["generation"],
)


# ---------------------------------------------------------------------------
# Dependencias
# ---------------------------------------------------------------------------

def get_generation_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> GenerationService:
    return GenerationService(session_factory=session_factory)


def get_generation_tracker(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> GenerationTracker:
    return GenerationTracker(session_factory=session_factory)


def get_api_key_service() -> ApiKeyService:
    return ApiKeyService()


def _error(status_code: int, content: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/portraits",
    response_model=PortraitResponse,
    status_code=status.HTTP_200_OK,
)
async def generate_portrait(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    service: GenerationService = Depends(get_generation_service),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    """
    Genera un retrato a partir de una foto y un prompt.

    Identidad para límites: cuenta (JWT `sub` o userId) > sessionId > IP.
    """
    try:
        body = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, {"error": "Malformed JSON body"})

    try:
        payload = PortraitRequest.model_validate(body)
    except PydanticValidationError as e:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            {"error": REQUIRED_FIELDS_MESSAGE, "details": e.errors(include_url=False, include_context=False, include_input=False)},
        )

    if payload.apiKey:
        api_key = await api_keys.validate(session, payload.apiKey)
        if api_key is None:
            return _error(status.HTTP_401_UNAUTHORIZED, {"error": "Invalid API key"})
        await session.commit()

    # El usuario del token tiene prioridad sobre el userId del body
    user_id = get_subject(get_bearer_token(request)) or payload.userId
    identity = resolve_identity(user_id, payload.sessionId, get_client_ip(request))

    command = GenerationCommand(
        identity=identity,
        image_data=payload.imageData,
        image_type=payload.imageType,
        prompt=payload.prompt,
        style=payload.style,
        user_agent=get_user_agent(request),
    )

    try:
        outcome = await service.generate(command)
    except InsufficientCredits as e:
        return _error(
            status.HTTP_402_PAYMENT_REQUIRED,
            {"error": "Insufficient credits", "credits": {"required": e.required, "available": e.available}},
        )
    except BackingStoreUnavailable as e:
        logger.error("Generation unavailable: %s", e.message)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": "Service temporarily unavailable", "details": e.message},
        )

    decision = outcome.decision

    if outcome.status == OutcomeStatus.DENIED:
        return _error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            {"error": "Rate limit exceeded", "rate_limit": decision.rate_limit_payload()},
            headers={"Retry-After": str(decision.retry_after_seconds(datetime.now(timezone.utc)))},
        )

    if outcome.status == OutcomeStatus.FAILED:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {
                "error": "Portrait generation failed",
                "details": outcome.error,
                "processing_time_ms": outcome.processing_time_ms,
            },
        )

    return PortraitResponse(
        data=outcome.data or {},
        style=payload.style,
        request_id=outcome.request_id,
        deduplicated=outcome.deduplicated,
        processing_time_ms=outcome.processing_time_ms,
        rate_limit=RateLimitInfo(
            hourly_remaining=decision.hourly_remaining,
            daily_remaining=decision.daily_remaining,
            reset_at=decision.reset_at,
        ),
    )


@router.get(
    "/requests/{request_id}",
    response_model=GenerationRequestStatus,
)
async def get_generation_request(
    request_id: str,
    tracker: GenerationTracker = Depends(get_generation_tracker),
) -> GenerationRequestStatus:
    """Estado de una solicitud de generación."""
    found = await tracker.get(request_id)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation request not found",
        )
    return GenerationRequestStatus(
        id=found.id,
        status=found.status.value,
        styles=found.styles or [],
        credits_consumed=found.credits_consumed,
        processing_time_ms=found.processing_time_ms,
        error_message=found.error_message,
        created_at=found.created_at,
        completed_at=found.completed_at,
    )


__all__ = [
    "router",
    "get_generation_service",
    "get_generation_tracker",
    "get_api_key_service",
]
