# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/schemas.py

Esquemas Pydantic del módulo de generación.

Los nombres de campo del request siguen el contrato del cliente web
(camelCase: imageData, imageType, ...).

Autor: WedAI
Fecha: 2026-01-22
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PortraitRequest(BaseModel):
    """
    Request de generación de retrato.
    """

    model_config = ConfigDict(extra="ignore")

    imageData: str = Field(min_length=1, description="Imagen en base64 (sin prefijo data:)")
    imageType: str = Field(min_length=1, max_length=100, description="MIME type de la imagen")
    prompt: str = Field(min_length=1, max_length=10_000)
    style: str = Field(min_length=1, max_length=100)
    userId: Optional[str] = Field(default=None, max_length=64)
    sessionId: Optional[str] = Field(default=None, max_length=255)
    apiKey: Optional[str] = Field(default=None, max_length=255)

    @field_validator("imageType")
    @classmethod
    def _image_mime(cls, v: str) -> str:
        if not v.startswith("image/"):
            raise ValueError("imageType must be an image MIME type")
        return v


class RateLimitInfo(BaseModel):
    hourly_remaining: int
    daily_remaining: int
    reset_at: datetime


class PortraitResponse(BaseModel):
    """Respuesta 200 de una generación completada."""

    success: bool = True
    data: Dict[str, Any]
    style: str
    request_id: Optional[str] = None
    deduplicated: bool = False
    processing_time_ms: int
    rate_limit: RateLimitInfo


class GenerationRequestStatus(BaseModel):
    """Estado de una solicitud rastreada (GET /generation/requests/{id})."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    styles: list[str] = Field(default_factory=list)
    credits_consumed: int = 0
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


__all__ = [
    "PortraitRequest",
    "RateLimitInfo",
    "PortraitResponse",
    "GenerationRequestStatus",
]
