# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/upstream.py

Cliente del proveedor de generación de imágenes (Gemini, REST vía httpx).

Contrato:
- generate(image_data, mime_type, prompt) -> GeneratedContent
- Cualquier fallo se envuelve en UpstreamProviderError(message, status_code, retryable)
- Respuesta sin imagen -> no reintentable (el modelo rechazó el contenido)

Timeouts explícitos: connect=GENERATION_UPSTREAM_CONNECT_TIMEOUT_SECONDS,
read=GENERATION_UPSTREAM_TIMEOUT_SECONDS.

Autor: WedAI
Fecha: 2026-01-21
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from app.shared.config.settings_generation import GenerationSettings, get_generation_settings
from app.shared.errors import UpstreamProviderError

from .retry import RETRYABLE_STATUS

logger = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "API did not return an image. It may have considered the prompt unsafe."


@dataclass
class GeneratedContent:
    image_url: str
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"imageUrl": self.image_url, "text": self.text}


class ImageProvider(Protocol):
    async def generate(self, image_data: str, mime_type: str, prompt: str) -> GeneratedContent: ...


def extract_content(payload: Dict[str, Any]) -> GeneratedContent:
    """
    Toma la primera candidata: la parte inlineData es la imagen (data URL) y
    la última parte de texto es el comentario del modelo.
    """
    image_url: Optional[str] = None
    text: Optional[str] = None

    candidates = payload.get("candidates") or []
    if candidates:
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        for part in parts:
            if part.get("text"):
                text = part["text"]
            elif part.get("inlineData"):
                inline = part["inlineData"]
                image_url = f"data:{inline.get('mimeType', 'image/png')};base64,{inline.get('data', '')}"

    if not image_url:
        raise UpstreamProviderError(NO_IMAGE_MESSAGE, retryable=False)

    return GeneratedContent(image_url=image_url, text=text)


class GeminiImageProvider:
    """Proveedor upstream sobre la API generateContent de Gemini."""

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_generation_settings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(
                self.settings.upstream_timeout_seconds,
                connect=self.settings.upstream_connect_timeout_seconds,
            )
            limits = httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=30.0)
            self._client = httpx.AsyncClient(timeout=timeout, limits=limits)
            logger.info(
                "Upstream HTTP client created: connect=%.0fs read=%.0fs",
                self.settings.upstream_connect_timeout_seconds,
                self.settings.upstream_timeout_seconds,
            )
        return self._client

    @property
    def endpoint(self) -> str:
        base = self.settings.upstream_base_url.rstrip("/")
        return f"{base}/models/{self.settings.upstream_model}:generateContent"

    async def generate(self, image_data: str, mime_type: str, prompt: str) -> GeneratedContent:
        api_key = self.settings.upstream_api_key
        if api_key is None or not api_key.get_secret_value():
            raise UpstreamProviderError("GEMINI_API_KEY not configured", retryable=False)

        body = {
            "contents": [{
                "parts": [
                    {"inlineData": {"data": image_data, "mimeType": mime_type}},
                    {"text": prompt},
                ],
            }],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }

        try:
            response = await self._get_client().post(
                self.endpoint,
                json=body,
                headers={"x-goog-api-key": api_key.get_secret_value()},
            )
        except httpx.TimeoutException as e:
            raise UpstreamProviderError(f"Gemini API timeout: {type(e).__name__}", retryable=True) from e
        except httpx.TransportError as e:
            raise UpstreamProviderError(f"Gemini API transport error: {e}", retryable=True) from e

        if response.status_code >= 400:
            logger.error("Gemini API error: status=%d body=%s", response.status_code, response.text[:500])
            raise UpstreamProviderError(
                f"Gemini API error: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamProviderError("Gemini API returned invalid JSON", status_code=response.status_code) from e

        return extract_content(payload)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# Singleton del proceso (cerrado en el shutdown del lifespan)
_provider: Optional[GeminiImageProvider] = None


def get_upstream_provider() -> GeminiImageProvider:
    global _provider
    if _provider is None:
        _provider = GeminiImageProvider()
    return _provider


async def close_upstream_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


__all__ = [
    "GeneratedContent",
    "ImageProvider",
    "GeminiImageProvider",
    "extract_content",
    "get_upstream_provider",
    "close_upstream_provider",
    "NO_IMAGE_MESSAGE",
]
