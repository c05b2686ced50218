# -*- coding: utf-8 -*-
"""
backend/app/modules/generation/services/retry.py

Política de reintentos con backoff exponencial para llamadas al proveedor
upstream.

- Solo se reintentan fallos transitorios: timeouts, errores de transporte
  y respuestas 429/5xx (UpstreamProviderError.retryable=True).
- Un CancellationToken detiene nuevos intentos e interrumpe el sleep de
  backoff (p. ej. durante el apagado del servicio).

Uso:
    policy = RetryPolicy(max_attempts=2, backoff_base=1.0)
    result = await policy.run(lambda: provider.generate(...), token=token)

Autor: WedAI
Fecha: 2026-01-21
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from app.shared.errors import UpstreamProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class OperationCancelled(Exception):
    """La operación se canceló vía CancellationToken."""


class CancellationToken:
    """
    Señal cooperativa de cancelación (asyncio.Event).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("operation cancelled")

    async def sleep(self, seconds: float) -> None:
        """Duerme `seconds` o hasta que se cancele (lo que ocurra primero)."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise OperationCancelled("operation cancelled during backoff")


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, UpstreamProviderError):
        return exc.retryable
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


class RetryPolicy:
    """
    Reintentos acotados con backoff exponencial y jitter.

    Args:
        max_attempts: intentos totales (>= 1)
        backoff_base: delay del primer reintento en segundos
        backoff_factor: multiplicador del delay
        max_delay: tope del delay
    """

    def __init__(
        self,
        max_attempts: int = 2,
        backoff_base: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        jitter: float = 0.2,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts debe ser >= 1, recibido: {max_attempts}")
        if backoff_base < 0:
            raise ValueError(f"backoff_base debe ser >= 0, recibido: {backoff_base}")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        """Delay antes del intento `attempt + 1` (attempt empieza en 1)."""
        delay = min(self.backoff_base * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, self.jitter * delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Ejecuta `operation` con reintentos.

        Raises:
            OperationCancelled: el token se canceló antes de un intento o en el backoff
            La última excepción de `operation` si no es transitoria o se agotaron los intentos
        """
        for attempt in range(1, self.max_attempts + 1):
            if token is not None:
                token.raise_if_cancelled()
            try:
                return await operation()
            except Exception as e:
                if not is_transient(e) or attempt >= self.max_attempts:
                    if attempt > 1:
                        logger.error("Upstream call failed after %d attempts: %s", attempt, e)
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    "Transient upstream error (%s) on attempt %d/%d, retrying in %.1fs",
                    type(e).__name__, attempt, self.max_attempts, delay,
                )
                if token is not None:
                    await token.sleep(delay)
                else:
                    await asyncio.sleep(delay)

        # max_attempts >= 1: el bucle siempre retorna o lanza
        raise RuntimeError("retry loop exited without result")


__all__ = [
    "RetryPolicy",
    "CancellationToken",
    "OperationCancelled",
    "RETRYABLE_STATUS",
    "is_transient",
]
