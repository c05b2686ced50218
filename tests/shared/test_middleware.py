# -*- coding: utf-8 -*-
"""
Tests de JSONExceptionMiddleware sobre una app mínima.

Autor: WedAI
Fecha: 2026-01-28
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.shared.errors import BackingStoreUnavailable
from app.shared.middleware import JSONExceptionMiddleware, RequestLoggingMiddleware

pytestmark = pytest.mark.anyio


@pytest.fixture
def mini_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(JSONExceptionMiddleware)

    @app.get("/store-down")
    async def store_down():
        raise BackingStoreUnavailable("admission check timed out")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("unexpected")

    return app


async def _get(app, path):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        return await client.get(path, headers={"X-Request-ID": "rid-1"})


async def test_backing_store_unavailable_maps_to_500(mini_app):
    resp = await _get(mini_app, "/store-down")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Service temporarily unavailable"
    assert body["details"] == "admission check timed out"
    assert body["error_code"] == "BACKING_STORE_UNAVAILABLE"
    assert body["request_id"] == "rid-1"
    assert resp.headers["X-Request-ID"] == "rid-1"


async def test_unhandled_exception_maps_to_500(mini_app):
    resp = await _get(mini_app, "/boom")

    assert resp.status_code == 500
    assert resp.json()["error_code"] == "INTERNAL_SERVER_ERROR"
    assert resp.json()["details"] == "RuntimeError"
