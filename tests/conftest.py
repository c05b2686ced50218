# backend/tests/conftest.py
# -*- coding: utf-8 -*-
"""
Config global de tests para WedAI.

- PYTHON_ENV=test ANTES de importar la app (settings sin bypass de firmas)
- Base de datos SQLite en archivo por test (tmp_path), construida con
  build_engine: varias conexiones ven los mismos datos y las transacciones
  se comportan como en PostgreSQL (SAVEPOINT anidado, escritores en serie)
- Las dependencias de sesión (get_async_session / get_session_factory) se
  sustituyen vía dependency_overrides
- El proveedor upstream se reemplaza por FakeImageProvider: ningún test
  sale a la red
"""

import asyncio
import os
import pathlib
import sys
from collections.abc import AsyncIterator
from typing import Optional

import pytest

# -----------------------------------------------------------------------------
# 0) Variables de entorno mínimas (antes de cualquier import de app.*)
# -----------------------------------------------------------------------------
os.environ["PYTHON_ENV"] = "test"
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_wedai")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-for-wedai-suite-please-change")
os.environ.setdefault("RATE_LIMIT_BACKEND", "sql")
os.environ.pop("PAYMENTS_ALLOW_INSECURE_WEBHOOKS", None)
os.environ.pop("GEMINI_API_KEY", None)

# -----------------------------------------------------------------------------
# 1) Asegura .../backend en sys.path
# -----------------------------------------------------------------------------
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
assert (BACKEND_ROOT / "app").exists(), f"'app' no existe en {BACKEND_ROOT}"

from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.generation.services.upstream import GeneratedContent
from app.shared.config.settings_generation import GenerationSettings, reset_generation_settings
from app.shared.config.settings_payments import reset_payments_settings
from app.shared.database.base import Base
from app.shared.database.database import build_engine, build_sessionmaker

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_settings_singletons():
    reset_payments_settings()
    reset_generation_settings()
    yield
    reset_payments_settings()
    reset_generation_settings()


# -----------------------------------------------------------------------------
# 2) Base de datos
# -----------------------------------------------------------------------------
@pytest.fixture
async def db_engine(tmp_path):
    import app.models  # noqa: F401  registra todas las tablas

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wedai_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(db_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# 3) Proveedor upstream falso
# -----------------------------------------------------------------------------
class FakeImageProvider:
    """
    Proveedor en memoria.

    - calls: número de llamadas recibidas
    - gate: si se fija, cada llamada espera a que el evento se active
    - errors: excepciones a lanzar en orden antes de responder con éxito
    """

    def __init__(self, errors: Optional[list] = None):
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.errors = list(errors or [])

    async def generate(self, image_data: str, mime_type: str, prompt: str) -> GeneratedContent:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return GeneratedContent(image_url=f"data:{mime_type};base64,PORTRAIT", text=f"Listo: {prompt[:20]}")


@pytest.fixture
def fake_provider() -> FakeImageProvider:
    return FakeImageProvider()


@pytest.fixture
def generation_settings() -> GenerationSettings:
    return GenerationSettings(
        dedup_poll_interval_seconds=0.05,
        dedup_wait_timeout_seconds=5.0,
        retry_max_attempts=2,
        retry_backoff_base_seconds=0.01,
    )


# -----------------------------------------------------------------------------
# 4) App FastAPI y cliente httpx (con ciclo de vida)
# -----------------------------------------------------------------------------
@pytest.fixture
def app(session_factory, fake_provider, generation_settings):
    """
    App principal con la sesión y el proveedor de pruebas.
    """
    from app.main import app as fastapi_app
    from app.modules.generation.routes import get_generation_service, get_generation_tracker
    from app.modules.generation.admission import AdmissionController, SqlCounterStore
    from app.modules.generation.services import GenerationService, GenerationTracker
    from app.modules.generation.services.retry import CancellationToken
    from app.shared.database.database import get_async_session, get_session_factory

    async def _session_override() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def _tracker() -> GenerationTracker:
        return GenerationTracker(
            session_factory=session_factory,
            poll_interval_seconds=generation_settings.dedup_poll_interval_seconds,
            wait_timeout_seconds=generation_settings.dedup_wait_timeout_seconds,
        )

    def _service() -> GenerationService:
        return GenerationService(
            session_factory=session_factory,
            admission=AdmissionController(
                store=SqlCounterStore(session_factory),
                settings=generation_settings,
            ),
            tracker=_tracker(),
            provider=fake_provider,
            settings=generation_settings,
            cancellation_token=CancellationToken(),
        )

    fastapi_app.dependency_overrides[get_async_session] = _session_override
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_generation_service] = _service
    fastapi_app.dependency_overrides[get_generation_tracker] = _tracker
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncIterator[AsyncClient]:
    """
    Cliente HTTP asíncrono contra la app con ASGITransport y gestión de
    startup/shutdown mediante asgi-lifespan.
    """
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
