import pytest
import httpx
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qrpay.config import settings
from qrpay.db.init_db import get_db
from qrpay.db.models import Base
from qrpay.main import app
from qrpay.mocks.payment_gateway import mock_gateway


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "api: mark test as exercising the HTTP surface"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-lifecycle-related"
    )


T0 = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture()
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
async def file_session_factory(tmp_path):
    """Sessions on a file database, one connection each, for concurrent writers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'qrpay.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def clock(monkeypatch):
    """Controllable 'now' for code paths that don't take a now= argument."""

    class Clock:
        def __init__(self):
            self.now = T0

        def __call__(self):
            return self.now

        def advance(self, **kwargs):
            self.now = self.now + timedelta(**kwargs)

    clock = Clock()
    monkeypatch.setattr("qrpay.services.qr_payment_service.utcnow", clock)
    return clock


@pytest.fixture()
async def client(session_factory):
    """HTTP client against the app, with get_db bound to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    mock_gateway.reset()


@pytest.fixture()
def webhook_secret(monkeypatch):
    secret = "test_webhook_secret"
    monkeypatch.setattr(settings, "gateway_webhook_secret", secret)
    return secret
