"""Shared fixtures: the fake task API served in-process over ASGI."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from fake_api import BASE_URL, TOKEN, FakeBackend, create_fake_app
from taskboard_sync.engine import SyncSession
from taskboard_sync.model import UserRef


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def app(backend: FakeBackend) -> FastAPI:
    return create_fake_app(backend)


@pytest.fixture
async def http(app: FastAPI):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as c:
        yield c


@pytest.fixture
async def sync(http: AsyncClient):
    session = SyncSession(http=http)
    yield session
    await session.aclose()


@pytest.fixture
async def authed(sync: SyncSession) -> SyncSession:
    sync.session.restore(TOKEN, UserRef(id="u1", username="ada"))
    return sync
