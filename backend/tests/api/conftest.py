"""API test fixtures — app factory wired to the fake Mongo client + httpx client.

Invariants:
    - Every test gets its own app and ConnectionManager (no shared state)
    - probe_router stands in for the auth collaborator and records each call
"""

from contextlib import asynccontextmanager

import pytest
from fastapi import APIRouter, Depends
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from app.api.dependencies import get_database
from app.infrastructure.database import ConnectionManager
from app.main import create_app


class Credentials(BaseModel):
    email: str
    password: str


@pytest.fixture
def route_calls():
    return []


@pytest.fixture
def probe_router(route_calls):
    router = APIRouter()

    @router.get("/probe")
    async def probe():
        route_calls.append("probe")
        return {"ok": True}

    @router.post("/register")
    async def register(payload: dict):
        route_calls.append("register")
        return {"received": {k: len(str(v)) for k, v in payload.items()}}

    @router.post("/login")
    async def login(credentials: Credentials):
        route_calls.append("login")
        return {"email": credentials.email}

    @router.get("/boom")
    async def boom():
        route_calls.append("boom")
        raise RuntimeError("boom")

    @router.get("/db")
    async def db_name(db=Depends(get_database)):
        return {"database": db.name}

    return router


@pytest.fixture
def build_app(make_settings, fake_mongo, probe_router):
    def _build(settings=None, manager=None, **kwargs):
        settings = settings or make_settings()
        manager = manager or ConnectionManager.from_settings(
            settings, client_factory=fake_mongo,
        )
        kwargs.setdefault("auth_router", probe_router)
        return create_app(settings, connection_manager=manager, **kwargs)

    return _build


@pytest.fixture
def client_for():
    @asynccontextmanager
    async def _client(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test",
        ) as c:
            yield c

    return _client


@pytest.fixture
async def client(build_app, client_for):
    async with client_for(build_app()) as c:
        yield c
