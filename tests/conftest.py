# tests/conftest.py
from datetime import datetime, time, timedelta

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from wasteroute.core.clock import today, utcnow
from wasteroute.core.security import create_token, hash_password
from wasteroute.deps import get_repo
from wasteroute.main import app
from wasteroute.repos.inmemory import InMemoryRepo


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


@pytest.fixture
def repo():
    return InMemoryRepo()


@pytest.fixture
async def client(repo):
    app.dependency_overrides[get_repo] = lambda: repo
    try:
        async with LifespanManager(app):
            transport = ASGITransport(app=app, raise_app_exceptions=True)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(repo):
    """Insert a user straight into the store; returns (user, auth headers)."""
    counter = {"n": 0}

    async def _make(role: str, name: str = None):
        counter["n"] += 1
        name = name or f"{role}{counter['n']}"
        user = await repo.insert_user({
            "email": f"{name}@example.com",
            "name": name,
            "role": role,
            "password_hash": hash_password("secret123"),
            "created_at": utcnow(),
        })
        headers = {"Authorization": f"Bearer {create_token(user['_id'], role)}"}
        return user, headers

    return _make


def future_day(days: int = 7):
    return today() + timedelta(days=days)


def future_dt(days: int = 7) -> str:
    return datetime.combine(future_day(days), time(9, 0)).isoformat()


def pickup_body(address: str = "12 Recycling Lane", lat: float = None, lng: float = None, **extra):
    location = {"address": address}
    if lat is not None:
        location["coordinates"] = {"lat": lat, "lng": lng}
    return {"waste_category": "recyclable", "pickup_location": location, **extra}
