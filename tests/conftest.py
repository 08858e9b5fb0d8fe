"""Pytest configuration."""

import os

# Ensure test environment
os.environ.setdefault("ML_DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("ML_DEBUG", "true")
os.environ.setdefault("ML_ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("ML_REFRESH_TOKEN_SECRET", "test-refresh-secret")

import pytest
from httpx import ASGITransport, AsyncClient

from modloot.api.deps import get_email_client, get_geo_resolver
from modloot.core.email import EmailResult
from modloot.core.geo import GeoInfo
from modloot.main import app
from modloot.middleware.auth import create_access_token, hash_password
from modloot.models.database import _get_engine, dispose_engine, session_scope
from modloot.models.tables import Base, User

GHANA_IP = "41.66.0.10"
KENYA_IP = "41.80.0.10"
US_IP = "8.8.8.8"


class FakeGeoResolver:
    """Static IP -> location table."""

    def __init__(self):
        self.table = {
            GHANA_IP: GeoInfo(country="GH", city="Accra", region="AA", timezone="Africa/Accra", found=True),
            KENYA_IP: GeoInfo(country="KE", city="Nairobi", region="30", timezone="Africa/Nairobi", found=True),
            US_IP: GeoInfo(country="US", city="Mountain View", region="CA",
                           timezone="America/Los_Angeles", found=True),
        }

    def lookup(self, ip: str) -> GeoInfo:
        return self.table.get(ip, GeoInfo.unknown())


class FakeEmailClient:
    """Records sends instead of calling the provider."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.error = None

    @property
    def configured(self) -> bool:
        return True

    async def send(self, to, message):
        if self.error is not None:
            raise self.error
        if self.fail:
            return EmailResult(success=False, error="provider down")
        self.sent.append((to, message))
        return EmailResult(success=True, message_id=f"msg_{len(self.sent)}")


@pytest.fixture
async def db():
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await dispose_engine()


@pytest.fixture
def geo():
    return FakeGeoResolver()


@pytest.fixture
def mailer():
    return FakeEmailClient()


@pytest.fixture
async def client(db, geo, mailer):
    app.dependency_overrides[get_geo_resolver] = lambda: geo
    app.dependency_overrides[get_email_client] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(email: str, is_admin: bool) -> User:
    async with session_scope() as session:
        user = User(email=email, name="Test", password_hash=hash_password("s3cret-pass"), is_admin=is_admin)
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def admin_headers(db):
    user = await _make_user("admin@modloot.com", is_admin=True)
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
async def user_headers(db):
    user = await _make_user("user@modloot.com", is_admin=False)
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def catalog_payload(**overrides) -> dict:
    payload = {
        "title": "Spotify Premium",
        "merchant": "Spotify",
        "description": "Three months free",
        "image": "https://cdn.modloot.test/spotify.png",
        "logo": "https://cdn.modloot.test/spotify-logo.png",
        "offer": "3 months",
        "itemsLeft": 10,
        "verified": True,
        "action": {"actionLink": "https://go.modloot.test/spotify", "actionProvider": "og_ads"},
    }
    payload.update(overrides)
    return payload
