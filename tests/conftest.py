import os

# Must be set before spoonfeed.config is imported
os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite://")
os.environ["TRACING_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from spoonfeed.clients.places_client import PlacesClient, get_places_client
from spoonfeed.clients.redis_client import get_session_store
from spoonfeed.clients.storage_client import ObjectStorage, get_storage
from spoonfeed.database import Base, get_db
from spoonfeed.main import app
from spoonfeed.models import Restaurant, Review, User
from spoonfeed.schemas import PlaceDetails


class FakeStorage(ObjectStorage):
    """In-memory object store; can be told to fail on the Nth upload."""

    def __init__(self, fail_on_upload: Optional[int] = None) -> None:
        super().__init__(s3=None, bucket="reviews", public_base_url="http://media.test/reviews")
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.uploads = 0
        self.fail_on_upload = fail_on_upload

    def upload(self, key, data, content_type):
        self.uploads += 1
        if self.fail_on_upload is not None and self.uploads == self.fail_on_upload:
            raise ConnectionError("storage unavailable")
        self.objects[key] = data
        return self.public_url(key)

    def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)


class FakeSessionStore:
    def __init__(self) -> None:
        self.tokens: dict[str, str] = {}
        self._n = 0

    async def create(self, user_id):
        self._n += 1
        token = f"refresh-{self._n}"
        self.tokens[token] = user_id
        return token

    async def get_user_id(self, token):
        return self.tokens.get(token)

    async def revoke(self, token):
        self.tokens.pop(token, None)

    async def rotate(self, token):
        user_id = self.tokens.pop(token, None)
        if user_id is None:
            return None
        return user_id, await self.create(user_id)


class FakePlacesClient(PlacesClient):
    def __init__(self, places: Optional[list[PlaceDetails]] = None, api_key: str = "test-key") -> None:
        super().__init__(api_key=api_key)
        self.places = places or []
        self.calls: list[tuple] = []

    async def geocode(self, location):
        self.calls.append(("geocode", location))
        if location == "nowhere":
            return None
        return 51.5237, -0.0754

    async def search_text(self, query, latitude, longitude, cuisine=None):
        self.calls.append(("search_text", query, latitude, longitude, cuisine))
        return list(self.places)

    async def fetch_photo(self, name):
        self.calls.append(("fetch_photo", name))
        return f"jpeg:{name}".encode(), "image/jpeg"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def sessions():
    return FakeSessionStore()


@pytest.fixture
def places():
    return FakePlacesClient()


@pytest.fixture
async def client(session_factory, storage, sessions, places):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_places_client] = lambda: places

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ── helpers ────────────────────────────────────────────────────────────────

async def sign_up(client, email: str, password: str = "secret123") -> tuple[dict, dict]:
    """Create an account; return (auth headers, session payload)."""
    resp = await client.post("/auth/sign-up", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body


@pytest.fixture
def make_user(client):
    async def _make(email: str):
        return await sign_up(client, email)
    return _make


async def create_restaurant(session_factory, name: str = "Dishoom", **fields) -> Restaurant:
    async with session_factory() as session:
        restaurant = Restaurant(
            name=name,
            google_place_id=fields.pop("google_place_id", f"place-{name.lower().replace(' ', '-')}"),
            address=fields.pop("address", "7 Boundary St, London"),
            **fields,
        )
        session.add(restaurant)
        await session.commit()
        return restaurant


async def seed_reviews(
    session_factory,
    user_id: str,
    restaurant_id: str,
    count: int,
    start: Optional[datetime] = None,
    same_timestamp: bool = False,
) -> list[str]:
    """Insert `count` reviews one minute apart (newest first); return their ids."""
    start = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    ids = []
    async with session_factory() as session:
        for i in range(count):
            created = start if same_timestamp else start - timedelta(minutes=i)
            review = Review(
                user_id=user_id,
                restaurant_id=restaurant_id,
                rating=(i % 5) + 1,
                text=f"review number {i}",
                tag="elite",
                media=[],
                created_at=created,
                updated_at=created,
            )
            session.add(review)
            await session.flush()
            ids.append(review.id)
        await session.commit()
    return ids


async def make_premium(session_factory, user_id: str) -> None:
    async with session_factory() as session:
        user = await session.get(User, user_id)
        user.is_premium = True
        await session.commit()
