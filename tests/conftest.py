import os

# Settings are read at import time, so the test environment goes first
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import time
import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from main import app
from core.cache import CacheClient
from core.config import settings
from core.database import Base
from models.roles import Role
from models.users import User
from services.role_service import RoleService
from utils.deps import get_db, get_cache
from utils.hashing import get_password_hash

# SYNC SQLite for testing (matches sync service layer)
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False}
)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

TEST_PASSWORD = "TestPassword123!"


class InMemoryRedis:
    """
    Test double for the handful of redis.Redis calls CacheClient makes.
    Expiry (`ex`) is honoured against time.monotonic.
    """

    def __init__(self):
        self.store = {}

    def ping(self):
        return True

    def get(self, key):
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    def set(self, key, value, ex=None):
        expires_at = time.monotonic() + ex if ex else None
        self.store[key] = (value, expires_at)
        return True

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def close(self):
        pass


class UnreachableRedis:
    """Behaves like a client whose server has gone away."""

    def ping(self):
        raise RedisConnectionError("Connection refused")

    def get(self, key):
        raise RedisConnectionError("Connection refused")

    def set(self, key, value, ex=None):
        raise RedisConnectionError("Connection refused")

    def delete(self, key):
        raise RedisConnectionError("Connection refused")

    def close(self):
        pass


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    Creates a fresh, empty database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_double() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def cache(redis_double) -> CacheClient:
    cache = CacheClient(client=redis_double)
    cache.connect()
    return cache


@pytest.fixture
def down_cache() -> CacheClient:
    cache = CacheClient(client=UnreachableRedis())
    cache.connect()
    return cache


@pytest.fixture
async def client(session: Session, cache: CacheClient):
    """
    Yields an HTTP client that talks to the app with the test database and
    the in-memory cache.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass  # Session cleanup handled by session fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def default_role(session: Session) -> Role:
    """Seeds permissions plus the default and admin roles."""
    return RoleService.ensure_default_roles(session)


@pytest.fixture
def admin_role(session: Session, default_role: Role) -> Role:
    return session.query(Role).filter(Role.name == settings.ADMIN_ROLE).one()


@pytest.fixture
def registered_user(session: Session, default_role: Role) -> User:
    user = User(
        email="user@example.com",
        username="user",
        first_name="Test",
        last_name="User",
        hashed_password=get_password_hash(TEST_PASSWORD),
        role_id=default_role.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_user(session: Session, admin_role: Role) -> User:
    user = User(
        email="admin@example.com",
        username="admin",
        first_name="Admin",
        last_name="User",
        hashed_password=get_password_hash(TEST_PASSWORD),
        role_id=admin_role.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
async def user_session(client, registered_user) -> dict:
    """Token pair from logging the registered user in."""
    response = await client.post("/auth/login", json={
        "email": registered_user.email,
        "password": TEST_PASSWORD
    })
    assert response.status_code == 200
    return response.json()


@pytest.fixture
async def user_headers(user_session) -> dict:
    return {"Authorization": f"Bearer {user_session['token']}"}


@pytest.fixture
async def admin_headers(client, admin_user) -> dict:
    response = await client.post("/auth/login", json={
        "email": admin_user.email,
        "password": TEST_PASSWORD
    })
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
