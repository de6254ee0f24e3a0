"""Shared test fixtures.

Tests run against a throwaway SQLite database per test (aiosqlite) and the
in-process presence registry. Redis is never initialised: rate limiting
fails open and readiness reports it as not initialised.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.auth.jwt import create_access_token, reset_keys
from nbhd.config import get_settings
from nbhd.database import close_db, get_engine, get_session_factory, init_db
from nbhd.db.base import Base
from nbhd.db.helpers import utcnow
from nbhd.db.models import User
from nbhd.gamification.seed import seed_badges
from nbhd.main import create_app
from nbhd.ws.presence import LocalPresenceRegistry, set_presence


class FakeChannel:
    """Presence channel that records what would have been pushed."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:  # noqa: ANN401
        self.sent.append((event, data))

    def events(self, name: str) -> list[Any]:
        return [data for event, data in self.sent if event == name]


@pytest.fixture(scope="session", autouse=True)
def jwt_keys(tmp_path_factory: pytest.TempPathFactory) -> tuple[str, str]:
    """Generate an RSA key pair for the whole run."""
    key_dir = tmp_path_factory.mktemp("keys")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = key_dir / "jwt_private.pem"
    public_path = key_dir / "jwt_public.pem"
    private_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    os.environ["NBHD_JWT_PRIVATE_KEY_PATH"] = str(private_path)
    os.environ["NBHD_JWT_PUBLIC_KEY_PATH"] = str(public_path)
    get_settings.cache_clear()
    reset_keys()
    return str(private_path), str(public_path)


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[None, None]:
    """Fresh schema with seeded badges in a per-test SQLite file."""
    monkeypatch.setenv("NBHD_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    get_settings.cache_clear()

    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_badges(session)

    yield

    await close_db()
    get_settings.cache_clear()


@pytest.fixture
def presence() -> Generator[LocalPresenceRegistry, None, None]:
    """Process-wide presence registry, reset for every test."""
    registry = LocalPresenceRegistry()
    set_presence(registry)
    yield registry
    set_presence(None)


@pytest_asyncio.fixture
async def db(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: None, presence: LocalPresenceRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to a freshly built app."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(database: None) -> Callable[..., Awaitable[User]]:
    """Create and commit a user."""

    async def _make(username: str, display_name: str | None = None) -> User:
        async with get_session_factory()() as session:
            user = User(
                username=username,
                display_name=display_name or username.title(),
                verification_status="unverified",
                created_at=utcnow(),
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest_asyncio.fixture
async def alice(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user("alice")


@pytest_asyncio.fixture
async def bob(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user("bob")


@pytest_asyncio.fixture
async def carol(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user("carol")


@pytest.fixture
def auth() -> Callable[[User], dict[str, str]]:
    """Authorization headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.username)}"}

    return _headers


@pytest.fixture
def online(presence: LocalPresenceRegistry) -> Callable[[User], Awaitable[FakeChannel]]:
    """Mark a user as connected and return the channel their pushes land in."""

    async def _connect(user: User) -> FakeChannel:
        channel = FakeChannel()
        await presence.register(user.id, channel)
        return channel

    return _connect
