"""
Test configuration and fixtures for Pumpkin Patch backend tests.
"""
import asyncio
import pytest
import pytest_asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.core.config import settings
from app.core.deps import Principal
from app.core.security import get_password_hash, create_access_token
from app.db.base import Base, get_db, get_session_maker
from app.models.user import User
from app.models.pumpkin import Pumpkin, PumpkinStatus
from app.models.vote import Vote
from app.services.live import ChangeBus

# 1x1 transparent PNG
PNG_DATA_URI = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Keep retry back-off short so conflict tests stay quick."""
    monkeypatch.setattr(settings, "TRANSACTION_RETRY_DELAY", 0.001)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    Create a test database engine.

    Uses a file-based SQLite DB so that concurrent transactions each get
    their own connection and contend on the real database lock.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine) -> async_sessionmaker:
    """Session factory bound to the test database."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session for direct reads."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client bound to the test database."""
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def bus() -> ChangeBus:
    """A private change bus, so tests never see each other's events."""
    return ChangeBus()


@pytest.fixture
def make_user(session_maker):
    """Factory that stores a user and returns it."""
    counter = {"n": 0}

    async def _make_user(email: Optional[str] = None, is_admin: bool = False) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"carver{counter['n']}@example.com",
            display_name=f"Carver {counter['n']}",
            password_hash=get_password_hash("TestPass123"),
            is_admin=is_admin,
        )
        async with session_maker() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_pumpkin(session_maker):
    """Factory that stores a pumpkin with the given status and returns it."""
    async def _make_pumpkin(
        owner: User,
        status: PumpkinStatus = PumpkinStatus.APPROVED,
        title: str = "Jack",
        submitted_at: Optional[datetime] = None,
        vote_count: int = 0,
    ) -> Pumpkin:
        now = datetime.now(timezone.utc)
        pumpkin = Pumpkin(
            title=title,
            description=f"{title} the pumpkin",
            carver_name=owner.display_name,
            image=PNG_DATA_URI,
            status=status,
            submitted_by_id=owner.id,
            submitted_at=submitted_at or now,
            approved_at=now if status == PumpkinStatus.APPROVED else None,
            vote_count=vote_count,
        )
        async with session_maker() as session:
            session.add(pumpkin)
            await session.commit()
        return pumpkin

    return _make_pumpkin


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    """Create a test user."""
    return await make_user("testuser@example.com")


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    """Create an administrator."""
    return await make_user("admin@example.com", is_admin=True)


@pytest.fixture
def principal(test_user: User) -> Principal:
    return Principal.from_user(test_user)


@pytest.fixture
def admin_principal(admin_user: User) -> Principal:
    return Principal.from_user(admin_user)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Create authorization headers."""
    return {"Authorization": f"Bearer {create_access_token(subject=test_user.id)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=admin_user.id)}"}


@pytest.fixture
def pumpkin_payload() -> dict:
    """A valid submission body."""
    return {
        "title": "Spooky",
        "description": "A grinning jack-o'-lantern",
        "carver_name": "Alice",
        "image": PNG_DATA_URI,
    }


@pytest.fixture
def ledger(session_maker):
    """
    Reader for the vote ledger and its caches.

    ``await ledger()`` returns (votes by user, tally by pumpkin, voted_for by user).
    """
    async def _read() -> tuple[dict, dict, dict]:
        async with session_maker() as session:
            votes = dict((await session.execute(select(Vote.user_id, Vote.pumpkin_id))).all())
            tallies = dict((await session.execute(select(Pumpkin.id, Pumpkin.vote_count))).all())
            pointers = dict((await session.execute(select(User.id, User.voted_for_id))).all())
        return votes, tallies, pointers

    return _read


@pytest.fixture
def assert_consistent(ledger):
    """Check that tallies and voted_for pointers agree with the votes table."""
    async def _check() -> None:
        votes, tallies, pointers = await ledger()
        expected = {pumpkin_id: 0 for pumpkin_id in tallies}
        for pumpkin_id in votes.values():
            expected[pumpkin_id] += 1
        assert tallies == expected
        assert all(count >= 0 for count in tallies.values())
        for user_id, voted_for in pointers.items():
            assert voted_for == votes.get(user_id)
        assert sum(tallies.values()) == len(votes)

    return _check


async def wait_until(predicate, timeout: float = 3.0) -> None:
    """Poll ``predicate`` until it holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def count_votes(session: AsyncSession) -> int:
    return (await session.execute(select(func.count(Vote.id)))).scalar_one()
