from __future__ import annotations
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["TASK_QUEUE_ENABLED"] = "0"
os.environ["CRON_SECRET"] = "test-cron-secret"

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from challenge_league.db import Base, get_session
from challenge_league.main import app
from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.prompt import Prompt, SCHEDULED
from challenge_league.models.user import User
import challenge_league.models.response  # noqa: F401
import challenge_league.models.vote  # noqa: F401
import challenge_league.models.notification  # noqa: F401
import challenge_league.models.comment  # noqa: F401

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file, for racing two writers."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'league.db'}", connect_args={"timeout": 15})
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, expire_on_commit=False)
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def client(session_factory):
    async def _override():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _override
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def register_login(ac: httpx.AsyncClient) -> tuple[dict, dict]:
    """Register a fresh user; returns (auth headers, user body)."""
    email = f"user-{uuid.uuid4()}@ex.com"
    username = f"user_{uuid.uuid4().hex[:8]}"
    r = await ac.post("/auth/register", json={"email": email, "username": username, "password": "supersecret"})
    assert r.status_code == 201, r.text
    body = r.json()
    r = await ac.post("/auth/login", json={"email": email, "password": "supersecret"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access']}"}, body


async def make_user(session: AsyncSession, name: str | None = None) -> User:
    name = name or f"u_{uuid.uuid4().hex[:8]}"
    user = User(email=f"{name}@ex.com", username=name, password_hash="x")
    session.add(user)
    await session.flush()
    return user


async def make_league(session: AsyncSession, owner: User, members: list[User] = (), started: bool = True, **kw) -> League:
    league = League(owner_id=owner.id, name="Weekly Photos", invite_code=uuid.uuid4().hex[:8].upper(), is_started=started, **kw)
    session.add(league)
    await session.flush()
    for u in [owner, *members]:
        session.add(LeagueMembership(league_id=league.id, user_id=u.id))
    await session.flush()
    return league


async def add_prompts(session: AsyncSession, league: League, *texts: str) -> list[Prompt]:
    prompts = []
    for i, text in enumerate(texts, start=1):
        p = Prompt(league_id=league.id, text=text, status=SCHEDULED, queue_order=i, created_at=T0 - timedelta(days=30) + timedelta(minutes=i))
        session.add(p)
        prompts.append(p)
    await session.flush()
    return prompts
