import os
import sys
import asyncio
from types import SimpleNamespace

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture(scope="session")
def session_loop():
    """Single event loop for all sync fixtures that need to run async DB code."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()

# A sufficiently long JWT secret for tests
TEST_JWT_SECRET = "x" * 32
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")
# Honour any externally provided DATABASE_URL (e.g. CI may set a file-backed DB)
# but fall back to an in-memory SQLite database so local runs remain isolated.
DEFAULT_DB_URL = os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Ensure all SQLAlchemy models are registered with the declarative Base so
# metadata.create_all creates every table when the test database is initialised.
from app import db, models  # noqa: E402
from app.main import app as api_app  # noqa: E402
from app.routers import auth, matches, scoring, tournaments  # noqa: E402
from app.routers.auth import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Ensure a strong JWT secret is present for all tests."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    yield


@pytest.fixture(autouse=True)
def reset_rate_limits():
    auth.limiter.reset()
    yield


@pytest.fixture(autouse=True, scope="session")
def ensure_database(session_loop):
    """Ensure the test database starts clean and honours DATABASE_URL."""

    mp = pytest.MonkeyPatch()
    desired_url = os.getenv("DATABASE_URL") or DEFAULT_DB_URL
    mp.setenv("DATABASE_URL", desired_url)

    if desired_url.startswith("sqlite") and ":memory:" not in desired_url:
        path = desired_url.split("///")[-1]
        if os.path.exists(path):
            os.remove(path)

    db.engine = None
    db.AsyncSessionLocal = None
    yield
    session_loop.run_until_complete(db.dispose_engine())
    mp.undo()


async def _reset_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.drop_all)
        await conn.run_sync(db.Base.metadata.create_all)


@pytest.fixture(autouse=True)
def reset_schema(request, session_loop):
    """Reset the schema before each test unless preserved via marker."""

    if request.node.get_closest_marker("preserve_schema"):
        yield
        return

    engine = db.engine or db.get_engine()
    session_loop.run_until_complete(_reset_schema(engine))
    yield


@pytest.fixture(autouse=True)
def broadcasts(monkeypatch):
    """Capture live updates instead of publishing them to Redis."""

    sent: list[tuple[str, dict]] = []

    async def fake_broadcast(mid, message):
        sent.append((mid, message))

    for module in (scoring, matches, tournaments):
        monkeypatch.setattr(module, "broadcast", fake_broadcast)
    return sent


@pytest.fixture
def seed(session_loop):
    """Persist ORM objects in order, committing after each group."""

    def _seed(*groups):
        async def _add():
            async with db.AsyncSessionLocal() as session:
                for group in groups:
                    session.add_all(group if isinstance(group, (list, tuple)) else [group])
                    await session.flush()
                await session.commit()

        db.get_engine()
        session_loop.run_until_complete(_add())

    return _seed


@pytest.fixture
def fetch(session_loop):
    """Run ``fn(session)`` against the test database and return its result."""

    def _fetch(fn):
        async def _run():
            async with db.AsyncSessionLocal() as session:
                return await fn(session)

        db.get_engine()
        return session_loop.run_until_complete(_run())

    return _fetch


@pytest.fixture
def auth_as():
    """Bearer headers for a seeded user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    with TestClient(api_app) as c:
        yield c


@pytest.fixture
def world(seed):
    """A tournament with two entries, pending matches and their staff.

    ``admin`` is a global admin, ``director`` administers the tournament,
    ``umpire`` officiates the first match only, ``roaming`` umpires the whole
    tournament, ``other_umpire`` officiates the second match and ``fan`` holds
    no role at all.
    """

    from app.models import (
        Match,
        MatchSlot,
        Tournament,
        TournamentEntry,
        User,
        UserPermission,
    )

    w = SimpleNamespace(
        tournament="t1",
        other_tournament="t2",
        match="m1",
        second_match="m2",
        foreign_match="m3",
        entry_a="e1",
        entry_b="e2",
        foreign_entry="e3",
        slot_a="m1-s1",
        slot_b="m1-s2",
    )
    users = ["admin", "director", "umpire", "roaming", "other_umpire", "fan"]
    seed(
        [User(id=u, username=u) for u in users],
        [
            Tournament(id=w.tournament, name="Spring Open", status="open"),
            Tournament(id=w.other_tournament, name="Autumn Cup", status="open"),
        ],
        [
            TournamentEntry(id=w.entry_a, tournament_id=w.tournament, team_name="Aces"),
            TournamentEntry(id=w.entry_b, tournament_id=w.tournament, team_name="Blockers"),
            TournamentEntry(
                id=w.foreign_entry, tournament_id=w.other_tournament, team_name="Comets"
            ),
        ],
        [
            Match(id=w.match, tournament_id=w.tournament, round_name="Final", status="pending", version=1),
            Match(id=w.second_match, tournament_id=w.tournament, round_name="Semi", status="pending", version=1),
            Match(id=w.foreign_match, tournament_id=w.other_tournament, round_name="Final", status="pending", version=1),
        ],
        [
            MatchSlot(id=w.slot_a, match_id=w.match, slot_number=1, source_type="entry", entry_id=w.entry_a),
            MatchSlot(id=w.slot_b, match_id=w.match, slot_number=2, source_type="entry", entry_id=w.entry_b),
        ],
        [
            UserPermission(id="p-admin", user_id="admin", role_type="admin"),
            UserPermission(
                id="p-director", user_id="director", role_type="tournament_admin",
                tournament_id=w.tournament,
            ),
            UserPermission(
                id="p-umpire", user_id="umpire", role_type="umpire",
                tournament_id=w.tournament, match_id=w.match,
            ),
            UserPermission(
                id="p-roaming", user_id="roaming", role_type="umpire",
                tournament_id=w.tournament,
            ),
            UserPermission(
                id="p-other", user_id="other_umpire", role_type="umpire",
                tournament_id=w.tournament, match_id=w.second_match,
            ),
        ],
    )
    return w
