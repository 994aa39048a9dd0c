import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from app import db
from app.exceptions import MatchNotActive
from app.locks import match_locks
from app.models import MatchScore, Point
from app.routers.scoring import add_point, transition_match
from app.schemas import PointIn
from app.services.lifecycle import MatchAction
from app.time_utils import coerce_utc


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def _with_session(fn):
    async with db.AsyncSessionLocal() as session:
        return await fn(session)


@pytest.mark.anyio
async def test_no_point_is_accepted_after_finish(world):
    director = SimpleNamespace(id="director")
    await _with_session(
        lambda s: transition_match(world.match, MatchAction.START, s, director)
    )

    async def score(category):
        return await _with_session(
            lambda s: add_point(PointIn(matchId=world.match, category=category), s, director)
        )

    async def finish():
        return await _with_session(
            lambda s: transition_match(world.match, MatchAction.FINISH, s, director)
        )

    results = await asyncio.gather(
        score("A"), score("B"), finish(), score("A"), score("B"),
        return_exceptions=True,
    )

    finished = results[2]
    assert not isinstance(finished, Exception)
    assert finished.status == "finished"
    for result in results[:2] + results[3:]:
        assert not isinstance(result, Exception) or isinstance(result, MatchNotActive)

    async def _state(session):
        points = (
            await session.execute(select(Point).where(Point.match_id == world.match))
        ).scalars().all()
        return points, await session.get(MatchScore, world.match)

    points, stored = await _with_session(_state)
    accepted = [r for r in results if not isinstance(r, Exception) and hasattr(r, "point")]
    assert len(points) == len(accepted)
    assert all(coerce_utc(p.server_received_at) <= coerce_utc(stored.ended_at) for p in points)
    assert stored.game_count_a + stored.game_count_b == len(points)
    assert match_locks.active_keys() == set()


@pytest.mark.anyio
async def test_concurrent_points_get_distinct_sequences(world):
    umpire = SimpleNamespace(id="umpire")
    await _with_session(
        lambda s: transition_match(world.match, MatchAction.START, s, umpire)
    )

    async def score(category):
        return await _with_session(
            lambda s: add_point(PointIn(matchId=world.match, category=category), s, umpire)
        )

    results = await asyncio.gather(*(score("AB"[i % 2]) for i in range(6)))
    assert sorted(r.point.sequence for r in results) == [1, 2, 3, 4, 5, 6]
    assert sorted(r.version for r in results) == [3, 4, 5, 6, 7, 8]
    assert max(results, key=lambda r: r.version).score.gameCountA == 3
