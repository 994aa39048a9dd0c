"""Aggregate the point log of a match into its ``MatchScore`` row."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MatchScore, Point
from ..time_utils import utcnow

SIDE_A = "A"
SIDE_B = "B"
POINT_TYPE_BY_SIDE = {SIDE_A: "A_score", SIDE_B: "B_score"}
SIDE_BY_POINT_TYPE = {v: k for k, v in POINT_TYPE_BY_SIDE.items()}


class _PointLike(Protocol):
    point_type: str
    is_undone: bool


@dataclass(frozen=True)
class GameCounts:
    a: int = 0
    b: int = 0

    def winner_side(self) -> str | None:
        if self.a > self.b:
            return SIDE_A
        if self.b > self.a:
            return SIDE_B
        return None


def count_points(points: Iterable[_PointLike]) -> GameCounts:
    """Count non-undone points per side.

    Order-insensitive and free of hidden state: the same point set always
    produces the same counts.
    """

    a = b = 0
    for point in points:
        if point.is_undone:
            continue
        if point.point_type == "A_score":
            a += 1
        elif point.point_type == "B_score":
            b += 1
    return GameCounts(a, b)


async def recompute_score(
    session: AsyncSession, match_id: str, *, now: datetime | None = None
) -> MatchScore:
    """Rebuild the ``MatchScore`` row of ``match_id`` from its point log.

    Runs inside the caller's transaction and only flushes, so the point write
    and the score write commit or roll back together.
    """

    points = (
        await session.execute(
            select(Point).where(Point.match_id == match_id, Point.is_undone.is_(False))
        )
    ).scalars().all()
    counts = count_points(points)

    score = await session.get(MatchScore, match_id)
    if score is None:
        score = MatchScore(match_id=match_id)
        session.add(score)
    score.game_count_a = counts.a
    score.game_count_b = counts.b
    score.updated_at = now or utcnow()
    await session.flush()
    return score
