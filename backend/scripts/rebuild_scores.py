#!/usr/bin/env python3
"""Admin helper to rebuild ``match_score`` rows from the point log."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.db import _normalize_url
from app.models import Match, MatchScore, Point
from app.services.aggregation import GameCounts, count_points, recompute_score


@dataclass
class ScoreDrift:
    match_id: str
    stored: Optional[GameCounts]
    rebuilt: GameCounts

    @property
    def drifted(self) -> bool:
        return self.stored != self.rebuilt


async def _get_engine() -> AsyncEngine:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    return create_async_engine(_normalize_url(database_url), echo=False, pool_pre_ping=True)


async def _match_ids(
    session: AsyncSession, tournament_id: Optional[str], match_ids: Sequence[str]
) -> list[str]:
    stmt = select(Match.id).where(Match.status != "pending")
    if tournament_id:
        stmt = stmt.where(Match.tournament_id == tournament_id)
    if match_ids:
        stmt = stmt.where(Match.id.in_(match_ids))
    return list((await session.execute(stmt.order_by(Match.id))).scalars().all())


async def _inspect(session: AsyncSession, match_id: str) -> ScoreDrift:
    points = (
        await session.execute(select(Point).where(Point.match_id == match_id))
    ).scalars().all()
    score = await session.get(MatchScore, match_id)
    stored = (
        GameCounts(score.game_count_a, score.game_count_b) if score is not None else None
    )
    return ScoreDrift(match_id=match_id, stored=stored, rebuilt=count_points(points))


async def rebuild_score(session: AsyncSession, match_id: str) -> MatchScore:
    """Rewrite the score of ``match_id`` from its log while holding the match row."""

    await session.execute(
        select(Match.id)
        .where(Match.id == match_id)
        .with_for_update()
    )
    score = await recompute_score(session, match_id)
    if score.ended_at is not None:
        counts = GameCounts(score.game_count_a, score.game_count_b)
        score.winner_side = counts.winner_side()
    return score


async def main() -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Compare stored match scores with the point log and rewrite the ones "
            "that drifted."
        )
    )
    parser.add_argument("match_ids", nargs="*", help="Only rebuild these matches")
    parser.add_argument("--tournament", help="Only rebuild matches of this tournament")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the drifted scores without writing them to the database.",
    )

    args = parser.parse_args()

    engine = await _get_engine()
    Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with Session() as session:
            drifted = []
            for match_id in await _match_ids(session, args.tournament, args.match_ids):
                report = await _inspect(session, match_id)
                if report.drifted:
                    drifted.append(report)
                    print(json.dumps(asdict(report), indent=2, sort_keys=True))

            if not drifted:
                print("All scores match their point logs; nothing to do.")
                return

            if args.dry_run:
                print(f"Dry run; {len(drifted)} score(s) would be rebuilt.")
                return

            for report in drifted:
                await rebuild_score(session, report.match_id)
            await session.commit()
            print(f"Rebuilt {len(drifted)} score(s).")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
