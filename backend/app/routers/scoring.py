# backend/app/routers/scoring.py
"""Live scoring: lifecycle transitions, the point log and day-token checks.

Every write follows the same shape: take the per-match lock, open a guarded
unit of work, re-read the match, authorize, check the lifecycle, write with a
conditional update, rebuild the score, commit, and only then broadcast.
"""

import logging
import uuid
from typing import Sequence

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..db_errors import persistence_guard, with_timeout
from ..exceptions import (
    InvalidStateTransition,
    MatchNotActive,
    NotFound,
    VersionConflict,
)
from ..locks import match_lock
from ..models import Match, MatchScore, Point, User
from ..schemas import (
    LiveMatchesOut,
    MatchOut,
    MatchScoreOut,
    PointIn,
    PointListOut,
    PointOut,
    PointWriteOut,
    TokenVerifyIn,
    TokenVerifyOut,
    UndoLatestIn,
)
from ..services.aggregation import SIDE_BY_POINT_TYPE, GameCounts, recompute_score
from ..services.day_tokens import verify_token
from ..services.lifecycle import (
    MatchAction,
    MatchStatus,
    accepts_points,
    ensure_transition,
)
from ..services.permissions import (
    MATCH_OFFICIALS,
    TOURNAMENT_MANAGERS,
    Scope,
    require,
)
from ..time_utils import coerce_utc, utcnow
from .auth import get_current_user, limiter, scoring_rate_limit
from .matches import load_match, matches_out, score_to_out
from .streams import broadcast

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scoring", tags=["scoring"])

# Statuses in which a recorded point may still be withdrawn.
UNDOABLE_STATUSES = (MatchStatus.INPROGRESS.value, MatchStatus.PAUSED.value)
LIVE_STATUSES = (
    MatchStatus.INPROGRESS.value,
    MatchStatus.PAUSED.value,
    MatchStatus.FINISHED.value,
)

ROLES_FOR_ACTION: dict[MatchAction, Sequence[str]] = {
    MatchAction.START: MATCH_OFFICIALS,
    MatchAction.PAUSE: MATCH_OFFICIALS,
    MatchAction.RESUME: MATCH_OFFICIALS,
    MatchAction.FINISH: TOURNAMENT_MANAGERS,
}


def point_to_out(point: Point) -> PointOut:
    return PointOut(
        id=point.id,
        matchId=point.match_id,
        pointType=point.point_type,
        side=SIDE_BY_POINT_TYPE[point.point_type],
        isUndone=bool(point.is_undone),
        serverReceivedAt=coerce_utc(point.server_received_at),
        sequence=point.sequence,
    )


def _scope(match: Match) -> Scope:
    return Scope(tournament_id=match.tournament_id, match_id=match.id)


async def _bump_version(session: AsyncSession, match: Match, statuses: Sequence[str]) -> int:
    """Advance ``match.version`` only if nobody moved the match since it was read."""

    expected = match.version
    result = await session.execute(
        update(Match)
        .where(
            Match.id == match.id,
            Match.status.in_(statuses),
            Match.version == expected,
        )
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.refresh(match)
        if match.status not in statuses:
            raise MatchNotActive(match.status)
        raise VersionConflict(expected, match.version)
    match.version = expected + 1
    return match.version


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def transition_match(
    mid: str, action: MatchAction, session: AsyncSession, user: User
) -> MatchOut:
    async with match_lock(mid):
        async with persistence_guard(session, f"{action.value} match"):
            match = await load_match(session, mid, for_update=True)
            await require(session, user.id, _scope(match), ROLES_FOR_ACTION[action])
            try:
                transition = ensure_transition(match.status, action)
            except InvalidStateTransition:
                logger.info(
                    "Rejected %s of match %s in status %s", action.value, mid, match.status
                )
                raise

            now = utcnow()
            values: dict = {
                "status": transition.target.value,
                "version": match.version + 1,
            }
            if transition.stamps_start and match.started_at is None:
                values["started_at"] = now
            if action == MatchAction.FINISH:
                values["is_confirmed"] = True

            result = await session.execute(
                update(Match)
                .where(Match.id == mid, Match.status == transition.source.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.refresh(match)
                raise InvalidStateTransition(
                    action=action.value,
                    current=match.status,
                    required=transition.source.value,
                )

            if action == MatchAction.FINISH:
                score = await recompute_score(session, mid, now=now)
                counts = GameCounts(score.game_count_a, score.game_count_b)
                score.winner_side = counts.winner_side()
                score.ended_at = now

            await session.commit()
            await session.refresh(match)
            out = (await matches_out(session, [match]))[0]

    logger.info(
        "Match %s: %s -> %s (version %s)",
        mid,
        transition.source.value,
        transition.target.value,
        out.version,
    )
    await broadcast(mid, {"event": "status", "match": out.model_dump(mode="json")})
    return out


async def _transition_route(
    mid: str, action: MatchAction, session: AsyncSession, user: User
) -> MatchOut:
    return await with_timeout(
        transition_match(mid, action, session, user), f"{action.value} match"
    )


@router.post("/matches/{mid}/start", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def start_match_route(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await _transition_route(mid, MatchAction.START, session, user)


# Pausing requires a match official, same as start and resume.
@router.post("/matches/{mid}/pause", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def pause_match_route(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await _transition_route(mid, MatchAction.PAUSE, session, user)


@router.post("/matches/{mid}/resume", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def resume_match_route(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await _transition_route(mid, MatchAction.RESUME, session, user)


# Confirming the result closes the match for good.
@router.post("/matches/{mid}/finish", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def finish_match_route(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await _transition_route(mid, MatchAction.FINISH, session, user)


# ---------------------------------------------------------------------------
# Point log
# ---------------------------------------------------------------------------


async def _next_sequence(session: AsyncSession, mid: str) -> int:
    current = (
        await session.execute(
            select(func.max(Point.sequence)).where(Point.match_id == mid)
        )
    ).scalar()
    return (current or 0) + 1


# POST /api/v0/scoring/points
async def add_point(body: PointIn, session: AsyncSession, user: User) -> PointWriteOut:
    mid = body.matchId
    async with match_lock(mid):
        async with persistence_guard(session, "record point"):
            match = await load_match(session, mid, for_update=True)
            await require(session, user.id, _scope(match), MATCH_OFFICIALS)
            if not accepts_points(match.status):
                logger.info("Rejected point for match %s in status %s", mid, match.status)
                raise MatchNotActive(match.status)
            if body.matchVersion is not None and body.matchVersion != match.version:
                raise VersionConflict(body.matchVersion, match.version)

            version = await _bump_version(session, match, (MatchStatus.INPROGRESS.value,))
            point = Point(
                id=uuid.uuid4().hex,
                match_id=mid,
                point_type=body.category,
                is_undone=False,
                server_received_at=utcnow(),
                sequence=await _next_sequence(session, mid),
            )
            session.add(point)
            await session.flush()
            score = await recompute_score(session, mid)
            await session.commit()
            out = PointWriteOut(
                point=point_to_out(point), score=score_to_out(score), version=version
            )

    logger.info(
        "Match %s: point %s for %s (%s-%s)",
        mid,
        out.point.sequence,
        out.point.side,
        out.score.gameCountA,
        out.score.gameCountB,
    )
    await broadcast(
        mid,
        {
            "event": "point",
            "point": out.point.model_dump(mode="json"),
            "score": out.score.model_dump(mode="json"),
            "version": out.version,
        },
    )
    return out


@router.post("/points", response_model=PointWriteOut, status_code=201)
@limiter.limit(scoring_rate_limit)
async def add_point_route(
    request: Request,
    body: PointIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> PointWriteOut:
    return await with_timeout(add_point(body, session, user), "record point")


async def _undo(session: AsyncSession, match: Match, point: Point) -> PointWriteOut:
    if match.status not in UNDOABLE_STATUSES:
        raise MatchNotActive(match.status)
    if point.is_undone:
        raise InvalidStateTransition(
            action="undo", current="undone", required="active", subject="point"
        )

    result = await session.execute(
        update(Point)
        .where(Point.id == point.id, Point.is_undone.is_(False))
        .values(is_undone=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateTransition(
            action="undo", current="undone", required="active", subject="point"
        )
    point.is_undone = True

    version = await _bump_version(session, match, UNDOABLE_STATUSES)
    score = await recompute_score(session, match.id)
    await session.commit()
    return PointWriteOut(point=point_to_out(point), score=score_to_out(score), version=version)


async def _announce_undo(out: PointWriteOut) -> None:
    logger.info(
        "Match %s: undid point %s (%s-%s)",
        out.point.matchId,
        out.point.sequence,
        out.score.gameCountA,
        out.score.gameCountB,
    )
    await broadcast(
        out.point.matchId,
        {
            "event": "undo",
            "point": out.point.model_dump(mode="json"),
            "score": out.score.model_dump(mode="json"),
            "version": out.version,
        },
    )


# POST /api/v0/scoring/points/{point_id}/undo
async def undo_point(point_id: str, session: AsyncSession, user: User) -> PointWriteOut:
    async with persistence_guard(session, "undo point"):
        point = await session.get(Point, point_id)
        if point is None:
            raise NotFound("point", point_id)
        mid = point.match_id

    async with match_lock(mid):
        async with persistence_guard(session, "undo point"):
            point = (
                await session.execute(
                    select(Point)
                    .where(Point.id == point_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            match = await load_match(session, mid, for_update=True)
            await require(session, user.id, _scope(match), MATCH_OFFICIALS)
            out = await _undo(session, match, point)

    await _announce_undo(out)
    return out


@router.post("/points/{point_id}/undo", response_model=PointWriteOut)
@limiter.limit(scoring_rate_limit)
async def undo_point_route(
    request: Request,
    point_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> PointWriteOut:
    return await with_timeout(undo_point(point_id, session, user), "undo point")


# POST /api/v0/scoring/undo
async def undo_latest(mid: str, session: AsyncSession, user: User) -> PointWriteOut:
    async with match_lock(mid):
        async with persistence_guard(session, "undo point"):
            match = await load_match(session, mid, for_update=True)
            await require(session, user.id, _scope(match), MATCH_OFFICIALS)
            point = (
                await session.execute(
                    select(Point)
                    .where(Point.match_id == mid, Point.is_undone.is_(False))
                    .order_by(Point.server_received_at.desc(), Point.sequence.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if point is None:
                raise NotFound("point")
            out = await _undo(session, match, point)

    await _announce_undo(out)
    return out


@router.post("/undo", response_model=PointWriteOut)
@limiter.limit(scoring_rate_limit)
async def undo_latest_route(
    request: Request,
    body: UndoLatestIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> PointWriteOut:
    return await with_timeout(undo_latest(body.matchId, session, user), "undo point")


async def list_points(session: AsyncSession, mid: str) -> list[Point]:
    """Non-undone points of ``mid`` in the order they were received."""

    return list(
        (
            await session.execute(
                select(Point)
                .where(Point.match_id == mid, Point.is_undone.is_(False))
                .order_by(Point.server_received_at, Point.sequence)
            )
        ).scalars().all()
    )


@router.get("/matches/{mid}/points", response_model=PointListOut)
async def list_points_route(mid: str, session: AsyncSession = Depends(get_session)):
    async def _read() -> PointListOut:
        async with persistence_guard(session, "list points"):
            points = await list_points(session, mid)
        return PointListOut(data=[point_to_out(p) for p in points])

    return await with_timeout(_read(), "list points")


@router.get("/matches/{mid}/score", response_model=MatchScoreOut)
async def get_score(mid: str, session: AsyncSession = Depends(get_session)):
    async def _read() -> MatchScoreOut:
        async with persistence_guard(session, "load score"):
            score = await session.get(MatchScore, mid)
            if score is None:
                await load_match(session, mid)
                raise NotFound("match score", mid)
        return score_to_out(score)

    return await with_timeout(_read(), "load score")


# ---------------------------------------------------------------------------
# Live list and day tokens
# ---------------------------------------------------------------------------


@router.get("/live", response_model=LiveMatchesOut)
async def list_live_matches(
    tournament_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    async def _read() -> LiveMatchesOut:
        async with persistence_guard(session, "list live matches"):
            filters = [Match.status.in_(LIVE_STATUSES)]
            if tournament_id:
                filters.append(Match.tournament_id == tournament_id)
            total = (
                await session.execute(select(func.count()).select_from(Match).where(*filters))
            ).scalar_one()
            rows = (
                await session.execute(
                    select(Match)
                    .where(*filters)
                    .order_by(Match.started_at.desc().nulls_last(), Match.id)
                    .offset(offset)
                    .limit(limit)
                )
            ).scalars().all()
            data = await matches_out(session, rows)
        return LiveMatchesOut(data=data, count=total, limit=limit, offset=offset)

    return await with_timeout(_read(), "list live matches")


# POST /api/v0/scoring/matches/{mid}/verify-token
async def verify_match_token(
    mid: str, body: TokenVerifyIn, session: AsyncSession
) -> TokenVerifyOut:
    async with persistence_guard(session, "verify day token"):
        entry = await verify_token(session, mid, body.dayToken)
    logger.info("Day token verified for match %s (entry %s)", mid, entry.id)
    return TokenVerifyOut(valid=True)


@router.post("/matches/{mid}/verify-token", response_model=TokenVerifyOut)
@limiter.limit(scoring_rate_limit)
async def verify_match_token_route(
    request: Request,
    mid: str,
    body: TokenVerifyIn,
    session: AsyncSession = Depends(get_session),
) -> TokenVerifyOut:
    return await with_timeout(
        verify_match_token(mid, body, session), "verify day token"
    )

