# backend/app/routers/matches.py
import logging
import uuid
from typing import Sequence

from fastapi import APIRouter, Depends, Request
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..db_errors import persistence_guard, with_timeout
from ..exceptions import InvalidStateTransition, NotFound, ValidationError
from ..locks import match_lock
from ..models import (
    Match,
    MatchScore,
    MatchSlot,
    Tournament,
    TournamentEntry,
    User,
    UserPermission,
)
from ..schemas import (
    MatchCreate,
    MatchOut,
    MatchScoreOut,
    SlotOut,
    UmpireAssign,
)
from ..services.lifecycle import MatchStatus, allowed_actions
from ..services.permissions import TOURNAMENT_MANAGERS, UMPIRE, Scope, require
from ..services.validation import normalize_slot_update
from ..time_utils import coerce_utc
from .auth import get_current_user, limiter, scoring_rate_limit
from .streams import broadcast

logger = logging.getLogger(__name__)

# Resource-only prefix; versioning is added in main.py
router = APIRouter(prefix="/matches", tags=["matches"])


def score_to_out(score: MatchScore) -> MatchScoreOut:
    return MatchScoreOut(
        matchId=score.match_id,
        gameCountA=score.game_count_a or 0,
        gameCountB=score.game_count_b or 0,
        winnerSide=score.winner_side,
        endedAt=coerce_utc(score.ended_at),
        updatedAt=coerce_utc(score.updated_at),
    )


def slot_to_out(slot: MatchSlot) -> SlotOut:
    return SlotOut(
        id=slot.id,
        slotNumber=slot.slot_number,
        sourceType=slot.source_type,
        entryId=slot.entry_id,
        sourceMatchId=slot.source_match_id,
        placeholderLabel=slot.placeholder_label,
    )


def match_to_out(
    match: Match,
    slots: Sequence[MatchSlot] = (),
    score: MatchScore | None = None,
) -> MatchOut:
    return MatchOut(
        id=match.id,
        tournamentId=match.tournament_id,
        roundName=match.round_name,
        roundIndex=match.round_index,
        matchNumber=match.match_number,
        courtNumber=match.court_number,
        status=match.status,
        umpireId=match.umpire_id,
        isConfirmed=bool(match.is_confirmed),
        startedAt=coerce_utc(match.started_at),
        version=match.version,
        allowedActions=allowed_actions(match.status),
        slots=[slot_to_out(s) for s in sorted(slots, key=lambda s: s.slot_number)],
        score=score_to_out(score) if score is not None else None,
    )


async def load_match(
    session: AsyncSession, mid: str, *, for_update: bool = False
) -> Match:
    stmt = select(Match).where(Match.id == mid)
    if for_update:
        # Locks the row on PostgreSQL; SQLite ignores it.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    match = (await session.execute(stmt)).scalar_one_or_none()
    if match is None:
        raise NotFound("match", mid)
    return match


async def matches_out(session: AsyncSession, matches: Sequence[Match]) -> list[MatchOut]:
    """Serialize ``matches`` with their slots and scores in two queries."""

    ids = [m.id for m in matches]
    if not ids:
        return []
    slot_rows = (
        await session.execute(select(MatchSlot).where(MatchSlot.match_id.in_(ids)))
    ).scalars().all()
    slots_by_match: dict[str, list[MatchSlot]] = {}
    for slot in slot_rows:
        slots_by_match.setdefault(slot.match_id, []).append(slot)
    scores = {
        s.match_id: s
        for s in (
            await session.execute(select(MatchScore).where(MatchScore.match_id.in_(ids)))
        ).scalars().all()
    }
    return [
        match_to_out(m, slots_by_match.get(m.id, []), scores.get(m.id))
        for m in matches
    ]


async def validate_slot_refs(
    session: AsyncSession, tournament_id: str, values: dict
) -> None:
    entry_id = values.get("entry_id")
    if entry_id:
        entry = await session.get(TournamentEntry, entry_id)
        if entry is None or entry.tournament_id != tournament_id:
            raise ValidationError(f"entry {entry_id} is not part of this tournament")
    source_match_id = values.get("source_match_id")
    if source_match_id:
        source = await session.get(Match, source_match_id)
        if source is None or source.tournament_id != tournament_id:
            raise ValidationError(
                f"match {source_match_id} is not part of this tournament"
            )


# POST /api/v0/matches
async def create_match(body: MatchCreate, session: AsyncSession, user: User) -> MatchOut:
    async with persistence_guard(session, "create match"):
        tournament = await session.get(Tournament, body.tournamentId)
        if tournament is None:
            raise NotFound("tournament", body.tournamentId)
        await require(
            session, user.id, Scope(tournament_id=tournament.id), TOURNAMENT_MANAGERS
        )

        mid = uuid.uuid4().hex
        match = Match(
            id=mid,
            tournament_id=tournament.id,
            round_name=body.roundName,
            round_index=body.roundIndex,
            match_number=body.matchNumber,
            court_number=body.courtNumber,
            status=MatchStatus.PENDING.value,
            is_confirmed=False,
            version=1,
        )
        session.add(match)
        await session.flush()

        requested = {s.slotNumber: s for s in body.slots}
        slots = []
        for number in (1, 2):
            slot_in = requested.get(number)
            if slot_in is None:
                values = normalize_slot_update("entry")
            else:
                values = normalize_slot_update(
                    slot_in.sourceType,
                    entry_id=slot_in.entryId,
                    source_match_id=slot_in.sourceMatchId,
                    placeholder_label=slot_in.placeholderLabel,
                )
                await validate_slot_refs(session, tournament.id, values)
            slot = MatchSlot(
                id=uuid.uuid4().hex, match_id=mid, slot_number=number, **values
            )
            session.add(slot)
            slots.append(slot)
        await session.commit()

    logger.info("Created match %s in tournament %s", mid, tournament.id)
    return match_to_out(match, slots)


@router.post("", response_model=MatchOut, status_code=201)
@limiter.limit("30/minute")
async def create_match_route(
    request: Request,
    body: MatchCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await with_timeout(create_match(body, session, user), "create match")


@router.get("/{mid}", response_model=MatchOut)
async def get_match(mid: str, session: AsyncSession = Depends(get_session)):
    async def _read() -> MatchOut:
        async with persistence_guard(session, "load match"):
            match = await load_match(session, mid)
            return (await matches_out(session, [match]))[0]

    return await with_timeout(_read(), "load match")


async def _release_umpire_scope(
    session: AsyncSession, match: Match, umpire_id: str
) -> None:
    await session.execute(
        delete(UserPermission).where(
            UserPermission.user_id == umpire_id,
            UserPermission.role_type == UMPIRE,
            UserPermission.match_id == match.id,
        )
    )


async def _set_umpire(
    mid: str, umpire_id: str | None, session: AsyncSession, user: User
) -> MatchOut:
    operation = "assign umpire" if umpire_id else "clear umpire"
    async with match_lock(mid):
        async with persistence_guard(session, operation):
            match = await load_match(session, mid, for_update=True)
            await require(
                session,
                user.id,
                Scope(tournament_id=match.tournament_id, match_id=match.id),
                TOURNAMENT_MANAGERS,
            )
            if match.status == MatchStatus.FINISHED.value:
                raise InvalidStateTransition(
                    action="change the umpire of",
                    current=match.status,
                    required="pending, inprogress or paused",
                )
            if umpire_id and await session.get(User, umpire_id) is None:
                raise NotFound("user", umpire_id)

            previous = match.umpire_id
            if previous and previous != umpire_id:
                await _release_umpire_scope(session, match, previous)

            if umpire_id and umpire_id != previous:
                existing = (
                    await session.execute(
                        select(UserPermission).where(
                            UserPermission.user_id == umpire_id,
                            UserPermission.role_type == UMPIRE,
                            UserPermission.match_id == match.id,
                        )
                    )
                ).scalar_one_or_none()
                if existing is None:
                    session.add(
                        UserPermission(
                            id=uuid.uuid4().hex,
                            user_id=umpire_id,
                            role_type=UMPIRE,
                            tournament_id=match.tournament_id,
                            match_id=match.id,
                        )
                    )

            match.umpire_id = umpire_id
            await session.commit()
            out = (await matches_out(session, [match]))[0]

    logger.info("Match %s umpire changed from %s to %s", mid, previous, umpire_id)
    await broadcast(mid, {"event": "umpire", "match": out.model_dump(mode="json")})
    return out


@router.put("/{mid}/umpire", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def assign_umpire_route(
    request: Request,
    mid: str,
    body: UmpireAssign,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await with_timeout(
        _set_umpire(mid, body.umpireId, session, user), "assign umpire"
    )


@router.delete("/{mid}/umpire", response_model=MatchOut)
@limiter.limit(scoring_rate_limit)
async def clear_umpire_route(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await with_timeout(_set_umpire(mid, None, session, user), "clear umpire")
