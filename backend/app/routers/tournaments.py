import logging
import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..db_errors import persistence_guard, with_timeout
from ..exceptions import NotFound, ValidationError
from ..locks import match_lock
from ..models import MatchSlot, Tournament, TournamentEntry, User
from ..schemas import (
    CheckInOut,
    DrawSlotsUpdate,
    EntryCreate,
    EntryOut,
    MatchOut,
    TournamentCreate,
    TournamentOut,
)
from ..services.day_tokens import check_in
from ..services.lifecycle import ensure_slot_editable
from ..services.permissions import ADMIN, TOURNAMENT_MANAGERS, Scope, require
from ..services.validation import normalize_slot_update
from ..time_utils import coerce_utc
from .auth import get_current_user, limiter
from .matches import load_match, matches_out, validate_slot_refs
from .streams import broadcast

logger = logging.getLogger(__name__)

router = APIRouter()


def _tournament_out(t: Tournament) -> TournamentOut:
    return TournamentOut(id=t.id, name=t.name, status=t.status)


def _entry_out(entry: TournamentEntry) -> EntryOut:
    return EntryOut(
        id=entry.id,
        tournamentId=entry.tournament_id,
        teamName=entry.team_name,
        isCheckedIn=bool(entry.is_checked_in),
        lastCheckedInAt=coerce_utc(entry.last_checked_in_at),
    )


async def _get_tournament(session: AsyncSession, tournament_id: str) -> Tournament:
    t = await session.get(Tournament, tournament_id)
    if not t:
        raise NotFound("tournament", tournament_id)
    return t


@router.post("/tournaments", response_model=TournamentOut, status_code=201)
async def create_tournament(
    body: TournamentCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _create() -> TournamentOut:
        async with persistence_guard(session, "create tournament"):
            await require(session, user.id, Scope(), (ADMIN,))
            t = Tournament(id=uuid.uuid4().hex, name=body.name, status="open")
            session.add(t)
            await session.commit()
        logger.info("Created tournament %s", t.id)
        return _tournament_out(t)

    return await with_timeout(_create(), "create tournament")


@router.get("/tournaments", response_model=list[TournamentOut])
async def list_tournaments(session: AsyncSession = Depends(get_session)):
    async def _read() -> list[TournamentOut]:
        async with persistence_guard(session, "list tournaments"):
            rows = (
                await session.execute(select(Tournament).order_by(Tournament.name))
            ).scalars().all()
        return [_tournament_out(t) for t in rows]

    return await with_timeout(_read(), "list tournaments")


@router.get("/tournaments/{tournament_id}", response_model=TournamentOut)
async def get_tournament(
    tournament_id: str, session: AsyncSession = Depends(get_session)
):
    async def _read() -> TournamentOut:
        async with persistence_guard(session, "load tournament"):
            t = await _get_tournament(session, tournament_id)
        return _tournament_out(t)

    return await with_timeout(_read(), "load tournament")


@router.post(
    "/tournaments/{tournament_id}/entries", response_model=EntryOut, status_code=201
)
async def create_entry(
    tournament_id: str,
    body: EntryCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _create() -> EntryOut:
        async with persistence_guard(session, "create entry"):
            t = await _get_tournament(session, tournament_id)
            await require(session, user.id, Scope(tournament_id=t.id), TOURNAMENT_MANAGERS)
            entry = TournamentEntry(
                id=uuid.uuid4().hex,
                tournament_id=t.id,
                team_name=body.teamName,
                is_checked_in=False,
            )
            session.add(entry)
            await session.commit()
        return _entry_out(entry)

    return await with_timeout(_create(), "create entry")


@router.get("/tournaments/{tournament_id}/entries", response_model=list[EntryOut])
async def list_entries(
    tournament_id: str, session: AsyncSession = Depends(get_session)
):
    async def _read() -> list[EntryOut]:
        async with persistence_guard(session, "list entries"):
            await _get_tournament(session, tournament_id)
            rows = (
                await session.execute(
                    select(TournamentEntry)
                    .where(TournamentEntry.tournament_id == tournament_id)
                    .order_by(TournamentEntry.team_name)
                )
            ).scalars().all()
        return [_entry_out(e) for e in rows]

    return await with_timeout(_read(), "list entries")


# POST /api/v0/tournaments/{tournament_id}/entries/{entry_id}/check-in
async def check_in_entry(
    tournament_id: str, entry_id: str, session: AsyncSession, user: User
) -> CheckInOut:
    async with persistence_guard(session, "check in entry"):
        t = await _get_tournament(session, tournament_id)
        await require(session, user.id, Scope(tournament_id=t.id), TOURNAMENT_MANAGERS)
        entry = await session.get(TournamentEntry, entry_id)
        if entry is None or entry.tournament_id != t.id:
            raise NotFound("entry", entry_id)
        token = await check_in(session, entry)
        await session.commit()

    logger.info("Checked in entry %s of tournament %s", entry.id, t.id)
    return CheckInOut(**_entry_out(entry).model_dump(), dayToken=token)


@router.post(
    "/tournaments/{tournament_id}/entries/{entry_id}/check-in",
    response_model=CheckInOut,
)
@limiter.limit("60/minute")
async def check_in_entry_route(
    request: Request,
    tournament_id: str,
    entry_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> CheckInOut:
    return await with_timeout(
        check_in_entry(tournament_id, entry_id, session, user), "check in entry"
    )


# PUT /api/v0/tournaments/{tournament_id}/draw/slots
async def update_draw_slots(
    tournament_id: str, body: DrawSlotsUpdate, session: AsyncSession, user: User
) -> MatchOut:
    mid = body.matchId
    async with match_lock(mid):
        async with persistence_guard(session, "update draw slots"):
            t = await _get_tournament(session, tournament_id)
            await require(session, user.id, Scope(tournament_id=t.id), TOURNAMENT_MANAGERS)
            match = await load_match(session, mid, for_update=True)
            if match.tournament_id != t.id:
                raise ValidationError("match does not belong to this tournament")
            ensure_slot_editable(match.status)

            for change in body.slots:
                slot = await session.get(MatchSlot, change.id)
                if slot is None or slot.match_id != match.id:
                    raise NotFound("slot", change.id)
                values = normalize_slot_update(
                    change.sourceType,
                    entry_id=change.entryId,
                    source_match_id=change.sourceMatchId,
                    placeholder_label=change.placeholderLabel,
                )
                if values["source_match_id"] == match.id:
                    raise ValidationError("a slot cannot be fed by its own match")
                await validate_slot_refs(session, t.id, values)
                for column, value in values.items():
                    setattr(slot, column, value)

            await session.commit()
            out = (await matches_out(session, [match]))[0]

    logger.info("Updated %d draw slot(s) of match %s", len(body.slots), mid)
    await broadcast(mid, {"event": "slots", "match": out.model_dump(mode="json")})
    return out


@router.put("/tournaments/{tournament_id}/draw/slots", response_model=MatchOut)
@limiter.limit("60/minute")
async def update_draw_slots_route(
    request: Request,
    tournament_id: str,
    body: DrawSlotsUpdate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> MatchOut:
    return await with_timeout(
        update_draw_slots(tournament_id, body, session, user), "update draw slots"
    )
