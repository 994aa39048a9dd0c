import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..db_errors import persistence_guard, with_timeout
from ..exceptions import NotFound, ValidationError
from ..models import ROLE_TYPES, Match, Tournament, User, UserPermission
from ..schemas import RoleAssign, RoleCheckOut, RoleLiteral, RoleOut
from ..services.permissions import (
    ADMIN,
    TOURNAMENT_ADMIN,
    TOURNAMENT_MANAGERS,
    Scope,
    check,
    load_assignments,
    require,
)
from ..time_utils import coerce_utc
from .auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/roles", tags=["roles"])


def _role_out(p: UserPermission) -> RoleOut:
    return RoleOut(
        id=p.id,
        userId=p.user_id,
        roleType=p.role_type,
        tournamentId=p.tournament_id,
        matchId=p.match_id,
        createdAt=coerce_utc(p.created_at),
    )


async def _resolve_scope(session: AsyncSession, body: RoleAssign) -> Scope:
    """Check the scope columns exist and agree; a match implies its tournament."""

    tournament_id = body.tournamentId
    if body.matchId:
        match = await session.get(Match, body.matchId)
        if match is None:
            raise NotFound("match", body.matchId)
        if tournament_id and tournament_id != match.tournament_id:
            raise ValidationError("match does not belong to the given tournament")
        tournament_id = match.tournament_id
    if tournament_id and await session.get(Tournament, tournament_id) is None:
        raise NotFound("tournament", tournament_id)

    if body.roleType == ADMIN and tournament_id:
        raise ValidationError("the admin role cannot be scoped")
    if body.roleType == TOURNAMENT_ADMIN and body.matchId:
        raise ValidationError("the tournament_admin role cannot be scoped to a match")
    return Scope(tournament_id=tournament_id, match_id=body.matchId)


@router.post("", response_model=RoleOut, status_code=201)
async def assign_role(
    body: RoleAssign,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _assign() -> RoleOut:
        async with persistence_guard(session, "assign role"):
            await require(session, user.id, Scope(), (ADMIN,))
            if await session.get(User, body.userId) is None:
                raise NotFound("user", body.userId)
            scope = await _resolve_scope(session, body)

            existing = (
                await session.execute(
                    select(UserPermission).where(
                        UserPermission.user_id == body.userId,
                        UserPermission.role_type == body.roleType,
                        UserPermission.tournament_id.is_(None)
                        if scope.tournament_id is None
                        else UserPermission.tournament_id == scope.tournament_id,
                        UserPermission.match_id.is_(None)
                        if scope.match_id is None
                        else UserPermission.match_id == scope.match_id,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                return _role_out(existing)

            permission = UserPermission(
                id=uuid.uuid4().hex,
                user_id=body.userId,
                role_type=body.roleType,
                tournament_id=scope.tournament_id,
                match_id=scope.match_id,
            )
            session.add(permission)
            await session.commit()
            await session.refresh(permission)
        logger.info(
            "Granted %s to user %s (tournament=%s, match=%s)",
            body.roleType,
            body.userId,
            scope.tournament_id,
            scope.match_id,
        )
        return _role_out(permission)

    return await with_timeout(_assign(), "assign role")


@router.delete("/{role_id}", status_code=204)
async def revoke_role(
    role_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _revoke() -> None:
        async with persistence_guard(session, "revoke role"):
            await require(session, user.id, Scope(), (ADMIN,))
            permission = await session.get(UserPermission, role_id)
            if permission is None:
                raise NotFound("role", role_id)
            await session.delete(permission)
            await session.commit()
        logger.info("Revoked role %s", role_id)

    await with_timeout(_revoke(), "revoke role")
    return Response(status_code=204)


@router.get("/users/{user_id}", response_model=list[RoleOut])
async def list_user_roles(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _read() -> list[RoleOut]:
        async with persistence_guard(session, "list roles"):
            if user_id != user.id:
                await require(session, user.id, Scope(), (ADMIN,))
            rows = await load_assignments(session, user_id)
        return [_role_out(p) for p in rows]

    return await with_timeout(_read(), "list roles")


@router.get("/tournaments/{tournament_id}", response_model=list[RoleOut])
async def list_tournament_roles(
    tournament_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    async def _read() -> list[RoleOut]:
        async with persistence_guard(session, "list roles"):
            if await session.get(Tournament, tournament_id) is None:
                raise NotFound("tournament", tournament_id)
            await require(
                session, user.id, Scope(tournament_id=tournament_id), TOURNAMENT_MANAGERS
            )
            rows = (
                await session.execute(
                    select(UserPermission)
                    .where(UserPermission.tournament_id == tournament_id)
                    .order_by(UserPermission.role_type, UserPermission.user_id)
                )
            ).scalars().all()
        return [_role_out(p) for p in rows]

    return await with_timeout(_read(), "list roles")


@router.get("/check", response_model=RoleCheckOut)
async def check_role(
    roles: Optional[List[RoleLiteral]] = Query(None, alias="role"),
    tournament_id: Optional[str] = Query(None),
    match_id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """Report whether the caller holds any of ``role`` for the given scope."""

    async def _read() -> RoleCheckOut:
        async with persistence_guard(session, "check role"):
            tid = tournament_id
            if match_id:
                match = await session.get(Match, match_id)
                if match is None:
                    raise NotFound("match", match_id)
                tid = match.tournament_id
            decision = await check(
                session,
                user.id,
                Scope(tournament_id=tid, match_id=match_id),
                roles or ROLE_TYPES,
            )
        return RoleCheckOut(
            allowed=bool(decision), role=getattr(decision, "role", None)
        )

    return await with_timeout(_read(), "check role")
