"""Role-based authorization over ``user_permission`` assignments.

The predicates are pure functions over already-loaded assignment records, so
they are trivially testable; :func:`require` is the only part that touches
the database. Any qualifying role is sufficient: decisions are a plain OR with
no precedence between roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import PermissionDenied
from ..models import UserPermission

ADMIN = "admin"
TOURNAMENT_ADMIN = "tournament_admin"
UMPIRE = "umpire"

# Roles allowed to drive a match (start/pause/resume, record points).
MATCH_OFFICIALS = (UMPIRE, TOURNAMENT_ADMIN, ADMIN)
# Roles allowed to administer a tournament (confirm results, edit the draw).
TOURNAMENT_MANAGERS = (TOURNAMENT_ADMIN, ADMIN)


class RoleAssignment(Protocol):
    user_id: str
    role_type: str
    tournament_id: str | None
    match_id: str | None


@dataclass(frozen=True)
class Scope:
    tournament_id: str | None = None
    match_id: str | None = None


@dataclass(frozen=True)
class Allowed:
    role: str

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    reason: str

    def __bool__(self) -> bool:
        return False


Decision = Union[Allowed, Denied]


def _is_global(assignment: RoleAssignment) -> bool:
    return assignment.tournament_id is None and assignment.match_id is None


def _for_principal(
    principal_id: str, role: str, assignments: Iterable[RoleAssignment]
) -> list[RoleAssignment]:
    return [
        a for a in assignments if a.user_id == principal_id and a.role_type == role
    ]


def is_admin(principal_id: str, assignments: Iterable[RoleAssignment]) -> bool:
    return any(_is_global(a) for a in _for_principal(principal_id, ADMIN, assignments))


def is_tournament_admin(
    principal_id: str,
    tournament_id: str | None,
    assignments: Iterable[RoleAssignment],
) -> bool:
    for a in _for_principal(principal_id, TOURNAMENT_ADMIN, assignments):
        if _is_global(a):
            return True
        if tournament_id and a.tournament_id == tournament_id and a.match_id is None:
            return True
    return False


def is_umpire(
    principal_id: str,
    tournament_id: str | None,
    match_id: str | None,
    assignments: Iterable[RoleAssignment],
) -> bool:
    """Umpire for this match, for the whole tournament, or globally."""

    for a in _for_principal(principal_id, UMPIRE, assignments):
        if _is_global(a):
            return True
        if tournament_id is None or a.tournament_id not in (None, tournament_id):
            continue
        if a.match_id is None:
            return True
        if match_id is not None and a.match_id == match_id:
            return True
    return False


def decide(
    principal_id: str,
    scope: Scope,
    roles: Sequence[str],
    assignments: Iterable[RoleAssignment],
) -> Decision:
    """Return ``Allowed`` if any of ``roles`` qualifies within ``scope``."""

    assignments = list(assignments)
    for role in roles:
        if role == ADMIN:
            granted = is_admin(principal_id, assignments)
        elif role == TOURNAMENT_ADMIN:
            granted = is_tournament_admin(principal_id, scope.tournament_id, assignments)
        elif role == UMPIRE:
            granted = is_umpire(
                principal_id, scope.tournament_id, scope.match_id, assignments
            )
        else:
            raise ValueError(f"unknown role {role!r}")
        if granted:
            return Allowed(role)
    return Denied(f"none of {', '.join(roles)} held for this scope")


async def load_assignments(
    session: AsyncSession, principal_id: str
) -> list[UserPermission]:
    return list(
        (
            await session.execute(
                select(UserPermission).where(UserPermission.user_id == principal_id)
            )
        ).scalars().all()
    )


async def check(
    session: AsyncSession,
    principal_id: str,
    scope: Scope,
    roles: Sequence[str],
) -> Decision:
    assignments = await load_assignments(session, principal_id)
    return decide(principal_id, scope, roles, assignments)


async def require(
    session: AsyncSession,
    principal_id: str,
    scope: Scope,
    roles: Sequence[str],
) -> Allowed:
    """Raise ``PermissionDenied`` unless the principal holds one of ``roles``.

    The raised error never says which check failed.
    """

    decision = await check(session, principal_id, scope, roles)
    if not decision:
        raise PermissionDenied()
    return decision
