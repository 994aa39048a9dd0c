"""Day tokens: short codes handed to checked-in entries to prove on-site presence."""

from __future__ import annotations

import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import InvalidToken, NotFound
from ..models import Match, TournamentEntry
from ..time_utils import utcnow

TOKEN_DIGITS = 6
_MAX_ISSUE_ATTEMPTS = 20


def generate_token(digits: int = TOKEN_DIGITS) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(digits))


def token_matches(entry: TournamentEntry, presented: str) -> bool:
    if not entry.is_checked_in or not entry.day_token:
        return False
    return secrets.compare_digest(entry.day_token.encode(), presented.encode())


async def issue_token(session: AsyncSession, entry: TournamentEntry) -> str:
    """Give ``entry`` a token unique within its tournament; existing tokens are kept."""

    if entry.day_token:
        return entry.day_token

    taken = set(
        (
            await session.execute(
                select(TournamentEntry.day_token).where(
                    TournamentEntry.tournament_id == entry.tournament_id,
                    TournamentEntry.day_token.is_not(None),
                )
            )
        ).scalars().all()
    )
    for _ in range(_MAX_ISSUE_ATTEMPTS):
        candidate = generate_token()
        if candidate not in taken:
            entry.day_token = candidate
            return candidate
    raise RuntimeError("could not allocate a unique day token")


async def check_in(session: AsyncSession, entry: TournamentEntry) -> str:
    token = await issue_token(session, entry)
    entry.is_checked_in = True
    entry.last_checked_in_at = utcnow()
    return token


async def verify_token(session: AsyncSession, match_id: str, presented: str) -> TournamentEntry:
    """Return the checked-in entry of the match's tournament holding ``presented``.

    Raises ``NotFound`` for an unknown match and ``InvalidToken`` for every
    other mismatch, without saying which condition failed.
    """

    match = await session.get(Match, match_id)
    if match is None:
        raise NotFound("match", match_id)

    if not presented:
        raise InvalidToken()

    candidates = (
        await session.execute(
            select(TournamentEntry).where(
                TournamentEntry.tournament_id == match.tournament_id,
                TournamentEntry.is_checked_in.is_(True),
                TournamentEntry.day_token.is_not(None),
            )
        )
    ).scalars().all()
    matches = [entry for entry in candidates if token_matches(entry, presented)]
    if len(matches) != 1:
        raise InvalidToken()
    return matches[0]
