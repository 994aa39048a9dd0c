import asyncio
import logging
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.db import _normalize_url
from app.models import (
    Match,
    MatchSlot,
    Tournament,
    TournamentEntry,
    User,
    UserPermission,
)
from app.routers.auth import create_access_token

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")

engine = create_async_engine(_normalize_url(DATABASE_URL), echo=False, pool_pre_ping=True)
Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

DEMO_TOURNAMENT_ID = "demo-open"
USERS = [
    ("admin", "Admin", ("admin", None, None)),
    ("director", "Tournament Director", ("tournament_admin", DEMO_TOURNAMENT_ID, None)),
    ("umpire", "Court 1 Umpire", ("umpire", DEMO_TOURNAMENT_ID, "demo-match-1")),
]


async def main():
    async with Session() as s:
        if await s.get(Tournament, DEMO_TOURNAMENT_ID) is None:
            s.add(Tournament(id=DEMO_TOURNAMENT_ID, name="Demo Open", status="open"))
            s.add_all(
                [
                    TournamentEntry(
                        id=f"demo-entry-{side}",
                        tournament_id=DEMO_TOURNAMENT_ID,
                        team_name=name,
                        is_checked_in=False,
                    )
                    for side, name in (("a", "Smash Bros"), ("b", "Net Ninjas"))
                ]
            )
            await s.flush()
            s.add(
                Match(
                    id="demo-match-1",
                    tournament_id=DEMO_TOURNAMENT_ID,
                    round_name="Final",
                    round_index=0,
                    match_number=1,
                    court_number=1,
                    status="pending",
                    is_confirmed=False,
                    version=1,
                )
            )
            await s.flush()
            s.add_all(
                [
                    MatchSlot(
                        id=f"demo-match-1-slot-{n}",
                        match_id="demo-match-1",
                        slot_number=n,
                        source_type="entry",
                        entry_id=f"demo-entry-{side}",
                    )
                    for n, side in ((1, "a"), (2, "b"))
                ]
            )
            await s.commit()

        have = {u.id for u in (await s.execute(select(User))).scalars().all()}
        for username, display_name, (role, tid, mid) in USERS:
            uid = f"demo-{username}"
            if uid in have:
                continue
            s.add(User(id=uid, username=username, display_name=display_name))
            await s.flush()
            s.add(
                UserPermission(
                    id=f"{uid}-{role}",
                    user_id=uid,
                    role_type=role,
                    tournament_id=tid,
                    match_id=mid,
                )
            )
        await s.commit()

    for username, _, _ in USERS:
        # Tokens are printed for local use against the dev server.
        print(f"{username}: {create_access_token(f'demo-{username}', expires_in=86400)}")
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
