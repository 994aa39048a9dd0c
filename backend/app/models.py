from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Integer,
    Boolean,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.sql import func
from .db import Base

ROLE_TYPES = ("admin", "tournament_admin", "umpire")


class User(Base):
    __tablename__ = "user"
    id = Column(String, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=True)


class UserPermission(Base):
    """Role assignment; both scope columns empty means a global assignment."""

    __tablename__ = "user_permission"
    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    role_type = Column(String, nullable=False)
    tournament_id = Column(
        String, ForeignKey("tournament.id", ondelete="CASCADE"), nullable=True
    )
    match_id = Column(String, ForeignKey("match.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role_type IN ('admin', 'tournament_admin', 'umpire')",
            name="ck_user_permission_role_type",
        ),
        Index("ix_user_permission_user_id", "user_id"),
    )


class Tournament(Base):
    __tablename__ = "tournament"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TournamentEntry(Base):
    __tablename__ = "tournament_entry"
    id = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournament.id"), nullable=False)
    team_name = Column(String, nullable=False)
    day_token = Column(String, nullable=True)
    is_checked_in = Column(Boolean, nullable=False, default=False)
    last_checked_in_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tournament_id",
            "day_token",
            name="uq_tournament_entry_tournament_id_day_token",
        ),
    )


class Match(Base):
    __tablename__ = "match"
    id = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournament.id"), nullable=False)
    round_name = Column(String, nullable=False)
    round_index = Column(Integer, nullable=True)
    match_number = Column(Integer, nullable=True)
    court_number = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="pending")
    umpire_id = Column(String, ForeignKey("user.id"), nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'inprogress', 'paused', 'finished')",
            name="ck_match_status",
        ),
        Index("ix_match_tournament_id", "tournament_id"),
    )


class MatchSlot(Base):
    __tablename__ = "match_slot"
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("match.id", ondelete="CASCADE"), nullable=False)
    slot_number = Column(Integer, nullable=False)  # 1 -> side A, 2 -> side B
    source_type = Column(String, nullable=False, default="entry")
    entry_id = Column(String, ForeignKey("tournament_entry.id"), nullable=True)
    source_match_id = Column(String, ForeignKey("match.id"), nullable=True)
    placeholder_label = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("match_id", "slot_number", name="uq_match_slot_match_id_slot_number"),
    )


class Point(Base):
    __tablename__ = "point"
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("match.id", ondelete="CASCADE"), nullable=False)
    point_type = Column(String, nullable=False)  # "A_score" | "B_score"
    is_undone = Column(Boolean, nullable=False, default=False)
    server_received_at = Column(DateTime(timezone=True), nullable=False)
    # Per-match insertion counter; breaks ties between identical timestamps.
    sequence = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "point_type IN ('A_score', 'B_score')", name="ck_point_point_type"
        ),
        UniqueConstraint("match_id", "sequence", name="uq_point_match_id_sequence"),
        Index("ix_point_match_id_is_undone", "match_id", "is_undone"),
    )


class MatchScore(Base):
    """Materialized counts of non-undone points; rebuilt, never edited."""

    __tablename__ = "match_score"
    match_id = Column(
        String, ForeignKey("match.id", ondelete="CASCADE"), primary_key=True
    )
    game_count_a = Column(Integer, nullable=False, default=0)
    game_count_b = Column(Integer, nullable=False, default=0)
    winner_side = Column(String(1), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
