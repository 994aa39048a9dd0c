from typing import List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, ConfigDict

from .exceptions import ValidationError as DomainValidationError
from .services.validation import normalize_point_category

MatchStatusLiteral = Literal["pending", "inprogress", "paused", "finished"]
RoleLiteral = Literal["admin", "tournament_admin", "umpire"]
SlotSourceLiteral = Literal["entry", "winner", "loser", "bye"]


def _strip_required(value: object, field: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{field} must not be empty")
    return trimmed


class UserOut(BaseModel):
    id: str
    username: str
    displayName: Optional[str] = None


# ---------------------------------------------------------------------------
# Tournaments and entries
# ---------------------------------------------------------------------------


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    model_config = ConfigDict(extra="forbid")

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _strip_required(value, "name")


class TournamentOut(BaseModel):
    id: str
    name: str
    status: str


class EntryCreate(BaseModel):
    teamName: str = Field(..., min_length=1, max_length=200)

    model_config = ConfigDict(extra="forbid")

    @field_validator("teamName", mode="before")
    @classmethod
    def _validate_team_name(cls, value: str) -> str:
        return _strip_required(value, "teamName")


class EntryOut(BaseModel):
    id: str
    tournamentId: str
    teamName: str
    isCheckedIn: bool
    lastCheckedInAt: Optional[datetime] = None


class CheckInOut(EntryOut):
    dayToken: str


# ---------------------------------------------------------------------------
# Matches and draw slots
# ---------------------------------------------------------------------------


class SlotIn(BaseModel):
    slotNumber: Literal[1, 2]
    sourceType: SlotSourceLiteral = "entry"
    entryId: Optional[str] = None
    sourceMatchId: Optional[str] = None
    placeholderLabel: Optional[str] = None


class MatchCreate(BaseModel):
    tournamentId: str = Field(..., min_length=1)
    roundName: str = Field(..., min_length=1, max_length=100)
    roundIndex: Optional[int] = Field(default=None, ge=0)
    matchNumber: Optional[int] = Field(default=None, ge=0)
    courtNumber: Optional[int] = Field(default=None, ge=0)
    slots: List[SlotIn] = Field(default_factory=list, max_length=2)

    model_config = ConfigDict(extra="forbid")

    @field_validator("slots")
    @classmethod
    def _unique_slots(cls, slots: List[SlotIn]) -> List[SlotIn]:
        numbers = [s.slotNumber for s in slots]
        if len(set(numbers)) != len(numbers):
            raise ValueError("slots must have unique slot numbers")
        return slots


class SlotOut(BaseModel):
    id: str
    slotNumber: int
    sourceType: str
    entryId: Optional[str] = None
    sourceMatchId: Optional[str] = None
    placeholderLabel: Optional[str] = None


class SlotUpdate(BaseModel):
    id: str = Field(..., min_length=1)
    sourceType: SlotSourceLiteral
    entryId: Optional[str] = None
    sourceMatchId: Optional[str] = None
    placeholderLabel: Optional[str] = None


class DrawSlotsUpdate(BaseModel):
    matchId: str = Field(..., min_length=1)
    slots: List[SlotUpdate] = Field(..., min_length=1)


class MatchScoreOut(BaseModel):
    matchId: str
    gameCountA: int
    gameCountB: int
    winnerSide: Optional[str] = None
    endedAt: Optional[datetime] = None
    updatedAt: datetime


class MatchOut(BaseModel):
    id: str
    tournamentId: str
    roundName: str
    roundIndex: Optional[int] = None
    matchNumber: Optional[int] = None
    courtNumber: Optional[int] = None
    status: MatchStatusLiteral
    umpireId: Optional[str] = None
    isConfirmed: bool
    startedAt: Optional[datetime] = None
    version: int
    allowedActions: List[str] = Field(default_factory=list)
    slots: List[SlotOut] = Field(default_factory=list)
    score: Optional[MatchScoreOut] = None


class UmpireAssign(BaseModel):
    umpireId: str = Field(..., min_length=1)


class LiveMatchesOut(BaseModel):
    data: List[MatchOut]
    count: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class PointIn(BaseModel):
    matchId: str = Field(..., min_length=1)
    category: str
    matchVersion: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> str:
        try:
            return normalize_point_category(value)
        except DomainValidationError as exc:
            raise ValueError(exc.detail) from None


class PointOut(BaseModel):
    id: str
    matchId: str
    pointType: str
    side: str
    isUndone: bool
    serverReceivedAt: datetime
    sequence: int


class PointWriteOut(BaseModel):
    point: PointOut
    score: MatchScoreOut
    version: int


class UndoLatestIn(BaseModel):
    matchId: str = Field(..., min_length=1)


class PointListOut(BaseModel):
    data: List[PointOut]


class TokenVerifyIn(BaseModel):
    dayToken: str = Field(..., min_length=1, max_length=64)


class TokenVerifyOut(BaseModel):
    valid: bool
    message: str = "day token verified"


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleAssign(BaseModel):
    userId: str = Field(..., min_length=1)
    roleType: RoleLiteral
    tournamentId: Optional[str] = None
    matchId: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class RoleOut(BaseModel):
    id: str
    userId: str
    roleType: str
    tournamentId: Optional[str] = None
    matchId: Optional[str] = None
    createdAt: Optional[datetime] = None


class RoleCheckOut(BaseModel):
    allowed: bool
    role: Optional[str] = None
