"""Domain services for match scoring (state machine, aggregation, authorization)."""

from .validation import normalize_point_category, normalize_slot_update
from .aggregation import GameCounts, count_points, recompute_score
from .lifecycle import MatchAction, MatchStatus, ensure_transition, is_slot_editable
from .day_tokens import check_in, verify_token

__all__ = [
    "normalize_point_category",
    "normalize_slot_update",
    "GameCounts",
    "count_points",
    "recompute_score",
    "MatchAction",
    "MatchStatus",
    "ensure_transition",
    "is_slot_editable",
    "check_in",
    "verify_token",
]
