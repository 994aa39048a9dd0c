from typing import Any, Dict, Optional

from ..exceptions import ValidationError

_CATEGORY_ALIASES = {
    "A": "A_score",
    "A_SCORE": "A_score",
    "B": "B_score",
    "B_SCORE": "B_score",
}

SLOT_SOURCE_TYPES = ("entry", "winner", "loser", "bye")
BYE_LABEL = "BYE"


def normalize_point_category(value: Any) -> str:
    """Map a submitted side (``A``/``B`` or ``A_score``/``B_score``) to a point type."""

    if not isinstance(value, str) or not value.strip():
        raise ValidationError("category is required and must be 'A' or 'B'.")
    point_type = _CATEGORY_ALIASES.get(value.strip().upper())
    if point_type is None:
        raise ValidationError(f"Unknown category {value!r}; expected 'A' or 'B'.")
    return point_type


def normalize_slot_update(
    source_type: str,
    *,
    entry_id: Optional[str] = None,
    source_match_id: Optional[str] = None,
    placeholder_label: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """Return the column values a slot takes for ``source_type``.

    Rules:
    - ``entry`` keeps only the entry reference
    - ``winner``/``loser`` keep only the feeding match reference
    - ``bye`` clears both references and labels the slot (``BYE`` by default)
    """

    if source_type not in SLOT_SOURCE_TYPES:
        raise ValidationError(
            f"source_type must be one of {', '.join(SLOT_SOURCE_TYPES)}."
        )

    if source_type == "entry":
        return {
            "source_type": source_type,
            "entry_id": entry_id or None,
            "source_match_id": None,
            "placeholder_label": None,
        }
    if source_type in ("winner", "loser"):
        if not source_match_id:
            raise ValidationError(
                f"source_match_id is required for a {source_type} slot."
            )
        return {
            "source_type": source_type,
            "entry_id": None,
            "source_match_id": source_match_id,
            "placeholder_label": None,
        }
    return {
        "source_type": source_type,
        "entry_id": None,
        "source_match_id": None,
        "placeholder_label": placeholder_label or BYE_LABEL,
    }
