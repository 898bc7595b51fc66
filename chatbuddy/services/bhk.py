"""BHK (unit size) preference normalization"""
import math
import re
from typing import Any, NamedTuple, Optional


class BhkPreference(NamedTuple):
    type: str
    numeric: Optional[int]


YET_TO_DECIDE = BhkPreference("Yet to decide", None)

SPECIAL_BHK_MAPPINGS = {
    "duplex": BhkPreference("Duplex", None),
    "justbrowsing": BhkPreference("Just Browsing", None),
    "justlooking": BhkPreference("Just Browsing", None),
    "other": BhkPreference("Other", None),
    "yettodecide": YET_TO_DECIDE,
}

_DIGITS = re.compile(r"(\d+)")


def _compact(value: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value).lower())


def _label(number: int) -> BhkPreference:
    if 1 <= number <= 4:
        return BhkPreference(f"{number} BHK", number)
    return BhkPreference("Other", number)


def _from_number(number: int) -> BhkPreference:
    if number == 0:
        return YET_TO_DECIDE
    return _label(number)


def normalize_bhk_preference(bhk: Any = None, bhk_type: Any = None) -> Optional[BhkPreference]:
    """
    Resolve the visitor's unit preference

    A numeric ``bhk`` wins over ``bhk_type``. Returns None when neither field
    carries a usable preference.
    """
    if bhk is not None and bhk != "" and not isinstance(bhk, bool):
        try:
            numeric = float(bhk)
        except (TypeError, ValueError):
            numeric = None
        if numeric is not None and math.isfinite(numeric):
            # Only an exact zero is undecided; 0.4 rounds to "Other" 0
            if numeric == 0:
                return YET_TO_DECIDE
            return _label(int(math.floor(numeric + 0.5)))

    if bhk_type is None or bhk_type == "":
        return None

    trimmed = str(bhk_type).strip()
    if not trimmed:
        return None

    special = SPECIAL_BHK_MAPPINGS.get(_compact(trimmed))
    if special:
        return special

    match = _DIGITS.search(trimmed)
    if match:
        return _from_number(int(match.group(1)))

    return None
