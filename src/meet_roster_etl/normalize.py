"""Normalization functions for meet roster ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

GENDER_FEMALE = "Female"
GENDER_MALE = "Male"
VALID_GENDERS = frozenset({GENDER_FEMALE, GENDER_MALE})

_GENDER_ALIASES = {
    "female": GENDER_FEMALE,
    "f": GENDER_FEMALE,
    "w": GENDER_FEMALE,
    "women": GENDER_FEMALE,
    "male": GENDER_MALE,
    "m": GENDER_MALE,
    "men": GENDER_MALE,
}

_WEIGHT_RE = re.compile(r"(\+)?(\d+)")
_INT_RE = re.compile(r"^[+-]?\d+$")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: name_key  (athlete identity within a meet)
# ---------------------------------------------------------------------------

def name_key(value: str | None) -> str | None:
    """Trim and lowercase a display name for same-meet identity matching.

    Deliberately narrower than a full normalization: "Jane Doe" and
    " jane doe " match, "Jane  Doe" and "Jane Doe" do not.
    """
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: normalize_gender
# ---------------------------------------------------------------------------

def normalize_gender(value: str | None) -> str | None:
    """Map roster gender spellings onto 'Female' / 'Male', else None."""
    v = trim(value)
    if v is None:
        return None
    return _GENDER_ALIASES.get(v.lower())


# ---------------------------------------------------------------------------
# Rule 5: parse_int
# ---------------------------------------------------------------------------

def parse_int(value: str | int | None) -> int | None:
    """Parse an integer from a cell value, returning None on failure.

    Accepts ints unchanged (bool excluded) and tolerates a trailing '.0'
    left behind by spreadsheet exports.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    v = trim(str(value))
    if v is None:
        return None
    if v.endswith(".0"):
        v = v[:-2]
    if not _INT_RE.match(v):
        return None
    return int(v)


# ---------------------------------------------------------------------------
# Rule 6: parse_weight_class
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeightBracket:
    """Composite (numeral, plus-flag) key of a weight class.

    "87" and "+87" share the numeral 87 but are distinct brackets; the
    non-plus bracket orders first.
    """

    numeral: float
    plus: bool

    def sort_key(self) -> tuple[float, bool]:
        return (self.numeral, self.plus)


UNPARSEABLE_BRACKET = WeightBracket(numeral=math.inf, plus=False)


def parse_weight_class(value: str | None) -> WeightBracket:
    """Extract the bracket from strings like '87', '+87', '87kg', 'Female +87kg'.

    Strings without a numeral sort last: (inf, False).
    """
    v = trim(value)
    if v is None:
        return UNPARSEABLE_BRACKET
    m = _WEIGHT_RE.search(v)
    if not m:
        return UNPARSEABLE_BRACKET
    return WeightBracket(numeral=float(int(m.group(2))), plus=m.group(1) == "+")


# ---------------------------------------------------------------------------
# Helper: join_display_name
# ---------------------------------------------------------------------------

def join_display_name(first: str | None, last: str | None) -> str | None:
    """Build 'First Last' from roster cells.

    The roster's last-name cell can carry trailing annotations, so only its
    first token is kept.
    """
    first_v = normalize_space(first)
    last_v = normalize_space(last)
    last_token = last_v.split(" ")[0] if last_v else None
    parts = [p for p in (first_v, last_token) if p]
    return " ".join(parts) if parts else None
