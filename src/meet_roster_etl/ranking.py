"""meet_roster_etl.ranking

Canonical report order for a meet roster:

  1. gender      Female, then Male, then anything else
  2. bracket     weight numeral ascending ("87" before "96")
  3. plus-flag   "87" before "+87"
  4. entry_total descending; a missing total ranks last in its bracket

Unparseable weight classes sort after every numbered bracket. The sort is
stable, so entries tied on all four keys keep feed order.
"""

from __future__ import annotations

import math
from typing import Iterable

from meet_roster_etl.normalize import GENDER_FEMALE, GENDER_MALE, parse_weight_class
from meet_roster_etl.shared import AthleteEntry

_GENDER_RANK = {GENDER_FEMALE: 0, GENDER_MALE: 1}


def ranking_key(entry: AthleteEntry) -> tuple[int, float, bool, float]:
    bracket = parse_weight_class(entry.weight_class)
    total = -entry.entry_total if entry.entry_total is not None else math.inf
    return (
        _GENDER_RANK.get(entry.gender, len(_GENDER_RANK)),
        bracket.numeral,
        bracket.plus,
        total,
    )


def rank_entries(entries: Iterable[AthleteEntry]) -> list[AthleteEntry]:
    """Return a new list in canonical report order."""
    return sorted(entries, key=ranking_key)
