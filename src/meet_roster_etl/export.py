"""meet_roster_etl.export

Ranked roster → CSV. The header matches what CsvRosterFeed reads back.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from meet_roster_etl.shared import ROSTER_COLUMNS, AthleteEntry


def write_roster_csv(path: Path, entries: Iterable[AthleteEntry]) -> int:
    """Write entries in the order given; return the number of rows written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=list(ROSTER_COLUMNS))
        writer.writeheader()
        for entry in entries:
            row = entry.to_row()
            writer.writerow({k: "" if v is None else v for k, v in row.items()})
            n += 1
    return n
