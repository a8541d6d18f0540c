"""meet_roster_etl.shared

Shared types and utilities used by the feeds, the reconciliation loop and
the CLI. Includes the error taxonomy, the AthleteEntry record, RejectWriter,
RunCounters, and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RosterSyncError(Exception):
    """Base class for roster sync failures."""


class FeedUnavailable(RosterSyncError):
    """The raw entry source could not be read. Fatal before reconciliation."""


class StoreReadFailure(RosterSyncError):
    """Listing existing records failed. Fatal; no partial reconciliation."""


class StoreWriteFailure(RosterSyncError):
    """A single insert/update failed. Recoverable per entry."""


class NotificationFailure(RosterSyncError):
    """Delivering the run summary failed. Logged, never propagated."""


class IdentifierSpaceExhausted(RosterSyncError):
    """No unused synthetic identifier was found within the retry bound."""


# ---------------------------------------------------------------------------
# AthleteEntry
# ---------------------------------------------------------------------------

ROSTER_COLUMNS = (
    "member_id",
    "name",
    "age",
    "club",
    "gender",
    "weight_class",
    "entry_total",
    "session_number",
    "session_platform",
    "meet",
)

# Fields owned by the external scheduling process, never by a scrape.
SESSION_FIELDS = ("session_number", "session_platform")


@dataclass
class AthleteEntry:
    """One athlete's registration in one meet."""

    member_id: str
    name: str
    gender: str
    weight_class: str
    meet: str
    age: int | None = None
    club: str | None = None
    entry_total: int | None = None
    session_number: int | None = None
    session_platform: str | None = None

    def to_row(self) -> dict[str, Any]:
        d = asdict(self)
        return {col: d[col] for col in ROSTER_COLUMNS}


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    # Feed
    rows_read: int = 0
    rows_rejected: int = 0
    pages_fetched: int = 0
    # Reconciliation
    attempted: int = 0
    duplicates_collapsed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped_unchanged: int = 0
    failed: int = 0
    synthesized_ids: int = 0
    # Ambient
    notification_sent: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def build_run_report(counters: RunCounters, meet: str | None, dry_run: bool) -> str:
    lines = [
        "=== Meet Roster Sync Report ===",
        f"meet              : {meet or '-'}",
        f"dry_run           : {dry_run}",
        "",
        "--- Feed ---",
        f"rows_read         : {counters.rows_read}",
        f"rows_rejected     : {counters.rows_rejected}",
        f"pages_fetched     : {counters.pages_fetched}",
        "",
        "--- Reconciliation ---",
        f"attempted         : {counters.attempted}",
        f"collapsed_dupes   : {counters.duplicates_collapsed}",
        f"inserted          : {counters.inserted}",
        f"updated           : {counters.updated}",
        f"skipped_unchanged : {counters.skipped_unchanged}",
        f"failed            : {counters.failed}",
        f"synthesized_ids   : {counters.synthesized_ids}",
        "",
        f"notification_sent : {counters.notification_sent}",
    ]
    if counters.warnings:
        lines.append("")
        lines.append(f"--- Warnings ({len(counters.warnings)}) ---")
        lines.extend(counters.warnings[:20])
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: RunCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
