"""meet_roster_etl.change_detect

Write suppression and session-field survivorship for matched entries.
"""

from __future__ import annotations

from dataclasses import fields, replace

from meet_roster_etl.normalize import parse_int
from meet_roster_etl.shared import SESSION_FIELDS, AthleteEntry

NUMERIC_FIELDS = frozenset({"age", "entry_total"})

COMPARED_FIELDS = tuple(
    f.name for f in fields(AthleteEntry) if f.name not in SESSION_FIELDS
)


def _field_equal(name: str, old: object, new: object) -> bool:
    if name in NUMERIC_FIELDS:
        return parse_int(old) == parse_int(new)  # type: ignore[arg-type]
    return old == new


def changed_fields(existing: AthleteEntry, incoming: AthleteEntry) -> list[str]:
    """Return the names of compared fields whose values differ.

    Session fields are never compared; the scrape cannot populate them.
    """
    return [
        name
        for name in COMPARED_FIELDS
        if not _field_equal(name, getattr(existing, name), getattr(incoming, name))
    ]


def has_changes(existing: AthleteEntry, incoming: AthleteEntry) -> bool:
    return bool(changed_fields(existing, incoming))


def merge_for_update(existing: AthleteEntry, incoming: AthleteEntry) -> AthleteEntry:
    """Incoming content over the stored record; non-null session values survive."""
    return replace(
        incoming,
        member_id=existing.member_id,
        session_number=(
            existing.session_number
            if existing.session_number is not None
            else incoming.session_number
        ),
        session_platform=(
            existing.session_platform
            if existing.session_platform is not None
            else incoming.session_platform
        ),
    )
