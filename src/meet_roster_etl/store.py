"""meet_roster_etl.store

Persistence port for athlete entries plus two implementations:

  - PostgresAthleteStore: psycopg 3 against migrations/0001_athletes.sql.
    Each upsert runs in its own `conn.transaction()` block, which is a real
    transaction on an autocommit connection and a savepoint inside an open
    one (dry-run).
  - InMemoryAthleteStore: dict-backed, enforcing the same constraints as
    the schema. Used by unit tests.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol

import psycopg

from meet_roster_etl.normalize import name_key
from meet_roster_etl.shared import AthleteEntry, StoreReadFailure, StoreWriteFailure


class AthleteStore(Protocol):
    def list_by_meet(self, meet: str) -> list[AthleteEntry]:
        """Return every stored record for `meet`."""
        ...

    def list_all_identifiers(self) -> set[tuple[str, str]]:
        """Return (member_id, meet) for every stored record, all meets."""
        ...

    def upsert(self, record: AthleteEntry) -> None:
        """Insert if (member_id, meet) is absent, else update in place."""
        ...


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

_SELECT_COLS = """
    member_id, name, gender, weight_class, meet,
    age, club, entry_total, session_number, session_platform
"""

_UPSERT_SQL = """
    INSERT INTO athlete_entry
      (member_id, meet, name, age, club, gender, weight_class,
       entry_total, session_number, session_platform)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (member_id, meet) DO UPDATE SET
      name = EXCLUDED.name,
      age = EXCLUDED.age,
      club = EXCLUDED.club,
      gender = EXCLUDED.gender,
      weight_class = EXCLUDED.weight_class,
      entry_total = EXCLUDED.entry_total,
      session_number = COALESCE(athlete_entry.session_number,
                                EXCLUDED.session_number),
      session_platform = COALESCE(athlete_entry.session_platform,
                                  EXCLUDED.session_platform),
      updated_at = now()
"""


def _row_to_entry(row: tuple) -> AthleteEntry:
    (member_id, name, gender, weight_class, meet,
     age, club, entry_total, session_number, session_platform) = row
    return AthleteEntry(
        member_id=str(member_id),
        name=name,
        gender=gender,
        weight_class=weight_class,
        meet=meet,
        age=age,
        club=club,
        entry_total=entry_total,
        session_number=session_number,
        session_platform=session_platform,
    )


class PostgresAthleteStore:
    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def list_by_meet(self, meet: str) -> list[AthleteEntry]:
        try:
            rows = self._conn.execute(
                f"""
                SELECT {_SELECT_COLS}
                FROM athlete_entry
                WHERE meet = %s
                ORDER BY created_at ASC, member_id ASC
                """,
                (meet,),
            ).fetchall()
        except psycopg.Error as exc:
            raise StoreReadFailure(f"list_by_meet({meet!r}): {exc}") from exc
        return [_row_to_entry(r) for r in rows]

    def list_all_identifiers(self) -> set[tuple[str, str]]:
        try:
            rows = self._conn.execute(
                "SELECT member_id, meet FROM athlete_entry"
            ).fetchall()
        except psycopg.Error as exc:
            raise StoreReadFailure(f"list_all_identifiers: {exc}") from exc
        return {(str(r[0]), r[1]) for r in rows}

    def upsert(self, record: AthleteEntry) -> None:
        try:
            with self._conn.transaction():
                self._conn.execute(
                    _UPSERT_SQL,
                    (
                        record.member_id,
                        record.meet,
                        record.name,
                        record.age,
                        record.club,
                        record.gender,
                        record.weight_class,
                        record.entry_total,
                        record.session_number,
                        record.session_platform,
                    ),
                )
        except psycopg.Error as exc:
            raise StoreWriteFailure(
                f"upsert member_id={record.member_id!r} meet={record.meet!r}: {exc}"
            ) from exc


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryAthleteStore:
    """Dict-backed store with the schema's uniqueness and COALESCE rules."""

    def __init__(self, records: list[AthleteEntry] | None = None) -> None:
        self._records: dict[tuple[str, str], AthleteEntry] = {}
        self.write_count = 0
        for rec in records or []:
            self._records[(rec.member_id, rec.meet)] = replace(rec)

    def list_by_meet(self, meet: str) -> list[AthleteEntry]:
        return [replace(r) for (_, m), r in self._records.items() if m == meet]

    def list_all_identifiers(self) -> set[tuple[str, str]]:
        return set(self._records)

    def upsert(self, record: AthleteEntry) -> None:
        key = (record.member_id, record.meet)
        for (member_id, meet), other in self._records.items():
            if (member_id, meet) == key:
                continue
            if member_id == record.member_id:
                raise StoreWriteFailure(
                    f"member_id {record.member_id!r} already used in meet {meet!r}"
                )
            if meet == record.meet and name_key(other.name) == name_key(record.name):
                raise StoreWriteFailure(
                    f"name {record.name!r} already stored in meet {meet!r}"
                )

        existing = self._records.get(key)
        new = replace(record)
        if existing is not None:
            if existing.session_number is not None:
                new.session_number = existing.session_number
            if existing.session_platform is not None:
                new.session_platform = existing.session_platform
        self._records[key] = new
        self.write_count += 1

    def get(self, member_id: str, meet: str) -> AthleteEntry | None:
        rec = self._records.get((member_id, meet))
        return replace(rec) if rec else None

    def all(self) -> list[AthleteEntry]:
        return [replace(r) for r in self._records.values()]
