"""meet_roster_etl.identity

Identity resolution for scraped roster entries.

Rules, per incoming entry:
  1. Same meet, same name key (trim + lowercase) → UPDATE the stored record,
     keeping its member_id. The roster site does not guarantee it reissues
     the same member_id to the same athlete across scrapes.
  2. No name match, but the incoming member_id is already known (stored in
     any meet, or assigned earlier in this run) → INSERT under a freshly
     synthesized member_id.
  3. Otherwise → INSERT under the incoming member_id.

member_id is unique across the whole store. Every id accepted or generated
during a run enters the working set immediately, so the resolver must be
driven one entry at a time, in order.

Known limitation: two different athletes sharing a name within one meet
collapse into one record. reconcile.collapse_same_name keeps the last such
entry of a batch before the resolver sees it.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Iterable

from meet_roster_etl.normalize import name_key
from meet_roster_etl.shared import (
    AthleteEntry,
    IdentifierSpaceExhausted,
    StoreReadFailure,
)
from meet_roster_etl.store import AthleteStore

log = logging.getLogger(__name__)

ACTION_INSERT = "insert"
ACTION_UPDATE = "update"

DEFAULT_ID_DIGITS = 9
DEFAULT_MAX_ATTEMPTS = 1000


# ---------------------------------------------------------------------------
# Synthetic identifiers
# ---------------------------------------------------------------------------

class SyntheticIdGenerator:
    """Draw fixed-width numeric ids that collide with nothing in `known`.

    `known` is shared with the resolver and mutated in place: an accepted id
    is added before it is returned.
    """

    def __init__(
        self,
        known: set[str],
        digits: int = DEFAULT_ID_DIGITS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        if digits < 1:
            raise ValueError("digits must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._known = known
        self._low = 10 ** (digits - 1)
        self._high = 10 ** digits
        self._max_attempts = max_attempts
        self._rng = rng or random.Random()

    def generate(self) -> str:
        for _ in range(self._max_attempts):
            candidate = str(self._rng.randrange(self._low, self._high))
            if candidate not in self._known:
                self._known.add(candidate)
                return candidate
        raise IdentifierSpaceExhausted(
            f"no unused id in [{self._low}, {self._high}) "
            f"after {self._max_attempts} draws"
        )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

@dataclass
class Resolution:
    action: str
    record: AthleteEntry          # incoming content under the resolved member_id
    existing: AthleteEntry | None
    incoming_member_id: str
    synthesized: bool = False

    @property
    def is_update(self) -> bool:
        return self.action == ACTION_UPDATE


class IdentityResolver:
    """Resolve entries against a snapshot of the store taken by `prepare`."""

    def __init__(
        self,
        store: AthleteStore,
        id_digits: int = DEFAULT_ID_DIGITS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._by_meet: dict[str, dict[str, AthleteEntry]] = {}
        self._known_ids: set[str] = set()
        self._generator = SyntheticIdGenerator(
            self._known_ids, digits=id_digits, max_attempts=max_attempts, rng=rng
        )
        self._prepared = False

    def prepare(self, meets: Iterable[str]) -> None:
        """Load every read the run needs before any write happens.

        Raises StoreReadFailure if any listing fails.
        """
        try:
            for meet in dict.fromkeys(meets):
                index: dict[str, AthleteEntry] = {}
                for rec in self._store.list_by_meet(meet):
                    key = name_key(rec.name)
                    if key is None:
                        continue
                    index.setdefault(key, rec)
                self._by_meet[meet] = index
            identifiers = self._store.list_all_identifiers()
        except StoreReadFailure:
            raise
        except Exception as exc:
            raise StoreReadFailure(f"store listing failed: {exc}") from exc

        self._known_ids.update(member_id for member_id, _meet in identifiers)
        self._prepared = True
        log.info(
            "Identity snapshot: %d meet(s), %d known member_id(s)",
            len(self._by_meet),
            len(self._known_ids),
        )

    def resolve(self, entry: AthleteEntry) -> Resolution:
        if not self._prepared or entry.meet not in self._by_meet:
            raise RuntimeError(f"resolver not prepared for meet {entry.meet!r}")

        existing = self._by_meet[entry.meet].get(name_key(entry.name) or "")
        if existing is not None:
            return Resolution(
                action=ACTION_UPDATE,
                record=replace(entry, member_id=existing.member_id),
                existing=existing,
                incoming_member_id=entry.member_id,
            )

        if entry.member_id in self._known_ids:
            new_id = self._generator.generate()
            log.info(
                "member_id %s already in use; assigned %s to %s in meet %s",
                entry.member_id, new_id, entry.name, entry.meet,
            )
            return Resolution(
                action=ACTION_INSERT,
                record=replace(entry, member_id=new_id),
                existing=None,
                incoming_member_id=entry.member_id,
                synthesized=True,
            )

        self._known_ids.add(entry.member_id)
        return Resolution(
            action=ACTION_INSERT,
            record=entry,
            existing=None,
            incoming_member_id=entry.member_id,
        )

    def remember(self, record: AthleteEntry) -> None:
        """Register a written record so later entries in the batch see it."""
        self._known_ids.add(record.member_id)
        key = name_key(record.name)
        if key is not None:
            self._by_meet.setdefault(record.meet, {})[key] = record

    @property
    def known_ids(self) -> frozenset[str]:
        return frozenset(self._known_ids)
