"""Unit tests for meet_roster_etl.identity."""

from __future__ import annotations

import random

import pytest

from meet_roster_etl.identity import (
    ACTION_INSERT,
    ACTION_UPDATE,
    IdentityResolver,
    SyntheticIdGenerator,
)
from meet_roster_etl.shared import AthleteEntry, IdentifierSpaceExhausted, StoreReadFailure
from meet_roster_etl.store import InMemoryAthleteStore

STATES = "States 2025"
REGIONALS = "Regionals 2025"


def _e(member_id: str, name: str, meet: str = STATES, **kw) -> AthleteEntry:
    kw.setdefault("gender", "Female")
    kw.setdefault("weight_class", "64")
    return AthleteEntry(member_id=member_id, name=name, meet=meet, **kw)


class _ScriptedRandom(random.Random):
    """Returns queued values from randrange, in order."""

    def __init__(self, values: list[int]) -> None:
        super().__init__(0)
        self._values = list(values)
        self.calls = 0

    def randrange(self, start, stop=None, step=1):  # type: ignore[override]
        self.calls += 1
        return self._values.pop(0)


# ---------------------------------------------------------------------------
# SyntheticIdGenerator
# ---------------------------------------------------------------------------

class TestSyntheticIdGenerator:
    def test_nine_digit_default(self):
        gen = SyntheticIdGenerator(set(), rng=random.Random(42))
        new_id = gen.generate()
        assert len(new_id) == 9
        assert new_id.isdigit()
        assert 100000000 <= int(new_id) <= 999999999

    def test_redraws_on_collision(self):
        known = {"123456789"}
        rng = _ScriptedRandom([123456789, 987654321])
        gen = SyntheticIdGenerator(known, rng=rng)
        assert gen.generate() == "987654321"
        assert rng.calls == 2

    def test_accepted_id_joins_working_set(self):
        known: set[str] = set()
        gen = SyntheticIdGenerator(known, rng=_ScriptedRandom([111111111]))
        gen.generate()
        assert "111111111" in known

    def test_no_duplicates_within_batch(self):
        known: set[str] = set()
        rng = _ScriptedRandom([111111111, 111111111, 222222222])
        gen = SyntheticIdGenerator(known, rng=rng)
        assert gen.generate() == "111111111"
        assert gen.generate() == "222222222"

    def test_exhaustion_raises(self):
        known = {str(i) for i in range(1, 10)}
        gen = SyntheticIdGenerator(known, digits=1, max_attempts=25, rng=random.Random(1))
        with pytest.raises(IdentifierSpaceExhausted):
            gen.generate()

    def test_rejects_bad_arguments(self):
        with pytest.raises(ValueError):
            SyntheticIdGenerator(set(), digits=0)
        with pytest.raises(ValueError):
            SyntheticIdGenerator(set(), max_attempts=0)


# ---------------------------------------------------------------------------
# IdentityResolver
# ---------------------------------------------------------------------------

class TestIdentityResolver:
    def _resolver(self, records: list[AthleteEntry], meets=(STATES,), rng=None) -> IdentityResolver:
        resolver = IdentityResolver(InMemoryAthleteStore(records), rng=rng)
        resolver.prepare(meets)
        return resolver

    def test_name_match_updates_stored_member_id(self):
        resolver = self._resolver([_e("1001", "Jane Doe", session_number=3)])
        res = resolver.resolve(_e("9999", "jane doe"))
        assert res.action == ACTION_UPDATE
        assert res.record.member_id == "1001"
        assert res.incoming_member_id == "9999"
        assert res.existing is not None and res.existing.session_number == 3

    def test_name_match_is_trimmed(self):
        resolver = self._resolver([_e("1001", "Jane Doe")])
        assert resolver.resolve(_e("1001", "  JANE DOE  ")).is_update

    def test_unknown_id_inserted_as_is(self):
        resolver = self._resolver([])
        res = resolver.resolve(_e("4242", "New Lifter"))
        assert res.action == ACTION_INSERT
        assert res.record.member_id == "4242"
        assert res.synthesized is False

    def test_id_used_in_other_meet_gets_synthetic(self):
        resolver = self._resolver(
            [_e("1001", "Someone Else", meet=REGIONALS)],
            rng=_ScriptedRandom([555555555]),
        )
        res = resolver.resolve(_e("1001", "Brand New"))
        assert res.action == ACTION_INSERT
        assert res.synthesized is True
        assert res.record.member_id == "555555555"

    def test_same_name_in_other_meet_does_not_match(self):
        resolver = self._resolver([_e("1001", "Jane Doe", meet=REGIONALS)])
        res = resolver.resolve(_e("1001", "Jane Doe"))
        assert res.action == ACTION_INSERT
        assert res.record.member_id != "1001"

    def test_id_accepted_earlier_in_run_is_not_reused(self):
        resolver = self._resolver([], rng=_ScriptedRandom([777777777]))
        first = resolver.resolve(_e("4242", "First Lifter"))
        resolver.remember(first.record)
        second = resolver.resolve(_e("4242", "Second Lifter"))
        assert second.synthesized is True
        assert second.record.member_id == "777777777"

    def test_synthetic_never_collides_with_store(self):
        resolver = self._resolver(
            [_e("1001", "A", meet=REGIONALS), _e("123456789", "B", meet=REGIONALS)],
            rng=_ScriptedRandom([123456789, 234567890]),
        )
        res = resolver.resolve(_e("1001", "C"))
        assert res.record.member_id == "234567890"

    def test_remember_makes_later_duplicate_an_update(self):
        resolver = self._resolver([])
        first = resolver.resolve(_e("1", "Twin Name"))
        resolver.remember(first.record)
        second = resolver.resolve(_e("2", "twin name"))
        assert second.is_update
        assert second.record.member_id == "1"

    def test_resolve_before_prepare_raises(self):
        resolver = IdentityResolver(InMemoryAthleteStore())
        with pytest.raises(RuntimeError):
            resolver.resolve(_e("1", "X"))

    def test_store_listing_error_becomes_read_failure(self):
        class BrokenStore(InMemoryAthleteStore):
            def list_all_identifiers(self):
                raise ConnectionError("db went away")

        resolver = IdentityResolver(BrokenStore())
        with pytest.raises(StoreReadFailure):
            resolver.prepare([STATES])
