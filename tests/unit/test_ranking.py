"""Unit tests for meet_roster_etl.ranking."""

from __future__ import annotations

import itertools

from meet_roster_etl.ranking import rank_entries, ranking_key
from meet_roster_etl.shared import AthleteEntry

MEET = "States 2025"


def _e(member_id: str, gender: str, weight: str, total: int | None, name: str | None = None) -> AthleteEntry:
    return AthleteEntry(
        member_id=member_id,
        name=name or f"Athlete {member_id}",
        gender=gender,
        weight_class=weight,
        meet=MEET,
        entry_total=total,
    )


def _ids(entries: list[AthleteEntry]) -> list[str]:
    return [e.member_id for e in entries]


class TestRankEntries:
    def test_documented_example(self):
        batch = [_e("a", "Female", "87", 100), _e("b", "Female", "+87", 90), _e("c", "Male", "55", 120)]
        assert _ids(rank_entries(batch)) == ["a", "b", "c"]

    def test_female_before_male(self):
        batch = [_e("m", "Male", "55", 300), _e("f", "Female", "109", 50)]
        assert _ids(rank_entries(batch)) == ["f", "m"]

    def test_numeral_ascending_not_lexicographic(self):
        batch = [_e("109", "Male", "109", 255), _e("89", "Male", "89", 160), _e("96", "Male", "96", 188)]
        assert _ids(rank_entries(batch)) == ["89", "96", "109"]

    def test_plus_after_same_numeral(self):
        batch = [_e("plus", "Female", "+87", 200), _e("plain", "Female", "87", 100)]
        assert _ids(rank_entries(batch)) == ["plain", "plus"]

    def test_total_descending_within_bracket(self):
        batch = [_e("low", "Male", "89", 160), _e("high", "Male", "89", 218)]
        assert _ids(rank_entries(batch)) == ["high", "low"]

    def test_unparseable_weight_sorts_last_within_gender(self):
        batch = [_e("open", "Female", "Open", 500), _e("heavy", "Female", "+87", 10)]
        assert _ids(rank_entries(batch)) == ["heavy", "open"]

    def test_missing_total_ranks_last_in_bracket(self):
        batch = [_e("none", "Male", "81", None), _e("some", "Male", "81", 1)]
        assert _ids(rank_entries(batch)) == ["some", "none"]

    def test_stable_for_full_ties(self):
        batch = [_e("first", "Male", "81", 250), _e("second", "Male", "81", 250)]
        assert _ids(rank_entries(batch)) == ["first", "second"]
        assert _ids(rank_entries(list(reversed(batch)))) == ["second", "first"]

    def test_order_is_independent_of_feed_order(self):
        batch = [
            _e("1", "Female", "64", 141),
            _e("2", "Female", "87", 122),
            _e("3", "Female", "+87", 135),
            _e("4", "Male", "55", 38),
            _e("5", "Male", "81", 250),
            _e("6", "Male", "89", 160),
            _e("7", "Male", "89", 218),
        ]
        expected = ["1", "2", "3", "4", "5", "7", "6"]
        for perm in itertools.islice(itertools.permutations(batch), 200):
            assert _ids(rank_entries(list(perm))) == expected

    def test_does_not_mutate_input(self):
        batch = [_e("m", "Male", "55", 1), _e("f", "Female", "55", 1)]
        rank_entries(batch)
        assert _ids(batch) == ["m", "f"]


class TestRankingKey:
    def test_key_components(self):
        assert ranking_key(_e("x", "Female", "+87", 90)) == (0, 87.0, True, -90)

    def test_unknown_gender_after_male(self):
        assert ranking_key(_e("x", "X", "55", 1))[0] > ranking_key(_e("y", "Male", "55", 1))[0]
