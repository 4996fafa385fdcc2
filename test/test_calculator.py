# test/test_calculator.py

from dataclasses import replace

import pytest

from card_elo.calculator import (
    Competitor,
    calculate_game_changes,
    expected_score,
    k_factor,
    margin_multiplier,
    placement_score,
    provisional_dampening,
    rating_delta,
    round_half_up,
)
from card_elo.constants import DEFAULT_CONFIG
from card_elo.models import Game, PlayerIdentity

from helpers import game_record, rated_identity


def _identities(*ids):
    return {i: PlayerIdentity(id=i, display_name=i) for i in ids}


def _changes(game, identities, game_type="wizard", config=DEFAULT_CONFIG):
    return {c.identity_id: c for c in calculate_game_changes(game, identities, game_type, config)}


@pytest.mark.parametrize(
    "games_played, expected",
    [(0, 40), (9, 40), (10, 32), (29, 32), (30, 24), (99, 24), (100, 16), (5000, 16)],
)
def test_k_factor_tiers(games_played, expected):
    assert k_factor(games_played) == expected


@pytest.mark.parametrize(
    "player, opponent, num_players, expected",
    [
        (1, 1, 4, 0.5),
        (1, 4, 4, 1.0),
        (4, 1, 4, 0.0),
        (1, 2, 2, 1.0),
        (2, 1, 6, 0.4),
        (3, 5, 6, 0.7),
    ],
)
def test_placement_score(player, opponent, num_players, expected):
    assert placement_score(player, opponent, num_players) == pytest.approx(expected)


def test_expected_score():
    assert expected_score(1000, 1000) == pytest.approx(0.5)
    assert expected_score(1400, 1000) == pytest.approx(10 / 11)
    assert expected_score(1000, 1400) + expected_score(1400, 1000) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "gap, won, expected",
    [
        (50, True, 1.25),
        (80, True, 1.25),
        (30, True, 1.15),
        (10, True, 1.05),
        (9, True, 1.0),
        (50, False, 0.90),
        (30, False, 0.90),
        (10, False, 0.95),
        (0, False, 1.0),
    ],
)
def test_margin_multiplier(gap, won, expected):
    assert margin_multiplier(100 + gap, 100, won) == pytest.approx(expected)


def test_provisional_dampening_only_for_established_vs_new():
    assert provisional_dampening(10, 9) == 0.5
    assert provisional_dampening(9, 10) == 1.0
    assert provisional_dampening(0, 0) == 1.0
    assert provisional_dampening(50, 50) == 1.0


@pytest.mark.parametrize("value, expected", [(2.5, 3), (-2.5, -2), (-12.73, -13), (17.68, 18), (0.49, 0)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


class TestCalculateGameChanges:
    def test_two_new_players(self):
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10}))
        changes = _changes(game, _identities("A", "B"))

        assert changes["A"].new_rating == 1018
        assert changes["A"].change == 18
        assert changes["A"].won is True
        assert changes["B"].new_rating == 987
        assert changes["B"].change == -13
        assert changes["B"].won is False
        assert changes["A"].opponents == ["B"]

    def test_four_player_table(self):
        game = Game.from_dict(game_record("g1", {"A": 90, "B": 10, "C": 40, "D": 120}))
        changes = _changes(game, _identities("A", "B", "C", "D"))

        assert {k: c.change for k, c in changes.items()} == {"D": 49, "A": 15, "C": -13, "B": -36}
        assert {k: c.placement for k, c in changes.items()} == {"D": 1, "A": 2, "C": 3, "B": 4}
        # winner bonus outweighs the capped loser penalty
        assert sum(c.change for c in changes.values()) != 0

    def test_low_is_better_gives_same_changes(self):
        scores = {"A": 90, "B": 10, "C": 40, "D": 120}
        high = Game.from_dict(game_record("g1", scores))
        low = Game.from_dict(game_record("g1", {k: -v for k, v in scores.items()}, low_is_better=True))
        identities = _identities("A", "B", "C", "D")

        high_changes = {k: c.change for k, c in _changes(high, identities).items()}
        low_changes = {k: c.change for k, c in _changes(low, identities).items()}
        assert high_changes == low_changes

    def test_rating_never_below_floor(self):
        identities = {
            "A": rated_identity("A", "wizard", 110, 0),
            "B": rated_identity("B", "wizard", 110, 0),
        }
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10}))
        changes = _changes(game, identities)

        assert changes["B"].new_rating == 100
        assert changes["B"].change == -10
        assert changes["A"].new_rating == 128

    def test_dampening_only_shrinks_the_established_side(self):
        identities = {
            "vet": rated_identity("vet", "wizard", 1000, 50),
            "rookie": rated_identity("rookie", "wizard", 1000, 0),
        }
        game = Game.from_dict(game_record("g1", {"vet": 15, "rookie": 10}))
        undamped = replace(DEFAULT_CONFIG, provisional_dampening=1.0)

        damped_changes = _changes(game, identities)
        plain_changes = _changes(game, identities, config=undamped)

        assert damped_changes["vet"].change == 4
        assert plain_changes["vet"].change == 8
        assert damped_changes["rookie"].change == plain_changes["rookie"].change == -14

    def test_unidentified_players_count_towards_table_size(self):
        game = Game.from_dict(game_record(
            "g1", {"A": 60, "C": 30, "B": 10}, identities={"A": "A", "B": "B", "C": None},
        ))
        changes = _changes(game, _identities("A", "B"))

        assert set(changes) == {"A", "B"}
        assert changes["A"].change == 19
        assert changes["B"].placement == 3
        assert changes["A"].opponents == ["C", "B"]

    def test_deleted_or_unknown_identity_is_unrated(self):
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10, "C": 5}))
        changes = _changes(game, _identities("A", "B"))
        assert set(changes) == {"A", "B"}

    def test_player_without_rated_opponents_gets_nothing(self):
        game = Game.from_dict(game_record(
            "g1", {"A": 60, "B": 10, "C": 5}, identities={"A": "A", "B": None, "C": None},
        ))
        assert calculate_game_changes(game, _identities("A"), "wizard") == []

    def test_unfinished_game_gets_nothing(self):
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10}, finished=False))
        assert calculate_game_changes(game, _identities("A", "B"), "wizard") == []

    def test_ratings_are_per_game_type(self):
        identities = {"A": rated_identity("A", "wizard", 1500, 40), "B": rated_identity("B", "wizard", 1500, 40)}
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10}))

        changes = _changes(game, identities, game_type="Flip 7")
        assert changes["A"].old_rating == 1000
        assert changes["A"].game_type == "flip-7"
        assert changes["A"].new_rating == 1018

    def test_input_identities_not_mutated(self):
        identities = _identities("A", "B")
        game = Game.from_dict(game_record("g1", {"A": 60, "B": 10}))
        calculate_game_changes(game, identities, "wizard")
        assert identities["A"].elo_by_game_type == {}


def test_rating_delta_symmetric_pair():
    a = Competitor(rating=1000, games_played=0, placement=1, score=60)
    b = Competitor(rating=1000, games_played=0, placement=2, score=10)
    assert rating_delta(a, [b], 2) == 18
    assert rating_delta(b, [a], 2) == -13
