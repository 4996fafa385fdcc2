# test/test_outcome.py

import pytest

from card_elo.models import Game, GamePlayer
from card_elo.outcome import beats, player_score, rank_players

from helpers import game_record


def _placements(game):
    return {r.name: r.placement for r in rank_players(game)}


class TestPlayerScore:
    def test_final_scores_preferred_over_points(self):
        player = GamePlayer(id="p1", name="Ann", points=[100, 100])
        assert player_score(player, {"p1": 3}) == 3

    def test_missing_final_score_falls_back_to_points(self):
        player = GamePlayer(id="p1", name="Ann", points=[10, 20, -5])
        assert player_score(player, {"p1": None}) == 25
        assert player_score(player, {}) == 25

    def test_non_numeric_points_count_as_zero(self):
        player = GamePlayer(id="p1", name="Ann", points=[10, "5", None, "abc", float("nan"), True])
        assert player_score(player, {}) == 16

    def test_no_points_scores_zero(self):
        assert player_score(GamePlayer(id="p1", name="Ann"), {}) == 0


class TestRankPlayers:
    def test_high_score_wins(self):
        game = Game.from_dict(game_record("g1", {"A": 90, "B": 10, "C": 40, "D": 120}))
        assert _placements(game) == {"D": 1, "A": 2, "C": 3, "B": 4}

    def test_ties_share_placement_and_skip(self):
        game = Game.from_dict(game_record("g1", {"A": 50, "B": 50, "C": 20}))
        assert _placements(game) == {"A": 1, "B": 1, "C": 3}

    def test_three_way_tie_for_first(self):
        game = Game.from_dict(game_record("g1", {"A": 7, "B": 7, "C": 7, "D": 2}))
        assert _placements(game) == {"A": 1, "B": 1, "C": 1, "D": 4}

    def test_tied_players_keep_entry_order(self):
        game = Game.from_dict(game_record("g1", {"B": 5, "A": 5, "C": 9}))
        assert [r.name for r in rank_players(game)] == ["C", "B", "A"]

    def test_low_is_better_mirrors_high_is_better(self):
        scores = {"A": 90, "B": 10, "C": 40, "D": 120}
        high = Game.from_dict(game_record("g1", scores))
        low = Game.from_dict(game_record("g1", {k: -v for k, v in scores.items()}, low_is_better=True))
        assert _placements(high) == _placements(low)

    def test_points_based_game(self):
        game = Game.from_dict(game_record("g1", {"A": 3, "B": 12}, use_points=True, low_is_better=True))
        assert _placements(game) == {"A": 1, "B": 2}

    def test_unidentified_players_are_ranked(self):
        game = Game.from_dict(game_record("g1", {"A": 1, "B": 2}, identities={"A": "a"}))
        ranked = rank_players(game)
        assert [(r.name, r.identity_id) for r in ranked] == [("B", None), ("A", "a")]


@pytest.mark.parametrize(
    "a, b, low_is_better, expected",
    [
        (10, 5, False, True),
        (5, 10, False, False),
        (5, 10, True, True),
        (5, 5, False, False),
        (5, 5, True, False),
    ],
)
def test_beats(a, b, low_is_better, expected):
    game = Game.from_dict(game_record("g1", {"A": a, "B": b}, low_is_better=low_is_better))
    ranked = {r.name: r for r in rank_players(game)}
    assert beats(ranked["A"], ranked["B"], low_is_better) is expected
