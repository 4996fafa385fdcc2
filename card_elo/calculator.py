"""
Pairwise multi-player Elo for card games.

Each rated player is compared with every other rated player at the table:

- K-factor from games played in this game type (40 / 32 / 24 / 16)
- expected score per opponent: 1 / (1 + 10^((Rb - Ra) / 400))
- actual score per opponent from the placement gap, not win/loss: a tie is
  0.5, finishing ahead moves linearly towards 1.0 as the gap approaches
  players - 1, finishing behind towards 0.0
- an established player (10+ games) facing a provisional opponent has both
  expected and actual score against that opponent scaled by the dampening
  factor; no other pairing is dampened
- margin multiplier per opponent: full tiered bonus for a win, tiered
  penalty capped at 10% for a loss, combined multiplicatively and normalized
  by a (players - 1)-th root
- change = K * (actual - expected) * margin * sqrt(players / 4), rounded half
  up, and the new rating never drops below the floor

The winner bonus is larger than the loser penalty and the table-size factor
is a square root, so a game does not net to zero across its players. That is
scoring policy and must stay.

Players without an identity still occupy a placement and count towards the
number of players; they just are not rated or used as opponents.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Mapping, Sequence

from .constants import DEFAULT_CONFIG, EloConfig
from .models import Game, PlayerIdentity, RatingChange, normalize_game_type
from .outcome import beats, rank_players


@dataclass
class Competitor:
	rating: int
	games_played: int
	placement: int
	score: float


def k_factor(games_played: int, config: EloConfig = DEFAULT_CONFIG) -> int:
	if games_played < config.new_threshold:
		return config.k_new
	if games_played < config.developing_threshold:
		return config.k_developing
	if games_played < config.established_threshold:
		return config.k_established
	return config.k_veteran


def expected_score(ra: float, rb: float) -> float:
	return 1.0 / (1.0 + 10 ** ((rb - ra) / 400.0))


def placement_score(player_placement: int, opponent_placement: int, num_players: int) -> float:
	if player_placement == opponent_placement:
		return 0.5
	max_gap = num_players - 1
	if player_placement < opponent_placement:
		gap = opponent_placement - player_placement
		return 0.5 + (gap / max_gap) * 0.5
	gap = player_placement - opponent_placement
	return 0.5 - (gap / max_gap) * 0.5


def provisional_dampening(player_games: int, opponent_games: int, config: EloConfig = DEFAULT_CONFIG) -> float:
	player_is_new = player_games < config.new_threshold
	opponent_is_new = opponent_games < config.new_threshold
	if not player_is_new and opponent_is_new:
		return config.provisional_dampening
	return 1.0


def margin_multiplier(player_score: float, opponent_score: float, won: bool, config: EloConfig = DEFAULT_CONFIG) -> float:
	margin = abs(player_score - opponent_score)
	bonus = 0.0
	for threshold, tier_bonus in config.margin_tiers:
		if margin >= threshold:
			bonus = tier_bonus
			break
	if won:
		return 1.0 + bonus
	return 1.0 - min(bonus, config.margin_loss_max)


def round_half_up(x: float) -> int:
	# .5 always rounds towards +inf (so -2.5 -> -2); round() would round to even
	return int(math.floor(x + 0.5))


def rating_delta(
	player: Competitor,
	opponents: Sequence[Competitor],
	num_players: int,
	low_is_better: bool = False,
	config: EloConfig = DEFAULT_CONFIG,
) -> int:
	"""Rating change for one player against the rated opponents of one game.

	num_players is the full table size, rated or not.
	"""
	k = k_factor(player.games_played, config)
	expected_total = 0.0
	actual_total = 0.0
	margin = 1.0

	for opp in opponents:
		damp = provisional_dampening(player.games_played, opp.games_played, config)
		expected_total += expected_score(player.rating, opp.rating) * damp
		actual_total += placement_score(player.placement, opp.placement, num_players) * damp

		if beats(player, opp, low_is_better):
			margin *= margin_multiplier(player.score, opp.score, True, config)
		elif beats(opp, player, low_is_better):
			margin *= margin_multiplier(player.score, opp.score, False, config)

	margin = margin ** (1.0 / (num_players - 1))

	change = k * (actual_total - expected_total) * margin
	change *= math.sqrt(num_players / config.player_count_baseline)
	return round_half_up(change)


def calculate_game_changes(
	game: Game,
	identities: Mapping[str, PlayerIdentity],
	game_type: str,
	config: EloConfig = DEFAULT_CONFIG,
) -> List[RatingChange]:
	"""Compute rating changes for every rated player of a finished game.

	identities maps identity id to the (non-deleted) identity; players whose
	identity is not in it are treated as unrated. Nothing is mutated.
	"""
	if not game.finished:
		return []

	gt = normalize_game_type(game_type)
	ranked = rank_players(game)
	if len(ranked) < 2:
		return []
	num_players = len(ranked)

	def _competitor(p) -> Competitor:
		record = identities[p.identity_id].elo_for(gt, config)
		return Competitor(rating=record.rating, games_played=record.games_played, placement=p.placement, score=p.score)

	rated = [p for p in ranked if p.identity_id and p.identity_id in identities]
	results: List[RatingChange] = []
	for player in rated:
		opponents = [_competitor(o) for o in rated if o is not player]
		if not opponents:
			continue
		me = _competitor(player)
		delta = rating_delta(me, opponents, num_players, game.low_is_better, config)
		new_rating = max(config.min_rating, me.rating + delta)
		results.append(RatingChange(
			identity_id=player.identity_id,
			player_name=player.name,
			placement=player.placement,
			score=player.score,
			old_rating=me.rating,
			new_rating=new_rating,
			change=new_rating - me.rating,
			won=player.placement == 1,
			game_type=gt,
			opponents=[o.name for o in ranked if o is not player],
		))
	return results
