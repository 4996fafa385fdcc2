"""
Derive per-player scores and placements from a finished game.

Scores come from final_scores[player_id] when present (wizard format), else
from the sum of the player's points list (table format), with anything
non-numeric counted as 0. Placement is 1-based; tied scores share a placement
and the next distinct score skips ahead, so scores 50, 50, 20 place 1, 1, 3.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional

from .models import Game, GamePlayer


@dataclass
class RankedPlayer:
	id: str
	name: str
	identity_id: Optional[str]
	score: float
	placement: int = 0


def _coerce_number(value: Any) -> float:
	if isinstance(value, bool):
		return int(value)
	if isinstance(value, (int, float)):
		return 0 if isinstance(value, float) and math.isnan(value) else value
	if isinstance(value, str):
		try:
			n = float(value.strip() or 0)
		except ValueError:
			return 0
		if math.isnan(n):
			return 0
		return int(n) if n.is_integer() else n
	return 0


def player_score(player: GamePlayer, final_scores: dict) -> float:
	if player.id in final_scores and final_scores[player.id] is not None:
		return _coerce_number(final_scores[player.id])
	if player.points:
		return sum(_coerce_number(v) for v in player.points)
	return 0


def rank_players(game: Game) -> List[RankedPlayer]:
	"""Return every player of the game, best first, with placements assigned."""
	ranked = [
		RankedPlayer(id=p.id, name=p.name, identity_id=p.identity_id, score=player_score(p, game.final_scores))
		for p in game.players
	]
	# stable sort keeps entry order among ties
	ranked.sort(key=lambda r: r.score, reverse=not game.low_is_better)

	placement = 1
	for index, player in enumerate(ranked):
		if index > 0 and player.score != ranked[index - 1].score:
			placement = index + 1
		player.placement = placement
	return ranked


def beats(a, b, low_is_better: bool) -> bool:
	"""True when a finished strictly ahead of b on score (works for anything with .score)."""
	return a.score < b.score if low_is_better else a.score > b.score
