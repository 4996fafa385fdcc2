"""
Read-only projections over persisted rating state: leaderboard, per-player
history, and an all-game-types summary. Nothing here writes.
"""

from __future__ import annotations

import math
from dataclasses import asdict
from typing import Any, Dict, Optional

from .constants import DEFAULT_CONFIG, EloConfig
from .models import normalize_game_type

RANKINGS_SQL = """--sql
	SELECT pi.id, pi.display_name, pi.user_id, pi.type,
		   er.rating, er.peak, er.floor, er.games_played, er.streak
	FROM elo_records er
	JOIN player_identities pi ON pi.id = er.identity_id
	WHERE er.game_type = ?
	  AND COALESCE(pi.is_deleted, FALSE) = FALSE
	  AND er.games_played >= ?
	ORDER BY er.rating DESC, er.games_played DESC, pi.id
	LIMIT ? OFFSET ?
"""

RANKINGS_COUNT_SQL = """--sql
	SELECT COUNT(*)
	FROM elo_records er
	JOIN player_identities pi ON pi.id = er.identity_id
	WHERE er.game_type = ?
	  AND COALESCE(pi.is_deleted, FALSE) = FALSE
	  AND er.games_played >= ?
"""


def get_rankings(
	store,
	game_type: str = "wizard",
	page: int = 1,
	limit: int = 50,
	min_games: Optional[int] = None,
	config: EloConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
	gt = normalize_game_type(game_type)
	page = max(1, page)
	limit = max(1, limit)
	if min_games is None:
		min_games = config.min_games_for_ranking
	skip = (page - 1) * limit

	with store.session(transactional=False) as s:
		total = s.conn.execute(RANKINGS_COUNT_SQL, [gt, min_games]).fetchone()[0]
		rows = s.conn.execute(RANKINGS_SQL, [gt, min_games, limit, skip]).fetchall()

	rankings = []
	for index, (iid, display_name, user_id, typ, rating, peak, floor, games_played, streak) in enumerate(rows):
		rankings.append({
			"rank": skip + index + 1,
			"identity_id": iid,
			"display_name": display_name,
			"user_id": user_id,
			"type": typ,
			"rating": rating,
			"peak": peak,
			"floor": floor,
			"games_played": games_played,
			"streak": streak,
		})
	return {
		"game_type": gt,
		"rankings": rankings,
		"pagination": {
			"page": page,
			"limit": limit,
			"total": total,
			"total_pages": math.ceil(total / limit),
		},
		"config": {
			"min_games_for_ranking": min_games,
			"default_rating": config.default_rating,
		},
	}


def get_history(
	store,
	identity_id: str,
	game_type: str = "wizard",
	limit: int = 20,
	config: EloConfig = DEFAULT_CONFIG,
) -> Optional[Dict[str, Any]]:
	identity = store.get_identity(identity_id)
	if identity is None:
		return None
	gt = normalize_game_type(game_type)
	elo = identity.elo_for(gt, config)
	return {
		"identity_id": identity.id,
		"display_name": identity.display_name,
		"game_type": gt,
		"all_game_types": list(identity.elo_by_game_type),
		"current_rating": elo.rating,
		"peak": elo.peak,
		"floor": elo.floor,
		"games_played": elo.games_played,
		"streak": elo.streak,
		"history": [asdict(h) for h in list(elo.history)[:max(0, limit)]],
	}


def get_all_ratings(store, identity_id: str) -> Optional[Dict[str, Any]]:
	identity = store.get_identity(identity_id)
	if identity is None:
		return None
	by_type = {
		gt: {
			"rating": elo.rating,
			"peak": elo.peak,
			"floor": elo.floor,
			"games_played": elo.games_played,
			"streak": elo.streak,
			"last_updated": elo.last_updated,
			"history_count": len(elo.history),
		}
		for gt, elo in identity.elo_by_game_type.items()
	}
	return {
		"identity_id": identity.id,
		"display_name": identity.display_name,
		"elo_by_game_type": by_type,
		"game_types": list(by_type),
	}


def get_rating_config(config: EloConfig = DEFAULT_CONFIG) -> Dict[str, Any]:
	"""Public scoring parameters, as shown next to the leaderboard."""
	return {
		"default_rating": config.default_rating,
		"min_rating": config.min_rating,
		"min_games_for_ranking": config.min_games_for_ranking,
		"k_factors": {
			"new_player": config.k_new,
			"developing": config.k_developing,
			"established": config.k_established,
			"veteran": config.k_veteran,
		},
		"games_thresholds": {
			"new": config.new_threshold,
			"developing": config.developing_threshold,
			"established": config.established_threshold,
		},
	}
