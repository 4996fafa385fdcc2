"""
Scoring policy for multi-player card game ratings.

These numbers are product policy, not tuning knobs picked per run:
- Initial rating for an unseen player: 1000, never below 100
- K-factor by games played: <10 -> 40, <30 -> 32, <100 -> 24, otherwise 16
- Winner margin bonus: +25% for a gap of 50+, +15% for 30+, +5% for 10+
- Loser margin penalty: same tiers, capped at -10%
- Player count scaling: sqrt(players / 4)
- Established (10+ games) vs provisional opponent: both expected and actual
  score against that opponent are halved
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class EloConfig:
	default_rating: int = 1000
	min_rating: int = 100

	k_new: int = 40
	k_developing: int = 32
	k_established: int = 24
	k_veteran: int = 16

	new_threshold: int = 10
	developing_threshold: int = 30
	established_threshold: int = 100

	# (minimum absolute score gap, bonus) from largest to smallest
	margin_tiers: Tuple[Tuple[int, float], ...] = field(
		default=((50, 0.25), (30, 0.15), (10, 0.05))
	)
	margin_loss_max: float = 0.10

	player_count_baseline: int = 4
	provisional_dampening: float = 0.5

	min_games_for_ranking: int = 5
	history_limit: int = 50


DEFAULT_CONFIG = EloConfig()

# Wizard games carry their own pool; table games are keyed by their template name
WIZARD_GAME_TYPE = "wizard"
TABLE_GAME_FALLBACK = "table"
