"""Multi-player ELO rating engine for card game score tracking."""

from .calculator import calculate_game_changes
from .constants import DEFAULT_CONFIG, EloConfig
from .identity_merge import build_merge_map, remap_game_identities
from .models import EloRecord, Game, GamePlayer, PlayerIdentity, normalize_game_type
from .queries import get_all_ratings, get_history, get_rankings
from .recalculate import recalculate_all
from .store import GameStore, IdentityStore
from .updater import RatingUpdater, apply_ratings_best_effort

__all__ = [
	"DEFAULT_CONFIG",
	"EloConfig",
	"EloRecord",
	"Game",
	"GamePlayer",
	"GameStore",
	"IdentityStore",
	"PlayerIdentity",
	"RatingUpdater",
	"apply_ratings_best_effort",
	"build_merge_map",
	"calculate_game_changes",
	"get_all_ratings",
	"get_history",
	"get_rankings",
	"normalize_game_type",
	"recalculate_all",
	"remap_game_identities",
]
