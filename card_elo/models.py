"""
Typed records shared by the rating engine.

Game-type keys are normalized strings ("wizard", "table-flip-7"): lowercased,
trimmed, with whitespace runs collapsed to a single hyphen. Every numeric ELO
field has a default, so a record that was never written reads the same as a
freshly created one.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional

from .constants import DEFAULT_CONFIG, EloConfig

HISTORY_LIMIT = DEFAULT_CONFIG.history_limit

_WS_RE = re.compile(r"\s+")


def normalize_game_type(game_type: Optional[str]) -> str:
	if not game_type:
		return "unknown"
	return _WS_RE.sub("-", game_type.strip().lower())


def normalize_name(name: Optional[str]) -> str:
	return (name or "").strip().lower()


@dataclass
class HistoryEntry:
	rating: int
	change: int
	game_id: str
	opponents: List[str]
	placement: int
	date: datetime


def _bounded(entries: Iterable[HistoryEntry], limit: int) -> Deque[HistoryEntry]:
	# entries arrive most-recent-first; keep the newest `limit`
	return deque(list(entries)[:limit], maxlen=limit)


@dataclass
class EloRecord:
	"""Rating state of one identity in one game type.

	History is most-recent-first and can never hold more than history_limit
	entries: the deque drops the oldest entry when a new one is pushed.
	"""

	rating: int = DEFAULT_CONFIG.default_rating
	peak: int = DEFAULT_CONFIG.default_rating
	floor: int = DEFAULT_CONFIG.default_rating
	games_played: int = 0
	streak: int = 0
	last_updated: Optional[datetime] = None
	history: Deque[HistoryEntry] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
	history_limit: int = field(default=HISTORY_LIMIT, repr=False, compare=False)

	def __post_init__(self) -> None:
		self.rebound(self.history_limit)

	def rebound(self, limit: int) -> None:
		"""Cap the history at `limit` entries, dropping the oldest ones."""
		self.history_limit = limit
		if not isinstance(self.history, deque) or self.history.maxlen != limit:
			self.history = _bounded(self.history, limit)

	@classmethod
	def fresh(cls, config: EloConfig = DEFAULT_CONFIG) -> "EloRecord":
		return cls(
			rating=config.default_rating,
			peak=config.default_rating,
			floor=config.default_rating,
			history_limit=config.history_limit,
		)

	def has_game(self, game_id: str) -> bool:
		return any(h.game_id == game_id for h in self.history)

	def push_history(self, entry: HistoryEntry) -> None:
		self.history.appendleft(entry)


@dataclass
class PlayerIdentity:
	id: str
	display_name: str
	type: str = "guest"
	user_id: Optional[str] = None
	merged_into: Optional[str] = None
	is_deleted: bool = False
	normalized_name: str = ""
	elo_by_game_type: Dict[str, EloRecord] = field(default_factory=dict)

	def __post_init__(self) -> None:
		if not self.normalized_name:
			self.normalized_name = normalize_name(self.display_name)

	def elo_for(self, game_type: str, config: EloConfig = DEFAULT_CONFIG) -> EloRecord:
		"""Return the record for a game type, or a default one without storing it."""
		return self.elo_by_game_type.get(normalize_game_type(game_type)) or EloRecord.fresh(config)

	def ensure_elo(self, game_type: str, config: EloConfig = DEFAULT_CONFIG) -> EloRecord:
		key = normalize_game_type(game_type)
		if key not in self.elo_by_game_type:
			self.elo_by_game_type[key] = EloRecord.fresh(config)
		record = self.elo_by_game_type[key]
		if record.history_limit != config.history_limit:
			record.rebound(config.history_limit)
		return record


@dataclass
class GamePlayer:
	id: str
	name: str
	identity_id: Optional[str] = None
	points: List[Any] = field(default_factory=list)
	# Set when a merge remapped identity_id to a primary identity
	original_identity_id: Optional[str] = None


@dataclass
class Game:
	id: str
	players: List[GamePlayer]
	finished: bool = False
	low_is_better: bool = False
	final_scores: Dict[str, Any] = field(default_factory=dict)
	created_at: Optional[datetime] = None
	game_type: Optional[str] = None

	@classmethod
	def from_dict(cls, data: Mapping[str, Any], game_type: Optional[str] = None) -> "Game":
		"""Build a Game from a canonical game record (camelCase or snake_case keys)."""
		players = []
		for p in data.get("players") or []:
			identity_id = p.get("identityId", p.get("identity_id"))
			players.append(GamePlayer(
				id=str(p.get("id")),
				name=p.get("name") or "",
				identity_id=str(identity_id) if identity_id else None,
				points=list(p.get("points") or []),
			))
		created_at = data.get("created_at", data.get("createdAt"))
		if isinstance(created_at, str):
			created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
		if isinstance(created_at, datetime) and created_at.tzinfo is not None:
			# store and compare naive UTC
			created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
		finished = data.get("gameFinished", data.get("game_finished", False))
		low = data.get("lowIsBetter", data.get("low_is_better", False))
		return cls(
			id=str(data.get("id")),
			players=players,
			finished=finished is True,
			low_is_better=low is True,
			final_scores=dict(data.get("final_scores") or {}),
			created_at=created_at,
			game_type=normalize_game_type(game_type) if game_type else None,
		)


@dataclass
class RatingChange:
	identity_id: str
	player_name: str
	placement: int
	score: float
	old_rating: int
	new_rating: int
	change: int
	won: bool
	game_type: str
	opponents: List[str]


@dataclass
class UpdatedIdentity:
	identity: PlayerIdentity
	change: RatingChange
	game_type: str
