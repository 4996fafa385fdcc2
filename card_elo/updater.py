"""
Apply a finished game's rating changes to the identity directory.

One game is one unit of work:

1. open a transaction (if the store can), load the involved identities fresh
2. stop if any of them already has this game id in its history for the game
   type, so re-delivered games never count twice
3. compute the changes and write rating, games played, peak, floor, streak
   and a history entry for each rated player
4. commit

Transient store errors are retried with jittered exponential backoff. When the store
turns out not to support transactions, the updater switches to per-record
writes for good and retries at once; in that mode, updates touching the same
identity are serialized with in-process locks. Any other store error is
raised immediately.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from . import config as settings
from .calculator import calculate_game_changes
from .constants import DEFAULT_CONFIG, EloConfig
from .errors import CapabilityMismatchError, RatingEngineError, SkipReason, TransientStoreError
from .identity_merge import remap_game_identities
from .models import EloRecord, Game, HistoryEntry, PlayerIdentity, RatingChange, UpdatedIdentity, normalize_game_type

log = logging.getLogger(__name__)


@dataclass
class GameUpdate:
	updates: List[UpdatedIdentity] = field(default_factory=list)
	skipped: Optional[SkipReason] = None


def game_date(game: Game) -> datetime:
	return game.created_at or datetime.now()


def apply_change(record: EloRecord, change: RatingChange, game: Game, now: Optional[datetime] = None) -> None:
	"""Fold one rating change into an ELO record in place."""
	record.rating = change.new_rating
	record.games_played += 1
	record.last_updated = now or datetime.now()
	if change.new_rating > record.peak:
		record.peak = change.new_rating
	if change.new_rating < record.floor:
		record.floor = change.new_rating
	if change.won:
		record.streak = max(1, record.streak + 1)
	else:
		record.streak = min(-1, record.streak - 1)
	record.push_history(HistoryEntry(
		rating=change.new_rating,
		change=change.change,
		game_id=game.id,
		opponents=list(change.opponents),
		placement=change.placement,
		date=game_date(game),
	))


def already_applied(identities: Mapping[str, PlayerIdentity], game_type: str, game_id: str) -> bool:
	return any(
		game_type in i.elo_by_game_type and i.elo_by_game_type[game_type].has_game(game_id)
		for i in identities.values()
	)


def plan_game(
	game: Game,
	game_type: str,
	identities: Mapping[str, PlayerIdentity],
	config: EloConfig = DEFAULT_CONFIG,
) -> GameUpdate:
	"""Compute and apply a game's changes to already loaded identities.

	Mutates the identities' records; the caller decides whether to persist.
	"""
	if not game.finished:
		return GameUpdate(skipped=SkipReason.NOT_FINISHED)
	if not identities:
		return GameUpdate(skipped=SkipReason.NO_IDENTITIES)
	if already_applied(identities, game_type, game.id):
		return GameUpdate(skipped=SkipReason.ALREADY_APPLIED)

	changes = calculate_game_changes(game, identities, game_type, config)
	if not changes:
		return GameUpdate(skipped=SkipReason.NO_OPPONENTS)

	now = datetime.now()
	result = GameUpdate()
	for change in changes:
		identity = identities[change.identity_id]
		apply_change(identity.ensure_elo(game_type, config), change, game, now)
		result.updates.append(UpdatedIdentity(identity=identity, change=change, game_type=game_type))
	return result


class IdentityLocks:
	"""Per-identity locks, always taken in sorted id order."""

	def __init__(self) -> None:
		self._guard = threading.Lock()
		self._locks: Dict[str, threading.Lock] = {}

	def _lock(self, identity_id: str) -> threading.Lock:
		with self._guard:
			return self._locks.setdefault(identity_id, threading.Lock())

	def hold(self, identity_ids: Sequence[str]) -> ExitStack:
		stack = ExitStack()
		for iid in sorted(set(identity_ids)):
			stack.enter_context(self._lock(iid))
		return stack


class RatingUpdater:
	def __init__(
		self,
		store,
		config: EloConfig = DEFAULT_CONFIG,
		max_retries: int = settings.MAX_RETRIES,
		backoff_seconds: float = settings.RETRY_BACKOFF_SECONDS,
		sleep: Callable[[float], None] = time.sleep,
		jitter: float = settings.RETRY_JITTER,
	) -> None:
		self.store = store
		self.config = config
		self.max_retries = max(1, max_retries)
		self.backoff_seconds = backoff_seconds
		self.sleep = sleep
		self.jitter = max(0.0, jitter)
		self.use_transactions = bool(getattr(store, "supports_transactions", False))
		self._locks = IdentityLocks()

	def process_finished_game(
		self,
		game: Game,
		game_type: str,
		merge_map: Optional[Dict[str, str]] = None,
	) -> List[UpdatedIdentity]:
		return self.apply_game(game, game_type, merge_map).updates

	def apply_game(self, game: Game, game_type: str, merge_map: Optional[Dict[str, str]] = None) -> GameUpdate:
		"""Apply one game; merge_map, when given, resolves duplicate identities first."""
		if not game.finished:
			return GameUpdate(skipped=SkipReason.NOT_FINISHED)
		if merge_map:
			game = remap_game_identities(game, merge_map)
		gt = normalize_game_type(game_type)
		identity_ids = [p.identity_id for p in game.players if p.identity_id]
		if not identity_ids:
			return GameUpdate(skipped=SkipReason.NO_IDENTITIES)

		attempt = 1
		while True:
			try:
				if self.use_transactions:
					return self._apply_once(game, gt, identity_ids, transactional=True)
				with self._locks.hold(identity_ids):
					return self._apply_once(game, gt, identity_ids, transactional=False)
			except CapabilityMismatchError as e:
				if not self.use_transactions:
					raise
				log.warning("transactions not supported by the store (%s); falling back to non-transactional updates", e)
				self.use_transactions = False
			except TransientStoreError as e:
				if attempt >= self.max_retries:
					log.error("rating update failed for game %s after %s attempt(s): %s", game.id, attempt, e)
					raise
				delay = self.retry_delay(attempt)
				log.warning("rating update attempt %s for game %s failed with transient error, retrying in %.2fs: %s",
					attempt, game.id, delay, e)
				self.sleep(delay)
				attempt += 1

	def retry_delay(self, attempt: int) -> float:
		# exponential, plus up to `jitter` of it at random
		delay = self.backoff_seconds * (2 ** (attempt - 1))
		return delay + random.uniform(0, delay * self.jitter)

	def _apply_once(self, game: Game, game_type: str, identity_ids: List[str], transactional: bool) -> GameUpdate:
		with self.store.session(transactional=transactional) as session:
			identities = session.load_identities(identity_ids)
			result = plan_game(game, game_type, identities, self.config)
			if result.skipped == SkipReason.ALREADY_APPLIED:
				log.debug("skipping game %s (%s): ratings already applied", game.id, game_type)
			for update in result.updates:
				session.save_elo_record(update.identity.id, game_type, update.identity.elo_by_game_type[game_type])
			return result


def apply_ratings_best_effort(updater: RatingUpdater, game: Game, game_type: str) -> List[UpdatedIdentity]:
	"""Rating update for the game-finish flow: failures are logged, never raised.

	Ratings are derived data; a failed update leaves the game itself standing.
	"""
	try:
		return updater.process_finished_game(game, game_type)
	except RatingEngineError as e:
		log.error("ratings not applied for game %s (%s): %s", game.id, game_type, e)
		return []
