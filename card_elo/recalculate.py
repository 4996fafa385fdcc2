"""
Rebuild every rating from scratch by replaying all finished games.

Games from every source are tagged with their game type and replayed strictly
by creation time (ties broken by game id), oldest first. Player identities are
resolved through a merge map built once at the start, so duplicates of one
person share one rating.

Re-running is safe: the per-game idempotency guard skips anything already
applied. No checkpoint is written; a cancelled run can simply be started again.

Dry runs replay into in-memory copies of the identities and never write.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from tqdm.auto import tqdm

from .constants import DEFAULT_CONFIG, EloConfig
from .identity_merge import build_merge_map, remap_game_identities
from .models import Game, normalize_game_type
from .updater import RatingUpdater, plan_game

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class RecalculationSummary:
	games_processed: int = 0
	player_updates: int = 0
	skipped: int = 0
	game_type_stats: Dict[str, int] = field(default_factory=dict)
	errors: List[Dict[str, str]] = field(default_factory=list)
	dry_run: bool = False
	cancelled: bool = False


def chronological_key(game: Game):
	# undated games sort first, as if created at the epoch
	return (game.created_at is not None, game.created_at or datetime.min, game.id)


def collect_games(sources: Iterable, game_type: Optional[str] = None) -> List[Game]:
	games: List[Game] = []
	for source in sources:
		for game in source.finished_games():
			if game.game_type is None:
				game = replace(game, game_type=normalize_game_type(None))
			games.append(game)
	games.sort(key=chronological_key)
	if game_type:
		wanted = normalize_game_type(game_type)
		games = [g for g in games if g.game_type == wanted]
	return games


def _working_identities(store, game_type: Optional[str], reset: bool) -> Dict:
	identities = {i.id: i for i in store.all_identities(include_deleted=False)}
	if reset:
		for identity in identities.values():
			if game_type:
				identity.elo_by_game_type.pop(game_type, None)
			else:
				identity.elo_by_game_type.clear()
	return identities


def recalculate_all(
	store,
	sources: Iterable,
	dry_run: bool = False,
	game_type: Optional[str] = None,
	on_progress: Optional[ProgressCallback] = None,
	cancel: Optional[threading.Event] = None,
	reset: bool = True,
	config: EloConfig = DEFAULT_CONFIG,
	updater: Optional[RatingUpdater] = None,
	show_progress: bool = False,
) -> RecalculationSummary:
	"""Replay all finished games in chronological order.

	store: the identity directory (IdentityStore)
	sources: objects with finished_games() returning type-tagged Games
	game_type: restrict the reset and the replay to one game type
	on_progress: called as on_progress(done, total) after every game
	cancel: checked between games; when set the run stops and reports cancelled
	reset: drop existing ELO records first (ignored in dry runs, which never write)
	"""
	gt_filter = normalize_game_type(game_type) if game_type else None
	summary = RecalculationSummary(dry_run=dry_run)
	log.info("starting ELO recalculation (dry_run=%s, game_type=%s)", dry_run, gt_filter or "all")

	merge_map = build_merge_map(store.all_identities(include_deleted=True))
	if merge_map:
		log.info("built identity merge map: %s identities will be consolidated", len(merge_map))

	if not dry_run and reset:
		store.reset_elo(gt_filter)
		log.info("reset ELO ratings for %s", gt_filter or "all game types")

	games = collect_games(sources, gt_filter)
	total = len(games)
	log.info("finished games to process: %s", total)

	updater = updater or RatingUpdater(store, config)
	working = _working_identities(store, gt_filter, reset) if dry_run else None

	for index, game in enumerate(tqdm(games, total=total, desc="Elo games", disable=not show_progress), 1):
		if cancel is not None and cancel.is_set():
			summary.cancelled = True
			log.warning("recalculation cancelled after %s of %s games", index - 1, total)
			break

		gt = game.game_type or normalize_game_type(None)
		summary.game_type_stats[gt] = summary.game_type_stats.get(gt, 0) + 1
		try:
			remapped = remap_game_identities(game, merge_map)
			if dry_run:
				involved = {p.identity_id: working[p.identity_id] for p in remapped.players if p.identity_id in working}
				result = plan_game(remapped, gt, involved, config)
			else:
				result = updater.apply_game(remapped, gt)
			summary.player_updates += len(result.updates)
			if result.skipped is not None:
				summary.skipped += 1
			summary.games_processed += 1
		except Exception as e:
			log.error("failed to apply game %s (%s): %s", game.id, gt, e)
			summary.errors.append({"game_id": game.id, "game_type": gt, "error": str(e)})

		if on_progress is not None:
			on_progress(index, total)
		if index % 100 == 0:
			log.info("progress: %s/%s (%.1f%%)", index, total, index / total * 100)

	log.info(
		"ELO recalculation complete: games=%s player_updates=%s skipped=%s errors=%s by_type=%s",
		summary.games_processed, summary.player_updates, summary.skipped, len(summary.errors), summary.game_type_stats,
	)
	return summary
