"""
Resolve duplicate player identities to one primary identity.

The merge map sends an identity id to the id of its primary identity. An id
missing from the map is already primary. Resolution runs in three passes, each
one only filling gaps left by the previous:

1. explicit mergedInto chains, followed to their end (cycle safe)
2. identities linked to the same user account collapse onto the `user` typed
   one (or the first one seen)
3. unlinked guests whose normalized name matches a `user` identity map to it

The map reflects the directory at the moment it was built. Identity management
can merge records at any time, so build it again for every batch.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Set

from .models import Game, GamePlayer, PlayerIdentity

log = logging.getLogger(__name__)


def _resolve_chain(start: str, merged_into: Dict[str, str]) -> str:
	visited: Set[str] = set()
	current = start
	while current in merged_into and current not in visited:
		visited.add(current)
		current = merged_into[current]
	return current


def build_merge_map(identities: Iterable[PlayerIdentity]) -> Dict[str, str]:
	# Deleted and merged identities take part too; they are exactly the ones that need resolving
	identities = list(identities)
	merge_map: Dict[str, str] = {}

	merged_into = {i.id: i.merged_into for i in identities if i.merged_into}
	for identity in identities:
		if identity.merged_into:
			primary = _resolve_chain(identity.id, merged_into)
			if primary != identity.id:
				merge_map[identity.id] = primary

	by_user: Dict[str, List[PlayerIdentity]] = {}
	for identity in identities:
		if identity.user_id and not identity.is_deleted:
			by_user.setdefault(identity.user_id, []).append(identity)

	for linked in by_user.values():
		if len(linked) <= 1:
			continue
		primary = next((i for i in linked if i.type == "user"), linked[0])
		for identity in linked:
			if identity.id != primary.id and identity.id not in merge_map:
				merge_map[identity.id] = primary.id

	name_to_user: Dict[str, str] = {}
	for identity in identities:
		if identity.display_name and identity.user_id and not identity.is_deleted and identity.type == "user":
			name_to_user[identity.normalized_name] = merge_map.get(identity.id, identity.id)

	for identity in identities:
		if identity.id in merge_map:
			continue
		if identity.type != "guest" or identity.user_id or identity.merged_into:
			continue
		if not identity.display_name:
			continue
		target = name_to_user.get(identity.normalized_name)
		if target and target != identity.id:
			merge_map[identity.id] = target

	return merge_map


def remap_game_identities(game: Game, merge_map: Dict[str, str]) -> Game:
	"""Return a copy of the game with player identities resolved to their primaries.

	Two players resolving to the same identity would count one person twice;
	the later one is dropped with a warning.
	"""
	if not game.players:
		return game

	remapped: List[GamePlayer] = []
	for player in game.players:
		resolved = merge_map.get(player.identity_id) if player.identity_id else None
		if resolved and resolved != player.identity_id:
			player = replace(player, identity_id=resolved, original_identity_id=player.identity_id)
		remapped.append(player)

	seen: Set[str] = set()
	deduped: List[GamePlayer] = []
	for player in remapped:
		key = player.identity_id
		if key and key in seen:
			log.warning("duplicate identity %s in game %s after merge resolution; skipping duplicate", key, game.id)
			continue
		if key:
			seen.add(key)
		deduped.append(player)

	return replace(game, players=deduped)
