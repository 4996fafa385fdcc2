# test/helpers.py

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from card_elo.models import EloRecord, PlayerIdentity
from card_elo.store import IdentityStore

BASE_TIME = datetime(2025, 1, 1, 20, 0, 0)


def game_record(
    game_id: str,
    scores: Dict[str, float],
    identities: Optional[Dict[str, Optional[str]]] = None,
    low_is_better: bool = False,
    finished: bool = True,
    minutes: int = 0,
    use_points: bool = False,
) -> dict:
    """Canonical finished-game record; player ids and names are the score keys.

    identities maps player name -> identity id; by default every player has an
    identity id equal to its name.
    """
    identities = identities if identities is not None else {name: name for name in scores}
    players = []
    for name, score in scores.items():
        player = {"id": f"p-{name}", "name": name, "identityId": identities.get(name)}
        if use_points:
            player["points"] = [score]
        players.append(player)
    record = {
        "id": game_id,
        "gameFinished": finished,
        "lowIsBetter": low_is_better,
        "players": players,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }
    if not use_points:
        record["final_scores"] = {f"p-{name}": score for name, score in scores.items()}
    return record


def add_identities(store: IdentityStore, *names: str, **kwargs) -> List[PlayerIdentity]:
    created = []
    for name in names:
        identity = PlayerIdentity(id=name, display_name=name, **kwargs)
        store.upsert_identity(identity)
        created.append(identity)
    return created


def rated_identity(identity_id: str, game_type: str, rating: int, games_played: int, **kwargs) -> PlayerIdentity:
    identity = PlayerIdentity(id=identity_id, display_name=kwargs.pop("display_name", identity_id), **kwargs)
    identity.elo_by_game_type[game_type] = EloRecord(
        rating=rating, peak=max(rating, 1000), floor=min(rating, 1000), games_played=games_played,
    )
    return identity


def snapshot(store: IdentityStore) -> dict:
    """Comparable rating state of every identity, without wall-clock fields."""
    state = {}
    for identity in store.all_identities():
        for gt, rec in identity.elo_by_game_type.items():
            state[(identity.id, gt)] = (
                rec.rating, rec.peak, rec.floor, rec.games_played, rec.streak,
                [(h.game_id, h.rating, h.change, h.placement, tuple(h.opponents)) for h in rec.history],
            )
    return state
