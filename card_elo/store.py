"""
DuckDB adapters for the identity directory and the game store.

The rating engine owns only the rating fields of an identity. Everything else
about identities (creation, merging, deletion) and all game records belong to
other parts of the application; these adapters just read them, and write
elo_records / elo_history.

Tables:
- player_identities(id, display_name, normalized_name, user_id, type, merged_into, is_deleted, ...)
- elo_records(identity_id, game_type, rating, peak, floor, games_played, streak, last_updated)
- elo_history(identity_id, game_type, position, game_id, rating, change, placement, opponents, date)
  position 0 is the most recent entry
- games(id, source, game_type_name, created_at, game_finished, low_is_better, final_scores, players)
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import duckdb

from .constants import TABLE_GAME_FALLBACK, WIZARD_GAME_TYPE
from .errors import CapabilityMismatchError, PermanentStoreError, StoreError, TransientStoreError
from .models import EloRecord, Game, HistoryEntry, PlayerIdentity, normalize_game_type

logger = logging.getLogger(__name__)


def translate_error(exc: duckdb.Error) -> StoreError:
	# Write-write conflicts surface as TransactionException and clear on retry
	if isinstance(exc, duckdb.TransactionException):
		return TransientStoreError(str(exc))
	return PermanentStoreError(str(exc))


def ensure_identity_tables(conn: duckdb.DuckDBPyConnection) -> None:
	conn.execute(
		"""--sql
		CREATE TABLE IF NOT EXISTS player_identities (
			id TEXT PRIMARY KEY,
			display_name TEXT,
			normalized_name TEXT,
			user_id TEXT,
			type TEXT DEFAULT 'guest',
			merged_into TEXT,
			is_deleted BOOLEAN DEFAULT FALSE,
			created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
		);
		"""
	)
	conn.execute(
		"""--sql
		CREATE TABLE IF NOT EXISTS elo_records (
			identity_id TEXT,
			game_type TEXT,
			rating INTEGER,
			peak INTEGER,
			floor INTEGER,
			games_played INTEGER,
			streak INTEGER,
			last_updated TIMESTAMP,
			PRIMARY KEY (identity_id, game_type)
		);
		"""
	)
	conn.execute(
		"""--sql
		CREATE TABLE IF NOT EXISTS elo_history (
			identity_id TEXT,
			game_type TEXT,
			position INTEGER,
			game_id TEXT,
			rating INTEGER,
			change INTEGER,
			placement INTEGER,
			opponents TEXT[],
			date TIMESTAMP
		);
		"""
	)


def ensure_games_table(conn: duckdb.DuckDBPyConnection) -> None:
	conn.execute(
		"""--sql
		CREATE TABLE IF NOT EXISTS games (
			id TEXT PRIMARY KEY,
			source TEXT,
			game_type_name TEXT,
			created_at TIMESTAMP,
			game_finished BOOLEAN,
			low_is_better BOOLEAN,
			final_scores TEXT,
			players TEXT
		);
		"""
	)


def _placeholders(n: int) -> str:
	return ",".join("?" * n)


def fetch_identities(
	conn: duckdb.DuckDBPyConnection,
	ids: Optional[Sequence[str]] = None,
	include_deleted: bool = False,
) -> Dict[str, PlayerIdentity]:
	"""Load identities with all of their ELO records, keyed by id."""
	where = []
	params: List[Any] = []
	if ids is not None:
		if not ids:
			return {}
		where.append(f"id IN ({_placeholders(len(ids))})")
		params.extend(ids)
	if not include_deleted:
		where.append("COALESCE(is_deleted, FALSE) = FALSE")
	where_sql = ("WHERE " + " AND ".join(where)) if where else ""

	rows = conn.execute(
		f"""--sql
		SELECT id, display_name, normalized_name, user_id, type, merged_into, COALESCE(is_deleted, FALSE)
		FROM player_identities
		{where_sql}
		ORDER BY created_at, id
		""",
		params,
	).fetchall()
	identities: Dict[str, PlayerIdentity] = {}
	for (iid, display_name, normalized_name, user_id, typ, merged_into, is_deleted) in rows:
		identities[iid] = PlayerIdentity(
			id=iid,
			display_name=display_name or "",
			normalized_name=normalized_name or "",
			user_id=user_id,
			type=typ or "guest",
			merged_into=merged_into,
			is_deleted=bool(is_deleted),
		)
	if not identities:
		return identities

	id_list = list(identities)
	history: Dict[tuple, List[HistoryEntry]] = {}
	for (iid, gt, game_id, rating, change, placement, opponents, date) in conn.execute(
		f"""--sql
		SELECT identity_id, game_type, game_id, rating, change, placement, opponents, date
		FROM elo_history
		WHERE identity_id IN ({_placeholders(len(id_list))})
		ORDER BY identity_id, game_type, position
		""",
		id_list,
	).fetchall():
		history.setdefault((iid, gt), []).append(HistoryEntry(
			rating=rating, change=change, game_id=game_id,
			opponents=list(opponents or []), placement=placement, date=date,
		))

	for (iid, gt, rating, peak, floor, games_played, streak, last_updated) in conn.execute(
		f"""--sql
		SELECT identity_id, game_type, rating, peak, floor, games_played, streak, last_updated
		FROM elo_records
		WHERE identity_id IN ({_placeholders(len(id_list))})
		""",
		id_list,
	).fetchall():
		identities[iid].elo_by_game_type[gt] = EloRecord(
			rating=rating, peak=peak, floor=floor,
			games_played=games_played or 0, streak=streak or 0,
			last_updated=last_updated,
			history=history.get((iid, gt), []),
		)
	return identities


def write_elo_record(conn: duckdb.DuckDBPyConnection, identity_id: str, game_type: str, record: EloRecord) -> None:
	conn.execute(
		"""--sql
		INSERT INTO elo_records (identity_id, game_type, rating, peak, floor, games_played, streak, last_updated)
		VALUES (?, ?, ?, ?, ?, ?, ?, ?)
		ON CONFLICT (identity_id, game_type) DO UPDATE SET
			rating = EXCLUDED.rating,
			peak = EXCLUDED.peak,
			floor = EXCLUDED.floor,
			games_played = EXCLUDED.games_played,
			streak = EXCLUDED.streak,
			last_updated = EXCLUDED.last_updated
		""",
		[identity_id, game_type, record.rating, record.peak, record.floor,
		 record.games_played, record.streak, record.last_updated],
	)
	conn.execute(
		"""--sql
		DELETE FROM elo_history WHERE identity_id = ? AND game_type = ?
		""",
		[identity_id, game_type],
	)
	if record.history:
		conn.executemany(
			"""--sql
			INSERT INTO elo_history (identity_id, game_type, position, game_id, rating, change, placement, opponents, date)
			VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
			""",
			[
				[identity_id, game_type, pos, h.game_id, h.rating, h.change, h.placement, list(h.opponents), h.date]
				for pos, h in enumerate(record.history)
			],
		)


class StoreSession:
	"""Reads and writes made through one store connection (and transaction, if any).

	Outside a transaction every record write still commits as one unit, so a
	failed write never leaves a record without its history.
	"""

	def __init__(self, conn: duckdb.DuckDBPyConnection, transactional: bool = False) -> None:
		self.conn = conn
		self.transactional = transactional

	def load_identities(self, ids: Sequence[str]) -> Dict[str, PlayerIdentity]:
		return fetch_identities(self.conn, list(dict.fromkeys(ids)))

	def save_elo_record(self, identity_id: str, game_type: str, record: EloRecord) -> None:
		gt = normalize_game_type(game_type)
		if self.transactional:
			write_elo_record(self.conn, identity_id, gt, record)
			return
		self.conn.execute("BEGIN TRANSACTION")
		try:
			write_elo_record(self.conn, identity_id, gt, record)
		except BaseException:
			try:
				self.conn.execute("ROLLBACK")
			except duckdb.Error as e:
				logger.debug("rollback of %s/%s failed: %s", identity_id, gt, e)
			raise
		self.conn.execute("COMMIT")


class IdentityStore:
	"""Identity directory backed by DuckDB.

	supports_transactions is the store's declared capability. The updater
	reads it once; sessions refuse to open a transaction when it is False.
	"""

	def __init__(self, conn: duckdb.DuckDBPyConnection, supports_transactions: bool = True) -> None:
		self.conn = conn
		self.supports_transactions = supports_transactions
		ensure_identity_tables(conn)

	@contextmanager
	def session(self, transactional: bool = True) -> Iterator[StoreSession]:
		if transactional and not self.supports_transactions:
			raise CapabilityMismatchError("store does not support multi-record transactions")
		cur = self.conn.cursor()
		try:
			if transactional:
				cur.execute("BEGIN TRANSACTION")
			try:
				yield StoreSession(cur, transactional)
				if transactional:
					cur.execute("COMMIT")
			except BaseException:
				if transactional:
					try:
						cur.execute("ROLLBACK")
					except duckdb.Error as e:
						logger.debug("rollback failed: %s", e)
				raise
		except duckdb.Error as e:
			raise translate_error(e) from e
		finally:
			cur.close()

	def all_identities(self, include_deleted: bool = True) -> List[PlayerIdentity]:
		with self.session(transactional=False) as s:
			return list(fetch_identities(s.conn, include_deleted=include_deleted).values())

	def get_identity(self, identity_id: str) -> Optional[PlayerIdentity]:
		with self.session(transactional=False) as s:
			return fetch_identities(s.conn, [identity_id], include_deleted=True).get(identity_id)

	def upsert_identity(self, identity: PlayerIdentity) -> None:
		"""Write an identity row and every ELO record it carries."""
		with self.session(transactional=self.supports_transactions) as s:
			s.conn.execute(
				"""--sql
				INSERT INTO player_identities (id, display_name, normalized_name, user_id, type, merged_into, is_deleted)
				VALUES (?, ?, ?, ?, ?, ?, ?)
				ON CONFLICT (id) DO UPDATE SET
					display_name = EXCLUDED.display_name,
					normalized_name = EXCLUDED.normalized_name,
					user_id = EXCLUDED.user_id,
					type = EXCLUDED.type,
					merged_into = EXCLUDED.merged_into,
					is_deleted = EXCLUDED.is_deleted
				""",
				[identity.id, identity.display_name, identity.normalized_name, identity.user_id,
				 identity.type, identity.merged_into, identity.is_deleted],
			)
			for gt, record in identity.elo_by_game_type.items():
				s.save_elo_record(identity.id, gt, record)

	def reset_elo(self, game_type: Optional[str] = None) -> None:
		"""Drop ELO records of live identities, for one game type or all of them."""
		where = "identity_id IN (SELECT id FROM player_identities WHERE COALESCE(is_deleted, FALSE) = FALSE)"
		params: List[Any] = []
		if game_type:
			where += " AND game_type = ?"
			params.append(normalize_game_type(game_type))
		with self.session(transactional=self.supports_transactions) as s:
			s.conn.execute(f"DELETE FROM elo_history WHERE {where}", params)
			s.conn.execute(f"DELETE FROM elo_records WHERE {where}", params)


def tag_game_type(source: str, game_type_name: Optional[str]) -> str:
	if source == WIZARD_GAME_TYPE:
		return WIZARD_GAME_TYPE
	return normalize_game_type(game_type_name or TABLE_GAME_FALLBACK)


class GameStore:
	"""Read side of the finished-game records, as this engine sees them."""

	def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
		self.conn = conn
		ensure_games_table(conn)

	def add_game(self, record: Mapping[str, Any], source: str = WIZARD_GAME_TYPE, game_type_name: Optional[str] = None) -> Game:
		game = Game.from_dict(record, game_type=tag_game_type(source, game_type_name))
		self.conn.execute(
			"""--sql
			INSERT INTO games (id, source, game_type_name, created_at, game_finished, low_is_better, final_scores, players)
			VALUES (?, ?, ?, ?, ?, ?, ?, ?)
			ON CONFLICT (id) DO UPDATE SET
				source = EXCLUDED.source,
				game_type_name = EXCLUDED.game_type_name,
				created_at = EXCLUDED.created_at,
				game_finished = EXCLUDED.game_finished,
				low_is_better = EXCLUDED.low_is_better,
				final_scores = EXCLUDED.final_scores,
				players = EXCLUDED.players
			""",
			[game.id, source, game_type_name, game.created_at, game.finished, game.low_is_better,
			 json.dumps(record.get("final_scores") or {}), json.dumps(list(record.get("players") or []), default=str)],
		)
		return game

	def _games(self, where_sql: str = "", params: Sequence[Any] = ()) -> List[Game]:
		rows = self.conn.execute(
			f"""--sql
			SELECT id, source, game_type_name, created_at, game_finished, low_is_better, final_scores, players
			FROM games
			{where_sql}
			ORDER BY created_at NULLS FIRST, id
			""",
			list(params),
		).fetchall()
		games = []
		for (gid, source, gt_name, created_at, finished, low, final_scores, players) in rows:
			games.append(Game.from_dict(
				{
					"id": gid,
					"gameFinished": bool(finished),
					"lowIsBetter": bool(low),
					"final_scores": json.loads(final_scores or "{}"),
					"players": json.loads(players or "[]"),
					"created_at": created_at,
				},
				game_type=tag_game_type(source, gt_name),
			))
		return games

	def finished_games(self, game_type: Optional[str] = None) -> List[Game]:
		games = self._games("WHERE game_finished = TRUE")
		if game_type:
			wanted = normalize_game_type(game_type)
			games = [g for g in games if g.game_type == wanted]
		return games

	def games_for_identity(self, identity_id: str) -> List[Game]:
		return [
			g for g in self._games()
			if any(p.identity_id == identity_id for p in g.players)
		]
