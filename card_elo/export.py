"""
Leaderboard export to Parquet for dashboards.

One row per ranked identity and game type. When the database does not exist
yet an empty file with the same schema is written, so downstream loaders
always get a readable dataset.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import duckdb
import pyarrow as pa
import pyarrow.parquet as pq

from .constants import DEFAULT_CONFIG
from .models import normalize_game_type

log = logging.getLogger(__name__)

RANKINGS_SCHEMA = pa.schema([
	("game_type", pa.string()),
	("rank", pa.int64()),
	("identity_id", pa.string()),
	("display_name", pa.string()),
	("type", pa.string()),
	("rating", pa.int64()),
	("peak", pa.int64()),
	("floor", pa.int64()),
	("games_played", pa.int64()),
	("streak", pa.int64()),
	("last_updated", pa.timestamp("us")),
])

EXPORT_SQL = """--sql
	SELECT
	  er.game_type,
	  ROW_NUMBER() OVER (PARTITION BY er.game_type ORDER BY er.rating DESC, er.games_played DESC, pi.id) AS rank,
	  pi.id AS identity_id,
	  pi.display_name,
	  pi.type,
	  er.rating, er.peak, er.floor, er.games_played, er.streak,
	  er.last_updated
	FROM elo_records er
	JOIN player_identities pi ON pi.id = er.identity_id
	WHERE COALESCE(pi.is_deleted, FALSE) = FALSE
	  AND er.games_played >= ?
	  {game_type_filter}
	ORDER BY er.game_type, rank
"""


def write_empty_rankings(dest: Union[str, Path]) -> None:
	empty = pa.table({f.name: pa.array([], type=f.type) for f in RANKINGS_SCHEMA})
	pq.write_table(empty, str(dest))


def export_rankings_parquet(
	conn: duckdb.DuckDBPyConnection,
	dest: Union[str, Path],
	game_type: Optional[str] = None,
	min_games: int = DEFAULT_CONFIG.min_games_for_ranking,
) -> int:
	"""Write the leaderboard(s) to a Parquet file and return the row count."""
	gt = normalize_game_type(game_type) if game_type else None
	params = [min_games]
	game_type_filter = ""
	if gt:
		game_type_filter = "AND er.game_type = ?"
		params.append(gt)
	table = conn.execute(EXPORT_SQL.format(game_type_filter=game_type_filter), params).fetch_arrow_table()
	table = table.cast(RANKINGS_SCHEMA)
	pq.write_table(table, str(dest))
	log.info("exported %s leaderboard rows to %s", table.num_rows, dest)
	return table.num_rows


def export_rankings_file(db_path: Union[str, Path], dest: Union[str, Path], game_type: Optional[str] = None,
						 min_games: int = DEFAULT_CONFIG.min_games_for_ranking) -> int:
	db_path = Path(db_path)
	if not db_path.exists():
		log.warning("database file not found: %s; writing empty dataset", db_path)
		write_empty_rankings(dest)
		return 0
	conn = duckdb.connect(str(db_path), read_only=True)
	try:
		return export_rankings_parquet(conn, dest, game_type, min_games)
	finally:
		conn.close()
