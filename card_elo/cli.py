"""
Command line entry points for the rating engine.

Usage:
    # Rebuild every rating from scratch (all game types)
    card-elo recalculate

    # Preview a rebuild without saving anything
    card-elo recalculate --dry-run --verbose

    # Rebuild one game type only
    card-elo recalculate --game-type wizard

    # Show a leaderboard / a player's history
    card-elo rankings --game-type "Flip 7" --limit 10
    card-elo history <identity-id> --game-type wizard

    # Export leaderboards to Parquet
    card-elo export --out output/rankings.parquet
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from typing import List, Optional

import duckdb

from . import config
from .export import export_rankings_file
from .models import normalize_game_type
from .queries import get_all_ratings, get_history, get_rankings, get_rating_config
from .recalculate import recalculate_all
from .store import GameStore, IdentityStore

log = logging.getLogger("card_elo")


def _connect() -> duckdb.DuckDBPyConnection:
    db_path = config.get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path))


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_top_players(store: IdentityStore, game_types: List[str]) -> None:
    for gt in dict.fromkeys(game_types):
        print(f"\nTop 10 players by ELO ({gt}):")
        rankings = get_rankings(store, gt, limit=10, min_games=1)["rankings"]
        if not rankings:
            print("   No ranked players yet")
            continue
        for row in rankings:
            streak = f"+{row['streak']}" if row["streak"] > 0 else str(row["streak"])
            print(
                f"   {row['rank']:>2}. {row['display_name']:<20} "
                f"Rating: {row['rating']:>4} "
                f"(Peak: {row['peak']}, Games: {row['games_played']}, Streak: {streak})"
            )


def cmd_recalculate(args: argparse.Namespace) -> int:
    conn = _connect()
    try:
        store = IdentityStore(conn)
        games = GameStore(conn)

        started = time.time()
        summary = recalculate_all(
            store,
            [games],
            dry_run=args.dry_run,
            game_type=args.game_type,
            reset=not args.no_reset,
            show_progress=args.verbose,
        )
        duration = time.time() - started

        print("\nResults:")
        print(f"   Games Processed: {summary.games_processed}")
        print(f"   Player Updates: {summary.player_updates}")
        print(f"   Skipped: {summary.skipped}")
        print(f"   Errors: {len(summary.errors)}")
        print(f"   Duration: {duration:.2f}s")
        print(f"   Dry Run: {summary.dry_run}")
        if summary.game_type_stats:
            print("\nGames by Type:")
            for gt, count in summary.game_type_stats.items():
                print(f"   {gt}: {count} games")
        if summary.errors and args.verbose:
            print("\nErrors:")
            for err in summary.errors[:10]:
                print(f"   - Game {err['game_id']}: {err['error']}")
            if len(summary.errors) > 10:
                print(f"   ... and {len(summary.errors) - 10} more")

        if not summary.dry_run:
            shown = [normalize_game_type(args.game_type)] if args.game_type else list(summary.game_type_stats)
            _print_top_players(store, shown)
        return 0 if not summary.errors else 1
    finally:
        conn.close()


def cmd_rankings(args: argparse.Namespace) -> int:
    conn = _connect()
    try:
        _print_json(get_rankings(IdentityStore(conn), args.game_type, args.page, args.limit, args.min_games))
    finally:
        conn.close()
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    conn = _connect()
    try:
        result = get_history(IdentityStore(conn), args.identity_id, args.game_type, args.limit)
    finally:
        conn.close()
    if result is None:
        log.error("identity not found: %s", args.identity_id)
        return 1
    _print_json(result)
    return 0


def cmd_ratings(args: argparse.Namespace) -> int:
    conn = _connect()
    try:
        result = get_all_ratings(IdentityStore(conn), args.identity_id)
    finally:
        conn.close()
    if result is None:
        log.error("identity not found: %s", args.identity_id)
        return 1
    _print_json(result)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    export_rankings_file(config.get_db_path(), args.out, args.game_type, args.min_games)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    _print_json(get_rating_config())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="card-elo", description="Multi-player ELO ratings for card games")
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="cmd")

    recalc = sub.add_parser("recalculate", help="Rebuild ratings by replaying all finished games")
    recalc.add_argument("--dry-run", action="store_true", help="Compute without saving")
    recalc.add_argument("--game-type", help="Only recalculate this game type")
    recalc.add_argument("--no-reset", action="store_true", help="Keep existing ratings instead of starting from zero")
    recalc.add_argument("--verbose", "-v", action="store_true", help="Progress bar and error details")
    recalc.set_defaults(func=cmd_recalculate)

    rankings = sub.add_parser("rankings", help="Show the leaderboard for a game type")
    rankings.add_argument("--game-type", default="wizard")
    rankings.add_argument("--page", type=int, default=1)
    rankings.add_argument("--limit", type=int, default=50)
    rankings.add_argument("--min-games", type=int, default=None)
    rankings.set_defaults(func=cmd_rankings)

    history = sub.add_parser("history", help="Show a player's rating history")
    history.add_argument("identity_id")
    history.add_argument("--game-type", default="wizard")
    history.add_argument("--limit", type=int, default=20)
    history.set_defaults(func=cmd_history)

    ratings = sub.add_parser("ratings", help="Show a player's ratings across game types")
    ratings.add_argument("identity_id")
    ratings.set_defaults(func=cmd_ratings)

    export = sub.add_parser("export", help="Write leaderboards to a Parquet file")
    export.add_argument("--out", default="output/rankings.parquet")
    export.add_argument("--game-type", default=None)
    export.add_argument("--min-games", type=int, default=1)
    export.set_defaults(func=cmd_export)

    cfg = sub.add_parser("config", help="Show the scoring parameters")
    cfg.set_defaults(func=cmd_config)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
