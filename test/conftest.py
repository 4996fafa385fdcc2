# test/conftest.py

import sys
from pathlib import Path

import duckdb
import pytest

# Add project root and test directory to path so we can import card_elo and helpers
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from card_elo.store import GameStore, IdentityStore
from card_elo.updater import RatingUpdater


@pytest.fixture
def conn():
    """In-memory DuckDB database shared by the identity and game stores."""
    connection = duckdb.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return IdentityStore(conn)


@pytest.fixture
def game_store(conn):
    return GameStore(conn)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def updater(store, sleeps):
    return RatingUpdater(store, max_retries=3, backoff_seconds=0.1, sleep=sleeps.append, jitter=0.0)
