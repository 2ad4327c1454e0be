"""Shared test fixtures: a small on-disk puzzle corpus and a rules engine.

Fixtures:
    corpus_db   - Path to a temporary SQLite corpus seeded with SAMPLE_PUZZLES.
    store       - CorpusStore over corpus_db.
    rules       - Fresh RulesEngine.
    no_sleep    - Records requested delays instead of sleeping.
"""

from __future__ import annotations

import sqlite3

import chess
import pytest

from chessinator.corpus import PUZZLE_TABLE_SQL, CorpusStore
from chessinator.rules import RulesEngine

PROMOTION_FEN = "8/4P3/8/8/8/8/k7/4K3 b - - 0 1"

# PuzzleId order is the serving order: 00008, P1, P2, P3
SAMPLE_PUZZLES = [
    {
        "PuzzleId": "00008",
        "FEN": "r6k/pp2r2p/4Rp1Q/3p4/8/1N1P2R1/PqP2bPP/7K b - - 0 24",
        "Moves": "f2g3 e6e7 b2b1 b3c1 b1c1 h6c1",
        "Themes": "crushing hangingPiece long middlegame",
        "GameUrl": "https://lichess.org/787zsVup/black#48",
    },
    {
        "PuzzleId": "P1",
        "FEN": chess.STARTING_FEN,
        "Moves": "e2e4 e7e5 g1f3",
        "Themes": "opening",
        "GameUrl": "https://lichess.org/example1",
    },
    {
        "PuzzleId": "P2",
        "FEN": chess.STARTING_FEN,
        "Moves": "e2e4 e7e5 g1f3 b8c6",
        "Themes": "opening short",
        "GameUrl": "https://lichess.org/example2",
    },
    {
        "PuzzleId": "P3",
        "FEN": PROMOTION_FEN,
        "Moves": "a2a3 e7e8q",
        "Themes": "promotion endgame",
        "GameUrl": "https://lichess.org/example3",
    },
]


def seed_corpus(db_path, puzzles=SAMPLE_PUZZLES) -> None:
    """Create a puzzle table at ``db_path`` holding ``puzzles``."""
    conn = sqlite3.connect(db_path)
    try:
        with conn:
            conn.execute(PUZZLE_TABLE_SQL)
            conn.executemany(
                "INSERT INTO puzzle (PuzzleId, FEN, Moves, Themes, GameUrl) "
                "VALUES (:PuzzleId, :FEN, :Moves, :Themes, :GameUrl)",
                puzzles,
            )
    finally:
        conn.close()


@pytest.fixture()
def corpus_db(tmp_path):
    db_path = tmp_path / "puzzle.db"
    seed_corpus(db_path)
    CorpusStore(db_path).ensure_schema()
    return db_path


@pytest.fixture()
def store(corpus_db) -> CorpusStore:
    return CorpusStore(corpus_db)


@pytest.fixture()
def rules() -> RulesEngine:
    return RulesEngine()


@pytest.fixture()
def no_sleep():
    """A sleep replacement that records the requested delays."""
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
