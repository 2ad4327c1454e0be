"""SQLite-backed puzzle corpus and solved-set.

The puzzle table is built once by chessinator.prepare from the Lichess
puzzle dump. Puzzles are served in PuzzleId order; the persisted
``next_rank`` value is the cursor into that order.

Usage:
    from chessinator.corpus import CorpusStore
    store = CorpusStore("data/puzzle.db")
    puzzle = store.fetch_puzzle_at_rank(store.next_rank())
"""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

from chessinator.errors import (
    CorpusExhausted,
    CorpusUnavailable,
    PersistenceWriteFailure,
)
from chessinator.models import Puzzle

logger = logging.getLogger(__name__)

PUZZLE_COLUMNS = (
    "PuzzleId", "FEN", "Moves", "Rating", "RatingDeviation", "Popularity",
    "NbPlays", "Themes", "GameUrl", "OpeningTags",
)

PUZZLE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS puzzle (
        PuzzleId TEXT PRIMARY KEY,
        FEN TEXT NOT NULL,
        Moves TEXT NOT NULL,
        Rating INTEGER,
        RatingDeviation INTEGER,
        Popularity INTEGER,
        NbPlays INTEGER,
        Themes TEXT,
        GameUrl TEXT,
        OpeningTags TEXT
    )
"""

_SOLVED_TABLE_SQL = "CREATE TABLE IF NOT EXISTS solved (id VARCHAR)"
_SOLVED_INDEX_SQL = "CREATE INDEX IF NOT EXISTS solved_id ON solved (id)"
_PROGRESS_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS progress (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
)

_NEXT_RANK_KEY = "next_rank"


class CorpusStore:
    """Read and write access to the puzzle database.

    Opens a fresh connection per operation, so an instance is cheap to keep
    around and never holds the database open between calls.
    """

    def __init__(self, db_path: str | os.PathLike) -> None:
        self._db_path = Path(db_path)

    def _get_conn(self) -> sqlite3.Connection:
        """Open a new SQLite connection.

        Raises:
            CorpusUnavailable: If the database file does not exist or
                cannot be opened.
        """
        if not self._db_path.exists():
            raise CorpusUnavailable(
                f"Puzzle database not found at {self._db_path}. "
                "Run `chessinator prepare` first."
            )
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise CorpusUnavailable(f"Cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        """Create the solved and progress tables if they are missing.

        Raises:
            PersistenceWriteFailure: If the tables cannot be created.
        """
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(_SOLVED_TABLE_SQL)
                conn.execute(_SOLVED_INDEX_SQL)
                conn.execute(_PROGRESS_TABLE_SQL)
        except sqlite3.Error as e:
            raise PersistenceWriteFailure(f"Cannot create tables: {e}") from e
        finally:
            conn.close()

    def _scalar(self, sql: str, params: tuple = ()):
        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            raise CorpusUnavailable(f"Query failed on {self._db_path}: {e}") from e
        finally:
            conn.close()

    # ── Counters ────────────────────────────────────────────────────

    def count_solved(self) -> int:
        """Number of distinct solved puzzle ids."""
        return self._scalar("SELECT COUNT(DISTINCT id) FROM solved") or 0

    def count_total(self) -> int:
        """Number of puzzles in the corpus."""
        return self._scalar("SELECT COUNT(*) FROM puzzle") or 0

    def is_solved(self, puzzle_id: str) -> bool:
        found = self._scalar("SELECT 1 FROM solved WHERE id = ? LIMIT 1", (puzzle_id,))
        return found is not None

    # ── Puzzle selection ────────────────────────────────────────────

    def next_rank(self) -> int:
        """Rank of the next puzzle to serve.

        Falls back to the solved count for databases that never persisted
        a rank.
        """
        value = self._scalar(
            "SELECT value FROM progress WHERE key = ?", (_NEXT_RANK_KEY,)
        )
        if value is None:
            return self.count_solved()
        return int(value)

    def set_next_rank(self, rank: int) -> None:
        """Persist the rank of the next puzzle to serve.

        Raises:
            PersistenceWriteFailure: If the write fails.
        """
        self._write(
            "INSERT OR REPLACE INTO progress (key, value) VALUES (?, ?)",
            (_NEXT_RANK_KEY, str(rank)),
        )

    def fetch_puzzle_at_rank(self, rank: int) -> Puzzle:
        """Fetch the puzzle at ``rank`` in PuzzleId order.

        Args:
            rank: Zero-based offset into the ordered corpus.

        Returns:
            The Puzzle at that offset.

        Raises:
            CorpusExhausted: If no puzzle exists at ``rank``.
        """
        if rank < 0:
            raise CorpusExhausted(rank, self.count_total())
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT PuzzleId AS puzzleId, FEN AS fen, Moves AS moves, "
                "Themes AS themes, GameUrl AS gameUrl "
                "FROM puzzle ORDER BY PuzzleId ASC LIMIT 1 OFFSET ?",
                (rank,),
            ).fetchone()
        except sqlite3.Error as e:
            raise CorpusUnavailable(f"Query failed on {self._db_path}: {e}") from e
        finally:
            conn.close()
        if row is None:
            raise CorpusExhausted(rank, self.count_total())
        return Puzzle.from_row(dict(row))

    # ── Solved set ──────────────────────────────────────────────────

    def mark_solved(self, puzzle_id: str) -> None:
        """Record ``puzzle_id`` as solved. Re-marking is a no-op.

        Raises:
            PersistenceWriteFailure: If the write fails.
        """
        self._write(
            "INSERT INTO solved (id) SELECT ? "
            "WHERE NOT EXISTS (SELECT 1 FROM solved WHERE id = ?)",
            (puzzle_id, puzzle_id),
        )
        logger.debug("Marked %s as solved", puzzle_id)

    def _write(self, sql: str, params: tuple) -> None:
        try:
            conn = self._get_conn()
        except CorpusUnavailable as e:
            raise PersistenceWriteFailure(str(e)) from e
        try:
            with conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            raise PersistenceWriteFailure(
                f"Write failed on {self._db_path}: {e}"
            ) from e
        finally:
            conn.close()
