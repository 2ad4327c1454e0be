"""Build the puzzle database from the Lichess puzzle dump (CSV.ZST format).

Streams lichess_db_puzzle.csv.zst, keeps every puzzle with a setup move and
at least one solution move, and writes data/puzzle.db. Idempotent: an
already populated database is left alone unless ``force`` is set.

Lichess CSV columns:
  PuzzleId, FEN, Moves, Rating, RatingDeviation, Popularity, NbPlays,
  Themes, GameUrl, OpeningTags

Key format detail: Lichess FEN is the game position BEFORE the puzzle setup
move. moves[0] is the opponent's setup move, then moves[1:] alternate user
solution move and opponent forced response.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import shutil
import sqlite3
import tempfile
import urllib.request
from pathlib import Path

import chess
import zstandard
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from chessinator.corpus import (
    PUZZLE_COLUMNS,
    PUZZLE_TABLE_SQL,
    CorpusStore,
)

logger = logging.getLogger(__name__)

LICHESS_PUZZLE_URL = "https://database.lichess.org/lichess_db_puzzle.csv.zst"

_INT_COLUMNS = {"Rating", "RatingDeviation", "Popularity", "NbPlays"}
_BATCH_SIZE = 5000


def is_prepared(db_path: Path) -> bool:
    """True if ``db_path`` holds a non-empty puzzle table."""
    if not db_path.exists():
        return False
    try:
        conn = sqlite3.connect(db_path)
        try:
            row = conn.execute("SELECT 1 FROM puzzle LIMIT 1").fetchone()
        finally:
            conn.close()
    except sqlite3.Error:
        return False
    return row is not None


def download(url: str, dest: Path, console: Console | None = None) -> Path:
    """Download ``url`` to ``dest`` with a progress bar.

    Raises:
        OSError: If the download fails.
    """
    console = console or Console(stderr=True)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_suffix(dest.suffix + ".part")

    with Progress(
        TextColumn("[bold]Downloading[/bold] {task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(dest.name, total=None)

        def _hook(blocks: int, block_size: int, total_size: int) -> None:
            if total_size > 0:
                progress.update(task, total=total_size)
            progress.update(task, completed=blocks * block_size)

        urllib.request.urlretrieve(url, tmp, reporthook=_hook)

    os.replace(tmp, dest)
    return dest


def _moves_are_legal(fen: str, uci_moves: list[str]) -> bool:
    """Verify every move of the sequence is legal from ``fen``."""
    try:
        board = chess.Board(fen)
        for uci in uci_moves:
            move = chess.Move.from_uci(uci)
            if move not in board.legal_moves:
                return False
            board.push(move)
    except ValueError:
        return False
    return True


def _to_int(value: str | None) -> int | None:
    try:
        return int(value) if value else None
    except ValueError:
        return None


def iter_puzzle_rows(source: Path, validate: bool = False, limit: int | None = None):
    """Stream puzzle rows out of a Lichess ``.csv.zst`` file.

    Args:
        source: Path to lichess_db_puzzle.csv.zst.
        validate: Also drop rows whose moves are not legal in sequence.
        limit: Stop after this many accepted rows.

    Yields:
        Tuples in PUZZLE_COLUMNS order.
    """
    accepted = 0
    skipped = 0
    with open(source, "rb") as f:
        dctx = zstandard.ZstdDecompressor()
        reader = dctx.stream_reader(f)
        text = io.TextIOWrapper(reader, encoding="utf-8", newline="")
        for row in csv.DictReader(text):
            if limit is not None and accepted >= limit:
                break

            puzzle_id = (row.get("PuzzleId") or "").strip()
            fen = (row.get("FEN") or "").strip()
            uci_moves = (row.get("Moves") or "").split()
            # Need at least setup move + 1 solution move
            if not puzzle_id or not fen or len(uci_moves) < 2:
                skipped += 1
                continue
            if validate and not _moves_are_legal(fen, uci_moves):
                skipped += 1
                continue

            values = []
            for column in PUZZLE_COLUMNS:
                value = row.get(column)
                values.append(_to_int(value) if column in _INT_COLUMNS else value)
            values[1] = fen
            values[2] = " ".join(uci_moves)
            accepted += 1
            yield tuple(values)

    logger.info("Accepted %d puzzles, skipped %d rows", accepted, skipped)


def build_database(
    source: Path,
    db_path: Path,
    validate: bool = False,
    limit: int | None = None,
) -> int:
    """Import a Lichess dump into a fresh SQLite database at ``db_path``.

    Builds in a temp file next to the target, then atomically replaces it.

    Returns:
        Number of imported puzzles.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(suffix=".db", dir=db_path.parent)
    os.close(tmp_fd)
    tmp_path = Path(tmp_name)

    placeholders = ", ".join("?" for _ in PUZZLE_COLUMNS)
    insert_sql = (
        f"INSERT OR IGNORE INTO puzzle ({', '.join(PUZZLE_COLUMNS)}) "
        f"VALUES ({placeholders})"
    )

    try:
        conn = sqlite3.connect(tmp_path)
        try:
            with conn:
                conn.execute(PUZZLE_TABLE_SQL)
            batch: list[tuple] = []
            for values in iter_puzzle_rows(source, validate=validate, limit=limit):
                batch.append(values)
                if len(batch) >= _BATCH_SIZE:
                    with conn:
                        conn.executemany(insert_sql, batch)
                    batch = []
            if batch:
                with conn:
                    conn.executemany(insert_sql, batch)
            count = conn.execute("SELECT COUNT(*) FROM puzzle").fetchone()[0]
        finally:
            conn.close()
        os.replace(tmp_path, db_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    CorpusStore(db_path).ensure_schema()
    return count


def prepare_corpus(
    db_path: Path,
    source: Path | None = None,
    from_db: Path | None = None,
    force: bool = False,
    validate: bool = False,
    limit: int | None = None,
    keep_download: bool = False,
    url: str = LICHESS_PUZZLE_URL,
    console: Console | None = None,
) -> bool:
    """Make sure a prepared puzzle database exists at ``db_path``.

    Args:
        db_path: Target database file.
        source: Local lichess_db_puzzle.csv.zst to import.
        from_db: Fully prepared database to copy into place instead.
        force: Rebuild even if the target is already prepared.
        validate: Drop puzzles whose moves are not legal in sequence.
        limit: Maximum number of puzzles to import.
        keep_download: Keep the downloaded dump after importing.
        url: Where to download the dump when no source is given.
        console: Console for progress output.

    Returns:
        True if the database was (re)built, False if it was already there.
    """
    console = console or Console(stderr=True)
    if is_prepared(db_path) and not force:
        console.print(f"Puzzle database already prepared at {db_path}")
        return False

    if from_db is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(from_db, db_path)
        CorpusStore(db_path).ensure_schema()
        console.print(f"Copied puzzle database from {from_db} to {db_path}")
        return True

    downloaded = False
    if source is None:
        source = db_path.parent / Path(url).name
        if not source.exists():
            console.print(f"Puzzle dump not found, downloading from {url}")
            download(url, source, console=console)
            downloaded = True

    console.print(f"Importing puzzles from {source}...")
    try:
        count = build_database(source, db_path, validate=validate, limit=limit)
    finally:
        if downloaded and not keep_download:
            source.unlink(missing_ok=True)
    console.print(f"[green]Wrote {count} puzzles to {db_path}[/green]")
    return True
