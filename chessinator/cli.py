"""Command line entry point for Chessinator.

    chessinator [--db PATH] [play [--rank N] [--reply-delay SECONDS]]
    chessinator prepare [--source FILE | --from-db FILE] [--limit N] ...
    chessinator stats
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from chessinator.config import Settings
from chessinator.corpus import CorpusStore
from chessinator.errors import CorpusError
from chessinator.prepare import prepare_corpus
from chessinator.rules import RulesEngine
from chessinator.session import load_session
from chessinator.tui import run_session

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chessinator",
        description="Chessinator - train your brain on Lichess puzzles",
    )
    parser.add_argument("--db", type=str, default=None,
                        help="Path to puzzle.db (default: $CHESSINATOR_DB or data/puzzle.db)")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Logging level (default: $CHESSINATOR_LOG_LEVEL or WARNING)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    play_parser = subparsers.add_parser("play", help="Solve the next puzzle (default)")
    _add_play_arguments(play_parser)

    prepare_parser = subparsers.add_parser("prepare", help="Build the puzzle database")
    source = prepare_parser.add_mutually_exclusive_group()
    source.add_argument("--source", type=str, default=None,
                        help="Local lichess_db_puzzle.csv.zst to import")
    source.add_argument("--from-db", type=str, default=None,
                        help="Copy an already prepared puzzle.db into place")
    prepare_parser.add_argument("--limit", type=int, default=None,
                                help="Maximum puzzles to import")
    prepare_parser.add_argument("--validate", action="store_true",
                                help="Drop puzzles whose moves are not legal")
    prepare_parser.add_argument("--force", action="store_true",
                                help="Rebuild even if the database exists")
    prepare_parser.add_argument("--keep-download", action="store_true",
                                help="Keep the downloaded dump after import")

    subparsers.add_parser("stats", help="Show solved / total counters as JSON")
    return parser


def _add_play_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rank", type=int, default=None,
                        help="Corpus rank to load (default: next unsolved)")
    parser.add_argument("--reply-delay", type=float, default=None,
                        help="Seconds before the opponent replies (default: 0.2)")


def _cli_play(settings: Settings, store: CorpusStore, rank: int | None,
              console: Console) -> int:
    store.ensure_schema()
    session = load_session(
        store,
        RulesEngine(),
        rank=rank,
        reply_delay=settings.reply_delay,
    )
    finished = run_session(session, console, exit_grace=settings.exit_grace)
    return 0 if finished else 130


def _cli_stats(store: CorpusStore) -> int:
    store.ensure_schema()
    stats = {
        "solved": store.count_solved(),
        "total": store.count_total(),
        "next_rank": store.next_rank(),
    }
    print(json.dumps(stats, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        parser.error(str(e))
    if args.db:
        settings.db_path = Path(args.db)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    if getattr(args, "reply_delay", None) is not None:
        settings.reply_delay = args.reply_delay
    if not isinstance(logging.getLevelName(settings.log_level), int):
        parser.error(f"unknown log level: {settings.log_level}")
    _configure_logging(settings.log_level)

    console = Console()
    store = CorpusStore(settings.db_path)
    command = args.command or "play"

    try:
        if command == "prepare":
            prepare_corpus(
                settings.db_path,
                source=Path(args.source) if args.source else None,
                from_db=Path(args.from_db) if args.from_db else None,
                force=args.force,
                validate=args.validate,
                limit=args.limit,
                keep_download=args.keep_download,
            )
            return 0
        if command == "stats":
            return _cli_stats(store)
        return _cli_play(settings, store, getattr(args, "rank", None), console)
    except CorpusError as e:
        console.print(f"[red]{e}[/red]", soft_wrap=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
