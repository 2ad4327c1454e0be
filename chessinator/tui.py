"""Terminal UI for a puzzle session.

Renders a Rich chess board from SessionSnapshot values and reads one move
per line from the user. The session publishes a snapshot after every
transition; this module owns when those snapshots hit the screen and when
the opponent reply is played.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from chessinator.models import SessionPhase, SessionSnapshot
from chessinator.session import PuzzleSession

logger = logging.getLogger(__name__)

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "#F0D9B5"
_DARK_SQ = "#B58863"
_HIGHLIGHT = "yellow"
_FILES = "abcdefgh"

FINISHED_MESSAGE = "Congrats you finish this puzzle !"


def render_header() -> Panel:
    return Panel(
        Text.assemble(
            ("WELCOME TO CHESSINATOR-CLI\n", "bold blue"),
            ("Train your brain before your coding session", "cyan"),
        ),
        border_style="cyan",
    )


def render_board(snapshot: SessionSnapshot) -> Panel:
    """Render the board grid as a Rich Panel.

    The board is drawn from the user's side: flipped when the user plays
    black. The squares of the last move are highlighted.

    Args:
        snapshot: Session snapshot to draw.

    Returns:
        Panel containing the board.
    """
    is_flipped = snapshot.player_color == "black"

    highlight_squares: set[str] = set()
    if snapshot.last_move:
        highlight_squares = {snapshot.last_move[:2], snapshot.last_move[2:4]}

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 0))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    # snapshot.board is rank 8 first, file a first
    row_indices = range(7, -1, -1) if is_flipped else range(8)
    col_indices = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for row_idx in row_indices:
        rank = 8 - row_idx
        row: list[Text] = [Text(f"{rank} ", style="dim")]
        for col_idx in col_indices:
            square = f"{_FILES[col_idx]}{rank}"
            cell = snapshot.board[row_idx][col_idx]

            is_light = (row_idx + col_idx) % 2 == 0
            bg = _LIGHT_SQ if is_light else _DARK_SQ
            if square in highlight_squares:
                bg = _HIGHLIGHT

            if cell is None:
                row.append(Text("   ", style=f"on {bg}"))
                continue
            symbol = cell.piece_type.upper() if cell.color == "white" else cell.piece_type
            fg = "#FFFFFF" if cell.color == "white" else "#000000"
            row.append(Text(f" {_PIECE_SYMBOLS[symbol]} ", style=f"{fg} on {bg}"))

        table.add_row(*row)

    file_labels = [Text("  ")]
    for col_idx in col_indices:
        file_labels.append(Text(f" {_FILES[col_idx]} ", style="dim"))
    table.add_row(*file_labels)

    return Panel(table, title=f"Puzzle {snapshot.puzzle_id}", border_style="blue",
                 expand=False)


def render_footer(snapshot: SessionSnapshot) -> Text:
    """Render the progress counter and feedback line."""
    if snapshot.is_finished:
        return Text(FINISHED_MESSAGE, style="green")

    footer = Text()
    footer.append(f"Write your move here... ({snapshot.player_color.capitalize()} turn)")
    footer.append(f"    {snapshot.solved_count} / {snapshot.total_count}", style="bold")
    footer.append(
        f"    moves found {snapshot.user_moves_found}/{snapshot.user_moves_total}",
        style="dim",
    )
    if snapshot.phase is SessionPhase.AWAITING_OPPONENT_REPLY:
        footer.append("\nOpponent is thinking...", style="dim")
    if snapshot.last_error:
        footer.append(f"\n{snapshot.last_error}", style="red")
    return footer


def render_session(snapshot: SessionSnapshot) -> Group:
    return Group(render_header(), render_board(snapshot), render_footer(snapshot))


def run_session(
    session: PuzzleSession,
    console: Console,
    input_fn: Callable[[], str] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    exit_grace: float = 0.2,
) -> bool:
    """Drive a session until it finishes or the user quits.

    Args:
        session: A started PuzzleSession.
        console: Console to render on.
        input_fn: Returns the next input line. Defaults to console.input.
        sleep: Delay function, replaced in tests.
        exit_grace: Seconds to wait after finishing so the last render flushes.

    Returns:
        True if the puzzle was finished, False if input ended or was
        interrupted first.
    """
    if input_fn is None:
        input_fn = lambda: console.input("[bold]>[/bold] ")  # noqa: E731

    session.subscribe(lambda snap: console.print(render_session(snap)))
    console.print(render_session(session.snapshot()))

    try:
        while session.phase is not SessionPhase.FINISHED:
            snapshot = session.submit_move(input_fn().strip())
            if snapshot.phase is SessionPhase.AWAITING_OPPONENT_REPLY:
                sleep(session.reply_delay)
                session.play_opponent_reply()
    except (EOFError, KeyboardInterrupt):
        logger.info("Input closed before puzzle %s was finished",
                    session.puzzle.puzzle_id)
        return False

    try:
        sleep(exit_grace)
    except KeyboardInterrupt:
        # puzzle already recorded, only the grace delay is cut short
        pass
    return True
