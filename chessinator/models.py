"""Shared data models for Chessinator.

Puzzle is the corpus record; SessionSnapshot is the read-only contract
between the session engine and the terminal UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, NamedTuple


class SessionPhase(str, Enum):
    """Lifecycle phase of one puzzle attempt."""

    AWAITING_USER_MOVE = "awaiting_user_move"
    AWAITING_OPPONENT_REPLY = "awaiting_opponent_reply"
    FINISHED = "finished"


class PieceOnSquare(NamedTuple):
    """One occupied cell of a board snapshot."""

    square: str
    piece_type: str
    color: str


BoardGrid = tuple[tuple[PieceOnSquare | None, ...], ...]


@dataclass(frozen=True)
class Puzzle:
    """A tactics puzzle from the corpus.

    moves[0] is the opponent's setup move; the remaining moves alternate
    user / opponent, starting with the user.
    """

    puzzle_id: str
    fen: str
    moves: tuple[str, ...]
    themes: frozenset[str] = field(default_factory=frozenset)
    game_url: str = ""

    def __post_init__(self) -> None:
        if len(self.moves) < 2:
            raise ValueError(
                f"Puzzle {self.puzzle_id} needs a setup move and at least "
                f"one solution move, got {list(self.moves)}"
            )

    @classmethod
    def from_row(cls, row: Mapping[str, str | None]) -> Puzzle:
        """Build a Puzzle from a corpus row with space-delimited fields.

        Args:
            row: Mapping with puzzleId, fen, moves, themes, gameUrl keys.

        Returns:
            Parsed Puzzle.
        """
        return cls(
            puzzle_id=row["puzzleId"],
            fen=row["fen"],
            moves=tuple((row["moves"] or "").split()),
            themes=frozenset((row["themes"] or "").split()),
            game_url=row["gameUrl"] or "",
        )

    @property
    def user_move_count(self) -> int:
        """Number of moves the user has to find."""
        return len(self.moves) // 2


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session, emitted after every transition."""

    puzzle_id: str
    board: BoardGrid
    phase: SessionPhase
    cursor: int
    solved_count: int
    total_count: int
    player_color: str
    turn_color: str
    user_moves_found: int = 0
    user_moves_total: int = 0
    last_move: str | None = None
    last_error: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.phase is SessionPhase.FINISHED
