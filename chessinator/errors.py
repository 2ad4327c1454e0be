"""Exception hierarchy for Chessinator.

Corpus errors are fatal to a session and reach the CLI. Move rejections
are resolved inside the session engine and only ever surface as a
message on the next snapshot.
"""

from __future__ import annotations


class ChessinatorError(Exception):
    """Base class for all Chessinator errors."""


class CorpusError(ChessinatorError):
    """Raised when the puzzle corpus cannot serve a request."""


class CorpusExhausted(CorpusError):
    """No puzzle exists at the requested rank."""

    def __init__(self, rank: int, total: int) -> None:
        super().__init__(
            f"No unsolved puzzle left (rank {rank}, corpus holds {total})"
        )
        self.rank = rank
        self.total = total


class CorpusUnavailable(CorpusError):
    """The corpus database is missing or unreadable."""


class PersistenceWriteFailure(CorpusError):
    """A write to the corpus database failed."""


class MoveRejected(ChessinatorError):
    """Base class for rejected move attempts."""

    message = "Move rejected"

    def __init__(self, move_text: str) -> None:
        super().__init__(f"{self.message}: {move_text!r}")
        self.move_text = move_text


class InvalidMove(MoveRejected):
    """The input is not a legal move in the current position."""

    message = "This move isn't valid"


class WrongMove(MoveRejected):
    """The move is legal but is not the puzzle's solution move."""

    message = "Oops, wrong move !"
