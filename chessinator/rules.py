"""Rules engine adapter over python-chess.

The session engine never touches ``chess.Board`` directly; everything it
needs (legality, apply, undo, board snapshots) goes through RulesEngine.
"""

from __future__ import annotations

from dataclasses import dataclass

import chess

from chessinator.errors import InvalidMove
from chessinator.models import BoardGrid, PieceOnSquare


@dataclass(frozen=True)
class AppliedMove:
    """A move that has been pushed onto the board."""

    uci: str
    san: str


def normalize_move(move: chess.Move | str) -> str:
    """Normalize a move to coordinate form: origin, destination, promotion.

    Args:
        move: A python-chess Move or a UCI string such as "e7e8Q".

    Returns:
        Lower-case 4 or 5 character string, e.g. "e7e8q".

    Raises:
        ValueError: If a string is not 4 or 5 characters long.
    """
    if isinstance(move, chess.Move):
        return move.uci()
    text = move.strip()
    if len(text) not in (4, 5):
        raise ValueError(f"Not a coordinate move: {move!r}")
    return text.lower()


class RulesEngine:
    """Owns the current position; the single source of truth for the board."""

    def __init__(self, fen: str = chess.STARTING_FEN) -> None:
        self._board = chess.Board(fen)

    def load_position(self, fen: str) -> None:
        """Replace the current position with ``fen``, clearing history."""
        self._board = chess.Board(fen)

    def fen(self) -> str:
        return self._board.fen()

    def _vocabulary(self) -> dict[str, chess.Move]:
        """Map every accepted spelling (SAN and UCI) to its legal move."""
        vocab: dict[str, chess.Move] = {}
        for move in self._board.legal_moves:
            vocab[self._board.san(move)] = move
            vocab[move.uci()] = move
        return vocab

    def legal_moves(self) -> set[str]:
        """Return every legal move in SAN and UCI spelling."""
        return set(self._vocabulary())

    def apply_move(self, text: str) -> AppliedMove:
        """Apply a user-entered move after checking it is legal.

        Args:
            text: Move in SAN ("Nf3") or UCI ("g1f3") notation.

        Returns:
            The applied move.

        Raises:
            InvalidMove: If ``text`` is not exactly a legal move spelling.
        """
        move = self._vocabulary().get(text.strip())
        if move is None:
            raise InvalidMove(text)
        san = self._board.san(move)
        self._board.push(move)
        return AppliedMove(uci=normalize_move(move), san=san)

    def apply_uci(self, uci: str) -> AppliedMove:
        """Apply a trusted corpus move without a legality check.

        Raises:
            ValueError: If ``uci`` is not a syntactically valid UCI move.
        """
        move = chess.Move.from_uci(normalize_move(uci))
        san = self._board.san(move) if self._board.is_legal(move) else move.uci()
        self._board.push(move)
        return AppliedMove(uci=move.uci(), san=san)

    def undo_last_move(self) -> None:
        """Take back the last applied move.

        Raises:
            IndexError: If no move has been applied.
        """
        self._board.pop()

    def last_move(self) -> str | None:
        if not self._board.move_stack:
            return None
        return self._board.peek().uci()

    def turn_color(self) -> str:
        return "white" if self._board.turn == chess.WHITE else "black"

    def board_snapshot(self) -> BoardGrid:
        """Return the board as 8 rows, rank 8 first, file a first."""
        rows = []
        for rank in range(7, -1, -1):
            row = []
            for file in range(8):
                sq = chess.square(file, rank)
                piece = self._board.piece_at(sq)
                if piece is None:
                    row.append(None)
                else:
                    row.append(PieceOnSquare(
                        square=chess.square_name(sq),
                        piece_type=chess.piece_symbol(piece.piece_type),
                        color="white" if piece.color == chess.WHITE else "black",
                    ))
            rows.append(tuple(row))
        return tuple(rows)
