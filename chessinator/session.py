"""Puzzle session engine.

Owns one puzzle attempt: the solution sequence, the ply cursor and the
phase state machine::

    AWAITING_USER_MOVE --match--> AWAITING_OPPONENT_REPLY --reply--> AWAITING_USER_MOVE
            |   ^                                                        |
            |   +-- invalid / wrong move (retry)                         |
            +--match on final ply--> FINISHED <--reply on final ply-------+

The board itself lives in the RulesEngine; the session only tracks where
it is in the solution. Every transition is published to subscribers as a
SessionSnapshot before any completion side effect runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from chessinator.corpus import CorpusStore
from chessinator.errors import CorpusError, MoveRejected, WrongMove
from chessinator.models import Puzzle, SessionPhase, SessionSnapshot
from chessinator.rules import AppliedMove, RulesEngine, normalize_move

logger = logging.getLogger(__name__)

DEFAULT_REPLY_DELAY = 0.2

SnapshotListener = Callable[[SessionSnapshot], None]
FinishedCallback = Callable[[str], None]


class CompletionHandler:
    """Persists a finished puzzle and advances the corpus cursor.

    Write failures are logged and swallowed: the user has already solved
    the puzzle, the only consequence is that it may be served again.
    """

    def __init__(self, store: CorpusStore, rank: int) -> None:
        self._store = store
        self._rank = rank

    def __call__(self, puzzle_id: str) -> None:
        try:
            self._store.mark_solved(puzzle_id)
            # Replaying an earlier rank never moves the cursor backwards
            next_rank = max(self._store.next_rank(), self._rank + 1)
            self._store.set_next_rank(next_rank)
        except CorpusError:
            logger.exception("Could not record puzzle %s as solved", puzzle_id)
            return
        logger.info("Puzzle %s solved, next rank %d", puzzle_id, next_rank)


class PuzzleSession:
    """State machine for one puzzle attempt.

    Construct through load_session(), which also plays the setup move.
    """

    def __init__(
        self,
        puzzle: Puzzle,
        rules: RulesEngine,
        solved_count: int = 0,
        total_count: int = 0,
        on_finished: FinishedCallback | None = None,
        reply_delay: float = DEFAULT_REPLY_DELAY,
    ) -> None:
        self.puzzle = puzzle
        self.rules = rules
        self.solved_count = solved_count
        self.total_count = total_count
        self.reply_delay = reply_delay
        self.cursor = 0
        self.phase = SessionPhase.AWAITING_USER_MOVE
        self.last_error: MoveRejected | None = None
        self.player_color = rules.turn_color()
        self._on_finished = on_finished
        self._listeners: list[SnapshotListener] = []

    # ── Observation ─────────────────────────────────────────────────

    def subscribe(self, listener: SnapshotListener) -> None:
        """Register a callback invoked with a snapshot after each transition."""
        self._listeners.append(listener)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            puzzle_id=self.puzzle.puzzle_id,
            board=self.rules.board_snapshot(),
            phase=self.phase,
            cursor=self.cursor,
            user_moves_found=self.cursor // 2,
            user_moves_total=self.puzzle.user_move_count,
            solved_count=self.solved_count,
            total_count=self.total_count,
            player_color=self.player_color,
            turn_color=self.rules.turn_color(),
            last_move=self.rules.last_move(),
            last_error=self.last_error.message if self.last_error else None,
        )

    def _publish(self) -> SessionSnapshot:
        snap = self.snapshot()
        for listener in self._listeners:
            listener(snap)
        return snap

    # ── Transitions ─────────────────────────────────────────────────

    def start(self) -> SessionSnapshot:
        """Play the opponent's setup move and hand the turn to the user."""
        self.rules.apply_uci(self.puzzle.moves[0])
        self.cursor = 1
        self.player_color = self.rules.turn_color()
        self.phase = SessionPhase.AWAITING_USER_MOVE
        return self._publish()

    def expected_move(self) -> str | None:
        if self.cursor >= len(self.puzzle.moves):
            return None
        return normalize_move(self.puzzle.moves[self.cursor])

    def submit_move(self, text: str) -> SessionSnapshot:
        """Validate and apply one user move attempt.

        Rejections (illegal input, legal but wrong move) leave the board and
        cursor untouched and are reported through ``last_error``.

        Args:
            text: Move in SAN or UCI notation.

        Returns:
            Snapshot after the transition.
        """
        if self.phase is not SessionPhase.AWAITING_USER_MOVE:
            logger.debug("Ignoring move %r while %s", text, self.phase.value)
            return self.snapshot()

        try:
            applied = self._play_user_move(text)
        except MoveRejected as e:
            logger.debug("Rejected %r: %s", text, e)
            self.last_error = e
            return self._publish()

        logger.debug("Accepted %s in puzzle %s", applied.san, self.puzzle.puzzle_id)
        self.last_error = None
        self.cursor += 1
        if self.cursor == len(self.puzzle.moves):
            return self._finish()
        self.phase = SessionPhase.AWAITING_OPPONENT_REPLY
        return self._publish()

    def _play_user_move(self, text: str) -> AppliedMove:
        applied = self.rules.apply_move(text)
        if applied.uci != self.expected_move():
            self.rules.undo_last_move()
            raise WrongMove(text)
        return applied

    def play_opponent_reply(self) -> SessionSnapshot:
        """Play the next solution move for the opponent.

        Called by the presentation layer once ``reply_delay`` has elapsed.
        """
        if self.phase is not SessionPhase.AWAITING_OPPONENT_REPLY:
            logger.debug("No opponent reply pending while %s", self.phase.value)
            return self.snapshot()

        self.rules.apply_uci(self.puzzle.moves[self.cursor])
        self.cursor += 1
        if self.cursor == len(self.puzzle.moves):
            # Corpus puzzles end on a user move; a trailing reply still
            # counts as solved since every user move was found.
            logger.warning(
                "Puzzle %s ends on an opponent move", self.puzzle.puzzle_id
            )
            return self._finish()
        self.phase = SessionPhase.AWAITING_USER_MOVE
        return self._publish()

    def _finish(self) -> SessionSnapshot:
        self.phase = SessionPhase.FINISHED
        snap = self._publish()
        if self._on_finished is not None:
            self._on_finished(self.puzzle.puzzle_id)
        return snap


def load_session(
    store: CorpusStore,
    rules: RulesEngine | None = None,
    rank: int | None = None,
    reply_delay: float = DEFAULT_REPLY_DELAY,
    on_finished: FinishedCallback | None = None,
) -> PuzzleSession:
    """Load the puzzle at ``rank`` and play its setup move.

    Args:
        store: Corpus to read the puzzle and progress counters from.
        rules: Rules engine to drive; a fresh one is created if omitted.
        rank: Corpus offset to load. Defaults to the store's next rank.
        reply_delay: Seconds the UI waits before the opponent reply.
        on_finished: Completion callback. Defaults to a CompletionHandler
            bound to ``store`` and ``rank``.

    Returns:
        A session in AWAITING_USER_MOVE with cursor 1.

    Raises:
        CorpusExhausted: If no puzzle exists at ``rank``.
    """
    solved = store.count_solved()
    total = store.count_total()
    if rank is None:
        rank = store.next_rank()
    puzzle = store.fetch_puzzle_at_rank(rank)
    logger.info("Loaded puzzle %s at rank %d (%d/%d solved)",
                puzzle.puzzle_id, rank, solved, total)

    rules = rules or RulesEngine()
    rules.load_position(puzzle.fen)
    if on_finished is None:
        on_finished = CompletionHandler(store, rank)

    session = PuzzleSession(
        puzzle,
        rules,
        solved_count=solved,
        total_count=total,
        on_finished=on_finished,
        reply_delay=reply_delay,
    )
    session.start()
    return session
