"""Tests for the puzzle session state machine and completion handling.

Covers loading (setup move, cursor, exhaustion), user move validation
(invalid, wrong, matching), opponent replies, completion and the
persistence side effects of finishing a puzzle.
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from chessinator.errors import (
    CorpusExhausted,
    CorpusUnavailable,
    InvalidMove,
    PersistenceWriteFailure,
    WrongMove,
)
from chessinator.models import Puzzle, SessionPhase
from chessinator.rules import RulesEngine
from chessinator.session import CompletionHandler, PuzzleSession, load_session

RANK_00008, RANK_P1, RANK_P2, RANK_P3 = range(4)


def _load(store, rank, on_finished=None):
    return load_session(store, RulesEngine(), rank=rank, on_finished=on_finished)


def _solve(session: PuzzleSession) -> int:
    """Play the full solution; return the number of user moves submitted."""
    user_moves = 0
    while session.phase is not SessionPhase.FINISHED:
        if session.phase is SessionPhase.AWAITING_OPPONENT_REPLY:
            session.play_opponent_reply()
            continue
        session.submit_move(session.puzzle.moves[session.cursor])
        user_moves += 1
    return user_moves


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoad:

    def test_setup_move_is_applied(self, store):
        session = _load(store, RANK_P2)
        snap = session.snapshot()
        assert session.cursor == 1
        assert snap.phase is SessionPhase.AWAITING_USER_MOVE
        assert snap.last_move == "e2e4"
        assert snap.player_color == "black"
        assert snap.turn_color == "black"
        assert snap.last_error is None

    def test_user_move_progress(self, store):
        session = _load(store, RANK_P2, on_finished=MagicMock())
        snap = session.snapshot()
        assert (snap.user_moves_found, snap.user_moves_total) == (0, 2)
        assert session.submit_move("e5").user_moves_found == 1
        assert session.play_opponent_reply().user_moves_found == 1
        assert session.submit_move("Nc6").user_moves_found == 2

    def test_counters_are_read(self, store):
        store.mark_solved("00008")
        session = _load(store, RANK_P1)
        snap = session.snapshot()
        assert (snap.solved_count, snap.total_count) == (1, 4)

    def test_default_rank_is_next_rank(self, store):
        store.mark_solved("00008")
        session = load_session(store, RulesEngine())
        assert session.puzzle.puzzle_id == "P1"
        store.set_next_rank(RANK_P3)
        assert load_session(store).puzzle.puzzle_id == "P3"

    def test_corpus_exhausted(self, store):
        for rank in range(4):
            store.mark_solved(store.fetch_puzzle_at_rank(rank).puzzle_id)
        assert store.count_solved() == store.count_total()
        rules = MagicMock(spec=RulesEngine)
        with pytest.raises(CorpusExhausted):
            load_session(store, rules)
        rules.load_position.assert_not_called()

    def test_puzzle_needs_two_moves(self):
        with pytest.raises(ValueError, match="at least one solution move"):
            Puzzle(puzzle_id="X", fen="8/8/8/8/8/8/8/8 w - - 0 1", moves=("e2e4",))


# ---------------------------------------------------------------------------
# Rejected moves
# ---------------------------------------------------------------------------


class TestRejectedMoves:

    def test_invalid_move_changes_nothing(self, store):
        session = _load(store, RANK_P2)
        before = session.snapshot()

        snap = session.submit_move("z9z9")

        assert isinstance(session.last_error, InvalidMove)
        assert snap.last_error == InvalidMove.message
        assert snap.board == before.board
        assert snap.cursor == before.cursor == 1
        assert snap.phase is SessionPhase.AWAITING_USER_MOVE

    def test_wrong_move_is_undone(self, store):
        session = _load(store, RANK_P2)
        before = session.snapshot()

        snap = session.submit_move("d7d5")

        assert isinstance(session.last_error, WrongMove)
        assert snap.last_error == "Oops, wrong move !"
        assert snap.board == before.board
        assert snap.last_move == "e2e4"
        assert snap.cursor == 1
        assert snap.phase is SessionPhase.AWAITING_USER_MOVE

    def test_wrong_san_move_is_undone(self, store):
        session = _load(store, RANK_P2)
        before = session.rules.fen()
        session.submit_move("Nc6")
        assert session.rules.fen() == before

    def test_wrong_underpromotion(self, store):
        session = _load(store, RANK_P3)
        snap = session.submit_move("e7e8n")
        assert snap.last_error == WrongMove.message
        assert snap.cursor == 1

    def test_error_replaced_then_cleared(self, store):
        session = _load(store, RANK_P2)
        assert session.submit_move("z9z9").last_error == InvalidMove.message
        assert session.submit_move("d5").last_error == WrongMove.message
        assert session.submit_move("e5").last_error is None

    def test_retry_after_wrong_move(self, store):
        session = _load(store, RANK_P2)
        session.submit_move("d7d5")
        snap = session.submit_move("e7e5")
        assert snap.cursor == 2
        assert snap.phase is SessionPhase.AWAITING_OPPONENT_REPLY


# ---------------------------------------------------------------------------
# Accepted moves and opponent replies
# ---------------------------------------------------------------------------


class TestProgress:

    def test_match_then_reply(self, store):
        session = _load(store, RANK_P2, on_finished=MagicMock())

        snap = session.submit_move("e5")
        assert snap.cursor == 2
        assert snap.phase is SessionPhase.AWAITING_OPPONENT_REPLY
        assert snap.last_move == "e7e5"

        snap = session.play_opponent_reply()
        assert snap.cursor == 3
        assert snap.phase is SessionPhase.AWAITING_USER_MOVE
        assert snap.last_move == "g1f3"

    def test_input_ignored_while_opponent_pending(self, store):
        session = _load(store, RANK_P2)
        session.submit_move("e7e5")
        fen = session.rules.fen()
        snap = session.submit_move("b8c6")
        assert snap.cursor == 2
        assert snap.phase is SessionPhase.AWAITING_OPPONENT_REPLY
        assert session.rules.fen() == fen

    def test_reply_ignored_while_user_to_move(self, store):
        session = _load(store, RANK_P2)
        snap = session.play_opponent_reply()
        assert snap.cursor == 1
        assert snap.last_move == "e2e4"

    def test_final_user_move_finishes(self, store):
        on_finished = MagicMock()
        session = _load(store, RANK_P3, on_finished=on_finished)
        snap = session.submit_move("e8=Q")
        assert snap.phase is SessionPhase.FINISHED
        assert snap.cursor == 2
        on_finished.assert_called_once_with("P3")

    @pytest.mark.parametrize("rank,expected_user_moves", [
        (RANK_00008, 3),
        (RANK_P2, 2),
        (RANK_P3, 1),
    ])
    def test_user_moves_required(self, store, rank, expected_user_moves):
        session = _load(store, rank, on_finished=MagicMock())
        assert _solve(session) == expected_user_moves
        assert expected_user_moves == len(session.puzzle.moves) // 2

    def test_trailing_opponent_move_finishes(self, store):
        """P1 (e2e4 e7e5 g1f3) ends on an opponent move and still completes."""
        on_finished = MagicMock()
        session = _load(store, RANK_P1, on_finished=on_finished)

        snap = session.submit_move("e7e5")
        assert snap.cursor == 2
        assert snap.phase is SessionPhase.AWAITING_OPPONENT_REPLY
        on_finished.assert_not_called()

        snap = session.play_opponent_reply()
        assert snap.cursor == 3
        assert snap.phase is SessionPhase.FINISHED
        on_finished.assert_called_once_with("P1")

    def test_finished_ignores_input(self, store):
        session = _load(store, RANK_P3, on_finished=MagicMock())
        session.submit_move("e7e8q")
        snap = session.submit_move("Kb2")
        assert snap.phase is SessionPhase.FINISHED
        assert snap.last_error is None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class TestSnapshots:

    def test_every_transition_is_published(self, store):
        session = _load(store, RANK_P2, on_finished=MagicMock())
        phases = []
        session.subscribe(lambda snap: phases.append(snap.phase))

        session.submit_move("z9z9")
        session.submit_move("e5")
        session.play_opponent_reply()
        session.submit_move("Nc6")

        assert phases == [
            SessionPhase.AWAITING_USER_MOVE,
            SessionPhase.AWAITING_OPPONENT_REPLY,
            SessionPhase.AWAITING_USER_MOVE,
            SessionPhase.FINISHED,
        ]

    def test_finished_published_before_completion(self, store):
        events = []
        session = _load(store, RANK_P3, on_finished=lambda pid: events.append(("done", pid)))
        session.subscribe(lambda snap: events.append(("snap", snap.phase)))
        session.submit_move("e7e8q")
        assert events == [("snap", SessionPhase.FINISHED), ("done", "P3")]


# ---------------------------------------------------------------------------
# Completion handler
# ---------------------------------------------------------------------------


class TestCompletion:

    def test_solving_persists(self, store):
        session = _load(store, RANK_P3)
        session.submit_move("e7e8q")
        assert store.is_solved("P3")
        assert store.next_rank() == RANK_P3 + 1

    def test_next_session_resumes(self, store):
        _solve(_load(store, RANK_00008))
        assert load_session(store).puzzle.puzzle_id == "P1"

    def test_aborted_session_persists_nothing(self, store):
        session = _load(store, RANK_P2)
        session.submit_move("e7e5")
        assert store.count_solved() == 0
        assert load_session(store).puzzle.puzzle_id == "00008"

    def test_write_failure_is_logged(self, caplog):
        store = MagicMock()
        store.mark_solved.side_effect = PersistenceWriteFailure("disk full")
        handler = CompletionHandler(store, rank=7)

        with caplog.at_level(logging.ERROR, logger="chessinator.session"):
            handler("P9")

        assert "Could not record puzzle P9 as solved" in caplog.text
        store.set_next_rank.assert_not_called()

    def test_write_failure_does_not_block_finish(self, store, monkeypatch):
        def _fail(puzzle_id):
            raise PersistenceWriteFailure("locked")

        monkeypatch.setattr(store, "mark_solved", _fail)
        session = _load(store, RANK_P3)
        snap = session.submit_move("e7e8q")
        assert snap.phase is SessionPhase.FINISHED

    def test_replaying_earlier_rank_keeps_cursor(self, store):
        store.set_next_rank(RANK_P3)
        _solve(_load(store, RANK_P1))
        assert store.is_solved("P1")
        assert store.next_rank() == RANK_P3

    def test_solving_ahead_moves_cursor_forward(self, store):
        store.set_next_rank(RANK_P1)
        _solve(_load(store, RANK_P3))
        assert store.next_rank() == RANK_P3 + 1

    def test_cursor_read_failure_is_logged(self, caplog):
        store = MagicMock()
        store.next_rank.side_effect = CorpusUnavailable("locked")
        with caplog.at_level(logging.ERROR, logger="chessinator.session"):
            CompletionHandler(store, rank=2)("P2")
        assert "Could not record puzzle P2 as solved" in caplog.text
        store.set_next_rank.assert_not_called()

    def test_remarking_is_harmless(self, store):
        handler = CompletionHandler(store, rank=RANK_P2)
        handler("P2")
        handler("P2")
        assert store.count_solved() == 1
        assert store.next_rank() == RANK_P2 + 1
