"""
Unit Tests for the Evaluation Replay Driver

Tests for walking a game through scripted engines, focusing on:
    - End-to-end transcript for a short game
    - Ordering contract: scores[i] belongs to moves[i] in both walk orders
    - Single and dual channel setups
    - Invariants while evaluating
    - Failure modes: malformed PGN, rejected commands, missing scores, stalls
"""

import chess
import pytest

from game_annotator.analysis.config import ReplayConfig, WalkOrder
from game_annotator.analysis.game import InvalidGameError
from game_annotator.analysis.replay import (
    ReplayDriver,
    ReplayError,
    ReplayPhase,
    ReplayTimeout,
)
from game_annotator.analysis.score import MateIn, Numeric
from game_annotator.uci.commands import CompletionClass
from game_annotator.uci.correlator import ProtocolCorrelator
from tests.fake_engine import FakeEngineChannel


OPEN_GAME = """
[Event "Test"]
[White "A"]
[Black "B"]
[Result "*"]

1. e4 e5 *
"""

SCHOLARS_MATE = """
[Event "Scholar"]
[White "A"]
[Black "B"]
[Result "1-0"]

1. e4 e5 2. Qh5 Nc6 3. Bc4 Nf6 4. Qxf7# 1-0
"""


def fens_after(*sans):
    board = chess.Board()
    fens = []
    for san in sans:
        board.push_san(san)
        fens.append(board.fen())
    return fens


AFTER_E4, AFTER_E5 = fens_after("e4", "e5")

# Engine scores are from the side to move: Black after 1. e4, White after 1... e5
OPEN_GAME_SCORES = {
    AFTER_E4: "cp -35",
    AFTER_E5: "cp -10",
}


def make_driver(config=None, dual=True, **engine_kwargs):
    """Build a driver over fresh fake engines."""
    search_engine = FakeEngineChannel(**engine_kwargs)
    search = ProtocolCorrelator(search_engine, name="search")

    evaluator = search
    eval_engine = None
    if dual:
        eval_engine = FakeEngineChannel(**engine_kwargs)
        evaluator = ProtocolCorrelator(eval_engine, name="eval")

    config = config or ReplayConfig(depth=2, poll_interval=0)
    driver = ReplayDriver(search, evaluator, config)
    return driver, search_engine, eval_engine


class TestEndToEnd:
    """Full replays against scripted engines."""

    def test_two_ply_transcript(self):
        """Test 1. e4 e5 with scores 0.35 / -0.10."""
        driver, _, _ = make_driver(scores=OPEN_GAME_SCORES)

        result = driver.run(OPEN_GAME)

        assert result.scores == [Numeric(0.35), Numeric(-0.1)]
        assert result.annotated == "1. e4 {0.35} e5 {-0.10} "
        assert driver.phase is ReplayPhase.DONE

    def test_commands_sent(self):
        """Test the conversation on each channel."""
        driver, search_engine, eval_engine = make_driver(scores=OPEN_GAME_SCORES)

        driver.run(OPEN_GAME)

        assert search_engine.sent == [
            "uci",
            "ucinewgame",
            "isready",
            f"position fen {AFTER_E4}",
            "go depth 2",
            f"position fen {AFTER_E5}",
            "go depth 2",
        ]
        assert eval_engine.sent == [
            "uci",
            "ucinewgame",
            "isready",
            f"position fen {AFTER_E4}",
            "eval",
            f"position fen {AFTER_E5}",
            "eval",
        ]

    def test_best_moves_and_static_evals(self):
        """Test that side results are collected per ply."""
        driver, _, _ = make_driver(
            scores=OPEN_GAME_SCORES,
            static_evals={AFTER_E4: 0.4, AFTER_E5: 0.2},
            best_moves={AFTER_E4: "e7e5", AFTER_E5: "g1f3"},
        )

        result = driver.run(OPEN_GAME)

        assert result.best_moves == ["e7e5", "g1f3"]
        assert result.static_evals == [pytest.approx(0.4), pytest.approx(0.2)]

    def test_mate_in_final_position(self):
        """Test a game ending in mate."""
        final_fen = fens_after("e4", "e5", "Qh5", "Nc6", "Bc4", "Nf6", "Qxf7#")[-1]
        driver, _, _ = make_driver(
            scores={final_fen: "mate 0"},
            best_moves={final_fen: "(none)"},
        )

        result = driver.run(SCHOLARS_MATE)

        assert result.scores[-1] == MateIn(0)
        assert result.best_moves[-1] is None
        assert result.annotated.endswith("4. Qxf7# {Mate in 0} ")

    def test_engine_options_sent(self):
        """Test that configured options follow the handshake."""
        config = ReplayConfig(depth=2, poll_interval=0, engine_options={"Threads": "2"})
        driver, search_engine, _ = make_driver(config=config)

        driver.run(OPEN_GAME)

        assert search_engine.sent[:3] == ["uci", "setoption name Threads value 2", "ucinewgame"]


class TestOrdering:
    """Tests for the scores[i] <-> moves[i] contract."""

    @pytest.mark.parametrize("orientation", [WalkOrder.FORWARD, WalkOrder.BACKWARD])
    def test_scores_align_with_moves(self, orientation):
        """Test both walk orders yield the same game-ordered result."""
        config = ReplayConfig(depth=2, poll_interval=0, orientation=orientation)
        driver, _, _ = make_driver(config=config, scores=OPEN_GAME_SCORES)

        result = driver.run(OPEN_GAME)

        assert result.orientation is orientation
        assert result.moves == ["e4", "e5"]
        assert result.annotated == "1. e4 {0.35} e5 {-0.10} "

    def test_backward_walk_searches_last_position_first(self):
        """Test that the backward walk really starts from the end."""
        config = ReplayConfig(depth=2, poll_interval=0, orientation=WalkOrder.BACKWARD)
        driver, search_engine, _ = make_driver(config=config, scores=OPEN_GAME_SCORES)

        driver.run(OPEN_GAME)

        positions = [c for c in search_engine.sent if c.startswith("position")]
        assert positions == [f"position fen {AFTER_E5}", f"position fen {AFTER_E4}"]

    def test_idempotent(self):
        """Test that two runs give byte-identical transcripts."""
        driver, _, _ = make_driver(scores=OPEN_GAME_SCORES)

        first = driver.run(SCHOLARS_MATE).annotated
        second = driver.run(SCHOLARS_MATE).annotated

        assert first == second


class TestChannels:
    """Tests for single-channel and eval-less setups."""

    def test_single_channel(self):
        """Test search and eval sharing one correlator."""
        driver, search_engine, _ = make_driver(dual=False, scores=OPEN_GAME_SCORES)

        result = driver.run(OPEN_GAME)

        assert result.annotated == "1. e4 {0.35} e5 {-0.10} "
        assert search_engine.sent.count("uci") == 1
        assert search_engine.sent[3:6] == [f"position fen {AFTER_E4}", "eval", "go depth 2"]

    def test_without_static_eval(self):
        """Test that static_eval=False never sends eval."""
        config = ReplayConfig(depth=2, poll_interval=0, static_eval=False)
        driver, search_engine, eval_engine = make_driver(config=config, scores=OPEN_GAME_SCORES)

        result = driver.run(OPEN_GAME)

        assert "eval" not in search_engine.sent
        assert eval_engine.sent == []
        assert result.static_evals == [None, None]


class TestInvariants:
    """Tests for state invariants during EVALUATING."""

    def test_scores_track_cursor(self):
        """Test len(scores) == cursor <= len(positions) at every search line."""
        driver, _, _ = make_driver(scores=OPEN_GAME_SCORES)
        observed = []

        def check(line):
            state = driver.state
            observed.append((len(state.scores), state.cursor, len(state.positions)))

        driver.search.stream_observer = check
        driver.run(SCHOLARS_MATE)

        assert observed
        for scores, cursor, positions in observed:
            assert scores == cursor <= positions

    def test_one_search_in_flight(self):
        """Test that a single go is ever open on the search channel."""
        driver, _, _ = make_driver(scores=OPEN_GAME_SCORES)
        open_searches = []

        def check(line):
            open_searches.append(sum(
                1 for r in driver.search.pending()
                if r.completion_class is CompletionClass.SEARCH
            ))

        driver.search.stream_observer = check
        driver.run(SCHOLARS_MATE)

        assert max(open_searches) == 1

    def test_progress_callback(self):
        """Test on_progress reporting every ply."""
        driver, _, _ = make_driver(scores=OPEN_GAME_SCORES)
        calls = []
        driver.on_progress = lambda done, total: calls.append((done, total))

        driver.run(OPEN_GAME)

        assert calls == [(1, 2), (2, 2)]


class TestFailures:
    """Tests for error handling."""

    def test_malformed_pgn_fails_before_evaluating(self):
        """Test that bad PGN raises without touching the engine."""
        driver, search_engine, eval_engine = make_driver()

        with pytest.raises(InvalidGameError):
            driver.run('[Event "Bad"]\n\n1. e4 Ke7 2. Kd3 *\n')

        assert driver.phase is ReplayPhase.IDLE
        assert search_engine.sent == []
        assert eval_engine.sent == []

    def test_start_requires_load(self):
        """Test calling start() before load()."""
        driver, _, _ = make_driver()

        with pytest.raises(ReplayError):
            driver.start()

    def test_result_requires_done(self):
        """Test asking for results too early."""
        driver, _, _ = make_driver()
        driver.load(OPEN_GAME)

        with pytest.raises(ReplayError):
            driver.result()

    def test_eval_unsupported(self):
        """Test an engine that rejects the eval command."""
        driver, _, _ = make_driver(supports_eval=False)

        with pytest.raises(ReplayError, match="rejected"):
            driver.run(OPEN_GAME)

        assert driver.phase is ReplayPhase.IDLE

    def test_search_without_score(self):
        """Test a bestmove that arrives with no score line."""
        driver, _, _ = make_driver(omit_score=True)

        with pytest.raises(ReplayError, match="without a score"):
            driver.run(OPEN_GAME)

    def test_stalled_search_times_out(self):
        """Test the per-ply timeout and the stop it sends."""
        config = ReplayConfig(depth=2, poll_interval=0, ply_timeout=0.05)
        driver, search_engine, _ = make_driver(config=config, silent_search=True)

        with pytest.raises(ReplayTimeout):
            driver.run(OPEN_GAME)

        assert search_engine.sent[-1] == "stop"
        pending = driver.search.pending()
        assert len(pending) == 1
        assert pending[0].discarded


class TestConfig:
    """Tests for ReplayConfig validation."""

    def test_defaults(self):
        """Test default values."""
        config = ReplayConfig()

        assert config.depth == 12
        assert config.orientation is WalkOrder.FORWARD
        assert config.static_eval
        assert config.dual_channel

    def test_orientation_from_string(self):
        """Test that a string orientation is accepted."""
        assert ReplayConfig(orientation="backward").orientation is WalkOrder.BACKWARD

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"depth": 0},
            {"ply_timeout": 0},
            {"poll_interval": -1},
            {"game_index": -1},
        ],
    )
    def test_invalid(self, kwargs):
        """Test that invalid values are rejected."""
        with pytest.raises(ValueError):
            ReplayConfig(**kwargs)
