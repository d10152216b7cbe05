"""
Evaluation Replay Driver

Walks a game one position at a time through two engine channels and collects
a score per ply.

State machine:
    IDLE → LOADING → EVALUATING → DONE

    IDLE        nothing loaded
    LOADING     PGN parsed, positions listed; malformed input fails here
    EVALUATING  handshake, then one position in flight per channel:
                    search channel:  position fen <FEN> / go depth <D>
                    eval channel:    position fen <FEN> / eval
                the next position is only issued once the previous search
                has returned its bestmove
    DONE        scores reordered to game order, ready for annotation

The score of a ply is taken from the last "info ... score" line seen before
the bestmove, normalized with the side to move in the searched position.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import chess

from game_annotator.analysis.annotator import render
from game_annotator.analysis.config import ReplayConfig, WalkOrder
from game_annotator.analysis.game import GameRecord, InvalidGameError, side_to_move
from game_annotator.analysis.score import (
    Score,
    has_score,
    normalize,
    parse_static_eval,
)
from game_annotator.uci.commands import (
    INFO_TOKEN,
    Command,
    go_command,
    is_command_rejection,
    position_command,
    setoption_command,
)
from game_annotator.uci.correlator import ProtocolCorrelator

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int], None]


class ReplayError(RuntimeError):
    """Raised when the engine conversation cannot produce a result."""


class ReplayTimeout(TimeoutError):
    """Raised when a position gets no answer within the configured timeout."""


class ReplayPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    EVALUATING = "evaluating"
    DONE = "done"


@dataclass
class ReplayState:
    """
    Progress of one replay.

    positions, sides, scores, best_moves and static_evals are in walk order;
    moves is always in game order.
    """

    positions: List[str]
    sides: List[chess.Color]
    moves: List[str]
    orientation: WalkOrder
    cursor: int = 0
    scores: List[Score] = field(default_factory=list)
    best_moves: List[Optional[str]] = field(default_factory=list)
    static_evals: List[Optional[float]] = field(default_factory=list)

    def current_fen(self) -> str:
        return self.positions[self.cursor]

    def in_game_order(self, values: list) -> list:
        """Reorder a walk-order list so that element i belongs to moves[i]."""
        if self.orientation is WalkOrder.BACKWARD:
            return list(reversed(values))
        return list(values)


@dataclass(frozen=True)
class ReplayResult:
    """Per-ply results in game order: scores[i] is the score after moves[i]."""

    moves: List[str]
    scores: List[Score]
    best_moves: List[Optional[str]]
    static_evals: List[Optional[float]]
    orientation: WalkOrder

    @property
    def annotated(self) -> str:
        return render(self.moves, self.scores)


class ReplayDriver:
    """
    Feeds every position of a game to the engine and gathers scores.

    Attributes:
        search: Correlator used for "go" searches
        evaluator: Correlator used for static "eval" (may be the same object
            as search, or None to skip static evaluation)
        config: Replay configuration
        phase: Current state machine phase
        state: Progress of the current or last replay

    Methods:
        load: Parse PGN text and list positions (IDLE → LOADING)
        start: Handshake and issue the first position (LOADING → EVALUATING)
        wait: Pump both channels until DONE
        run: load + start + wait, returning the result
        result: Results of a finished replay in game order
    """

    def __init__(
        self,
        search: ProtocolCorrelator,
        evaluator: Optional[ProtocolCorrelator] = None,
        config: Optional[ReplayConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.config = config or ReplayConfig()
        self.search = search
        self.evaluator = evaluator if self.config.static_eval else None
        self.on_progress = on_progress

        self.phase = ReplayPhase.IDLE
        self.state: Optional[ReplayState] = None

        # Per-ply bookkeeping
        self._latest_score_line: Optional[str] = None
        self._search_in_flight = False
        self._eval_in_flight = False
        self._ready: set = set()
        self._deadline_start = 0.0

    @property
    def correlators(self) -> List[ProtocolCorrelator]:
        """Distinct correlators in use (one when search and eval share a channel)."""
        correlators = [self.search]
        if self.evaluator is not None and self.evaluator is not self.search:
            correlators.append(self.evaluator)
        return correlators

    def load(self, pgn_text: str) -> ReplayState:
        """
        Parse a game and prepare the positions to search.

        Args:
            pgn_text: PGN text

        Returns:
            Fresh ReplayState

        Raises:
            InvalidGameError: If the PGN is malformed
            ReplayError: If a replay is already running
        """
        if self.phase is ReplayPhase.EVALUATING:
            raise ReplayError("Cannot load a game while a replay is running")

        self.phase = ReplayPhase.LOADING
        try:
            record = GameRecord.from_pgn(pgn_text, game_index=self.config.game_index)

            if self.config.orientation is WalkOrder.BACKWARD:
                positions = record.backward_positions()
            else:
                positions = record.positions()

            sides = [side_to_move(fen) for fen in positions]
        except InvalidGameError:
            self.phase = ReplayPhase.IDLE
            raise

        self.state = ReplayState(
            positions=positions,
            sides=sides,
            moves=record.moves(),
            orientation=self.config.orientation,
        )

        logger.info(
            f"Loaded {len(positions)} positions "
            f"({self.config.orientation.value} walk, depth {self.config.depth})"
        )
        return self.state

    def start(self):
        """
        Handshake with every channel, then issue the first position.

        Raises:
            ReplayError: If no game has been loaded
        """
        if self.phase is not ReplayPhase.LOADING:
            raise ReplayError(f"Cannot start from phase {self.phase.value}, load a game first")

        self.phase = ReplayPhase.EVALUATING
        self._ready = set()
        self._search_in_flight = False
        self._eval_in_flight = False
        self._deadline_start = time.monotonic()

        for correlator in self.correlators:
            correlator.send(Command.parse("uci"), on_complete=self._check_rejection)
            for name, value in self.config.engine_options.items():
                correlator.send(setoption_command(name, value))
            correlator.send(Command.parse("ucinewgame"))
            correlator.send(
                Command.parse("isready"),
                on_complete=self._ready_callback(correlator),
            )

    def _ready_callback(self, correlator: ProtocolCorrelator):
        def on_ready(message: str):
            self._check_rejection(message)
            logger.debug(f"[{correlator.name}] ready")
            self._ready.add(id(correlator))
            if len(self._ready) == len(self.correlators):
                self._advance()
        return on_ready

    def _check_rejection(self, message: str):
        last_line = message.rstrip("\n").rsplit("\n", 1)[-1]
        if is_command_rejection(last_line):
            raise ReplayError(f"Engine rejected a command: {last_line}")

    def _issue_ply(self):
        state = self.state
        assert len(state.scores) == state.cursor < len(state.positions)

        fen = state.current_fen()
        logger.debug(f"Ply {state.cursor + 1}/{len(state.positions)}: {fen}")

        self._latest_score_line = None
        self._deadline_start = time.monotonic()

        self.search.send(position_command(fen))

        if self.evaluator is not None:
            if self.evaluator is not self.search:
                self.evaluator.send(position_command(fen))
            self._eval_in_flight = True
            self.evaluator.send(Command.parse("eval"), on_complete=self._on_static_eval)

        self._search_in_flight = True
        self.search.send(
            go_command(self.config.depth),
            on_complete=self._on_bestmove,
            on_stream=self._on_search_line,
        )

    def _on_search_line(self, line: str):
        if line.startswith(INFO_TOKEN) and has_score(line):
            self._latest_score_line = line

    def _on_bestmove(self, message: str):
        state = self.state
        self._search_in_flight = False
        self._check_rejection(message)

        fen = state.current_fen()
        if self._latest_score_line is None:
            raise ReplayError(f"Search finished without a score for {fen}")

        tokens = message.rstrip("\n").rsplit("\n", 1)[-1].split()
        best_move = tokens[1] if len(tokens) > 1 and tokens[1] != "(none)" else None

        score = normalize(self._latest_score_line, state.sides[state.cursor])
        state.scores.append(score)
        state.best_moves.append(best_move)
        state.cursor += 1

        logger.debug(f"Ply {state.cursor}: score={score} best={best_move}")
        if self.on_progress is not None:
            self.on_progress(state.cursor, len(state.positions))

        self._advance()

    def _on_static_eval(self, message: str):
        self._eval_in_flight = False
        self._check_rejection(message)
        self.state.static_evals.append(parse_static_eval(message))
        self._advance()

    def _advance(self):
        """Issue the next position once both channels are idle, or finish."""
        if self._search_in_flight or self._eval_in_flight:
            return

        state = self.state
        if state.cursor < len(state.positions):
            self._issue_ply()
        else:
            self._finish()

    def _finish(self):
        self.phase = ReplayPhase.DONE
        logger.info(f"Replay complete: {len(self.state.scores)} positions scored")

    def wait(self):
        """
        Pump the channels until the replay is DONE.

        Raises:
            ReplayTimeout: If a position gets no answer within ply_timeout
            ReplayError: If the engine rejects a command or omits a score
            ChannelClosed: If an engine process exits
        """
        try:
            while self.phase is ReplayPhase.EVALUATING:
                dispatched = False
                for correlator in self.correlators:
                    if self.phase is not ReplayPhase.EVALUATING:
                        break
                    timeout = 0 if dispatched else self.config.poll_interval
                    dispatched = correlator.pump(timeout=timeout) or dispatched

                if self.phase is ReplayPhase.EVALUATING:
                    self._check_timeout()
        except Exception:
            self.phase = ReplayPhase.IDLE
            raise

    def _check_timeout(self):
        timeout = self.config.ply_timeout
        if timeout is None:
            return

        elapsed = time.monotonic() - self._deadline_start
        if elapsed <= timeout:
            return

        for correlator in self.correlators:
            correlator.cancel_all_searches()

        state = self.state
        if len(self._ready) < len(self.correlators):
            where = "handshake"
        else:
            where = state.current_fen()
        logger.warning(f"No engine reply after {elapsed:.1f}s at ply {state.cursor}: {where}")
        raise ReplayTimeout(
            f"Engine gave no answer within {timeout}s at ply {state.cursor} ({where})"
        )

    def run(self, pgn_text: str) -> ReplayResult:
        """
        Replay a whole game and return its results.

        Args:
            pgn_text: PGN text

        Returns:
            ReplayResult in game order
        """
        self.load(pgn_text)
        self.start()
        self.wait()
        return self.result()

    def result(self) -> ReplayResult:
        """
        Results of the finished replay, reordered to game order.

        Raises:
            ReplayError: If the replay has not finished
        """
        if self.phase is not ReplayPhase.DONE:
            raise ReplayError(f"Replay not finished (phase {self.phase.value})")

        state = self.state
        static_evals = state.static_evals if self.evaluator is not None else [None] * len(state.scores)
        return ReplayResult(
            moves=list(state.moves),
            scores=state.in_game_order(state.scores),
            best_moves=state.in_game_order(state.best_moves),
            static_evals=state.in_game_order(static_evals),
            orientation=state.orientation,
        )
