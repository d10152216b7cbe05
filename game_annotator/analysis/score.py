"""
Score Normalization

Engines report scores from the point of view of the side to move in the
searched position ("info ... score cp 35"). This module turns those raw
tokens into human-facing values and formats them for annotations.

Convention:
    - Numeric scores are in pawns (centipawns / 100), rounded to 2 decimals
    - The engine signs a score for the side to move; an exact score is
      multiplied by -1 when Black is to move, so Numeric is positive when
      White is better
    - A bound keeps the engine's own value; only its direction is turned
      to White's point of view
    - Mate scores keep only the distance, not which side is mating
    - Bounded scores come from aspiration-window fail highs/lows
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import chess

logger = logging.getLogger(__name__)


SCORE_PATTERN = re.compile(
    r"\bscore\s+(cp|mate)\s+(-?\d+)(?:\s+(upperbound|lowerbound))?"
)

STATIC_EVAL_PATTERN = re.compile(
    r"^(?:Total|Final) evaluation:?\s+([+-]?\d+(?:\.\d+)?)",
    re.MULTILINE | re.IGNORECASE,
)


class BoundDirection(Enum):
    AT_LEAST = "at_least"
    AT_MOST = "at_most"


@dataclass(frozen=True)
class Numeric:
    """Evaluation in pawns."""
    pawns: float


@dataclass(frozen=True)
class MateIn:
    """Forced mate, distance only."""
    plies: int


@dataclass(frozen=True)
class Bounded:
    """A score the engine could only bound from one side."""
    direction: BoundDirection
    magnitude: Union[Numeric, MateIn]


Score = Union[Numeric, MateIn, Bounded]


def has_score(line: str) -> bool:
    """Check if an engine line carries a score token."""
    return SCORE_PATTERN.search(line) is not None


def normalize(line: str, side_to_move: chess.Color) -> Score:
    """
    Convert an engine score line into a Score.

    Args:
        line: Engine line containing "score (cp|mate) N [upperbound|lowerbound]"
        side_to_move: Side to move in the searched position (chess.WHITE/BLACK)

    Returns:
        Numeric, MateIn or Bounded score

    Raises:
        ValueError: If the line carries no score

    Example:
        >>> normalize("info depth 10 score cp 35", chess.BLACK)
        Numeric(pawns=-0.35)
    """
    match = SCORE_PATTERN.search(line)
    if match is None:
        raise ValueError(f"No score in engine line: {line!r}")

    unit, raw_value, qualifier = match.groups()
    value = int(raw_value)
    signed_value = value if side_to_move == chess.WHITE else -value

    if unit == "cp":
        score: Score = Numeric(round(signed_value / 100, 2))
    else:
        score = MateIn(abs(value))

    if qualifier is None:
        return score

    # An upper bound on the mover's score is a lower bound once seen from
    # the other side, hence the XOR.
    if (qualifier == "upperbound") == (side_to_move == chess.WHITE):
        direction = BoundDirection.AT_MOST
    else:
        direction = BoundDirection.AT_LEAST

    if unit == "cp":
        score = Numeric(round(value / 100, 2))
    return Bounded(direction, score)


def parse_static_eval(message: str) -> Optional[float]:
    """
    Extract the summary figure from the output of the "eval" command.

    Args:
        message: Full reply to "eval"

    Returns:
        Evaluation in pawns from White's side, or None if the engine
        printed no number (e.g. "Final evaluation: none (in check)")
    """
    match = STATIC_EVAL_PATTERN.search(message)
    if match is None:
        logger.debug("No numeric summary in eval output")
        return None
    return float(match.group(1))


def format_score(score: Score) -> str:
    """
    Format a score for a PGN comment.

    Examples:
        Numeric(0.35)                       -> "0.35"
        Numeric(-0.1)                       -> "-0.10"
        MateIn(3)                           -> "Mate in 3"
        Bounded(AT_MOST, Numeric(0.2))      -> "<= 0.20"
        Bounded(AT_MOST, Numeric(-0.5))     -> "<= -0.50"
    """
    if isinstance(score, Numeric):
        pawns = score.pawns
        if pawns == 0:
            pawns = 0.0  # no "-0.00"
        return f"{pawns:.2f}"

    if isinstance(score, MateIn):
        return f"Mate in {score.plies}"

    if isinstance(score, Bounded):
        prefix = "<= " if score.direction is BoundDirection.AT_MOST else ">= "
        return prefix + format_score(score.magnitude)

    raise TypeError(f"Not a score: {score!r}")
