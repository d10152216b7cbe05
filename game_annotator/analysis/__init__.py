"""
Game Analysis

Replays a game through the engine and turns the per-ply results into an
annotated transcript.

Key Components:
    - GameRecord: PGN loading and position listing (python-chess)
    - normalize / format_score: engine score lines → human-facing scores
    - ReplayDriver: IDLE → LOADING → EVALUATING → DONE state machine
    - render: moves + scores → "1. e4 {0.35} e5 {-0.10} "
    - annotate_pgn: one-call annotation against local Stockfish
"""

from game_annotator.analysis.annotator import render
from game_annotator.analysis.config import ReplayConfig, WalkOrder
from game_annotator.analysis.game import GameRecord, InvalidGameError
from game_annotator.analysis.replay import (
    ReplayDriver,
    ReplayError,
    ReplayPhase,
    ReplayResult,
    ReplayState,
    ReplayTimeout,
)
from game_annotator.analysis.score import (
    BoundDirection,
    Bounded,
    MateIn,
    Numeric,
    Score,
    format_score,
    normalize,
    parse_static_eval,
)
from game_annotator.analysis.service import annotate_pgn

__all__ = [
    'render',
    'ReplayConfig',
    'WalkOrder',
    'GameRecord',
    'InvalidGameError',
    'ReplayDriver',
    'ReplayError',
    'ReplayPhase',
    'ReplayResult',
    'ReplayState',
    'ReplayTimeout',
    'BoundDirection',
    'Bounded',
    'MateIn',
    'Numeric',
    'Score',
    'format_score',
    'normalize',
    'parse_static_eval',
    'annotate_pgn',
]
