"""
One-call game annotation against local Stockfish processes.
"""

import logging
from contextlib import ExitStack
from typing import Optional

from tqdm import tqdm

from game_annotator.analysis.config import ReplayConfig
from game_annotator.analysis.game import GameRecord
from game_annotator.analysis.replay import ReplayDriver, ReplayResult
from game_annotator.uci.channel import SubprocessChannel, find_engine
from game_annotator.uci.correlator import ProtocolCorrelator

logger = logging.getLogger(__name__)


def annotate_pgn(
    pgn_text: str,
    config: Optional[ReplayConfig] = None,
    progress: bool = True,
) -> ReplayResult:
    """
    Score every ply of a PGN game with a UCI engine.

    Opens one engine process for searching and, when static evaluation runs
    on its own channel, a second one for "eval". Both are shut down before
    returning.

    Args:
        pgn_text: PGN text
        config: Replay configuration (uses defaults if None)
        progress: Show a tqdm progress bar

    Returns:
        ReplayResult; use .annotated for the transcript

    Raises:
        InvalidGameError: If the PGN is malformed (before any engine starts)
        FileNotFoundError: If no engine binary can be found
    """
    config = config or ReplayConfig()

    # Fail on bad input before spawning anything
    GameRecord.from_pgn(pgn_text, game_index=config.game_index)

    engine_path = config.engine_path or find_engine()
    logger.info(f"Annotating with {engine_path} at depth {config.depth}")

    with ExitStack() as stack:
        search_channel = stack.enter_context(SubprocessChannel(engine_path, name="search"))
        search = ProtocolCorrelator(search_channel, name="search")

        evaluator = None
        if config.static_eval:
            if config.dual_channel:
                eval_channel = stack.enter_context(SubprocessChannel(engine_path, name="eval"))
                evaluator = ProtocolCorrelator(eval_channel, name="eval")
            else:
                evaluator = search

        bar = stack.enter_context(
            tqdm(desc="Annotating", unit="ply", disable=not progress, leave=False)
        )

        def on_progress(done: int, total: int):
            bar.total = total
            bar.update(done - bar.n)

        driver = ReplayDriver(search, evaluator, config, on_progress=on_progress)
        return driver.run(pgn_text)
