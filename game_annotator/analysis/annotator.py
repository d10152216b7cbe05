"""
Annotated transcript rendering.
"""

from typing import Sequence

from game_annotator.analysis.score import Score, format_score


def render(moves: Sequence[str], scores: Sequence[Score]) -> str:
    """
    Merge moves and per-ply scores into PGN-style movetext.

    Args:
        moves: Moves in SAN, game order
        scores: scores[i] is the score after moves[i]

    Returns:
        Text such as "1. e4 {0.35} e5 {-0.10} "

    Raises:
        ValueError: If moves and scores differ in length
    """
    if len(moves) != len(scores):
        raise ValueError(
            f"Got {len(moves)} moves but {len(scores)} scores"
        )

    parts = []
    for i, (move, score) in enumerate(zip(moves, scores)):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}. ")
        parts.append(move)
        parts.append(" {" + format_score(score) + "} ")
    return "".join(parts)
