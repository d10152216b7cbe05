"""
Game loading on top of python-chess.

python-chess does the rule work (SAN parsing, legality, FEN). This module
adapts it to what the replay needs: the move list, one FEN per ply, and the
ability to walk the game backwards one move at a time.
"""

import io
import logging
from typing import List, Optional

import chess
import chess.pgn

logger = logging.getLogger(__name__)


class InvalidGameError(ValueError):
    """Raised when PGN text does not contain a usable game."""


class GameRecord:
    """
    A loaded game positioned at its final move.

    Attributes:
        game: Parsed python-chess game
        board: Board at the current point of the walk
    """

    def __init__(self, game: chess.pgn.Game):
        self.game = game
        self.board = game.end().board()
        self._moves = self._collect_san()

    @classmethod
    def from_pgn(cls, pgn_text: str, game_index: int = 0) -> "GameRecord":
        """
        Load one game from PGN text.

        Args:
            pgn_text: PGN text, possibly holding several games
            game_index: Zero-based index of the game to load

        Returns:
            GameRecord positioned after the last move

        Raises:
            InvalidGameError: If the text holds no such game or the
                movetext contains illegal or unparsable moves
        """
        if game_index < 0:
            raise InvalidGameError(f"game_index must be >= 0, got {game_index}")
        if not pgn_text or not pgn_text.strip():
            raise InvalidGameError("PGN text is empty")

        stream = io.StringIO(pgn_text)
        game = None
        for index in range(game_index + 1):
            game = chess.pgn.read_game(stream)
            if game is None:
                raise InvalidGameError(
                    f"PGN text holds {index} game(s), cannot load game #{game_index}"
                )

        if game.errors:
            raise InvalidGameError(f"Malformed PGN: {game.errors[0]}")

        if game.next() is None:
            raise InvalidGameError("PGN game has no moves to annotate")

        record = cls(game)
        logger.info(
            f"Loaded game: {game.headers.get('White', '?')} vs "
            f"{game.headers.get('Black', '?')}, {len(record.moves())} plies"
        )
        return record

    def _collect_san(self) -> List[str]:
        board = self.game.board()
        moves = []
        for move in self.game.mainline_moves():
            moves.append(board.san(move))
            board.push(move)
        return moves

    def moves(self) -> List[str]:
        """Mainline moves in SAN, in game order."""
        return list(self._moves)

    def positions(self) -> List[str]:
        """
        FEN after each move, in game order.

        positions()[i] is the position reached immediately after moves()[i].
        """
        board = self.game.board()
        fens = []
        for move in self.game.mainline_moves():
            board.push(move)
            fens.append(board.fen())
        return fens

    def fen(self) -> str:
        """FEN of the current position."""
        return self.board.fen()

    def side_to_move(self) -> chess.Color:
        return self.board.turn

    def undo(self) -> Optional[str]:
        """
        Step back one move.

        Returns:
            FEN of the resulting position, or None if already at the start
        """
        if not self.board.move_stack:
            return None
        self.board.pop()
        return self.board.fen()

    def backward_positions(self) -> List[str]:
        """
        FEN after each move, last move first, obtained by undoing moves.

        The walk leaves the board at the start position.
        """
        self.board = self.game.end().board()
        if not self.board.move_stack:
            return []

        fens = [self.fen()]
        # Stop one short of the start: the initial position follows no move
        while len(self.board.move_stack) > 1:
            fens.append(self.undo())
        self.undo()
        return fens


def side_to_move(fen: str) -> chess.Color:
    """
    Side to move in a FEN.

    Raises:
        InvalidGameError: If the FEN cannot be parsed
    """
    try:
        return chess.Board(fen).turn
    except ValueError as e:
        raise InvalidGameError(f"Invalid FEN {fen!r}: {e}") from e
