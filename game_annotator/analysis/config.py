"""
Replay configuration.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class WalkOrder(Enum):
    """
    Direction in which the game's positions are fed to the engine.

    FORWARD walks from the first move to the last. BACKWARD starts at the
    final position and undoes one move at a time. Either way, results are
    handed back in game order.
    """
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass
class ReplayConfig:
    """Configuration for replaying a game through the engine."""

    # Search
    depth: int = 12
    """Depth passed to "go depth N" for every position"""

    orientation: WalkOrder = WalkOrder.FORWARD
    """Order in which positions are searched"""

    # Channels
    static_eval: bool = True
    """Also run the engine's static "eval" on every position"""

    dual_channel: bool = True
    """Use a separate engine process for static evaluation"""

    engine_path: Optional[str] = None
    """Path to the UCI engine binary (None = auto-detect Stockfish)"""

    engine_options: Dict[str, str] = field(default_factory=dict)
    """UCI options sent with setoption after the handshake (e.g. Threads)"""

    # Timing
    ply_timeout: Optional[float] = 60.0
    """Seconds a single position may take before the replay is aborted (None = wait forever)"""

    poll_interval: float = 0.05
    """Seconds to wait on each channel per pump cycle"""

    # Input
    game_index: int = 0
    """Which game to replay when the PGN text holds several"""

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.orientation, str):
            self.orientation = WalkOrder(self.orientation)

        if self.depth <= 0:
            raise ValueError(f"depth must be positive, got {self.depth}")

        if self.ply_timeout is not None and self.ply_timeout <= 0:
            raise ValueError(f"ply_timeout must be positive or None, got {self.ply_timeout}")

        if self.poll_interval < 0:
            raise ValueError(f"poll_interval must be >= 0, got {self.poll_interval}")

        if self.game_index < 0:
            raise ValueError(f"game_index must be >= 0, got {self.game_index}")
