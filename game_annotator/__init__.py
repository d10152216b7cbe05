"""
Game Annotator

Scores every ply of a chess game with a UCI engine (Stockfish) and writes
the scores back into the movetext as comments.

## Architecture

The package is organized into two modules:

1. **uci**: Engine protocol client
   - Command / reply classification by leading keyword
   - Subprocess channel with a background stdout reader
   - Protocol correlator matching untagged replies to pending commands

2. **analysis**: Game replay and annotation
   - PGN loading through python-chess
   - Score normalization (centipawns, mate distances, bounds)
   - Replay driver walking the game one position at a time
   - Transcript rendering

## Quick Start

### As a Python Library

```python
from game_annotator.analysis import ReplayConfig, annotate_pgn

result = annotate_pgn(open("game.pgn").read(), ReplayConfig(depth=12))
print(result.annotated)
# 1. e4 {0.35} e5 {-0.10} ...
```

### From the Command Line

```bash
python tools/annotate_game.py game.pgn --depth 12
```

## Version

0.1.0
"""

__version__ = "0.1.0"
__license__ = "MIT"

from game_annotator.analysis import ReplayConfig, ReplayDriver, annotate_pgn, render
from game_annotator.uci import ProtocolCorrelator, SubprocessChannel

__all__ = [
    'ReplayConfig',
    'ReplayDriver',
    'annotate_pgn',
    'render',
    'ProtocolCorrelator',
    'SubprocessChannel',
]
