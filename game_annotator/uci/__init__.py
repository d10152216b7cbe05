"""
UCI Protocol Client

This package talks to a UCI engine (normally Stockfish) over its standard
input/output. The protocol has no request identifiers, so replies are
matched to commands by content.

Protocol Flow (one channel):
    Client → "uci"
    Engine → "id name Stockfish 16"
    Engine → "uciok"
    Client → "isready"
    Engine → "readyok"
    Client → "position fen <FEN>"
    Client → "go depth 12"
    Engine → "info depth 12 score cp 25 nodes 12345 pv e2e4"
    Engine → "bestmove e2e4 ponder e7e5"

Reference:
    UCI Protocol: https://www.chessprogramming.org/UCI
"""

from game_annotator.uci.channel import (
    ChannelAdapter,
    ChannelClosed,
    SubprocessChannel,
    find_engine,
)
from game_annotator.uci.commands import Command, CompletionClass, QueryKind
from game_annotator.uci.correlator import (
    ChannelState,
    PendingRequest,
    ProtocolCorrelator,
)

__all__ = [
    'ChannelAdapter',
    'ChannelClosed',
    'SubprocessChannel',
    'find_engine',
    'Command',
    'CompletionClass',
    'QueryKind',
    'ChannelState',
    'PendingRequest',
    'ProtocolCorrelator',
]
