"""
UCI Command and Reply Classification

The engine protocol carries no request identifiers: a reply line can only be
matched to the command that produced it by looking at its content. This
module holds the vocabulary for that matching.

Commands are classified by their leading keyword:
    uci         -> HANDSHAKE   (answered by "uciok")
    isready     -> READINESS   (answered by "readyok")
    go          -> SEARCH      (answered by "bestmove ...")
    eval, d     -> QUERY       (answered by an evaluation block / board dump)
    everything else is fire-and-forget (position, setoption, ucinewgame, stop...)

Reply lines are classified by their leading token:
    uciok, option     -> HANDSHAKE
    readyok           -> READINESS
    bestmove, info    -> SEARCH
    anything else     -> QUERY
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# Reply tokens
HANDSHAKE_ACK = "uciok"
OPTION_TOKEN = "option"
READY_ACK = "readyok"
BESTMOVE_TOKEN = "bestmove"
INFO_TOKEN = "info"
# Last line of the "d" board dump; wording differs between engine builds
LEGAL_MOVES_TOKENS = ("Legal uci moves", "Legal moves")
UNKNOWN_COMMAND_TOKEN = "Unknown command"
INVALID_OPTION_TOKEN = "No such option"

# Summary line closing the output of "eval". Older builds print
# "Total Evaluation: 0.12 (white side)", newer ones "Final evaluation +0.12 ...".
EVAL_SUMMARY_PATTERN = re.compile(
    r"^(?:Total|Final) evaluation\b.*\n", re.MULTILINE | re.IGNORECASE
)


class CompletionClass(Enum):
    """
    How a request is recognised as finished.

    Requests of the same class are indistinguishable on the wire, which is
    why only one of each should be open per channel.
    """
    HANDSHAKE = "handshake"
    READINESS = "readiness"
    SEARCH = "search"
    QUERY = "query"
    FIRE_AND_FORGET = "fire_and_forget"


class QueryKind(Enum):
    """Sub-kinds of QUERY requests; they differ only in their terminal line."""
    STATIC_EVAL = "eval"
    POSITION_DUMP = "d"


_COMMAND_CLASSES = {
    "uci": CompletionClass.HANDSHAKE,
    "isready": CompletionClass.READINESS,
    "go": CompletionClass.SEARCH,
    "eval": CompletionClass.QUERY,
    "d": CompletionClass.QUERY,
}

_QUERY_KINDS = {
    "eval": QueryKind.STATIC_EVAL,
    "d": QueryKind.POSITION_DUMP,
}


@dataclass(frozen=True)
class Command:
    """A single line of text sent to the engine."""

    text: str
    completion_class: CompletionClass
    query_kind: Optional[QueryKind] = None

    @classmethod
    def parse(cls, text: str) -> "Command":
        """
        Build a command from raw text, classifying it by its leading keyword.

        Args:
            text: Command line without trailing newline (e.g. "go depth 12")

        Returns:
            Command with its completion class filled in

        Raises:
            ValueError: If text is empty
        """
        text = text.strip()
        if not text:
            raise ValueError("Cannot send an empty command")

        keyword = text.split()[0]
        completion_class = _COMMAND_CLASSES.get(keyword, CompletionClass.FIRE_AND_FORGET)
        return cls(
            text=text,
            completion_class=completion_class,
            query_kind=_QUERY_KINDS.get(keyword),
        )

    @property
    def is_fire_and_forget(self) -> bool:
        return self.completion_class is CompletionClass.FIRE_AND_FORGET


# Command builders

def position_command(fen: str) -> Command:
    return Command.parse(f"position fen {fen}")


def go_command(depth: int) -> Command:
    return Command.parse(f"go depth {depth}")


def setoption_command(name: str, value) -> Command:
    return Command.parse(f"setoption name {name} value {value}")


def classify_line(line: str) -> CompletionClass:
    """
    Classify a reply line by its leading token.

    Args:
        line: Reply line without trailing newline

    Returns:
        HANDSHAKE, READINESS, SEARCH or QUERY (never FIRE_AND_FORGET)
    """
    tokens = line.split(maxsplit=1)
    head = tokens[0] if tokens else ""

    if head in (HANDSHAKE_ACK, OPTION_TOKEN):
        return CompletionClass.HANDSHAKE
    if head == READY_ACK:
        return CompletionClass.READINESS
    if head in (BESTMOVE_TOKEN, INFO_TOKEN):
        return CompletionClass.SEARCH
    return CompletionClass.QUERY


def is_option_rejection(line: str) -> bool:
    """Check if the engine refused a setoption (harmless, nothing waits on it)."""
    return line.startswith(INVALID_OPTION_TOKEN)


def is_command_rejection(line: str) -> bool:
    """Check if the engine refused a command it does not understand."""
    return line.startswith(UNKNOWN_COMMAND_TOKEN)
