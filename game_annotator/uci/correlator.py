"""
Protocol Correlator

Maps untagged engine reply lines back to the commands that produced them.

Every command that expects an answer becomes a PendingRequest in a FIFO
queue. Each incoming line is classified by its leading token and assigned to
the first pending request of the same class; if none matches, the head of
the queue gets it. Lines accumulate on the request until its terminal
condition is met, at which point its continuation runs exactly once and the
request leaves the queue.

Terminal conditions:
    HANDSHAKE       line == "uciok"
    READINESS       line == "readyok"
    SEARCH          line starts with "bestmove"
    QUERY (d)       line starts with "Legal moves"
    QUERY (eval)    message contains the evaluation summary line
    any class       line starts with "Unknown command"

The head-of-queue fallback is a guess. It is only safe while a channel never
holds two open requests of the same class, so callers should keep each class
single-in-flight (see pending_count()).
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from game_annotator.uci.channel import ChannelAdapter
from game_annotator.uci.commands import (
    BESTMOVE_TOKEN,
    EVAL_SUMMARY_PATTERN,
    HANDSHAKE_ACK,
    LEGAL_MOVES_TOKENS,
    READY_ACK,
    Command,
    CompletionClass,
    QueryKind,
    classify_line,
    is_command_rejection,
    is_option_rejection,
)

logger = logging.getLogger(__name__)


CompletionCallback = Callable[[str], None]
StreamCallback = Callable[[str], None]


@dataclass
class ChannelState:
    """Lifecycle flags for one channel, updated only from observed replies."""

    started: float = field(default_factory=time.time)
    handshake_done: bool = False
    ready: bool = False


@dataclass
class PendingRequest:
    """A command waiting for its terminal reply line."""

    id: int
    command: Command
    on_complete: Optional[CompletionCallback] = None
    on_stream: Optional[StreamCallback] = None
    lines: List[str] = field(default_factory=list)
    discarded: bool = False

    @property
    def completion_class(self) -> CompletionClass:
        return self.command.completion_class

    @property
    def message(self) -> str:
        """Accumulated reply, one line per row, newline-terminated."""
        return "".join(line + "\n" for line in self.lines)

    def is_complete(self, line: str) -> bool:
        """
        Check whether the line just appended finishes this request.

        Args:
            line: Most recent line (already in self.lines)

        Returns:
            True if the request is resolved
        """
        if is_command_rejection(line):
            return True

        cls = self.completion_class
        if cls is CompletionClass.HANDSHAKE:
            return line == HANDSHAKE_ACK
        if cls is CompletionClass.READINESS:
            return line == READY_ACK
        if cls is CompletionClass.SEARCH:
            return line.startswith(BESTMOVE_TOKEN)
        if cls is CompletionClass.QUERY:
            if self.command.query_kind is QueryKind.POSITION_DUMP:
                return line.startswith(LEGAL_MOVES_TOKENS)
            return EVAL_SUMMARY_PATTERN.search(self.message) is not None
        return False


class ProtocolCorrelator:
    """
    Request/reply bookkeeping for one engine channel.

    Attributes:
        channel: Underlying text channel
        name: Label used in log messages
        state: Handshake / readiness flags observed on this channel
        stream_observer: Optional callback receiving every raw line

    Methods:
        send: Transmit a command, queueing it if it expects a reply
        on_line: Dispatch one reply line
        pump: Read one line from the channel and dispatch it
        cancel_all_searches: Stop open searches and suppress their results
        pending_count: Number of open requests
    """

    def __init__(
        self,
        channel: ChannelAdapter,
        name: str = "engine",
        stream_observer: Optional[StreamCallback] = None,
    ):
        self.channel = channel
        self.name = name
        self.stream_observer = stream_observer
        self.state = ChannelState()

        self._queue: List[PendingRequest] = []
        self._ids = itertools.count(1)

    def send(
        self,
        command: Union[Command, str],
        on_complete: Optional[CompletionCallback] = None,
        on_stream: Optional[StreamCallback] = None,
    ) -> Optional[PendingRequest]:
        """
        Transmit a command.

        Fire-and-forget commands are written immediately and nothing is
        queued. Every other command becomes a PendingRequest that is resolved
        later from on_line().

        Args:
            command: Command or raw command text
            on_complete: Called once with the accumulated reply
            on_stream: Called with every line assigned to the request

        Returns:
            The queued request, or None for fire-and-forget commands
        """
        if isinstance(command, str):
            command = Command.parse(command)

        request = None
        if not command.is_fire_and_forget:
            request = PendingRequest(
                id=next(self._ids),
                command=command,
                on_complete=on_complete,
                on_stream=on_stream,
            )
            # Queue before writing so an immediate reply finds its request
            self._queue.append(request)

        logger.debug(f"[{self.name}] >>> {command.text}")
        self.channel.send(command.text)
        return request

    def on_line(self, raw_line: str) -> None:
        """
        Assign one reply line to a pending request.

        Args:
            raw_line: Reply line as delivered by the channel
        """
        line = raw_line.rstrip("\r\n")

        if self.stream_observer is not None:
            self.stream_observer(line)

        if is_option_rejection(line):
            logger.debug(f"[{self.name}] ignoring option rejection: {line}")
            return

        request = self._select_request(classify_line(line))
        if request is None:
            logger.debug(f"[{self.name}] <<< {line} (no pending request, dropped)")
            return

        request.lines.append(line)
        if request.on_stream is not None:
            request.on_stream(line)

        if not request.is_complete(line):
            return

        self._queue.remove(request)
        self._update_state(request, line)

        if is_command_rejection(line):
            logger.warning(f"[{self.name}] engine rejected '{request.command.text}': {line}")

        if request.discarded:
            logger.debug(f"[{self.name}] request #{request.id} finished after cancel")
            return

        if request.on_complete is not None:
            request.on_complete(request.message)

    def _select_request(self, line_class: CompletionClass) -> Optional[PendingRequest]:
        if not self._queue:
            return None

        for request in self._queue:
            if request.completion_class is line_class:
                return request

        head = self._queue[0]
        logger.debug(
            f"[{self.name}] no {line_class.value} request open, "
            f"falling back to #{head.id} ({head.command.text})"
        )
        return head

    def _update_state(self, request: PendingRequest, line: str):
        if request.completion_class is CompletionClass.HANDSHAKE and line == HANDSHAKE_ACK:
            self.state.handshake_done = True
        elif request.completion_class is CompletionClass.READINESS and line == READY_ACK:
            self.state.ready = True

    def pump(self, timeout: Optional[float] = None) -> bool:
        """
        Read at most one line from the channel and dispatch it.

        Args:
            timeout: Seconds to wait for a line (None = block)

        Returns:
            True if a line was dispatched, False on timeout

        Raises:
            ChannelClosed: If the engine went away
        """
        line = self.channel.read_line(timeout=timeout)
        if line is None:
            return False
        self.on_line(line)
        return True

    def cancel_all_searches(self) -> int:
        """
        Send "stop" for every open search and suppress its continuation.

        The bestmove that follows the stop is still consumed so the queue
        stays aligned with the engine.

        Returns:
            Number of searches cancelled
        """
        cancelled = 0
        for request in self._queue:
            if request.completion_class is CompletionClass.SEARCH and not request.discarded:
                self.send("stop")
                request.discarded = True
                cancelled += 1

        if cancelled:
            logger.info(f"[{self.name}] cancelled {cancelled} search(es)")
        return cancelled

    def pending_count(self) -> int:
        return len(self._queue)

    def pending(self) -> List[PendingRequest]:
        """Snapshot of open requests in creation order."""
        return list(self._queue)
