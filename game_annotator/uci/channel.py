"""
Engine Channels

A channel is the byte-level pipe to one engine process. It only moves text:
commands go out one line at a time, reply lines come back in arrival order.
Matching replies to commands is the correlator's job, not the channel's.

Threading:
    - Reader thread: drains the engine's stdout into a queue
    - Caller thread: sends commands and pulls lines with read_line()
    Lines are therefore always dispatched on the caller's thread.
"""

import logging
import queue
import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# Marks end of the engine's stdout in the line queue
_EOF = object()


class ChannelClosed(RuntimeError):
    """Raised when the engine process has gone away."""


def find_engine(candidates: Optional[List[str]] = None) -> str:
    """
    Auto-detect a Stockfish binary.

    Args:
        candidates: Names or paths to try (default: common install locations)

    Returns:
        Path to the engine binary

    Raises:
        FileNotFoundError: If no candidate resolves to an executable
    """
    if candidates is None:
        candidates = [
            "stockfish",
            "/usr/local/bin/stockfish",
            "/usr/bin/stockfish",
            "/usr/games/stockfish",
            "/opt/homebrew/bin/stockfish",
        ]

    for candidate in candidates:
        path = shutil.which(candidate)
        if path:
            return path

    raise FileNotFoundError(
        "Stockfish not found. Install with: brew install stockfish (macOS) "
        "or apt install stockfish (Linux)"
    )


class ChannelAdapter(ABC):
    """
    Abstract duplex text channel to an engine.

    Implementations deliver lines without trailing newlines and never
    reorder them.
    """

    @abstractmethod
    def send(self, text: str) -> None:
        """Transmit one command line."""

    @abstractmethod
    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Return the next reply line.

        Args:
            timeout: Seconds to wait (None = block, 0 = poll)

        Returns:
            The line, or None if nothing arrived within timeout

        Raises:
            ChannelClosed: If the engine's output has ended
        """

    def close(self) -> None:
        """Release the underlying engine."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SubprocessChannel(ChannelAdapter):
    """Channel to a UCI engine running as a child process."""

    def __init__(self, engine_path: Optional[str] = None, name: str = "engine"):
        """
        Start the engine process.

        Args:
            engine_path: Path to the engine binary (None = auto-detect)
            name: Label used in log messages

        Raises:
            FileNotFoundError: If the engine binary does not exist
        """
        if engine_path is None:
            engine_path = find_engine()
        elif not Path(engine_path).exists() and shutil.which(engine_path) is None:
            raise FileNotFoundError(f"Engine binary not found at: {engine_path}")

        self.engine_path = engine_path
        self.name = name
        self._lines: "queue.Queue" = queue.Queue()
        self._closed = False

        self.process = subprocess.Popen(
            [engine_path],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
        )

        self._reader = threading.Thread(
            target=self._read_stdout,
            name=f"{name}-reader",
            daemon=True,
        )
        self._reader.start()

        logger.info(f"[{name}] started {engine_path} (pid={self.process.pid})")

    def _read_stdout(self):
        """Reader thread: move stdout lines into the queue until EOF."""
        try:
            for line in self.process.stdout:
                self._lines.put(line.rstrip("\r\n"))
        finally:
            self._lines.put(_EOF)

    def send(self, text: str) -> None:
        if self._closed or self.process.poll() is not None:
            raise ChannelClosed(f"[{self.name}] engine is not running")

        try:
            self.process.stdin.write(text + "\n")
            self.process.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            raise ChannelClosed(f"[{self.name}] write failed: {e}") from e

    def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        try:
            if timeout is not None and timeout <= 0:
                item = self._lines.get_nowait()
            else:
                item = self._lines.get(timeout=timeout)
        except queue.Empty:
            return None

        if item is _EOF:
            # Leave the marker for later readers
            self._lines.put(_EOF)
            raise ChannelClosed(f"[{self.name}] engine stdout closed")
        return item

    def close(self) -> None:
        """Send quit and wait for the process, killing it if it lingers."""
        if self._closed:
            return
        self._closed = True

        if self.process.poll() is None:
            try:
                self.process.stdin.write("quit\n")
                self.process.stdin.flush()
            except (BrokenPipeError, OSError):
                logger.debug(f"[{self.name}] stdin already closed")

            try:
                self.process.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                logger.warning(f"[{self.name}] did not quit in time, killing")
                self.process.kill()
                self.process.wait()

        logger.info(f"[{self.name}] stopped (exit code {self.process.returncode})")
