"""Terminal session: cbreak keyboard input and a full-screen rich Live surface."""
from __future__ import annotations

import asyncio
import logging
import os
import sys
import termios
import time
import tty
from typing import Callable, List, Optional, TextIO

from rich.console import Console
from rich.live import Live

from config import MonitorConfig
from exceptions import TerminalError
from monitor.session import SessionView
from ui.dashboard import render_dashboard

logger = logging.getLogger(__name__)

ESCAPE = "\x1b"


def decode_keys(data: bytes) -> List[str]:
    """Turns raw bytes read from the terminal into key names.

    A lone ESC is the ``escape`` key. CSI (``ESC [ ... final``) and SS3
    (``ESC O x``) sequences come from arrow and function keys and are
    dropped, but keys typed after them in the same read are kept.
    """
    text = data.decode("utf-8", errors="ignore")
    keys: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == ESCAPE:
            follower = text[i + 1:i + 2]
            if follower == "[":
                i += 2
                while i < len(text) and not "@" <= text[i] <= "~":
                    i += 1
                i += 1
                continue
            if follower == "O" and i + 2 < len(text):
                i += 3
                continue
            keys.append("escape")
        elif ch.isprintable():
            keys.append(ch)
        i += 1
    return keys


class TerminalSession:
    """
    Owns the terminal for the lifetime of the dashboard.

    Entering switches stdin to cbreak mode, starts feeding key presses into
    ``keys`` and opens the alternate screen. Leaving always tries to undo all
    three, even when one of the steps fails.
    """

    def __init__(
        self,
        config: MonitorConfig,
        console: Optional[Console] = None,
        stdin: TextIO = sys.stdin,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.console = console or Console()
        self.stdin = stdin
        self.clock = clock
        self.keys: "asyncio.Queue[str]" = asyncio.Queue()
        self._fd: Optional[int] = None
        self._saved_attrs: Optional[list] = None
        self._live: Optional[Live] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def __aenter__(self) -> "TerminalSession":
        self.enter()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.restore()

    def enter(self) -> None:
        try:
            fd = self.stdin.fileno()
            if not os.isatty(fd):
                raise TerminalError("stdin is not a terminal")
            self._saved_attrs = termios.tcgetattr(fd)
            self._fd = fd
            tty.setcbreak(fd)
        except (termios.error, OSError, ValueError) as exc:
            self.restore()
            raise TerminalError(f"Could not switch the terminal to cbreak mode: {exc}") from exc

        try:
            self._loop = asyncio.get_running_loop()
            self._loop.add_reader(fd, self._on_readable)
            self._live = Live(console=self.console, screen=True, auto_refresh=False, transient=True)
            self._live.start()
        except Exception as exc:
            self.restore()
            raise TerminalError(f"Could not open the dashboard screen: {exc}") from exc
        logger.debug("Terminal entered cbreak mode")

    def restore(self) -> None:
        """Best-effort restoration; raises TerminalError only after every step was attempted."""
        failures = []
        if self._live is not None:
            try:
                self._live.stop()
            except Exception as exc:
                failures.append(f"stop screen: {exc}")
            self._live = None
        if self._loop is not None and self._fd is not None:
            self._loop.remove_reader(self._fd)
            self._loop = None
        if self._fd is not None and self._saved_attrs is not None:
            try:
                termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
            except termios.error as exc:
                failures.append(f"restore terminal mode: {exc}")
        self._fd = None
        self._saved_attrs = None
        if failures:
            raise TerminalError("; ".join(failures))
        logger.debug("Terminal restored")

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, 64)
        except OSError as exc:
            logger.warning("Keyboard read failed: %s", exc)
            return
        if not data:
            # Hangup: the fd stays readable at EOF.
            logger.warning("stdin closed, stopping")
            self._loop.remove_reader(self._fd)
            self.keys.put_nowait("q")
            return
        for key in decode_keys(data):
            self.keys.put_nowait(key)

    def draw(self, view: SessionView) -> None:
        if self._live is None:
            return
        log_lines = max(3, min(10, self.console.size.height // 5))
        self._live.update(render_dashboard(view, self.config, self.clock(), log_lines), refresh=True)

    def bell(self) -> None:
        self.console.bell()
