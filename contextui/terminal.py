"""Terminal capability detection and raw-mode control.

Capabilities are probed once from the environment. The controller owns the
raw-mode/alternate-screen lifecycle used while a kitty image overlay is
on screen.
"""

from __future__ import annotations

import contextlib
import enum
import os
import termios
import tty
from collections.abc import Mapping
from dataclasses import dataclass

KITTY_TERM_PROGRAMS = frozenset({"kitty", "ghostty", "wezterm"})


class GraphicsProtocol(enum.Enum):
    KITTY = "Kitty"
    BLOCKS = "Unicode Blocks"


@dataclass(frozen=True)
class TerminalCapabilities:
    graphics: GraphicsProtocol = GraphicsProtocol.BLOCKS
    true_color: bool = False

    @property
    def kitty(self) -> bool:
        return self.graphics is GraphicsProtocol.KITTY


def supports_kitty_graphics(environ: Mapping[str, str]) -> bool:
    """Return whether the environment names a kitty-protocol terminal.

    Kitty, Ghostty, WezTerm and Konsole all accept the protocol.
    """
    if environ.get("KITTY_WINDOW_ID"):
        return True
    if environ.get("TERM_PROGRAM", "").lower() in KITTY_TERM_PROGRAMS:
        return True
    if "kitty" in environ.get("TERM", "").lower():
        return True
    return bool(environ.get("WEZTERM_EXECUTABLE") or environ.get("KONSOLE_VERSION"))


def supports_true_color(environ: Mapping[str, str]) -> bool:
    if environ.get("COLORTERM", "") in {"truecolor", "24bit"}:
        return True
    term = environ.get("TERM", "")
    return "256color" in term or "truecolor" in term


def detect_capabilities(environ: Mapping[str, str] | None = None) -> TerminalCapabilities:
    env = os.environ if environ is None else environ
    graphics = GraphicsProtocol.KITTY if supports_kitty_graphics(env) else GraphicsProtocol.BLOCKS
    return TerminalCapabilities(graphics=graphics, true_color=supports_true_color(env))


class TerminalController:
    def __init__(self, stdin_fd: int, stdout_fd: int) -> None:
        self.stdin_fd = stdin_fd
        self.stdout_fd = stdout_fd
        self._saved_tty_state = termios.tcgetattr(stdin_fd)

    def enable_overlay_mode(self) -> None:
        tty.setraw(self.stdin_fd, termios.TCSAFLUSH)
        # Alternate screen, hidden cursor.
        os.write(self.stdout_fd, b"\x1b[?1049h\x1b[?25l")

    def disable_overlay_mode(self) -> None:
        os.write(self.stdout_fd, b"\x1b[?25h\x1b[?1049l")
        termios.tcsetattr(self.stdin_fd, termios.TCSAFLUSH, self._saved_tty_state)

    def write(self, text: str) -> None:
        data = text.encode("utf-8")
        while data:
            written = os.write(self.stdout_fd, data)
            data = data[written:]

    def clear_images(self, clear_sequence: str) -> None:
        self.write(clear_sequence)

    def read_key(self) -> bytes:
        return os.read(self.stdin_fd, 1)

    @contextlib.contextmanager
    def raw_mode(self):
        try:
            self.enable_overlay_mode()
            yield
        finally:
            self.disable_overlay_mode()


__all__ = [
    "GraphicsProtocol",
    "TerminalCapabilities",
    "TerminalController",
    "detect_capabilities",
    "supports_kitty_graphics",
    "supports_true_color",
]
