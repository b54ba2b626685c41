"""File previews: bounded read, markdown render or highlight, wrap, line-number gutter."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown

from ..ansi import SGR_RESET, wrap_ansi_text
from ..runtime.config import PreviewSettings
from ..runtime.events import FileLoaded
from .syntax import colorize_source, decode_text, sanitize_terminal_text

logger = logging.getLogger(__name__)

PLAIN_EXTENSIONS = frozenset({".sum", ".lock", ".txt", ".log", ".csv", ".json"})
MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown"})
GUTTER_COLOR = 240
GUTTER_SEPARATOR = " │ "
MIN_GUTTER_DIGITS = 4
DEFAULT_WRAP_WIDTH = 80


def human_size(size: int) -> str:
    """Format a byte count as ``"512 B"``, ``"1.5 KB"``, ``"3.0 MB"`` and so on."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def stat_mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def gutter_digits(line_count: int) -> int:
    return max(MIN_GUTTER_DIGITS, len(str(max(1, line_count))))


def add_line_numbers(content: str) -> str:
    """Prefix every line with a right-aligned grey line number and separator."""
    lines = content.split("\n")
    digits = gutter_digits(len(lines))
    out = []
    for index, line in enumerate(lines, start=1):
        gutter = f"\x1b[38;5;{GUTTER_COLOR}m{index:>{digits}}{GUTTER_SEPARATOR}{SGR_RESET}"
        out.append(gutter + line)
    return "\n".join(out)


def wrap_with_gutter(text: str, width: int) -> str:
    """Wrap styled text to the pane width left over after the gutter, then number it."""
    if width <= 0:
        width = DEFAULT_WRAP_WIDTH
    gutter_total = gutter_digits(text.count("\n") + 1) + len(GUTTER_SEPARATOR)
    return add_line_numbers(wrap_ansi_text(text, max(1, width - gutter_total)))


def read_preview_text(path: Path, settings: PreviewSettings) -> tuple[str, int, bool]:
    """Return ``(text, file_size, truncated)`` reading at most the byte cap."""
    size = path.stat().st_size
    truncated = size > settings.max_preview_bytes
    with path.open("rb") as handle:
        data = handle.read(settings.max_preview_bytes if truncated else -1)
    text = decode_text(data, partial=truncated)

    lines = text.split("\n")
    if len(lines) > settings.max_preview_lines:
        text = "\n".join(lines[: settings.max_preview_lines])
        truncated = True
    return text, size, truncated


def render_markdown(text: str, width: int) -> str:
    """Render markdown as styled terminal text word-wrapped to ``width`` columns."""
    buffer = io.StringIO()
    console = Console(
        file=buffer,
        width=max(1, width),
        force_terminal=True,
        color_system="256",
        highlight=False,
    )
    console.print(Markdown(sanitize_terminal_text(text)))
    return buffer.getvalue().rstrip("\n")


def highlight_text(text: str, path: Path, style: str) -> str:
    text = sanitize_terminal_text(text)
    if path.suffix.lower() in PLAIN_EXTENSIONS:
        return text
    return colorize_source(text, path, style)


def load_file_preview(
    path: Path,
    width: int,
    request_id: int,
    settings: PreviewSettings | None = None,
) -> FileLoaded:
    """Load one file for the preview pane.

    Read failures become an ``"Error: ..."`` preview with no mtime, which the
    controller displays but never caches.
    """
    settings = settings or PreviewSettings()
    try:
        mtime_ns = path.stat().st_mtime_ns
        text, size, truncated = read_preview_text(path, settings)
    except OSError as exc:
        logger.debug("preview read failed for %s: %s", path, exc)
        return FileLoaded(request_id=request_id, path=path, content=f"Error: {exc}")

    if truncated:
        notice = (
            f"--- File truncated (showing first {settings.max_preview_lines} lines "
            f"of {human_size(size)}) ---"
        )
        text = f"{notice}\n\n{text}"

    if path.suffix.lower() in MARKDOWN_EXTENSIONS:
        try:
            content = render_markdown(text, width if width > 0 else DEFAULT_WRAP_WIDTH)
        except Exception as exc:
            logger.warning("markdown render failed for %s: %s", path, exc)
        else:
            return FileLoaded(request_id=request_id, path=path, content=content, mtime_ns=mtime_ns)

    content = wrap_with_gutter(highlight_text(text, path, settings.style), width)
    return FileLoaded(request_id=request_id, path=path, content=content, mtime_ns=mtime_ns)


__all__ = [
    "MARKDOWN_EXTENSIONS",
    "PLAIN_EXTENSIONS",
    "add_line_numbers",
    "gutter_digits",
    "highlight_text",
    "human_size",
    "load_file_preview",
    "read_preview_text",
    "render_markdown",
    "stat_mtime_ns",
    "wrap_with_gutter",
]
