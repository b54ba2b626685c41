"""Diff previews for the progressive (quick, then full) loader."""

from __future__ import annotations

import logging
from pathlib import Path

from ..ansi import SGR_RESET
from ..git import load_diff
from ..runtime.events import DiffLoaded
from .syntax import sanitize_terminal_text
from .text import stat_mtime_ns, wrap_with_gutter
from .types import DiffContext

logger = logging.getLogger(__name__)

NO_DIFF_TEXT = "No diff available"

HEADER_COLOR = 226
HUNK_COLOR = 81
ADD_COLOR = 118
REMOVE_COLOR = 196


def _paint(line: str, color: int) -> str:
    return f"\x1b[38;5;{color}m{line}{SGR_RESET}"


def highlight_diff_line(line: str) -> str:
    if line.startswith(("+++", "---")):
        return _paint(line, HEADER_COLOR)
    if line.startswith("@@"):
        return _paint(line, HUNK_COLOR)
    if line.startswith("+"):
        return _paint(line, ADD_COLOR)
    if line.startswith("-"):
        return _paint(line, REMOVE_COLOR)
    return line


def highlight_diff(diff_text: str, width: int) -> str:
    """Color unified diff text, wrap it to ``width`` and add the gutter."""
    lines = sanitize_terminal_text(diff_text).rstrip("\n").split("\n")
    return wrap_with_gutter("\n".join(highlight_diff_line(line) for line in lines), width)


def load_diff_preview(
    repo_root: Path,
    rel_path: str,
    staged: bool,
    context: DiffContext,
    context_lines: int,
    width: int,
    request_id: int,
    timeout_seconds: float | None = None,
) -> DiffLoaded:
    """Run one diff phase and render it.

    The working-tree mtime is read before git runs so an edit racing the
    diff leaves a validity token that no longer matches.
    """
    path = repo_root / rel_path
    mtime_ns = stat_mtime_ns(path)
    diff_text = load_diff(repo_root, rel_path, staged, context_lines, timeout_seconds)
    if not diff_text.strip():
        logger.debug("no %s diff for %s", context.value, rel_path)
        return DiffLoaded(
            request_id=request_id,
            path=path,
            staged=staged,
            context=context,
            content=NO_DIFF_TEXT,
            mtime_ns=mtime_ns,
            available=False,
        )
    return DiffLoaded(
        request_id=request_id,
        path=path,
        staged=staged,
        context=context,
        content=highlight_diff(diff_text, width),
        mtime_ns=mtime_ns,
    )


__all__ = [
    "NO_DIFF_TEXT",
    "highlight_diff",
    "highlight_diff_line",
    "load_diff_preview",
]
