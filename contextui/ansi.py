"""ANSI-aware measurement and wrapping for preview text.

Escape sequences never count toward width and stay attached to the text
they style. Wide characters count as two columns.
"""

from __future__ import annotations

import re
import unicodedata

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
SGR_RESET = "\x1b[0m"
TAB_STOP = 8


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def char_display_width(ch: str) -> int:
    """Return terminal column width for one non-tab character."""
    if unicodedata.combining(ch):
        return 0
    if unicodedata.east_asian_width(ch) in {"W", "F"}:
        return 2
    return 1


def display_width(text: str) -> int:
    return sum(char_display_width(ch) for ch in strip_ansi(text))


def _tokens(text: str) -> list[tuple[str, int]]:
    """Split styled text into ``(token, width)`` pairs; escapes have width 0."""
    out: list[tuple[str, int]] = []
    i = 0
    col = 0
    while i < len(text):
        if text[i] == "\x1b":
            match = ANSI_ESCAPE_RE.match(text, i)
            if match:
                out.append((match.group(0), 0))
                i = match.end()
                continue
        ch = text[i]
        if ch == "\t":
            width = TAB_STOP - (col % TAB_STOP)
            out.append((" " * width, width))
        else:
            width = char_display_width(ch)
            out.append((ch, width))
        col += width
        i += 1
    return out


def clip_ansi_line(text: str, max_cols: int) -> str:
    """Trim a styled line to ``max_cols`` display columns, keeping escapes."""
    if max_cols <= 0 or not text:
        return ""
    out: list[str] = []
    col = 0
    for token, width in _tokens(text):
        if width and col + width > max_cols:
            break
        out.append(token)
        col += width
    return "".join(out)


def wrap_ansi_words(text: str, width: int) -> list[str]:
    """Wrap one styled line at word boundaries to fit ``width`` columns.

    Words longer than ``width`` are broken mid-word. The active SGR state is
    re-emitted at the start of every continuation row so colors carry over.
    """
    if width <= 0 or not text:
        return [text]

    rows: list[str] = []
    row: list[str] = []
    row_width = 0
    last_space = -1
    active_sgr = ""

    for token, token_width in _tokens(text):
        if token_width == 0:
            row.append(token)
            if token.endswith("m"):
                active_sgr = "" if token == SGR_RESET else active_sgr + token
            continue

        if row_width + token_width > width and row_width > 0:
            if token == " ":
                rows.append("".join(row))
                row, row_width, last_space = [active_sgr] if active_sgr else [], 0, -1
                continue
            if last_space >= 0:
                head = row[:last_space]
                tail = row[last_space + 1 :]
                rows.append("".join(head))
                row = ([active_sgr] if active_sgr else []) + tail
                row_width = display_width("".join(tail))
            else:
                rows.append("".join(row))
                row, row_width = [active_sgr] if active_sgr else [], 0
            last_space = -1

        if token == " ":
            last_space = len(row)
        row.append(token)
        row_width += token_width

    rows.append("".join(row))
    return rows


def wrap_ansi_text(text: str, width: int) -> str:
    """Word-wrap every line of ``text``; returns the rejoined block."""
    if width <= 0:
        return text
    out: list[str] = []
    for line in text.split("\n"):
        out.extend(wrap_ansi_words(line, width))
    return "\n".join(out)


__all__ = [
    "ANSI_ESCAPE_RE",
    "SGR_RESET",
    "char_display_width",
    "clip_ansi_line",
    "display_width",
    "strip_ansi",
    "wrap_ansi_text",
    "wrap_ansi_words",
]
