"""Source decoding, control-byte sanitization, and Pygments highlighting."""

from __future__ import annotations

import codecs
import logging
import re
from functools import lru_cache
from pathlib import Path

from pygments import highlight
from pygments.formatters import TerminalFormatter
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

DEFAULT_STYLE = "monokai"

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def decode_text(data: bytes, partial: bool = False) -> str:
    """Decode file bytes as UTF-8 (dropping a BOM), falling back to latin-1.

    With ``partial`` the bytes are a prefix of the file, so an incomplete
    multibyte sequence at the very end is dropped instead of forcing the
    latin-1 fallback.
    """
    try:
        if partial:
            return codecs.getincrementaldecoder("utf-8-sig")().decode(data, final=False)
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def sanitize_terminal_text(source: str) -> str:
    """Escape C0/C1 control bytes as ``\\xNN`` so previews cannot drive the terminal.

    Newlines, carriage returns and tabs pass through.
    """
    if _CONTROL_RE.search(source) is None:
        return source
    return _CONTROL_RE.sub(lambda m: f"\\x{ord(m.group(0)):02x}", source)


@lru_cache(maxsize=None)
def normalize_style(style: str) -> str:
    """Return ``style`` when Pygments knows it, else the default style."""
    try:
        get_style_by_name(style)
    except ClassNotFound:
        logger.debug("unknown pygments style %r, using %s", style, DEFAULT_STYLE)
        return DEFAULT_STYLE
    return style


@lru_cache(maxsize=None)
def _formatter(style: str) -> TerminalFormatter:
    return TerminalFormatter(style=style)


def colorize_source(source: str, path: Path, style: str = DEFAULT_STYLE) -> str:
    """Highlight ``source`` with the lexer matching ``path``'s filename.

    Unknown file types use the plain text lexer. The trailing newline Pygments
    appends is removed when the input did not have one.
    """
    try:
        lexer = get_lexer_for_filename(path.name, source)
    except ClassNotFound:
        lexer = TextLexer()
    rendered = highlight(source, lexer, _formatter(normalize_style(style)))
    if not source.endswith("\n") and rendered.endswith("\n"):
        rendered = rendered[:-1]
    return rendered


__all__ = [
    "DEFAULT_STYLE",
    "colorize_source",
    "decode_text",
    "normalize_style",
    "sanitize_terminal_text",
]
