"""Extension and content sniffing that routes a path to a preview pipeline."""

from __future__ import annotations

import enum
from pathlib import Path

BINARY_SNIFF_BYTES = 512


class FileKind(enum.Enum):
    TEXT = "Text"
    IMAGE = "Image"
    BINARY = "Binary"


class ImageFormat(enum.Enum):
    PNG = "PNG"
    JPEG = "JPEG"
    GIF = "GIF"
    WEBP = "WebP"
    SVG = "SVG"

    @property
    def label(self) -> str:
        return self.value


IMAGE_EXTENSIONS: dict[str, ImageFormat] = {
    ".png": ImageFormat.PNG,
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".gif": ImageFormat.GIF,
    ".webp": ImageFormat.WEBP,
    ".svg": ImageFormat.SVG,
}


def detect_image_format(path: Path) -> ImageFormat | None:
    return IMAGE_EXTENSIONS.get(path.suffix.lower())


def is_svg(path: Path) -> bool:
    return detect_image_format(path) is ImageFormat.SVG


def is_binary(path: Path) -> bool:
    """Return whether the first bytes of ``path`` contain a NUL byte.

    Unreadable or empty files count as text so the text loader can report
    the real error.
    """
    try:
        with path.open("rb") as handle:
            head = handle.read(BINARY_SNIFF_BYTES)
    except OSError:
        return False
    return b"\x00" in head


def detect_kind(path: Path) -> FileKind:
    if detect_image_format(path) is not None:
        return FileKind.IMAGE
    if is_binary(path):
        return FileKind.BINARY
    return FileKind.TEXT


__all__ = [
    "BINARY_SNIFF_BYTES",
    "FileKind",
    "IMAGE_EXTENSIONS",
    "ImageFormat",
    "detect_image_format",
    "detect_kind",
    "is_binary",
    "is_svg",
]
