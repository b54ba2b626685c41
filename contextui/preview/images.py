"""Terminal image rendering.

Decodes raster images with Pillow and SVG documents with cairosvg, scales the
result to the character grid of the preview pane, and encodes it either as
half-block glyphs (inline pane) or as a chunked kitty graphics payload
(full-screen overlay).
"""

from __future__ import annotations

import base64
import io
import logging
import math
import xml.etree.ElementTree as ET
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..ansi import SGR_RESET, display_width
from ..runtime.events import ImageLoaded, OverlayLoaded
from ..terminal import TerminalCapabilities
from .filetype import detect_image_format, is_svg

logger = logging.getLogger(__name__)

INLINE_QUALITY = 2
OVERLAY_QUALITY = 4
HEADER_ROWS = 2
MIN_IMAGE_ROWS = 4
MAX_UPSCALE = 2.0
SVG_DEFAULT_CANVAS = 100

KITTY_CHUNK_SIZE = 4096
KITTY_CLEAR_IMAGES = "\x1b_Ga=d,d=A,q=2;\x1b\\"
HALF_BLOCK = "▀"

OVERLAY_BORDER = "\x1b[38;5;205m"
OVERLAY_DIM = "\x1b[2m"
OVERLAY_HINT = "Esc to exit"


class ImageDecodeError(Exception):
    """Image bytes or SVG markup could not be turned into pixels."""


def svg_raster_box(cols: int, rows: int, quality: int) -> tuple[int, int]:
    """Pixel box an SVG is rasterized into for a ``cols`` x ``rows`` cell budget."""
    return max(1, cols) * 2 * quality, max(1, rows) * 2 * quality


def _svg_to_png(data: bytes, width: int | None = None, height: int | None = None) -> bytes:
    """Render SVG markup to PNG bytes.

    Pass one of ``width`` or ``height``; cairosvg scales the document by the
    ratio of that size to its intrinsic size, so the aspect ratio is kept. A
    document that declares no size resolves against a 100x100 canvas.
    """
    # cairosvg binds libcairo on import; only SVG previews pay for it.
    import cairosvg

    return cairosvg.svg2png(
        bytestring=data,
        output_width=width,
        output_height=height,
        parent_width=SVG_DEFAULT_CANVAS,
        parent_height=SVG_DEFAULT_CANVAS,
    )


def _flatten(image: Image.Image) -> Image.Image:
    """Composite any transparency onto black and return an RGB image."""
    rgba = image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.alpha_composite(background, rgba).convert("RGB")


def _open_png(png: bytes) -> Image.Image:
    with Image.open(io.BytesIO(png)) as raster:
        raster.load()
        return raster.copy()


def rasterize_svg(path: Path, box_w: int, box_h: int) -> Image.Image:
    """Rasterize an SVG to fit inside ``box_w`` x ``box_h`` pixels, keeping aspect.

    Renders at the box width first and re-renders by height when the result
    is too tall.
    """
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ImageDecodeError(f"failed to open SVG: {exc}") from exc

    try:
        raster = _open_png(_svg_to_png(data, width=box_w))
        if raster.height > box_h:
            raster = _open_png(_svg_to_png(data, height=box_h))
        return _flatten(raster)
    except (OSError, ValueError, ZeroDivisionError, ET.ParseError) as exc:
        raise ImageDecodeError(f"failed to rasterize SVG: {exc}") from exc


def load_raster_image(path: Path) -> Image.Image:
    try:
        with Image.open(path) as raster:
            raster.load()
            return _flatten(raster)
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"failed to decode image: {exc}") from exc
    except (OSError, ValueError) as exc:
        raise ImageDecodeError(str(exc)) from exc


def decode_image(path: Path, cols: int, rows: int, quality: int) -> Image.Image:
    if is_svg(path):
        return rasterize_svg(path, *svg_raster_box(cols, rows, quality))
    return load_raster_image(path)


def scale_to_fit(image: Image.Image, max_w: int, max_h: int) -> Image.Image:
    """Resize for half-block output in a ``max_w`` x ``max_h`` cell pane.

    Two rows are kept free for the header line. One cell is one pixel wide
    and two pixels tall. Upscaling stops at 2x and the height is always even.
    """
    rows = max(MIN_IMAGE_ROWS, max_h - HEADER_ROWS)
    target_w = max(1, max_w)
    target_h = rows * 2

    scale = min(target_w / image.width, target_h / image.height, MAX_UPSCALE)
    new_w = max(1, int(image.width * scale))
    new_h = max(2, int(image.height * scale))
    if new_h % 2:
        new_h += 1
    return image.resize((new_w, new_h), Image.Resampling.LANCZOS)


def rgb_to_256(r: int, g: int, b: int) -> int:
    """Map an RGB triple to the nearest xterm-256 palette index."""
    if r == g == b:
        if r < 8:
            return 16
        if r > 248:
            return 231
        return min(255, 232 + (r - 8) // 10)
    return 16 + 36 * round(r * 5 / 255) + 6 * round(g * 5 / 255) + round(b * 5 / 255)


def color_block(
    top: tuple[int, int, int],
    bottom: tuple[int, int, int],
    true_color: bool,
) -> str:
    if true_color:
        return (
            f"\x1b[38;2;{top[0]};{top[1]};{top[2]}m"
            f"\x1b[48;2;{bottom[0]};{bottom[1]};{bottom[2]}m{HALF_BLOCK}"
        )
    return f"\x1b[38;5;{rgb_to_256(*top)}m\x1b[48;5;{rgb_to_256(*bottom)}m{HALF_BLOCK}"


def render_blocks(image: Image.Image, true_color: bool) -> str:
    """Render two pixel rows per text row using upper half blocks."""
    rgb = image.convert("RGB")
    pixels = rgb.load()
    width, height = rgb.size
    rows: list[str] = []
    for y in range(0, height, 2):
        cells = []
        for x in range(width):
            top = pixels[x, y]
            bottom = pixels[x, y + 1] if y + 1 < height else top
            cells.append(color_block(top, bottom, true_color))
        rows.append("".join(cells) + SGR_RESET + "\n")
    return "".join(rows)


def kitty_chunks(encoded: str, control: str) -> str:
    """Wrap base64 payload in kitty APC sequences of at most 4096 bytes each."""
    chunks = [encoded[i : i + KITTY_CHUNK_SIZE] for i in range(0, len(encoded), KITTY_CHUNK_SIZE)] or [""]
    if len(chunks) == 1:
        return f"\x1b_G{control};{chunks[0]}\x1b\\"

    out = [f"\x1b_G{control},m=1;{chunks[0]}\x1b\\"]
    for chunk in chunks[1:-1]:
        out.append(f"\x1b_Gm=1;{chunk}\x1b\\")
    out.append(f"\x1b_Gm=0;{chunks[-1]}\x1b\\")
    return "".join(out)


def encode_kitty_image(image: Image.Image, cols: int, rows: int) -> str:
    """Transmit and display ``image`` as PNG scaled to ``cols`` x ``rows`` cells."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.standard_b64encode(buffer.getvalue()).decode("ascii")
    return kitty_chunks(encoded, f"f=100,a=T,q=2,c={max(1, cols)},r={max(1, rows)}")


def _mtime_ns(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns
    except OSError as exc:
        raise ImageDecodeError(str(exc)) from exc


def load_image(
    path: Path,
    capabilities: TerminalCapabilities,
    max_w: int,
    max_h: int,
    request_id: int,
) -> ImageLoaded:
    """Decode, scale and block-render one image for the preview pane."""
    try:
        mtime_ns = _mtime_ns(path)
        image = decode_image(path, max_w, max_h, INLINE_QUALITY)
        scaled = scale_to_fit(image, max_w, max_h)
        render_data = render_blocks(scaled, capabilities.true_color)
    except ImageDecodeError as exc:
        logger.warning("image decode failed for %s: %s", path, exc)
        return ImageLoaded(request_id=request_id, path=path, viewport_w=max_w, viewport_h=max_h, error=str(exc))

    return ImageLoaded(
        request_id=request_id,
        path=path,
        width=image.width,
        height=image.height,
        render_w=scaled.width,
        render_h=math.ceil(scaled.height / 2),
        render_data=render_data,
        mtime_ns=mtime_ns,
        viewport_w=max_w,
        viewport_h=max_h,
    )


def _cursor(row: int, col: int) -> str:
    return f"\x1b[{row};{col}H"


def overlay_top_border(width: int, meta: str) -> str:
    inner = max(0, width - 2)
    meta_width = display_width(meta)
    if meta_width >= inner - 1:
        keep = max(0, inner - 5)
        meta = meta[:keep] + "... " if inner > 5 else ""
        meta_width = display_width(meta)
    fill = "─" * max(0, inner - 1 - meta_width)
    return f"{OVERLAY_BORDER}╭─{OVERLAY_DIM}{meta}{SGR_RESET}{OVERLAY_BORDER}{fill}╮{SGR_RESET}"


def overlay_bottom_border(width: int, hint: str = OVERLAY_HINT) -> str:
    inner = max(0, width - 2)
    label = f" {hint} "
    if len(label) >= inner:
        return f"{OVERLAY_BORDER}╰{'─' * inner}╯{SGR_RESET}"
    left = (inner - len(label)) // 2
    right = inner - len(label) - left
    return (
        f"{OVERLAY_BORDER}╰{'─' * left}{OVERLAY_DIM}{label}{SGR_RESET}"
        f"{OVERLAY_BORDER}{'─' * right}╯{SGR_RESET}"
    )


def build_overlay(image: Image.Image, name: str, format_label: str, screen_w: int, screen_h: int) -> str:
    """Clear the screen and draw a centered frame around a kitty image."""
    avail_w = max(1, screen_w - 8)
    avail_h = max(1, screen_h - 8)
    scale = min(avail_w / image.width, avail_h * 2 / image.height)
    cols = max(1, int(image.width * scale))
    rows = max(1, int(image.height * scale / 2))

    frame_w = cols + 2
    frame_h = rows + 2
    x = max(1, (screen_w - frame_w) // 2)
    y = max(1, (screen_h - frame_h) // 2)

    meta = f" {name} │ {image.width}×{image.height} │ {format_label} "
    parts = ["\x1b[2J", _cursor(y, x), overlay_top_border(frame_w, meta)]
    side = f"{OVERLAY_BORDER}│{SGR_RESET}"
    for row in range(1, rows + 1):
        parts.append(_cursor(y + row, x) + side)
        parts.append(_cursor(y + row, x + frame_w - 1) + side)
    parts.append(_cursor(y + rows + 1, x) + overlay_bottom_border(frame_w))
    parts.append(_cursor(y + 1, x + 1) + encode_kitty_image(image, cols, rows))
    return "".join(parts)


def load_image_overlay(path: Path, screen_w: int, screen_h: int, request_id: int) -> OverlayLoaded:
    """Render the full-screen kitty overlay for ``path``."""
    try:
        image = decode_image(path, screen_w, screen_h, OVERLAY_QUALITY)
    except ImageDecodeError as exc:
        logger.warning("overlay decode failed for %s: %s", path, exc)
        return OverlayLoaded(request_id=request_id, path=path, error=str(exc))

    image_format = detect_image_format(path)
    label = image_format.label if image_format is not None else "Unknown"
    payload = build_overlay(image, path.name, label, screen_w, screen_h)
    return OverlayLoaded(request_id=request_id, path=path, payload=payload)


__all__ = [
    "HALF_BLOCK",
    "INLINE_QUALITY",
    "KITTY_CHUNK_SIZE",
    "KITTY_CLEAR_IMAGES",
    "OVERLAY_QUALITY",
    "ImageDecodeError",
    "build_overlay",
    "color_block",
    "decode_image",
    "encode_kitty_image",
    "kitty_chunks",
    "load_image",
    "load_image_overlay",
    "load_raster_image",
    "rasterize_svg",
    "render_blocks",
    "rgb_to_256",
    "scale_to_fit",
    "svg_raster_box",
]
