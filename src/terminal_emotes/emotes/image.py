"""Decode cached emote files into raw RGBA frames for the terminal.

Decoding uses Qt's image readers, which sniff the format from the file
content and understand animated GIF and WebP. Each frame's pixels are
written to a temporary file the terminal reads (and deletes) itself.
"""

import logging
import math
import os
import tempfile
from pathlib import Path

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt
from PySide6.QtGui import QImage, QImageReader

from .errors import DecodeError, TempFileError
from .models import (
    AnimatedImage,
    DecodedEmote,
    DecodedFrame,
    StaticImage,
    remove_temp_file,
)

logger = logging.getLogger(__name__)

# The terminal removes files whose name contains this after loading them
TEMP_FILE_PREFIX = "tty-graphics-protocol-"
ANIMATED_FORMATS = {"gif", "webp"}
MIN_FRAME_DELAY_MS = 20
DEFAULT_FRAME_DELAY_MS = 100


def display_geometry(width: int, height: int, cell_size: tuple[int, int]) -> tuple[int, int]:
    """Return (pixel_width, cols) for an image shown one cell tall.

    The image is scaled so its height matches the cell height; the columns
    are however many cells its scaled width spans.
    """
    cell_w, cell_h = cell_size
    if width <= 0 or height <= 0 or cell_w <= 0 or cell_h <= 0:
        raise DecodeError(f"invalid geometry {width}x{height} for cell {cell_w}x{cell_h}")
    ratio = cell_h / height
    pixel_width = round(width * ratio)
    cols = max(1, math.ceil(pixel_width / cell_w))
    return pixel_width, cols


def _frame_delay(reader: QImageReader) -> int:
    delay = reader.nextImageDelay()
    if delay <= 0:
        return DEFAULT_FRAME_DELAY_MS
    return max(delay, MIN_FRAME_DELAY_MS)


def _read_frames(data: bytes) -> tuple[str, list[tuple[QImage, int]]]:
    """Read every frame in ``data`` as (image, delay_ms) pairs."""
    byte_array = QByteArray(data)
    buffer = QBuffer(byte_array)
    buffer.open(QIODevice.OpenModeFlag.ReadOnly)
    try:
        reader = QImageReader(buffer)
        reader.setDecideFormatFromContent(True)
        reader.setAutoTransform(True)
        if not reader.canRead():
            raise DecodeError(f"unknown image format: {reader.errorString()}")
        fmt = bytes(reader.format().data()).decode("ascii", "replace").lower()

        animated = fmt in ANIMATED_FORMATS and reader.supportsAnimation()
        image_count = reader.imageCount()
        if fmt == "webp" and image_count <= 1:
            animated = False

        frames: list[tuple[QImage, int]] = []
        while reader.canRead():
            image = reader.read()
            if image.isNull():
                if not frames:
                    raise DecodeError(f"corrupt {fmt} data: {reader.errorString()}")
                break
            frames.append((image, _frame_delay(reader)))
            if not animated or (image_count > 0 and len(frames) >= image_count):
                break
    finally:
        buffer.close()

    if not frames:
        raise DecodeError(f"{fmt} image has no frames")
    return fmt, frames


def _write_frame(image: QImage, delay_ms: int) -> DecodedFrame:
    """Write one frame's RGBA pixels to a temp file."""
    rgba = image.convertToFormat(QImage.Format.Format_RGBA8888)
    width, height = rgba.width(), rgba.height()
    pixels = rgba.constBits().tobytes()[: width * height * 4]
    try:
        fd, path = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, suffix=".rgba")
    except OSError as e:
        raise TempFileError(f"cannot create frame file: {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(pixels)
    except OSError as e:
        remove_temp_file(path)
        raise TempFileError(f"cannot write frame file {path}: {e}") from e
    return DecodedFrame(width=width, height=height, path=path, delay_ms=delay_ms)


def decode_emote(
    path: Path | str,
    cell_size: tuple[int, int],
    *,
    name: str = "",
    overlay: bool = False,
) -> DecodedEmote:
    """Decode a cached emote file.

    Overlay emotes are scaled to the cell height here since they are
    placed by pixel offset rather than stretched over columns.

    Raises:
        DecodeError: the file is missing, corrupt, or has no frames. Any
            frame files already written for it have been removed.
    """
    name = name or Path(path).stem
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise DecodeError(f"cannot read {path}: {e}", name=name) from e
    if not data:
        raise DecodeError(f"{path} is empty", name=name)

    try:
        fmt, images = _read_frames(data)
    except DecodeError as e:
        e.name = name
        raise

    source = images[0][0]
    pixel_width, cols = display_geometry(source.width(), source.height(), cell_size)
    ratio = cell_size[1] / source.height()

    written: list[DecodedFrame] = []
    try:
        for image, delay in images:
            if overlay:
                image = image.scaled(
                    max(1, round(image.width() * ratio)),
                    max(1, round(image.height() * ratio)),
                    Qt.AspectRatioMode.IgnoreAspectRatio,
                    Qt.TransformationMode.SmoothTransformation,
                )
            written.append(_write_frame(image, delay))
    except DecodeError as e:
        for frame in written:
            remove_temp_file(frame.path)
        e.name = name
        raise

    image_data = AnimatedImage(written) if len(written) > 1 else StaticImage(written[0])
    logger.debug(
        f"Decoded {name} ({fmt}, {len(written)} frames, {pixel_width}px, {cols} cols)"
    )
    return DecodedEmote(
        name=name,
        image=image_data,
        pixel_width=pixel_width,
        cols=cols,
        is_overlay=overlay,
    )
