"""Shared test fixtures for terminal_emotes tests."""

import io

import pytest

from terminal_emotes.core.settings import EmoteSettings, Settings
from terminal_emotes.emotes.graphics import GraphicsWriter
from terminal_emotes.emotes.models import (
    AnimatedImage,
    DecodedEmote,
    DecodedFrame,
    StaticImage,
)

CELL_SIZE = (10, 20)


def gif_bytes(frames: int = 3, delay_cs: int = 10) -> bytes:
    """A 1x1 GIF with ``frames`` frames, each shown for ``delay_cs`` centiseconds."""
    data = bytearray(b"GIF89a\x01\x00\x01\x00\x80\x00\x00")
    data += b"\xff\xff\xff\x00\x00\x00"  # 2-color global table
    data += b"\x21\xff\x0bNETSCAPE2.0\x03\x01\x00\x00\x00"  # loop forever
    for _ in range(frames):
        data += b"\x21\xf9\x04\x00" + delay_cs.to_bytes(2, "little") + b"\x00\x00"
        data += b"\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00"
        data += b"\x02\x02\x44\x01\x00"
    data += b"\x3b"
    return bytes(data)


class RecordingStream(io.StringIO):
    """Text stream remembering every write separately."""

    def __init__(self):
        super().__init__()
        self.writes: list[str] = []

    def write(self, s: str) -> int:
        self.writes.append(s)
        return super().write(s)


class BrokenStream(io.StringIO):
    def write(self, s: str) -> int:
        raise OSError("broken pipe")


@pytest.fixture
def cell_size():
    return CELL_SIZE


@pytest.fixture
def stream():
    return RecordingStream()


@pytest.fixture
def writer(stream):
    return GraphicsWriter(stream)


@pytest.fixture
def settings():
    return Settings(emotes=EmoteSettings(provider_concurrency=2, set_concurrency=2))


@pytest.fixture
def png_file(tmp_path):
    """Factory writing a solid PNG of the given size, returning its path."""
    from PySide6.QtGui import QColor, QImage

    def make(width: int, height: int, name: str = "emote.png"):
        image = QImage(width, height, QImage.Format.Format_RGBA8888)
        image.fill(QColor(255, 0, 0, 255))
        path = tmp_path / name
        assert image.save(str(path), "PNG")
        return path

    return make


@pytest.fixture
def fake_decoder(tmp_path):
    """Decoder stand-in: static 20x20 emotes (three frames for names ending in 'Anim').

    Names listed in ``fake_decoder.broken`` raise DecodeError.
    """
    from terminal_emotes.emotes.errors import DecodeError

    def decode(path, cell_size, *, name="", overlay=False):
        if name in decode.broken:
            raise DecodeError("corrupt", name=name)
        decode.calls.append(name)
        frames = []
        for i in range(3 if name.endswith("Anim") else 1):
            frame_path = tmp_path / f"tty-graphics-protocol-{name}-{i}.rgba"
            frame_path.write_bytes(b"\x00" * 4)
            frames.append(DecodedFrame(20, 20, str(frame_path), delay_ms=50))
        image = AnimatedImage(frames) if len(frames) > 1 else StaticImage(frames[0])
        return DecodedEmote(name=name, image=image, pixel_width=20, cols=2, is_overlay=overlay)

    decode.broken = set()
    decode.calls = []
    return decode
