"""Tests for emote decoding into frame files."""

import os
import tempfile

import pytest

from conftest import gif_bytes
from terminal_emotes.emotes import image as image_module
from terminal_emotes.emotes.errors import DecodeError, TempFileError
from terminal_emotes.emotes.image import decode_emote, display_geometry
from terminal_emotes.emotes.models import AnimatedImage, StaticImage


@pytest.fixture
def frame_dir(tmp_path, monkeypatch):
    """Redirect frame temp files to a directory the test can inspect."""
    path = tmp_path / "frames"
    path.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(path))
    return path


def test_display_geometry_two_columns():
    assert display_geometry(40, 20, (20, 20)) == (40, 2)


def test_display_geometry_scales_to_cell_height():
    # 28px tall scaled to 20px: 112 wide becomes 80, 8 columns of 10
    assert display_geometry(112, 28, (10, 20)) == (80, 8)
    assert display_geometry(28, 28, (10, 20)) == (20, 2)


def test_display_geometry_partial_column_rounds_up():
    assert display_geometry(21, 20, (10, 20)) == (21, 3)


def test_display_geometry_rejects_empty_image():
    with pytest.raises(DecodeError):
        display_geometry(0, 20, (10, 20))


def test_decode_static_png(png_file, frame_dir, cell_size):
    path = png_file(28, 28)
    decoded = decode_emote(path, cell_size, name="Kappa")

    assert isinstance(decoded.image, StaticImage)
    assert decoded.name == "Kappa"
    assert (decoded.pixel_width, decoded.cols) == (20, 2)
    frame = decoded.image.frame
    assert (frame.width, frame.height) == (28, 28)
    assert "tty-graphics-protocol" in os.path.basename(frame.path)
    assert os.path.getsize(frame.path) == 28 * 28 * 4
    with open(frame.path, "rb") as f:
        assert f.read(4) == b"\xff\x00\x00\xff"

    decoded.discard()
    assert list(frame_dir.iterdir()) == []


def test_decode_overlay_is_scaled(png_file, frame_dir, cell_size):
    path = png_file(28, 28)
    decoded = decode_emote(path, cell_size, name="SoSnowy", overlay=True)

    assert decoded.is_overlay
    frame = decoded.image.first
    assert (frame.width, frame.height) == (20, 20)
    assert os.path.getsize(frame.path) == 20 * 20 * 4
    decoded.discard()


def test_decode_animated_gif(tmp_path, frame_dir, cell_size):
    path = tmp_path / "catJAM.gif"
    path.write_bytes(gif_bytes(frames=3, delay_cs=10))

    decoded = decode_emote(path, cell_size)

    assert decoded.name == "catJAM"
    assert isinstance(decoded.image, AnimatedImage)
    assert len(decoded.frames) == 3
    assert all(f.delay_ms == 100 for f in decoded.frames)
    assert len({f.path for f in decoded.frames}) == 3
    decoded.discard()
    assert list(frame_dir.iterdir()) == []


def test_decode_garbage_raises_with_name(tmp_path, frame_dir, cell_size):
    path = tmp_path / "broken.png"
    path.write_bytes(b"definitely not an image")

    with pytest.raises(DecodeError) as excinfo:
        decode_emote(path, cell_size, name="Broken")
    assert excinfo.value.name == "Broken"
    assert list(frame_dir.iterdir()) == []


def test_decode_empty_file_raises(tmp_path, cell_size):
    path = tmp_path / "empty.png"
    path.write_bytes(b"")
    with pytest.raises(DecodeError):
        decode_emote(path, cell_size)


def test_decode_missing_file_raises(tmp_path, cell_size):
    with pytest.raises(DecodeError):
        decode_emote(tmp_path / "nope.png", cell_size, name="nope")


def test_frame_failure_removes_written_frames(tmp_path, frame_dir, cell_size, monkeypatch):
    path = tmp_path / "catJAM.gif"
    path.write_bytes(gif_bytes(frames=3))

    real_write = image_module._write_frame
    calls = []

    def failing_write(image, delay_ms):
        calls.append(delay_ms)
        if len(calls) == 3:
            raise TempFileError("disk full")
        return real_write(image, delay_ms)

    monkeypatch.setattr(image_module, "_write_frame", failing_write)

    with pytest.raises(TempFileError) as excinfo:
        decode_emote(path, cell_size, name="catJAM")
    assert excinfo.value.name == "catJAM"
    assert len(calls) == 3
    assert list(frame_dir.iterdir()) == []
