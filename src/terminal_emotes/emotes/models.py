"""Data models for emote catalogs, decoded images and terminal placements."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Image ids are carried in a 24-bit foreground color by unicode placeholders
ID_BITS = 24
ID_MASK = (1 << ID_BITS) - 1


def emote_hash(name: str) -> int:
    """Return the 24-bit image id for an emote name.

    Stable across runs (unlike the builtin ``hash``); never 0, which the
    terminal treats as "no id".
    """
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=4).digest()
    return (int.from_bytes(digest, "big") & ID_MASK) or 1


@dataclass(frozen=True)
class CatalogEntry:
    """One emote as advertised by a catalog provider."""

    name: str  # Text code (e.g., "KEKW")
    remote_id: str
    filename: str  # Cache filename, provider-specific scheme
    source_url: str
    is_overlay: bool = False  # Zero-width emote drawn over the previous one
    provider: str = ""


@dataclass(frozen=True)
class CachedEmote:
    """An emote whose file is present in the cache directory."""

    filename: str
    is_overlay: bool = False


CatalogMap = dict[str, CatalogEntry]
CachedMap = dict[str, CachedEmote]


@dataclass
class CatalogSnapshot:
    """Catalogs for one channel join.

    ``viewer`` holds emotes only the authenticated viewer may send,
    ``channel`` everything that can appear in the channel's messages.
    """

    generation: int
    channel_id: str = ""
    # CatalogMap straight from the providers, CachedMap once downloaded
    viewer: dict = field(default_factory=dict)
    channel: dict = field(default_factory=dict)


@dataclass
class LoadedEmote:
    """An emote whose image has been transmitted to the terminal."""

    hash_id: int
    display_count: int = 1
    pixel_width: int = 0
    cols: int = 1
    is_overlay: bool = False


@dataclass(frozen=True)
class DecodedFrame:
    """One frame's raw RGBA pixels, stored in a temporary file."""

    width: int
    height: int
    path: str
    delay_ms: int = 0


@dataclass(frozen=True)
class StaticImage:
    frame: DecodedFrame

    @property
    def frames(self) -> list[DecodedFrame]:
        return [self.frame]

    @property
    def first(self) -> DecodedFrame:
        return self.frame


@dataclass(frozen=True)
class AnimatedImage:
    frames: list[DecodedFrame]

    @property
    def first(self) -> DecodedFrame:
        return self.frames[0]


DecodedImage = StaticImage | AnimatedImage


@dataclass
class DecodedEmote:
    """Result of decoding one cached emote file."""

    name: str
    image: DecodedImage
    pixel_width: int  # Display width once scaled to one cell of height
    cols: int  # Terminal columns covered by the emote
    is_overlay: bool = False

    @property
    def frames(self) -> list[DecodedFrame]:
        return self.image.frames

    def discard(self) -> None:
        """Remove every frame file (when the terminal will never read them)."""
        for frame in self.frames:
            remove_temp_file(frame.path)


@dataclass(frozen=True)
class PlacementDescriptor:
    """Where and how an image is placed; built per display call."""

    image_id: int
    placement_id: int
    cols: int = 1
    parent: tuple[int, int] | None = None  # (image id, placement id)
    z: int = 0
    pixel_offset: int = 0
    col_offset: int = 0


def remove_temp_file(path: str) -> None:
    """Best-effort removal of a frame temp file."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"Failed to remove temp file {path}: {e}")
