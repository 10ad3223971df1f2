"""Terminal graphics protocol commands and the writer that sends them.

See https://sw.kovidgoyal.net/kitty/graphics-protocol/ for the protocol.
Every command is ``ESC _G <key>=<value>,...;<payload> ESC \\``. Images are
transmitted once per id, then shown any number of times through
placements anchored to unicode placeholder cells.
"""

import base64
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TextIO

from .errors import GraphicsWriteError
from .models import AnimatedImage, DecodedEmote, DecodedFrame

logger = logging.getLogger(__name__)

APC_START = "\x1b_G"
APC_END = "\x1b\\"

# Placement id reserved for the emote picker; chat placements start above it
PREVIEW_PLACEMENT_ID = 1
OVERLAY_Z_INDEX = 1

PLACEHOLDER = "\U0010eeee"

# Row/column diacritics, in order, from the protocol's rowcolumn-diacritics table
ROW_COLUMN_DIACRITICS = (
    "\u0305\u030d\u030e\u0310\u0312\u033d\u033e\u033f\u0346\u034a\u034b\u034c"
    "\u0350\u0351\u0352\u0357\u035b\u0363\u0364\u0365\u0366\u0367\u0368\u0369"
    "\u036a\u036b\u036c\u036d\u036e\u036f\u0483\u0484\u0485\u0486\u0487\u0592"
    "\u0593\u0594\u0595\u0597\u0598\u0599\u059c\u059d\u059e\u059f\u05a0\u05a1"
    "\u05a8\u05a9\u05ab\u05ac\u05af\u05c4"
)


def _command(keys: str, payload: str = "") -> str:
    return f"{APC_START}{keys};{payload}{APC_END}"


def _encode_path(frame: DecodedFrame) -> str:
    if not frame.path:
        raise GraphicsWriteError("frame has no file path")
    return base64.standard_b64encode(frame.path.encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class Transmit:
    """Load an image (or an animation's first frame) from a temp file."""

    image_id: int
    frame: DecodedFrame

    def encode(self) -> str:
        f = self.frame
        return _command(
            f"a=t,t=t,f=32,s={f.width},v={f.height},i={self.image_id},q=2", _encode_path(f)
        )


@dataclass(frozen=True)
class AnimateFirstFrame:
    """Set the delay of an animation's first frame (r=1)."""

    image_id: int
    delay_ms: int

    def encode(self) -> str:
        return _command(f"a=a,i={self.image_id},r=1,z={self.delay_ms},q=2")


@dataclass(frozen=True)
class TransmitFrame:
    """Append one more frame to an animation."""

    image_id: int
    frame: DecodedFrame

    def encode(self) -> str:
        f = self.frame
        return _command(
            f"a=f,t=t,f=32,s={f.width},v={f.height},i={self.image_id},z={f.delay_ms},q=2",
            _encode_path(f),
        )


@dataclass(frozen=True)
class AnimateStart:
    """Start the animation (s=3), looping forever (v=1)."""

    image_id: int

    def encode(self) -> str:
        return _command(f"a=a,i={self.image_id},s=3,v=1,q=2")


@dataclass(frozen=True)
class Place:
    """Create a virtual placement one row tall and ``cols`` columns wide."""

    image_id: int
    placement_id: int
    cols: int

    def encode(self) -> str:
        return _command(
            f"a=p,U=1,i={self.image_id},p={self.placement_id},r=1,c={self.cols},q=2"
        )


@dataclass(frozen=True)
class Chain:
    """Place an overlay relative to its parent placement.

    Not a virtual placement: it is drawn wherever the parent is, without
    placeholder cells of its own.
    """

    image_id: int
    placement_id: int
    parent: tuple[int, int]  # (image id, placement id)
    z: int = OVERLAY_Z_INDEX
    col_offset: int = 0
    pixel_offset: int = 0

    def encode(self) -> str:
        parent_id, parent_pid = self.parent
        return _command(
            f"a=p,i={self.image_id},p={self.placement_id},P={parent_id},Q={parent_pid},"
            f"z={self.z},H={self.col_offset},X={self.pixel_offset},q=2"
        )


@dataclass(frozen=True)
class Clear:
    """Delete an image and free its data."""

    image_id: int

    def encode(self) -> str:
        return _command(f"a=d,d=I,i={self.image_id},q=2")


@dataclass(frozen=True)
class ClearAll:
    def encode(self) -> str:
        return _command("a=d,d=A,q=2")


@dataclass(frozen=True)
class CapabilityQuery:
    """1x1 RGB query image; a supporting terminal answers with OK."""

    def encode(self) -> str:
        return _command("i=31,s=1,v=1,a=q,t=d,f=24", "AAAA")


Command = (
    Transmit
    | AnimateFirstFrame
    | TransmitFrame
    | AnimateStart
    | Place
    | Chain
    | Clear
    | ClearAll
    | CapabilityQuery
)


def encode_load(image_id: int, decoded: DecodedEmote) -> list[Command]:
    """Commands that load a decoded emote into the terminal under ``image_id``."""
    image = decoded.image
    commands: list[Command] = [Transmit(image_id, image.first)]
    if isinstance(image, AnimatedImage):
        commands.append(AnimateFirstFrame(image_id, image.first.delay_ms))
        commands.extend(TransmitFrame(image_id, frame) for frame in image.frames[1:])
        commands.append(AnimateStart(image_id))
    return commands


def get_emote_offset(width: int, cell_w: int, cols: int) -> tuple[int, int]:
    """Return (pixel_offset, col_offset) centering an emote in its columns.

    The pixel offset is measured from the left edge of a cell.
    """
    w = (width + (0 if cols % 2 == 0 else cell_w) + 1) // 2
    pxo, co = w % cell_w, w // cell_w
    if pxo:
        pxo, co = cell_w - pxo, co + 1
    return pxo, co


def chain_offsets(
    overlay_width: int,
    overlay_cols: int,
    parent_width: int,
    parent_cols: int,
    cell_w: int,
) -> tuple[int, int]:
    """Return (col_offset, pixel_offset) centering an overlay over its parent."""
    _, parent_co = get_emote_offset(parent_width, cell_w, parent_cols)
    pxo, co = get_emote_offset(overlay_width, cell_w, overlay_cols)
    return parent_co - co, pxo


def _sgr_rgb(kind: int, value: int) -> str:
    r, g, b = (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF
    return f"\x1b[{kind};2;{r};{g};{b}m"


@dataclass(frozen=True)
class UnicodePlaceholder:
    """One row of placeholder cells for a virtual placement."""

    cols: int

    @property
    def text(self) -> str:
        row = ROW_COLUMN_DIACRITICS[0]
        cells = []
        for col in range(self.cols):
            if col < len(ROW_COLUMN_DIACRITICS):
                cells.append(PLACEHOLDER + row + ROW_COLUMN_DIACRITICS[col])
            else:
                # Column is inferred from the previous cell
                cells.append(PLACEHOLDER)
        return "".join(cells)

    def render(self, image_id: int, placement_id: int) -> str:
        """Placeholder text colored with the image id (foreground) and placement id (underline)."""
        return (
            _sgr_rgb(38, image_id)
            + _sgr_rgb(58, placement_id)
            + self.text
            + "\x1b[39;59m"
        )


class GraphicsWriter:
    """The one place graphics commands are written to the terminal.

    Each batch is encoded up front and written under a lock, so batches
    from different threads never interleave. Failures are logged and
    reported through the return value.
    """

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self._lock = threading.Lock()

    def write(self, commands: Iterable[Command]) -> bool:
        try:
            data = "".join(command.encode() for command in commands)
        except GraphicsWriteError as e:
            logger.warning(f"Unable to encode graphics command: {e}")
            return False
        if not data:
            return True
        with self._lock:
            try:
                self.stream.write(data)
                self.stream.flush()
            except (OSError, ValueError) as e:
                logger.warning(f"Unable to write graphics command: {e}")
                return False
        return True
