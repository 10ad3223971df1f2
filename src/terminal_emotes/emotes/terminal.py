"""Terminal capability probe and cell geometry."""

import fcntl
import logging
import os
import re
import select
import struct
import sys
import termios
import time
import tty

from ..core.settings import TerminalSettings
from .errors import ProtocolUnsupportedError
from .graphics import CapabilityQuery

logger = logging.getLogger(__name__)

PRIMARY_DEVICE_ATTRIBUTES = "\x1b[c"
CELL_SIZE_QUERY = "\x1b[16t"
TTY_PATH = "/dev/tty"

# Response to the primary device attributes request: ESC [ ? ... c
_DA_RESPONSE = re.compile(rb"\x1b\[\?[0-9;]*c")
# Response to the cell size query: ESC [ 6 ; height ; width t
_CELL_SIZE_RESPONSE = re.compile(rb"\x1b\[6;(\d+);(\d+)t")


def is_allowed_terminal(settings: TerminalSettings, environ=None) -> bool:
    """True if TERM or TERM_PROGRAM names a terminal known to support the protocol."""
    environ = os.environ if environ is None else environ
    return any(
        environ.get(var, "") in settings.allowed_terms for var in ("TERM", "TERM_PROGRAM")
    )


def _query_tty(query: str, done: re.Pattern, timeout: float) -> bytes:
    """Write ``query`` to the terminal and collect its answer.

    Reads in raw mode until ``done`` matches or ``timeout`` seconds pass.
    Whatever arrived is returned either way.
    """
    try:
        fd = os.open(TTY_PATH, os.O_RDWR | os.O_NOCTTY)
    except OSError as e:
        raise ProtocolUnsupportedError(f"no controlling terminal: {e}") from e

    response = b""
    try:
        old_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)
        try:
            os.write(fd, query.encode("ascii"))
            deadline = time.monotonic() + timeout
            while not done.search(response):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug(f"Terminal query timed out after {timeout}s")
                    break
                readable, _, _ = select.select([fd], [], [], remaining)
                if not readable:
                    continue
                chunk = os.read(fd, 1024)
                if not chunk:
                    break
                response += chunk
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_attrs)
    finally:
        os.close(fd)
    return response


def parse_capability_response(response: bytes) -> bool:
    """True if the terminal acknowledged the query image before answering DA."""
    da = _DA_RESPONSE.search(response)
    if da is None:
        return False
    return b"OK" in response[: da.start()]


def support_graphics_protocol(settings: TerminalSettings | None = None) -> bool:
    """Check that the terminal supports the graphics protocol with temp files.

    A graphics query is sent together with a device attributes request; a
    terminal that ignores the graphics query only answers the latter. No
    answer within ``probe_timeout`` counts as unsupported.
    """
    settings = settings or TerminalSettings()
    if not is_allowed_terminal(settings):
        logger.info("Terminal is not known to support the graphics protocol")
        return False
    try:
        response = _query_tty(
            CapabilityQuery().encode() + PRIMARY_DEVICE_ATTRIBUTES,
            _DA_RESPONSE,
            settings.probe_timeout,
        )
    except (OSError, termios.error, ProtocolUnsupportedError) as e:
        logger.warning(f"Unable to query terminal for graphics support: {e}")
        return False

    supported = parse_capability_response(response)
    logger.info(f"Graphics protocol supported: {supported}")
    return supported


def parse_cell_size_response(response: bytes) -> tuple[int, int] | None:
    """Parse ``ESC [ 6 ; height ; width t`` into (width, height)."""
    match = _CELL_SIZE_RESPONSE.search(response)
    if match is None:
        return None
    height, width = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        return None
    return width, height


def _winsize_cell_size() -> tuple[int, int] | None:
    try:
        packed = fcntl.ioctl(sys.stdout.fileno(), termios.TIOCGWINSZ, b"\0" * 8)
    except OSError:
        return None
    rows, cols, xpixel, ypixel = struct.unpack("HHHH", packed)
    if not (rows and cols and xpixel and ypixel):
        return None
    return xpixel // cols, ypixel // rows


def get_cell_size(timeout: float = 1.0) -> tuple[int, int]:
    """Return the terminal cell size in pixels as (width, height).

    Raises:
        ProtocolUnsupportedError: the terminal reports no pixel geometry.
    """
    size = _winsize_cell_size()
    if size is not None:
        return size

    try:
        response = _query_tty(CELL_SIZE_QUERY, _CELL_SIZE_RESPONSE, timeout)
    except (OSError, termios.error) as e:
        raise ProtocolUnsupportedError(f"cannot query cell size: {e}") from e
    size = parse_cell_size_response(response)
    if size is None:
        raise ProtocolUnsupportedError("terminal did not report its cell size")
    return size
