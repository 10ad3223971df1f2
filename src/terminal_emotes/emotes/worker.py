"""Background thread decoding emotes for the picker preview."""

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .errors import EmoteError
from .image import decode_emote
from .models import DecodedEmote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeRequest:
    name: str
    path: Path
    overlay: bool = False


@dataclass(frozen=True)
class Decoded:
    emote: DecodedEmote

    @property
    def name(self) -> str:
        return self.emote.name


@dataclass(frozen=True)
class DecodeFailed:
    name: str
    reason: str


DecodeResult = Decoded | DecodeFailed


class DecodeWorker(threading.Thread):
    """Decodes emote files off the caller's thread.

    Requests go in through ``submit``; results come back through ``poll``
    (non-blocking) or ``get``. A name already waiting to be decoded is not
    queued twice.
    """

    def __init__(
        self,
        cell_size: tuple[int, int],
        decoder: Callable[..., DecodedEmote] = decode_emote,
    ) -> None:
        super().__init__(daemon=True, name="emote-decode")
        self.cell_size = cell_size
        self._decoder = decoder
        self._requests: queue.Queue[DecodeRequest | None] = queue.Queue()
        self._results: queue.Queue[DecodeResult] = queue.Queue()
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._stop_event = threading.Event()

    def submit(self, request: DecodeRequest) -> bool:
        """Queue a decode. Returns False if the name is already pending."""
        if self._stop_event.is_set():
            return False
        with self._pending_lock:
            if request.name in self._pending:
                return False
            self._pending.add(request.name)
        self._requests.put(request)
        return True

    def poll(self) -> list[DecodeResult]:
        """Every result available right now."""
        results = []
        while True:
            try:
                results.append(self._results.get_nowait())
            except queue.Empty:
                return results

    def get(self, timeout: float | None = None) -> DecodeResult | None:
        """Wait for the next result, or None on timeout."""
        try:
            return self._results.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        self._stop_event.set()
        self._requests.put(None)

    def _decode(self, request: DecodeRequest) -> DecodeResult:
        try:
            emote = self._decoder(
                request.path, self.cell_size, name=request.name, overlay=request.overlay
            )
        except EmoteError as e:
            logger.debug(f"Failed to decode emote {request.name}: {e}")
            return DecodeFailed(request.name, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error decoding emote {request.name}")
            return DecodeFailed(request.name, f"{type(e).__name__}: {e}")
        return Decoded(emote)

    def run(self) -> None:
        while not self._stop_event.is_set():
            request = self._requests.get()
            if request is None:
                break
            result = self._decode(request)
            with self._pending_lock:
                self._pending.discard(request.name)
            if self._stop_event.is_set():
                # Nobody will transmit these frames
                if isinstance(result, Decoded):
                    result.emote.discard()
                break
            self._results.put(result)

        # Drop frames nobody collected
        for result in self.poll():
            if isinstance(result, Decoded):
                result.emote.discard()
