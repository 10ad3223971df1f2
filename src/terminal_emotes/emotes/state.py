"""Per-session emote state: the active catalogs and the images the terminal holds."""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from .errors import EmoteError
from .graphics import (
    PREVIEW_PLACEMENT_ID,
    Chain,
    Clear,
    ClearAll,
    GraphicsWriter,
    Place,
    chain_offsets,
    encode_load,
)
from .image import decode_emote
from .models import (
    CachedEmote,
    CachedMap,
    CatalogSnapshot,
    DecodedEmote,
    LoadedEmote,
    PlacementDescriptor,
    emote_hash,
)
from .worker import Decoded, DecodeRequest, DecodeWorker

logger = logging.getLogger(__name__)


class EmoteRuntime:
    """Owns the catalogs of the joined channel and every loaded image.

    Only one thread may use a runtime. Images are transmitted to the
    terminal at most once per name and are only placed after that; an
    emote that fails to decode is removed everywhere so it is not tried
    again.
    """

    def __init__(
        self,
        writer: GraphicsWriter,
        cell_size: tuple[int, int],
        cache_dir: Path | str,
        worker: DecodeWorker | None = None,
        decoder: Callable[..., DecodedEmote] = decode_emote,
    ) -> None:
        self.writer = writer
        self.cell_size = cell_size
        self.cache_dir = Path(cache_dir)
        self.worker = worker
        self._decoder = decoder

        self.generation = 0
        self.viewer: CachedMap = {}
        self.channel: CachedMap = {}
        self.loaded: dict[str, LoadedEmote] = {}
        self._names_by_id: dict[int, str] = {}

    # --- Catalogs ---

    def install(self, snapshot: CatalogSnapshot) -> bool:
        """Switch to a new channel's catalogs, freeing every loaded image.

        A snapshot older than the installed one is ignored.
        """
        if snapshot.generation < self.generation:
            logger.info(
                f"Ignoring stale emote catalogs (generation {snapshot.generation} "
                f"< {self.generation})"
            )
            return False
        self.clear()
        self.viewer = dict(snapshot.viewer)
        self.channel = dict(snapshot.channel)
        self.generation = snapshot.generation
        logger.debug(
            f"Installed {len(self.channel)} channel and {len(self.viewer)} viewer emotes"
        )
        return True

    def lookup(self, name: str) -> CachedEmote | None:
        """Find an emote by name, preferring the viewer's own emotes."""
        return self.viewer.get(name) or self.channel.get(name)

    def purge(self, name: str) -> None:
        """Forget an emote everywhere and free its image."""
        self.viewer.pop(name, None)
        self.channel.pop(name, None)
        emote = self.loaded.pop(name, None)
        if emote is not None:
            self._names_by_id.pop(emote.hash_id, None)
            self.writer.write([Clear(emote.hash_id)])
        logger.debug(f"Purged emote {name}")

    # --- Loading ---

    def _register(self, decoded: DecodedEmote) -> LoadedEmote | None:
        """Transmit a decoded emote and record it as loaded."""
        name = decoded.name
        hash_id = emote_hash(name)

        other = self._names_by_id.get(hash_id)
        if other is not None and other != name:
            logger.warning(f"Emote id {hash_id} of {name} collides with {other}, evicting {other}")
            self.loaded.pop(other, None)
            del self._names_by_id[hash_id]
            self.writer.write([Clear(hash_id)])

        if not self.writer.write(encode_load(hash_id, decoded)):
            decoded.discard()
            return None

        emote = LoadedEmote(
            hash_id=hash_id,
            display_count=1,
            pixel_width=decoded.pixel_width,
            cols=decoded.cols,
            is_overlay=decoded.is_overlay,
        )
        self.loaded[name] = emote
        self._names_by_id[hash_id] = name
        return emote

    def load_emote(self, word: str, filename: str, overlay: bool) -> LoadedEmote | None:
        """Make sure ``word`` is loaded in the terminal, counting one more display.

        Returns None if the emote could not be decoded (it is purged) or
        written.
        """
        emote = self.loaded.get(word)
        if emote is not None:
            emote.display_count += 1
            return emote

        try:
            decoded = self._decoder(
                self.cache_dir / filename, self.cell_size, name=word, overlay=overlay
            )
        except EmoteError as e:
            logger.warning(f"Unable to load emote {word}: {e}")
            self.purge(word)
            return None
        return self._register(decoded)

    # --- Placement ---

    def display(
        self, word: str, parent: PlacementDescriptor | None = None
    ) -> PlacementDescriptor | None:
        """Place a loaded emote, on top of ``parent`` for overlays.

        Nothing is written for an emote that has not been loaded.
        """
        emote = self.loaded.get(word)
        if emote is None:
            logger.debug(f"Not displaying {word}: not loaded")
            return None

        placement_id = emote.display_count + 1
        parent_name = self._names_by_id.get(parent.image_id) if parent else None
        parent_emote = self.loaded.get(parent_name) if parent_name else None

        if emote.is_overlay and parent is not None and parent_emote is not None:
            col_offset, pixel_offset = chain_offsets(
                emote.pixel_width,
                emote.cols,
                parent_emote.pixel_width,
                parent_emote.cols,
                self.cell_size[0],
            )
            command = Chain(
                emote.hash_id,
                placement_id,
                (parent.image_id, parent.placement_id),
                col_offset=col_offset,
                pixel_offset=pixel_offset,
            )
            descriptor = PlacementDescriptor(
                image_id=emote.hash_id,
                placement_id=placement_id,
                cols=emote.cols,
                parent=command.parent,
                z=command.z,
                pixel_offset=pixel_offset,
                col_offset=col_offset,
            )
        else:
            command = Place(emote.hash_id, placement_id, emote.cols)
            descriptor = PlacementDescriptor(
                image_id=emote.hash_id, placement_id=placement_id, cols=emote.cols
            )

        if not self.writer.write([command]):
            return None
        return descriptor

    # --- Picker preview ---

    def request_preview(self, names: Iterable[str]) -> list[str]:
        """Queue decoding of the given emotes for the picker.

        Emotes already loaded are placed straight away. Returns the names
        sent to the decode worker.
        """
        if self.worker is None:
            logger.warning("Emote preview requested without a decode worker")
            return []
        submitted = []
        for name in names:
            if name in self.loaded:
                emote = self.loaded[name]
                self.writer.write([Place(emote.hash_id, PREVIEW_PLACEMENT_ID, emote.cols)])
                continue
            cached = self.lookup(name)
            if cached is None:
                continue
            request = DecodeRequest(name, self.cache_dir / cached.filename, cached.is_overlay)
            if self.worker.submit(request):
                submitted.append(name)
        return submitted

    def process_worker_results(self) -> list[PlacementDescriptor]:
        """Transmit and place everything the worker finished decoding."""
        if self.worker is None:
            return []
        placed = []
        for result in self.worker.poll():
            if not isinstance(result, Decoded):
                logger.warning(f"Unable to decode emote {result.name}: {result.reason}")
                self.purge(result.name)
                continue

            name = result.name
            # Channel changed, or emote purged, since the request
            if self.lookup(name) is None or name in self.loaded:
                result.emote.discard()
                continue

            emote = self._register(result.emote)
            if emote is None:
                continue
            if self.writer.write([Place(emote.hash_id, PREVIEW_PLACEMENT_ID, emote.cols)]):
                placed.append(
                    PlacementDescriptor(
                        image_id=emote.hash_id,
                        placement_id=PREVIEW_PLACEMENT_ID,
                        cols=emote.cols,
                    )
                )
        return placed

    # --- Teardown ---

    def clear(self) -> None:
        """Free every loaded image."""
        if self.loaded:
            self.writer.write([Clear(emote.hash_id) for emote in self.loaded.values()])
        self.loaded.clear()
        self._names_by_id.clear()

    def shutdown(self) -> None:
        """Stop the worker and have the terminal free every image."""
        if self.worker is not None:
            self.worker.stop()
        self.writer.write([ClearAll()])
        self.loaded.clear()
        self._names_by_id.clear()
