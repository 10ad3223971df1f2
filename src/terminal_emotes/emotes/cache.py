"""On-disk emote cache, filled by a bounded concurrent downloader."""

import asyncio
import logging
import os
from pathlib import Path

import aiohttp

from .errors import AssetDownloadError
from .models import CachedEmote, CachedMap, CatalogEntry, CatalogMap

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_CONCURRENCY = 100
DEFAULT_DOWNLOAD_TIMEOUT = 30
DOWNLOAD_CHUNK_SIZE = 64 * 1024
PARTIAL_SUFFIX = ".part"


def _is_nonempty_file(path: Path) -> bool:
    """Return True if a file exists and has non-zero size."""
    try:
        return path.exists() and path.stat().st_size > 0
    except OSError:
        return False


class EmoteDownloader:
    """Downloads catalog entries into a flat directory keyed by filename.

    A file already present is never fetched again. Downloads are written to
    a ``.part`` file and renamed into place, so an interrupted or failed
    download never leaves a truncated file under the final name.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        concurrency: int = DEFAULT_DOWNLOAD_CONCURRENCY,
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.concurrency = max(1, concurrency)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self.in_flight = 0
        self.peak_in_flight = 0

    def cache_path(self, filename: str) -> Path:
        return self.cache_dir / filename

    def is_cached(self, filename: str) -> bool:
        return _is_nonempty_file(self.cache_path(filename))

    async def download(
        self, entries: CatalogMap, session: aiohttp.ClientSession | None = None
    ) -> CachedMap:
        """Make sure every entry is on disk, returning the ones that are.

        Entries that fail to download are logged and left out of the result.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        # Several names may share one file; fetch it once
        by_filename: dict[str, CatalogEntry] = {}
        for entry in entries.values():
            by_filename.setdefault(entry.filename, entry)

        missing = [e for f, e in by_filename.items() if not self.is_cached(f)]
        ok: set[str] = set(by_filename) - {e.filename for e in missing}

        if missing:
            logger.debug(f"Downloading {len(missing)} of {len(by_filename)} emote files")
            if session is None:
                async with aiohttp.ClientSession() as own_session:
                    ok |= await self._download_all(own_session, missing)
            else:
                ok |= await self._download_all(session, missing)

        return {
            name: CachedEmote(filename=entry.filename, is_overlay=entry.is_overlay)
            for name, entry in entries.items()
            if entry.filename in ok
        }

    async def _download_all(
        self, session: aiohttp.ClientSession, entries: list[CatalogEntry]
    ) -> set[str]:
        sem = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(self._download_one(session, sem, entry) for entry in entries)
        )
        return {filename for filename in results if filename}

    async def _download_one(
        self, session: aiohttp.ClientSession, sem: asyncio.Semaphore, entry: CatalogEntry
    ) -> str | None:
        """Download a single emote image."""
        async with sem:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                await self._fetch_to_file(session, entry)
                return entry.filename
            except AssetDownloadError as e:
                logger.debug(f"Failed to download emote {entry.name}: {e}")
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.debug(f"Failed to download emote {entry.name}: {e!r}")
            finally:
                self.in_flight -= 1
        return None

    async def _fetch_to_file(self, session: aiohttp.ClientSession, entry: CatalogEntry) -> None:
        target = self.cache_path(entry.filename)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        try:
            async with session.get(entry.source_url, timeout=self._timeout) as resp:
                if resp.status != 200:
                    raise AssetDownloadError(entry.filename, "http", status=resp.status)
                size = 0
                with open(partial, "wb") as f:
                    async for chunk in resp.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        size += len(chunk)
                if not size:
                    raise AssetDownloadError(entry.filename, "empty", status=resp.status)
            os.replace(partial, target)
        finally:
            if partial.exists():
                partial.unlink()

    def clear(self) -> int:
        """Remove every cached file. Returns the number of files removed."""
        removed = 0
        if not self.cache_dir.exists():
            return 0
        for path in self.cache_dir.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.debug(f"Failed to remove cached emote {path}: {e}")
        logger.info(f"Cleared {removed} cached emote files")
        return removed
