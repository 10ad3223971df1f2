"""Runs the enabled catalog providers for a channel and merges their results."""

import asyncio
import itertools
import logging

import aiohttp

from ..api.twitch import TwitchApiClient
from ..core.settings import Settings
from .cache import EmoteDownloader
from .models import CatalogMap, CatalogSnapshot
from .provider import (
    BaseEmoteProvider,
    BTTVProvider,
    FFZProvider,
    SevenTVProvider,
    TwitchProvider,
)

logger = logging.getLogger(__name__)


class ProviderAggregator:
    """Fetches every enabled provider's catalog for one channel.

    Providers run concurrently, at most ``provider_concurrency`` at a time,
    and are merged in order: when two providers know the same name, the
    later one wins. Every ``load`` gets a new generation number so a
    consumer can drop results of a join that has since been superseded.
    """

    def __init__(
        self,
        settings: Settings,
        providers: list[BaseEmoteProvider] | None = None,
        downloader: EmoteDownloader | None = None,
    ) -> None:
        self.settings = settings
        if providers is None:
            providers = self._default_providers()
        self.providers = providers
        self.downloader = downloader or EmoteDownloader(
            settings.emotes.resolved_cache_dir(),
            concurrency=settings.emotes.download_concurrency,
        )
        self._generation = itertools.count(1)

    def _default_providers(self) -> list[BaseEmoteProvider]:
        emotes = self.settings.emotes
        timeout = emotes.request_timeout
        return [
            TwitchProvider(
                oauth_token=self.settings.twitch.token,
                client_id=self.settings.twitch.client_id,
                timeout=timeout,
            ),
            BTTVProvider(timeout=timeout),
            SevenTVProvider(timeout=timeout),
            FFZProvider(timeout=timeout, set_concurrency=emotes.set_concurrency),
        ]

    def enabled_providers(self) -> list[BaseEmoteProvider]:
        """Providers switched on in the emote settings, in merge order."""
        return [p for p in self.providers if getattr(self.settings.emotes, p.setting_flag, False)]

    def _twitch_provider(self) -> TwitchProvider | None:
        for provider in self.enabled_providers():
            if isinstance(provider, TwitchProvider):
                return provider
        return None

    async def load(
        self,
        channel_id: str,
        viewer_id: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> CatalogSnapshot:
        """Fetch the channel and viewer catalogs.

        The returned snapshot holds ``CatalogEntry`` maps; nothing has been
        downloaded yet.
        """
        generation = next(self._generation)
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                channel, viewer = await self._load(own_session, channel_id, viewer_id)
        else:
            channel, viewer = await self._load(session, channel_id, viewer_id)

        logger.info(
            f"Loaded {len(channel)} channel emotes and {len(viewer)} viewer emotes "
            f"for {channel_id} (generation {generation})"
        )
        return CatalogSnapshot(
            generation=generation, channel_id=channel_id, viewer=viewer, channel=channel
        )

    async def _load(
        self, session: aiohttp.ClientSession, channel_id: str, viewer_id: str | None
    ) -> tuple[CatalogMap, CatalogMap]:
        providers = self.enabled_providers()
        sem = asyncio.Semaphore(self.settings.emotes.provider_concurrency)

        async def run(provider: BaseEmoteProvider) -> CatalogMap:
            async with sem:
                return await provider.fetch(session, channel_id)

        async def run_viewer() -> CatalogMap:
            twitch = self._twitch_provider()
            if twitch is None or not viewer_id:
                return {}
            async with sem:
                return await twitch.fetch_viewer(session, viewer_id)

        results = await asyncio.gather(
            *(run(p) for p in providers), run_viewer(), return_exceptions=True
        )

        channel: CatalogMap = {}
        for provider, result in zip(providers, results[:-1]):
            if isinstance(result, BaseException):
                logger.error(f"{provider.name} emote provider failed: {result!r}")
                continue
            channel.update(result)

        viewer = results[-1]
        if isinstance(viewer, BaseException):
            logger.error(f"Twitch user emote lookup failed: {viewer!r}")
            viewer = {}
        return channel, viewer

    async def join(self, channel_login: str) -> CatalogSnapshot | None:
        """Resolve a channel, fetch its catalogs and download every emote.

        Returns ``None`` when the channel cannot be resolved. The snapshot's
        maps hold ``CachedEmote`` values for the files that made it to disk.
        """
        timeout = self.settings.emotes.request_timeout
        async with TwitchApiClient(self.settings.twitch, timeout=timeout) as api:
            try:
                identity = await api.resolve_identity(channel_login)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Twitch identity lookup for {channel_login} failed: {e!r}")
                return None
            if identity is None:
                return None
            # Token validation may supply the client id the settings lack
            twitch = self._twitch_provider()
            if twitch is not None and not twitch.client_id:
                twitch.client_id = identity.client_id

            snapshot = await self.load(
                identity.channel_id, identity.viewer_id or None, session=api.session
            )
            viewer = await self.downloader.download(snapshot.viewer, session=api.session)
            channel = await self.downloader.download(snapshot.channel, session=api.session)

        logger.info(
            f"Joined {identity.channel_login}: {len(channel)} channel emotes, "
            f"{len(viewer)} viewer emotes cached"
        )
        return CatalogSnapshot(
            generation=snapshot.generation,
            channel_id=identity.channel_id,
            viewer=viewer,
            channel=channel,
        )
