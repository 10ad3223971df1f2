"""Emote catalog providers for Twitch, BTTV, 7TV, and FFZ."""

import asyncio
import logging
from abc import ABC, abstractmethod

import aiohttp

from ..api.base import safe_json
from .errors import CatalogFetchError
from .models import CatalogEntry, CatalogMap

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15

# Fallback when Helix omits the template
TWITCH_CDN_TEMPLATE = (
    "https://static-cdn.jtvnw.net/emoticons/v2/{{id}}/{{format}}/{{theme_mode}}/{{scale}}"
)

# BTTV global emotes meant to be drawn over the previous emote
BTTV_OVERLAY_EMOTES = frozenset(
    {"SoSnowy", "IceCold", "SantaHat", "TopHat", "ReinDeer", "CandyCane", "cvMask", "cvHazmat"}
)

# 7TV: bit 0 of the active emote flags, bit 8 of the emote data flags
SEVENTV_ZERO_WIDTH_ACTIVE = 1
SEVENTV_ZERO_WIDTH_DATA = 1 << 8


class BaseEmoteProvider(ABC):
    """Base class for emote catalog providers.

    ``fetch`` never raises: any HTTP or parse failure is logged and the
    provider contributes an empty map.
    """

    BASE_URL = ""
    setting_flag = ""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, base_url: str | None = None):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        if base_url:
            self.BASE_URL = base_url.rstrip("/")

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""

    @abstractmethod
    async def _fetch_channel(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        """Fetch channel and global emotes; may raise."""

    async def fetch(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        """Fetch every emote usable in ``channel_id``."""
        try:
            emotes = await self._fetch_channel(session, channel_id)
        except CatalogFetchError as e:
            logger.warning(f"Unable to get list of {self.name} emotes: {e}")
            return {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Unable to get list of {self.name} emotes: {e!r}")
            return {}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Malformed {self.name} emote data: {e!r}")
            return {}
        logger.debug(f"Fetched {len(emotes)} emotes from {self.name}")
        return emotes

    async def _get_json(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> dict | list:
        """GET a JSON document, raising CatalogFetchError on any non-200 or bad body."""
        async with session.get(url, params=params, headers=headers, timeout=self._timeout) as resp:
            if resp.status != 200:
                raise CatalogFetchError(self.name, f"{url} returned {resp.status}")
            data = await safe_json(resp)
        if data is None:
            raise CatalogFetchError(self.name, f"{url} returned malformed JSON")
        return data

    @staticmethod
    def _absolute(url: str) -> str:
        return "https:" + url if url.startswith("//") else url


class TwitchProvider(BaseEmoteProvider):
    """Native Twitch emote provider using the Helix API (token required)."""

    BASE_URL = "https://api.twitch.tv/helix"
    setting_flag = "twitch_emotes"

    def __init__(
        self,
        oauth_token: str = "",
        client_id: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
    ):
        super().__init__(timeout=timeout, base_url=base_url)
        self.oauth_token = oauth_token.removeprefix("oauth:")
        self.client_id = client_id

    @property
    def name(self) -> str:
        return "twitch"

    def _get_headers(self) -> dict:
        """Get headers for Twitch API requests."""
        return {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {self.oauth_token}",
        }

    async def _fetch_channel(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        if not self.oauth_token or not self.client_id:
            logger.debug("No Twitch token, skipping Twitch emotes")
            return {}

        headers = self._get_headers()
        channel = await self._get_json(
            session,
            f"{self.BASE_URL}/chat/emotes",
            params={"broadcaster_id": channel_id},
            headers=headers,
        )
        global_ = await self._get_json(session, f"{self.BASE_URL}/chat/emotes/global", headers=headers)

        emotes: CatalogMap = {}
        for data in (channel, global_):
            emotes.update(self._parse_page(data))
        return emotes

    async def fetch_viewer(self, session: aiohttp.ClientSession, user_id: str) -> CatalogMap:
        """Fetch every emote the authenticated viewer may use.

        This includes subscriber emotes from channels they're subscribed to,
        follower emotes, and bits-tier emotes. Requires user:read:emotes scope.
        """
        if not self.oauth_token or not self.client_id or not user_id:
            return {}
        try:
            return await self._fetch_user_pages(session, user_id)
        except CatalogFetchError as e:
            logger.warning(f"Unable to get list of Twitch user emotes: {e}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Unable to get list of Twitch user emotes: {e!r}")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Malformed Twitch user emote data: {e!r}")
        return {}

    async def _fetch_user_pages(self, session: aiohttp.ClientSession, user_id: str) -> CatalogMap:
        emotes: CatalogMap = {}
        headers = self._get_headers()
        cursor: str | None = ""
        while cursor is not None:
            params = {"user_id": user_id}
            if cursor:
                params["after"] = cursor
            data = await self._get_json(
                session, f"{self.BASE_URL}/chat/emotes/user", params=params, headers=headers
            )
            emotes.update(self._parse_page(data))
            # Handle pagination
            cursor = data.get("pagination", {}).get("cursor") or None
        return emotes

    def _parse_page(self, data: dict) -> CatalogMap:
        template = data.get("template") or TWITCH_CDN_TEMPLATE
        emotes: CatalogMap = {}
        for emote_data in data.get("data", []):
            emote = self._parse_emote(emote_data, template)
            if emote:
                emotes[emote.name] = emote
        return emotes

    def _parse_emote(self, data: dict, template: str) -> CatalogEntry | None:
        """Parse a Twitch emote from Helix API data."""
        emote_id = data.get("id", "")
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        animated = "animated" in data.get("format", [])
        url = (
            template.replace("{{id}}", emote_id)
            .replace("{{format}}", "animated" if animated else "static")
            .replace("{{theme_mode}}", "dark")
            .replace("{{scale}}", "1.0")
        )
        return CatalogEntry(
            name=name,
            remote_id=emote_id,
            filename=f"{emote_id}.{'gif' if animated else 'png'}",
            source_url=url,
            provider=self.name,
        )


class BTTVProvider(BaseEmoteProvider):
    """BetterTTV emote provider."""

    BASE_URL = "https://api.betterttv.net/3"
    CDN_URL = "https://cdn.betterttv.net/emote"
    setting_flag = "betterttv_emotes"

    @property
    def name(self) -> str:
        return "bttv"

    async def _fetch_channel(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        # BTTV uses Twitch user IDs for channel lookup
        channel = await self._get_json(session, f"{self.BASE_URL}/cached/users/twitch/{channel_id}")
        global_ = await self._get_json(session, f"{self.BASE_URL}/cached/emotes/global")

        emotes: CatalogMap = {}
        for emote_data in [
            *channel.get("channelEmotes", []),
            *channel.get("sharedEmotes", []),
        ]:
            emote = self._parse_emote(emote_data)
            if emote:
                emotes[emote.name] = emote
        for emote_data in global_:
            emote = self._parse_emote(emote_data, is_global=True)
            if emote:
                emotes[emote.name] = emote
        return emotes

    def _parse_emote(self, data: dict, is_global: bool = False) -> CatalogEntry | None:
        """Parse a BTTV emote from API data."""
        emote_id = data.get("id", "")
        code = data.get("code", "")
        image_type = data.get("imageType", "png")
        if not emote_id or not code:
            return None

        return CatalogEntry(
            name=code,
            remote_id=emote_id,
            filename=f"{emote_id}.{image_type}",
            source_url=f"{self.CDN_URL}/{emote_id}/1x.{image_type}",
            is_overlay=is_global and code in BTTV_OVERLAY_EMOTES,
            provider=self.name,
        )


class SevenTVProvider(BaseEmoteProvider):
    """7TV emote provider."""

    BASE_URL = "https://7tv.io/v3"
    CDN_URL = "https://cdn.7tv.app/emote"
    setting_flag = "seventv_emotes"

    @property
    def name(self) -> str:
        return "7tv"

    async def _fetch_channel(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        user = await self._get_json(session, f"{self.BASE_URL}/users/twitch/{channel_id}")
        set_id = (user.get("emote_set") or {}).get("id")
        if not set_id:
            raise CatalogFetchError(self.name, f"no active emote set for {channel_id}")

        channel = await self._get_json(session, f"{self.BASE_URL}/emote-sets/{set_id}")
        global_ = await self._get_json(session, f"{self.BASE_URL}/emote-sets/global")

        emotes: CatalogMap = {}
        for emote_data in [*(channel.get("emotes") or []), *(global_.get("emotes") or [])]:
            emote = self._parse_emote(emote_data)
            if emote:
                emotes[emote.name] = emote
        return emotes

    def _parse_emote(self, data: dict) -> CatalogEntry | None:
        """Parse a 7TV emote from API data."""
        emote_data = data.get("data") or {}
        emote_id = data.get("id") or emote_data.get("id", "")
        name = data.get("name") or emote_data.get("name", "")
        if not emote_id or not name:
            return None

        zero_width = bool(data.get("flags", 0) & SEVENTV_ZERO_WIDTH_ACTIVE) or bool(
            emote_data.get("flags", 0) & SEVENTV_ZERO_WIDTH_DATA
        )
        return CatalogEntry(
            name=name,
            remote_id=emote_id,
            filename=f"{emote_id}.webp",
            source_url=f"{self.CDN_URL}/{emote_id}/1x.webp",
            is_overlay=zero_width,
            provider=self.name,
        )


class FFZProvider(BaseEmoteProvider):
    """FrankerFaceZ emote provider.

    The room and global endpoints only tell us which emote sets apply;
    each set is then fetched on its own, a few at a time.
    """

    BASE_URL = "https://api.frankerfacez.com/v1"
    setting_flag = "frankerfacez_emotes"

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
        set_concurrency: int = 8,
    ):
        super().__init__(timeout=timeout, base_url=base_url)
        self.set_concurrency = max(1, set_concurrency)

    @property
    def name(self) -> str:
        return "ffz"

    async def _fetch_channel(self, session: aiohttp.ClientSession, channel_id: str) -> CatalogMap:
        room = await self._get_json(session, f"{self.BASE_URL}/room/id/{channel_id}")
        global_ = await self._get_json(session, f"{self.BASE_URL}/set/global")

        set_ids: list[str] = []
        for set_id in [
            *global_.get("default_sets", []),
            (room.get("room") or {}).get("set"),
            *(room.get("sets") or {}).keys(),
        ]:
            if set_id is not None and str(set_id) not in set_ids:
                set_ids.append(str(set_id))

        sem = asyncio.Semaphore(self.set_concurrency)

        async def fetch_set(set_id: str) -> CatalogMap:
            async with sem:
                try:
                    data = await self._get_json(session, f"{self.BASE_URL}/set/{set_id}")
                except (CatalogFetchError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.debug(f"FFZ set {set_id} failed: {e!r}")
                    return {}
            emotes: CatalogMap = {}
            for emote_data in (data.get("set") or {}).get("emoticons", []):
                emote = self._parse_emote(emote_data)
                if emote:
                    emotes[emote.name] = emote
            return emotes

        emotes: CatalogMap = {}
        for result in await asyncio.gather(*(fetch_set(s) for s in set_ids)):
            emotes.update(result)
        return emotes

    def _parse_emote(self, data: dict) -> CatalogEntry | None:
        """Parse an FFZ emote from API data."""
        emote_id = str(data.get("id", ""))
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        urls = data.get("urls") or {}
        url = urls.get("1") or urls.get("2") or urls.get("4") or ""
        if not url:
            return None

        return CatalogEntry(
            name=name,
            remote_id=emote_id,
            filename=f"ffz-{emote_id}.png",
            source_url=self._absolute(url),
            provider=self.name,
        )


__all__ = [
    "BaseEmoteProvider",
    "TwitchProvider",
    "BTTVProvider",
    "SevenTVProvider",
    "FFZProvider",
]
