"""Twitch identity lookups: token validation and channel id resolution."""

import asyncio
import logging
from dataclasses import dataclass

import aiohttp

from ..core.settings import TwitchSettings
from .base import BaseApiClient, safe_json

logger = logging.getLogger(__name__)


@dataclass
class TwitchIdentity:
    """Who is watching which channel, as far as the emote providers care."""

    channel_login: str
    channel_id: str
    client_id: str = ""
    viewer_id: str = ""
    viewer_login: str = ""

    @property
    def authenticated(self) -> bool:
        return bool(self.client_id and self.viewer_id)


class TwitchApiClient(BaseApiClient):
    """Client for the bits of Twitch needed before catalogs can be fetched."""

    name = "Twitch"
    BASE_URL = "https://api.twitch.tv/helix"
    AUTH_URL = "https://id.twitch.tv/oauth2"
    IVR_URL = "https://api.ivr.fi/v2"

    def __init__(self, settings: TwitchSettings, timeout: float = 10) -> None:
        super().__init__(timeout=timeout)
        self.settings = settings
        self._validated: dict | None = None

    @property
    def client_id(self) -> str:
        if self.settings.client_id:
            return self.settings.client_id
        if self._validated:
            return self._validated.get("client_id", "")
        return ""

    def _get_headers(self) -> dict[str, str]:
        """Get headers for Helix requests."""
        return {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {self.settings.token}",
        }

    async def validate_token(self) -> dict | None:
        """Validate the OAuth token, returning client_id/user_id/login on success."""
        if not self.settings.token:
            return None
        if self._validated is not None:
            return self._validated

        try:
            async with self.session.get(
                f"{self.AUTH_URL}/validate",
                headers={"Authorization": f"OAuth {self.settings.token}"},
            ) as resp:
                if resp.status != 200:
                    logger.warning(f"Twitch token validation failed: {resp.status}")
                    return None
                data = await safe_json(resp)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Twitch token validation error: {e!r}")
            return None

        if not isinstance(data, dict) or not data.get("user_id"):
            return None
        self._validated = data
        return data

    async def get_channel_id(self, login: str) -> str | None:
        """Resolve a Twitch login name to its numeric user ID.

        Tries Helix first (if a token is available), then falls back to the
        public IVR API.
        """
        login = login.lower().lstrip("#")
        if login.isdigit():
            return login

        if self.settings.token and self.client_id:
            try:
                user_id = await self._retry_with_backoff(lambda: self._helix_user_id(login))
                if user_id:
                    logger.debug(f"Resolved Twitch login '{login}' to user ID {user_id} (Helix)")
                    return user_id
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"Helix API failed for {login}: {e}")

        try:
            user_id = await self._retry_with_backoff(lambda: self._ivr_user_id(login))
            if user_id:
                logger.debug(f"Resolved Twitch login '{login}' to user ID {user_id} (IVR)")
                return user_id
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"IVR API failed for {login}: {e}")

        return None

    async def _helix_user_id(self, login: str) -> str | None:
        async with self.session.get(
            f"{self.BASE_URL}/users",
            params={"login": login},
            headers=self._get_headers(),
        ) as resp:
            if resp.status != 200:
                return None
            data = await safe_json(resp)
        users = data.get("data", []) if isinstance(data, dict) else []
        if not users:
            return None
        return users[0].get("id") or None

    async def _ivr_user_id(self, login: str) -> str | None:
        async with self.session.get(f"{self.IVR_URL}/twitch/user", params={"login": login}) as resp:
            if resp.status != 200:
                return None
            data = await safe_json(resp)
        if isinstance(data, list) and data:
            return str(data[0].get("id", "")) or None
        return None

    async def resolve_identity(self, channel: str) -> TwitchIdentity | None:
        """Validate the viewer's token and resolve the channel id."""
        validated = await self.validate_token()
        channel_id = await self.get_channel_id(channel)
        if not channel_id:
            logger.warning(f"Could not resolve Twitch channel '{channel}'")
            return None

        identity = TwitchIdentity(channel_login=channel.lower().lstrip("#"), channel_id=channel_id)
        if validated:
            identity.client_id = self.client_id
            identity.viewer_id = str(validated.get("user_id", ""))
            identity.viewer_login = validated.get("login", "")
        return identity
