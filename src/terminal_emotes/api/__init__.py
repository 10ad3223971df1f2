"""HTTP API clients."""

from .base import BaseApiClient, safe_json
from .twitch import TwitchApiClient, TwitchIdentity

__all__ = [
    "BaseApiClient",
    "safe_json",
    "TwitchApiClient",
    "TwitchIdentity",
]
