"""Emote catalogs, caching, decoding and terminal graphics."""

from .aggregator import ProviderAggregator
from .cache import EmoteDownloader
from .errors import (
    AssetDownloadError,
    CatalogFetchError,
    DecodeError,
    EmoteError,
    GraphicsWriteError,
    ProtocolUnsupportedError,
    TempFileError,
)
from .graphics import PREVIEW_PLACEMENT_ID, GraphicsWriter, UnicodePlaceholder, encode_load
from .image import decode_emote, display_geometry
from .models import (
    CachedEmote,
    CatalogEntry,
    CatalogSnapshot,
    DecodedEmote,
    LoadedEmote,
    PlacementDescriptor,
    emote_hash,
)
from .provider import BTTVProvider, FFZProvider, SevenTVProvider, TwitchProvider
from .state import EmoteRuntime
from .worker import DecodeWorker

__all__ = [
    "AssetDownloadError",
    "BTTVProvider",
    "CachedEmote",
    "CatalogEntry",
    "CatalogFetchError",
    "CatalogSnapshot",
    "DecodeError",
    "DecodeWorker",
    "DecodedEmote",
    "EmoteDownloader",
    "EmoteError",
    "EmoteRuntime",
    "FFZProvider",
    "GraphicsWriteError",
    "GraphicsWriter",
    "LoadedEmote",
    "PREVIEW_PLACEMENT_ID",
    "PlacementDescriptor",
    "ProtocolUnsupportedError",
    "ProviderAggregator",
    "SevenTVProvider",
    "TempFileError",
    "TwitchProvider",
    "UnicodePlaceholder",
    "decode_emote",
    "display_geometry",
    "emote_hash",
    "encode_load",
]
