"""Exceptions raised by the emote pipeline."""


class EmoteError(Exception):
    """Base class for emote pipeline errors."""


class CatalogFetchError(EmoteError):
    """A catalog provider was unreachable or returned malformed data."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class AssetDownloadError(EmoteError):
    """Downloading a single emote file failed."""

    def __init__(self, filename: str, message: str, status: int = 0):
        super().__init__(f"{filename}: {message}")
        self.filename = filename
        self.status = status


class DecodeError(EmoteError):
    """An emote file could not be decoded into frames."""

    def __init__(self, message: str, name: str = ""):
        super().__init__(message)
        self.name = name


class TempFileError(DecodeError):
    """A frame could not be written to its temporary file."""


class ProtocolUnsupportedError(EmoteError):
    """The terminal does not speak the graphics protocol, or its geometry is unknown."""


class GraphicsWriteError(EmoteError):
    """A graphics command could not be produced or written."""
