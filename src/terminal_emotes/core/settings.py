"""Settings management for terminal-emotes."""

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from appdirs import user_cache_dir, user_config_dir, user_data_dir

APP_NAME = "terminal-emotes"
APP_AUTHOR = "terminal-emotes"

EMOTE_CACHE_DIR_NAME = "emotes"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Get the data directory (logs)."""
    path = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Get the cache directory."""
    path = Path(user_cache_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class TwitchSettings:
    """Twitch account settings."""

    client_id: str = ""
    access_token: str = ""  # "oauth:" prefix is accepted and stripped
    login_name: str = ""  # Twitch username of the viewer
    channel: str = ""  # Channel joined on startup

    @property
    def token(self) -> str:
        """Access token without the IRC-style "oauth:" prefix."""
        return self.access_token.removeprefix("oauth:")


@dataclass
class EmoteSettings:
    """Emote providers, download and decode settings."""

    twitch_emotes: bool = True
    betterttv_emotes: bool = True
    seventv_emotes: bool = True
    frankerfacez_emotes: bool = True
    provider_concurrency: int = 4
    download_concurrency: int = 100  # Well below typical fd/socket limits
    set_concurrency: int = 8  # FFZ per-room set fetches
    request_timeout: int = 15  # seconds
    cache_dir: str = ""  # empty = <user cache dir>/emotes

    @property
    def enabled(self) -> bool:
        return (
            self.twitch_emotes
            or self.betterttv_emotes
            or self.seventv_emotes
            or self.frankerfacez_emotes
        )

    def resolved_cache_dir(self) -> Path:
        """Directory holding downloaded emote files."""
        if self.cache_dir:
            path = Path(self.cache_dir).expanduser()
        else:
            path = get_cache_dir() / EMOTE_CACHE_DIR_NAME
        path.mkdir(parents=True, exist_ok=True)
        return path


@dataclass
class TerminalSettings:
    """Terminal graphics protocol settings."""

    probe_timeout: float = 1.0  # seconds to wait for the terminal to answer
    allowed_terms: list[str] = field(
        default_factory=lambda: ["xterm-kitty", "WezTerm", "ghostty"]
    )


@dataclass
class Settings:
    """Application settings."""

    twitch: TwitchSettings = field(default_factory=TwitchSettings)
    emotes: EmoteSettings = field(default_factory=EmoteSettings)
    terminal: TerminalSettings = field(default_factory=TerminalSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from file."""
        from .credential_store import KEY_TWITCH_ACCESS_TOKEN, get_secret, is_available, store_secret

        if path is None:
            path = get_config_dir() / "settings.json"

        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            settings = cls._from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
            return cls()

        # Keyring overrides the JSON value
        if is_available():
            kr_token = get_secret(KEY_TWITCH_ACCESS_TOKEN)
            if settings.twitch.access_token and not kr_token:
                # Migrate the plaintext token into the keyring
                store_secret(KEY_TWITCH_ACCESS_TOKEN, settings.twitch.access_token)
                settings.save(path)
            elif kr_token:
                settings.twitch.access_token = kr_token

        return settings

    def save(self, path: Path | None = None) -> None:
        """Save settings to file."""
        from .credential_store import (
            KEY_TWITCH_ACCESS_TOKEN,
            is_available,
            secure_file_permissions,
            store_secret,
        )

        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        use_keyring = is_available()
        if use_keyring:
            store_secret(KEY_TWITCH_ACCESS_TOKEN, self.twitch.access_token)

        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(exclude_secrets=use_keyring), f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        if not use_keyring:
            secure_file_permissions(str(path))

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @staticmethod
    def _validate_float(value, default: float, min_val: float, max_val: float) -> float:
        """Validate and constrain a float value."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return float(min(max(value, min_val), max_val))

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        if "twitch" in data:
            t = data["twitch"]
            settings.twitch = TwitchSettings(
                client_id=t.get("client_id", ""),
                access_token=t.get("access_token", ""),
                login_name=t.get("login_name", ""),
                channel=t.get("channel", ""),
            )

        if "emotes" in data:
            e = data["emotes"]
            defaults = EmoteSettings()
            settings.emotes = EmoteSettings(
                twitch_emotes=e.get("twitch_emotes", defaults.twitch_emotes),
                betterttv_emotes=e.get("betterttv_emotes", defaults.betterttv_emotes),
                seventv_emotes=e.get("seventv_emotes", defaults.seventv_emotes),
                frankerfacez_emotes=e.get("frankerfacez_emotes", defaults.frankerfacez_emotes),
                provider_concurrency=cls._validate_int(
                    e.get("provider_concurrency"), 4, min_val=1, max_val=16
                ),
                download_concurrency=cls._validate_int(
                    e.get("download_concurrency"), 100, min_val=1, max_val=256
                ),
                set_concurrency=cls._validate_int(
                    e.get("set_concurrency"), 8, min_val=1, max_val=32
                ),
                request_timeout=cls._validate_int(
                    e.get("request_timeout"), 15, min_val=1, max_val=120
                ),
                cache_dir=e.get("cache_dir", ""),
            )

        if "terminal" in data:
            term = data["terminal"]
            settings.terminal = TerminalSettings(
                probe_timeout=cls._validate_float(
                    term.get("probe_timeout"), 1.0, min_val=0.05, max_val=10.0
                ),
                allowed_terms=term.get("allowed_terms", TerminalSettings().allowed_terms),
            )

        return settings

    def _to_dict(self, exclude_secrets: bool = False) -> dict:
        """Convert Settings to a dictionary.

        If exclude_secrets is True, the access token is omitted
        (it is stored in the system keyring instead).
        """
        return {
            "twitch": {
                "client_id": self.twitch.client_id,
                "login_name": self.twitch.login_name,
                "channel": self.twitch.channel,
                **({"access_token": self.twitch.access_token} if not exclude_secrets else {}),
            },
            "emotes": {
                "twitch_emotes": self.emotes.twitch_emotes,
                "betterttv_emotes": self.emotes.betterttv_emotes,
                "seventv_emotes": self.emotes.seventv_emotes,
                "frankerfacez_emotes": self.emotes.frankerfacez_emotes,
                "provider_concurrency": self.emotes.provider_concurrency,
                "download_concurrency": self.emotes.download_concurrency,
                "set_concurrency": self.emotes.set_concurrency,
                "request_timeout": self.emotes.request_timeout,
                "cache_dir": self.emotes.cache_dir,
            },
            "terminal": {
                "probe_timeout": self.terminal.probe_timeout,
                "allowed_terms": self.terminal.allowed_terms,
            },
        }
