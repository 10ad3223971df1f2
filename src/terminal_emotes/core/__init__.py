"""Core settings and utilities for terminal-emotes."""

from .settings import EmoteSettings, Settings, TerminalSettings, TwitchSettings

__all__ = [
    "Settings",
    "TwitchSettings",
    "EmoteSettings",
    "TerminalSettings",
]
