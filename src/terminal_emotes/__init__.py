"""Inline chat emotes for terminals speaking the kitty graphics protocol."""

__version__ = "0.3.0"
