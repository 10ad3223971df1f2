#!/usr/bin/env python3
"""Main entry point for terminal-emotes.

Joins a channel's emote catalogs, then echoes stdin lines with every known
emote replaced by its image.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .core.settings import Settings, get_data_dir
from .emotes.aggregator import ProviderAggregator
from .emotes.errors import ProtocolUnsupportedError
from .emotes.graphics import GraphicsWriter, UnicodePlaceholder
from .emotes.state import EmoteRuntime
from .emotes.terminal import get_cell_size, support_graphics_protocol

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "terminal-emotes.log"


def setup_logging(verbose: bool = False) -> Path:
    """Set up logging configuration.

    Logs go to a file: stdout carries the graphics escape sequences.
    """
    log_path = get_data_dir() / LOG_FILE_NAME
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return log_path


def render_line(runtime: EmoteRuntime, line: str) -> str:
    """Replace emote words in ``line`` with placeholder cells, placing each image.

    An overlay directly after another emote is drawn over it and takes no
    cells of its own.
    """
    out: list[str] = []
    parent = None
    for word in line.split(" "):
        cached = runtime.lookup(word) if word else None
        emote = runtime.load_emote(word, cached.filename, cached.is_overlay) if cached else None
        if emote is None:
            out.append(word)
            parent = None
            continue

        placement = runtime.display(word, parent if emote.is_overlay else None)
        if placement is None:
            out.append(word)
            parent = None
        elif placement.parent is not None:
            continue
        else:
            out.append(
                UnicodePlaceholder(placement.cols).render(
                    placement.image_id, placement.placement_id
                )
            )
            parent = placement
    return " ".join(out)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terminal-emotes",
        description="Show a Twitch channel's emotes inline in the terminal.",
    )
    parser.add_argument(
        "channel", nargs="?", help="channel login (defaults to the one in settings)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    log_path = setup_logging(args.verbose)

    settings = Settings.load()
    channel = args.channel or settings.twitch.channel
    if not channel:
        print("No channel given and none configured.", file=sys.stderr)
        return 2
    if not settings.emotes.enabled:
        print("Every emote provider is disabled in settings.", file=sys.stderr)
        return 1

    if not support_graphics_protocol(settings.terminal):
        print("This terminal does not support the graphics protocol.", file=sys.stderr)
        return 1
    try:
        cell_size = get_cell_size(settings.terminal.probe_timeout)
    except ProtocolUnsupportedError as e:
        logger.error(f"Cannot determine terminal cell size: {e}")
        print(f"Cannot determine terminal cell size: {e}", file=sys.stderr)
        return 1

    aggregator = ProviderAggregator(settings)
    snapshot = asyncio.run(aggregator.join(channel))
    if snapshot is None:
        print(f"Could not find channel {channel} (see {log_path})", file=sys.stderr)
        return 1

    runtime = EmoteRuntime(
        GraphicsWriter(sys.stdout), cell_size, aggregator.downloader.cache_dir
    )
    runtime.install(snapshot)
    try:
        for line in sys.stdin:
            print(render_line(runtime, line.rstrip("\n")), flush=True)
    except KeyboardInterrupt:
        pass
    finally:
        runtime.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
