"""Tests for the command line entry point."""

from terminal_emotes.emotes.graphics import PLACEHOLDER
from terminal_emotes.emotes.models import CachedEmote, CatalogSnapshot
from terminal_emotes.emotes.state import EmoteRuntime
from terminal_emotes.main import build_parser, render_line


def _runtime(writer, cell_size, tmp_path, decoder):
    runtime = EmoteRuntime(writer, cell_size, tmp_path, decoder=decoder)
    runtime.install(
        CatalogSnapshot(
            generation=1,
            channel={
                "Kappa": CachedEmote("25.png"),
                "SoSnowy": CachedEmote("snow.gif", is_overlay=True),
            },
        )
    )
    return runtime


def test_plain_text_is_unchanged(writer, stream, cell_size, tmp_path, fake_decoder):
    runtime = _runtime(writer, cell_size, tmp_path, fake_decoder)
    assert render_line(runtime, "hello  world") == "hello  world"
    assert stream.writes == []


def test_emote_words_become_placeholders(writer, cell_size, tmp_path, fake_decoder):
    runtime = _runtime(writer, cell_size, tmp_path, fake_decoder)
    line = render_line(runtime, "hi Kappa there")

    words = line.split(" ")
    assert words[0] == "hi"
    assert words[-1] == "there"
    assert words[1].count(PLACEHOLDER) == 2


def test_overlay_after_emote_takes_no_cells(writer, cell_size, tmp_path, fake_decoder):
    runtime = _runtime(writer, cell_size, tmp_path, fake_decoder)
    line = render_line(runtime, "Kappa SoSnowy")
    assert line.count(PLACEHOLDER) == 2
    assert " " not in line.replace("\x1b[", "")


def test_overlay_after_emote_is_chained_to_it(writer, stream, cell_size, tmp_path, fake_decoder):
    runtime = _runtime(writer, cell_size, tmp_path, fake_decoder)
    render_line(runtime, "Kappa SoSnowy")

    chain = stream.writes[-1]
    assert chain.startswith("\x1b_Ga=p,i=")
    assert "U=1" not in chain
    assert f"P={runtime.loaded['Kappa'].hash_id}," in chain


def test_overlay_after_text_is_placed_normally(writer, cell_size, tmp_path, fake_decoder):
    runtime = _runtime(writer, cell_size, tmp_path, fake_decoder)
    line = render_line(runtime, "wow SoSnowy")
    assert line.count(PLACEHOLDER) == 2


def test_parser_accepts_channel_and_verbose():
    args = build_parser().parse_args(["forsen", "-v"])
    assert args.channel == "forsen"
    assert args.verbose
