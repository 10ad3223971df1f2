"""Tests for the per-session emote runtime."""

import time

import pytest

from terminal_emotes.emotes.graphics import (
    PREVIEW_PLACEMENT_ID,
    AnimateStart,
    Chain,
    Clear,
    ClearAll,
    Place,
)
from terminal_emotes.emotes.models import (
    CachedEmote,
    CatalogSnapshot,
    PlacementDescriptor,
    emote_hash,
)
from terminal_emotes.emotes.state import EmoteRuntime
from terminal_emotes.emotes.worker import DecodeWorker


def _snapshot(generation=1, channel=None, viewer=None):
    return CatalogSnapshot(
        generation=generation,
        channel_id="1234",
        channel=channel or {},
        viewer=viewer or {},
    )


@pytest.fixture
def runtime(writer, cell_size, tmp_path, fake_decoder):
    rt = EmoteRuntime(writer, cell_size, tmp_path, decoder=fake_decoder)
    rt.install(
        _snapshot(
            channel={
                "Kappa": CachedEmote("25.png"),
                "catAnim": CachedEmote("cat.gif"),
                "SoSnowy": CachedEmote("snow.gif", is_overlay=True),
                "Broken": CachedEmote("broken.png"),
            },
            viewer={"subHype": CachedEmote("sub.png")},
        )
    )
    return rt


def test_emote_hash_is_stable_24_bit():
    assert emote_hash("Kappa") == emote_hash("Kappa")
    assert emote_hash("Kappa") != emote_hash("KappaPride")
    for name in ["Kappa", "", "catJAM", "x" * 500]:
        assert 0 < emote_hash(name) < 1 << 24


def test_lookup_prefers_viewer_catalog(runtime):
    runtime.viewer["Kappa"] = CachedEmote("viewer-kappa.png")
    assert runtime.lookup("Kappa").filename == "viewer-kappa.png"
    assert runtime.lookup("catAnim").filename == "cat.gif"
    assert runtime.lookup("nope") is None


def test_first_load_transmits_then_counts(runtime, stream, fake_decoder):
    first = runtime.load_emote("Kappa", "25.png", False)
    assert first.display_count == 1
    assert first.hash_id == emote_hash("Kappa")
    assert (first.pixel_width, first.cols) == (20, 2)
    transmitted = "".join(stream.writes)
    assert "a=t,t=t,f=32,s=20,v=20" in transmitted

    stream.writes.clear()
    second = runtime.load_emote("Kappa", "25.png", False)
    assert second.display_count == 2
    assert stream.writes == []
    assert fake_decoder.calls == ["Kappa"]


def test_animated_load_writes_full_sequence(runtime, stream):
    emote = runtime.load_emote("catAnim", "cat.gif", False)
    assert emote is not None
    written = "".join(stream.writes)
    assert written.startswith("\x1b_Ga=t,")
    assert written.count("a=f,") == 2
    assert written.endswith(AnimateStart(emote.hash_id).encode())


def test_decode_failure_purges_everywhere(runtime):
    runtime.viewer["Broken"] = CachedEmote("broken.png")
    runtime._decoder.broken.add("Broken")

    assert runtime.load_emote("Broken", "broken.png", False) is None
    assert runtime.lookup("Broken") is None
    assert "Broken" not in runtime.loaded


def test_display_requires_prior_transmit(runtime, stream):
    assert runtime.display("Kappa") is None
    assert stream.writes == []


def test_display_places_with_count_based_id(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    stream.writes.clear()

    placement = runtime.display("Kappa")
    hash_id = emote_hash("Kappa")
    assert placement == PlacementDescriptor(image_id=hash_id, placement_id=2, cols=2)
    assert stream.writes == [Place(hash_id, 2, 2).encode()]

    runtime.load_emote("Kappa", "25.png", False)
    assert runtime.display("Kappa").placement_id == 3


def test_overlay_chains_onto_parent(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    parent = runtime.display("Kappa")
    runtime.load_emote("SoSnowy", "snow.gif", True)
    stream.writes.clear()

    placement = runtime.display("SoSnowy", parent)

    assert placement.parent == (parent.image_id, parent.placement_id)
    assert placement.z == 1
    assert stream.writes == [
        Chain(
            placement.image_id,
            placement.placement_id,
            placement.parent,
            col_offset=placement.col_offset,
            pixel_offset=placement.pixel_offset,
        ).encode()
    ]
    # Same size as its parent: no column shift
    assert placement.col_offset == 0


def test_overlay_without_parent_is_placed(runtime, stream):
    runtime.load_emote("SoSnowy", "snow.gif", True)
    placement = runtime.display("SoSnowy")
    assert placement.parent is None


def test_install_replaces_catalogs_and_frees_images(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    stream.writes.clear()

    assert runtime.install(_snapshot(generation=2, channel={"LUL": CachedEmote("lul.png")}))

    assert runtime.lookup("Kappa") is None
    assert runtime.lookup("subHype") is None
    assert runtime.lookup("LUL").filename == "lul.png"
    assert runtime.loaded == {}
    assert stream.writes == [Clear(emote_hash("Kappa")).encode()]


def test_install_rejects_stale_snapshot(runtime):
    runtime.install(_snapshot(generation=5, channel={"New": CachedEmote("new.png")}))
    assert not runtime.install(_snapshot(generation=3, channel={"Old": CachedEmote("old.png")}))
    assert runtime.lookup("New") is not None
    assert runtime.lookup("Old") is None


def test_purge_frees_loaded_image(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    stream.writes.clear()

    runtime.purge("Kappa")

    assert runtime.lookup("Kappa") is None
    assert "Kappa" not in runtime.loaded
    assert stream.writes == [Clear(emote_hash("Kappa")).encode()]


def test_id_collision_evicts_older(runtime, stream, monkeypatch):
    monkeypatch.setattr("terminal_emotes.emotes.state.emote_hash", lambda name: 77)
    runtime.load_emote("Kappa", "25.png", False)
    stream.writes.clear()

    runtime.load_emote("catAnim", "cat.gif", False)

    assert "Kappa" not in runtime.loaded
    assert runtime.loaded["catAnim"].hash_id == 77
    assert stream.writes[0] == Clear(77).encode()
    assert stream.writes[1].startswith("\x1b_Ga=t")


def test_clear_frees_every_image(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    runtime.load_emote("catAnim", "cat.gif", False)
    stream.writes.clear()

    runtime.clear()

    assert runtime.loaded == {}
    written = "".join(stream.writes)
    assert Clear(emote_hash("Kappa")).encode() in written
    assert Clear(emote_hash("catAnim")).encode() in written


def test_shutdown_frees_all_images_at_once(runtime, stream):
    runtime.load_emote("Kappa", "25.png", False)
    stream.writes.clear()

    runtime.shutdown()

    assert stream.writes == [ClearAll().encode()]
    assert runtime.loaded == {}
    assert runtime.load_emote("Kappa", "25.png", False) is not None


def test_failed_write_discards_frames(writer, cell_size, tmp_path, fake_decoder, monkeypatch):
    runtime = EmoteRuntime(writer, cell_size, tmp_path, decoder=fake_decoder)
    runtime.install(_snapshot(channel={"Kappa": CachedEmote("25.png")}))
    monkeypatch.setattr(writer, "write", lambda commands: False)

    assert runtime.load_emote("Kappa", "25.png", False) is None
    assert not list(tmp_path.glob("tty-graphics-protocol-Kappa-*"))


# --- Preview through the worker ---


def _wait_for_results(runtime, expected, timeout=5.0):
    placed = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline and len(placed) < expected:
        placed.extend(runtime.process_worker_results())
        time.sleep(0.01)
    return placed


def test_preview_places_at_reserved_id(writer, stream, cell_size, tmp_path, fake_decoder):
    worker = DecodeWorker(cell_size, decoder=fake_decoder)
    worker.start()
    runtime = EmoteRuntime(writer, cell_size, tmp_path, worker=worker, decoder=fake_decoder)
    runtime.install(_snapshot(channel={"Kappa": CachedEmote("25.png")}))
    try:
        assert runtime.request_preview(["Kappa", "unknown"]) == ["Kappa"]
        placed = _wait_for_results(runtime, 1)
    finally:
        runtime.shutdown()

    assert [p.placement_id for p in placed] == [PREVIEW_PLACEMENT_ID]
    assert placed[0].image_id == emote_hash("Kappa")
    assert Place(emote_hash("Kappa"), PREVIEW_PLACEMENT_ID, 2).encode() in "".join(stream.writes)


def test_preview_failure_purges(writer, cell_size, tmp_path, fake_decoder):
    fake_decoder.broken.add("Broken")
    worker = DecodeWorker(cell_size, decoder=fake_decoder)
    worker.start()
    runtime = EmoteRuntime(writer, cell_size, tmp_path, worker=worker, decoder=fake_decoder)
    runtime.install(_snapshot(channel={"Broken": CachedEmote("broken.png")}))
    try:
        runtime.request_preview(["Broken"])
        deadline = time.monotonic() + 5.0
        while runtime.lookup("Broken") is not None and time.monotonic() < deadline:
            runtime.process_worker_results()
            time.sleep(0.01)
    finally:
        runtime.shutdown()

    assert runtime.lookup("Broken") is None


def test_preview_without_worker_is_a_no_op(runtime, stream):
    assert runtime.request_preview(["Kappa"]) == []
    assert stream.writes == []
