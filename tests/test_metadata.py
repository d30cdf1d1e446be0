"""Tests for metadata loading and tag resolution."""

import json

import pytest

from metaenc.errors import MetadataInvalid, MetadataUnreadable
from metaenc.metadata import Album, Track, load_metadata, override


@pytest.mark.parametrize("default", ["", "Album Artist"])
def test_override_absent_keeps_default(default):
    assert override(default, None) == default


@pytest.mark.parametrize("value", ["", "Track Artist"])
def test_override_present_wins(value):
    assert override("Album Artist", value) == value


def test_track_resolved_distinguishes_empty_from_missing():
    album = Album(title="Fruit", artist="The Orchard", genre="Ambient", cover="front.jpg")
    track = Track(rendered_file="a", title="Apple", genre="", artist="Guest")

    tags = track.resolved(album)

    assert tags["artist"] == "Guest"
    assert tags["genre"] == ""
    assert tags["cover"] == "front.jpg"
    assert tags["composer"] == ""


def test_load_metadata_accepts_title_case_keys(fruit):
    metadata, mtime_ns = load_metadata(fruit.meta)

    assert mtime_ns == fruit.meta.stat().st_mtime_ns
    assert metadata.output_extensions == ["mp3", "flac"]
    assert metadata.parallel is True
    album = metadata.albums[0]
    assert album.title == "Fruit"
    assert [t.title for t in album.tracks] == ["Apple", "Pear"]
    assert album.tracks[0].artist is None
    assert album.tracks[1].artist == "Guest"


def test_load_metadata_missing_file(tmp_path):
    with pytest.raises(MetadataUnreadable):
        load_metadata(tmp_path / "nope.json")


def test_load_metadata_bad_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{ not json", encoding="utf-8")
    with pytest.raises(MetadataInvalid, match="not valid JSON"):
        load_metadata(path)


def test_load_metadata_track_without_rendered_file(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"albums": [{"title": "X", "tracks": [{"title": "no file"}]}]}), encoding="utf-8")
    with pytest.raises(MetadataInvalid):
        load_metadata(path)


def test_load_metadata_ignores_unknown_keys(tmp_path):
    path = tmp_path / "extra.json"
    path.write_text(json.dumps({"albums": [], "comment": "hello", "Parallel": False}), encoding="utf-8")
    metadata, _ = load_metadata(path)
    assert metadata.albums == []
    assert metadata.parallel is False
