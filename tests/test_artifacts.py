"""Tests for artifacts module."""

import json
import os

from audio_tour.artifacts import (
    guide_from_dict,
    guide_to_dict,
    init_output_dir,
    list_guides,
    load_artifact,
    load_guide,
    save_guide,
    slug_from_path,
    write_artifact,
)
from audio_tour.models import AudioGuide, Chapter, Segment


# --- Directory and file management ---

def test_init_output_dir(tmp_path):
    """Creates the guide directory with a segments subdir."""
    script = str(tmp_path / "Old Town.txt")
    guide_dir = init_output_dir(script, output_base=str(tmp_path / "output"))
    assert guide_dir == str(tmp_path / "output" / "old_town")
    assert os.path.isdir(os.path.join(guide_dir, "segments"))


def test_init_output_dir_existing(tmp_path):
    """Re-running on existing dir doesn't crash or delete files."""
    script = str(tmp_path / "tour.txt")
    guide_dir = init_output_dir(script, output_base=str(tmp_path / "output"))
    marker = os.path.join(guide_dir, "segments", "chunk_000.mp3")
    with open(marker, "w") as f:
        f.write("marker")
    assert init_output_dir(script, output_base=str(tmp_path / "output")) == guide_dir
    assert os.path.exists(marker)


def test_slug_from_path():
    """Various filename formats -> correct slugs."""
    assert slug_from_path("/path/to/Harbour-Tour.md") == "harbour_tour"
    assert slug_from_path("old_town_walk.txt") == "old_town_walk"
    assert slug_from_path("/a/b/  The Cathedral!.txt") == "the_cathedral"


def test_write_and_load_artifact(tmp_path):
    data = {"title": "Walk", "chapters": []}
    path = write_artifact(str(tmp_path), "guide.json", data)
    with open(path) as f:
        assert json.load(f) == data
    assert load_artifact(str(tmp_path), "guide.json") == data


def test_load_artifact_missing(tmp_path):
    assert load_artifact(str(tmp_path), "nope.json") is None


# --- Guide manifests ---

def test_guide_to_dict_uses_camel_case():
    guide = AudioGuide(
        title="Old Town",
        duration=25,
        audio_url="a.mp3",
        segments=[Segment(uri="a.mp3", start_time=0, duration=10)],
        chapters=[Chapter(title="Start", timestamp=0, id="chapter_1")],
    )
    data = guide_to_dict(guide)
    assert data["audioUrl"] == "a.mp3"
    assert data["audioSegments"] == [{"uri": "a.mp3", "startTime": 0, "duration": 10}]
    assert data["chapters"][0] == {"id": "chapter_1", "title": "Start", "timestamp": 0, "duration": None}


def test_save_and_load_guide(tmp_path, tour_guide):
    save_guide(str(tmp_path), tour_guide)
    assert load_guide(str(tmp_path)) == tour_guide


def test_load_guide_missing(tmp_path):
    assert load_guide(str(tmp_path)) is None


def test_guide_from_dict_skips_bad_segments():
    """Segments without a uri or numeric timing are dropped."""
    guide = guide_from_dict({
        "title": "Remote",
        "audioSegments": [
            {"uri": "a.mp3", "startTime": 0, "duration": 10},
            {"uri": "", "startTime": 10, "duration": 10},
            {"startTime": 20, "duration": 10},
            {"uri": "d.mp3", "startTime": "30", "duration": 10},
            {"uri": "e.mp3", "startTime": 40, "duration": 12.5},
        ],
    })
    assert [s.uri for s in guide.segments] == ["a.mp3", "e.mp3"]


def test_guide_from_dict_defaults():
    guide = guide_from_dict({"duration": None, "chapters": None})
    assert guide.title == "Untitled"
    assert guide.duration == 0.0
    assert guide.segments == []
    assert guide.chapters == []


def test_list_guides(tmp_path):
    base = tmp_path / "output"
    for slug in ["zoo_walk", "harbour"]:
        (base / slug).mkdir(parents=True)
        (base / slug / "guide.json").write_text("{}")
    (base / "half_built").mkdir()
    assert list_guides(str(base)) == ["harbour", "zoo_walk"]


def test_list_guides_no_output_dir(tmp_path):
    assert list_guides(str(tmp_path / "missing")) == []
