"""Output directory management and guide manifests."""

import json
import os
import re

from audio_tour.constants import OUTPUT_DIR, GUIDE_FILENAME
from audio_tour.models import AudioGuide, Chapter, Segment


def slug_from_path(script_path: str) -> str:
    """Convert a narration filename to an output directory slug.

    "Old Town Walk.txt" → "old_town_walk"
    "/path/to/Harbour-Tour.md" → "harbour_tour"
    """
    basename = os.path.splitext(os.path.basename(script_path))[0]
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()
    return slug


def init_output_dir(script_path: str, output_base: str = OUTPUT_DIR) -> str:
    """Create output/<slug>/segments/ and return the guide directory."""
    guide_dir = os.path.join(output_base, slug_from_path(script_path))
    os.makedirs(os.path.join(guide_dir, "segments"), exist_ok=True)
    return guide_dir


def write_artifact(guide_dir: str, filename: str, data: dict) -> str:
    """Write JSON artifact to guide_dir/filename.

    Returns path to the written file.
    """
    path = os.path.join(guide_dir, filename)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


def load_artifact(guide_dir: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(guide_dir, filename)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        return json.load(f)


def guide_to_dict(guide: AudioGuide) -> dict:
    return {
        "title": guide.title,
        "description": guide.description,
        "duration": guide.duration,
        "audioUrl": guide.audio_url,
        "audioSegments": [
            {"uri": s.uri, "startTime": s.start_time, "duration": s.duration}
            for s in guide.segments
        ],
        "chapters": [
            {"id": c.id, "title": c.title, "timestamp": c.timestamp, "duration": c.duration}
            for c in guide.chapters
        ],
        "script": guide.script,
    }


def guide_from_dict(data: dict) -> AudioGuide:
    """Build an AudioGuide from a manifest dict.

    Segment entries missing a uri or numeric timing are skipped rather than
    rejected; the player works with whatever remains.
    """
    segments = []
    for s in data.get("audioSegments") or []:
        if not s.get("uri"):
            continue
        start, duration = s.get("startTime"), s.get("duration")
        if not isinstance(start, (int, float)) or not isinstance(duration, (int, float)):
            continue
        segments.append(Segment(uri=str(s["uri"]), start_time=start, duration=duration))

    chapters = [
        Chapter(
            title=c.get("title", ""),
            timestamp=c.get("timestamp", 0),
            duration=c.get("duration"),
            id=c.get("id", ""),
        )
        for c in data.get("chapters") or []
    ]

    return AudioGuide(
        title=data.get("title", "Untitled"),
        description=data.get("description", ""),
        duration=data.get("duration") or 0.0,
        audio_url=data.get("audioUrl", ""),
        segments=segments,
        chapters=chapters,
        script=data.get("script"),
    )


def save_guide(guide_dir: str, guide: AudioGuide) -> str:
    return write_artifact(guide_dir, GUIDE_FILENAME, guide_to_dict(guide))


def load_guide(guide_dir: str) -> AudioGuide | None:
    """Load guide.json from a guide directory. Returns None if missing."""
    data = load_artifact(guide_dir, GUIDE_FILENAME)
    if data is None:
        return None
    return guide_from_dict(data)


def list_guides(output_base: str = OUTPUT_DIR) -> list[str]:
    """Sorted slugs of the directories under output_base holding a guide.json."""
    if not os.path.exists(output_base):
        return []
    guides = []
    for name in os.listdir(output_base):
        if os.path.exists(os.path.join(output_base, name, GUIDE_FILENAME)):
            guides.append(name)
    return sorted(guides)
