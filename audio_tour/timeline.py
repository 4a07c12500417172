"""Guide timeline math: segment lookup, durations and chapter spans."""

import math

from pydub import AudioSegment

from audio_tour.constants import DEFAULT_GUIDE_DURATION_MS, ESTIMATE_MIN_SEGMENT_SECONDS
from audio_tour.models import AudioGuide, Chapter, Segment


def resolve_segment_index(segments: list[Segment], global_ms: float) -> int:
    """Index of the last segment starting at or before global_ms.

    Times before the first segment (or an empty list) resolve to 0.
    """
    global_ms = max(0, global_ms)
    for i in range(len(segments) - 1, -1, -1):
        if global_ms >= segments[i].start_time * 1000:
            return i
    return 0


def local_position_ms(segment: Segment | None, global_ms: float) -> int:
    """Translate a global timeline position into the segment's own timeline."""
    if segment is None:
        return int(global_ms)
    return int(max(0, global_ms - segment.start_time * 1000))


def build_segments(guide: AudioGuide) -> list[Segment]:
    """Playable segments for a guide, sorted by start time.

    Segments without a URI are dropped. A guide with no usable segments gets
    one segment built from its audio_url covering the nominal duration.
    """
    cleaned = [
        Segment(uri=str(s.uri), start_time=s.start_time, duration=s.duration)
        for s in guide.segments
        if s.uri
    ]
    cleaned.sort(key=lambda s: s.start_time)
    if cleaned:
        return cleaned

    duration = guide.duration if guide.duration and guide.duration > 0 else 60
    return [Segment(uri=guide.audio_url, start_time=0, duration=max(1, round(duration)))]


def guide_duration_ms(guide: AudioGuide, segments: list[Segment] | None = None) -> int:
    """Total timeline length in ms.

    Precedence: the guide's nominal duration when positive, else the end of
    the last segment, else DEFAULT_GUIDE_DURATION_MS.
    """
    if guide.duration and math.isfinite(guide.duration) and guide.duration > 0:
        return int(guide.duration * 1000)

    if segments is None:
        segments = [s for s in guide.segments if s.uri]
    if segments:
        end = max(s.end_time for s in segments)
        if end > 0:
            return int(end * 1000)

    return DEFAULT_GUIDE_DURATION_MS


def chapter_duration(chapters: list[Chapter], index: int, total_seconds: float) -> float:
    """Span of a chapter in seconds.

    An explicit positive duration wins. Otherwise the chapter runs until the
    next chapter starts, or until the end of the timeline for the last one.
    Never negative.
    """
    chapter = chapters[index]
    if chapter.duration is not None and chapter.duration > 0:
        return chapter.duration

    if index + 1 < len(chapters):
        end = chapters[index + 1].timestamp
    else:
        end = total_seconds
    return max(0.0, end - chapter.timestamp)


def measure_durations(paths: list[str]) -> list[float]:
    """Decode each file and return its length in seconds."""
    return [len(AudioSegment.from_file(path)) / 1000 for path in paths]


def build_timeline(uris: list[str], durations: list[float]) -> list[Segment]:
    """Lay segments end to end starting at 0."""
    if len(uris) != len(durations):
        raise ValueError(f"{len(uris)} uris but {len(durations)} durations")

    segments = []
    cursor = 0.0
    for uri, duration in zip(uris, durations):
        segments.append(Segment(uri=uri, start_time=cursor, duration=duration))
        cursor += duration
    return segments


def estimate_durations(chunks: list[str], total_seconds: float) -> list[float]:
    """Share total_seconds across chunks in proportion to their length.

    Each chunk gets at least ESTIMATE_MIN_SEGMENT_SECONDS; the last chunk
    absorbs whatever remains so the estimates end at total_seconds.
    """
    if not chunks:
        return []

    total_chars = sum(len(c) for c in chunks)
    durations = []
    for chunk in chunks:
        ratio = len(chunk) / total_chars if total_chars > 0 else 1 / len(chunks)
        durations.append(max(ESTIMATE_MIN_SEGMENT_SECONDS, round(total_seconds * ratio)))

    start_of_last = sum(durations[:-1])
    durations[-1] = max(ESTIMATE_MIN_SEGMENT_SECONDS, total_seconds - start_of_last)
    return [float(d) for d in durations]


def format_time(milliseconds) -> str:
    """Format ms as m:ss or h:mm:ss; "--:--" for missing or invalid values."""
    if not isinstance(milliseconds, (int, float)) or isinstance(milliseconds, bool):
        return "--:--"
    if not math.isfinite(milliseconds) or milliseconds < 0:
        return "--:--"

    total_seconds = int(milliseconds // 1000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
