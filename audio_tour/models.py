"""Data models for audio guides and playback."""

from dataclasses import dataclass, field

from audio_tour.constants import PLAYBACK_SPEEDS

LOADING = "loading"
READY = "ready"
ERROR = "error"


@dataclass
class Segment:
    uri: str
    start_time: float  # seconds on the guide timeline
    duration: float    # seconds

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass
class Chapter:
    title: str
    timestamp: float               # seconds on the guide timeline
    duration: float | None = None
    id: str = ""


@dataclass
class AudioGuide:
    title: str
    duration: float = 0.0          # nominal seconds, may disagree with segments
    audio_url: str = ""            # single-file fallback when there are no segments
    segments: list[Segment] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    description: str = ""
    script: str | None = None


@dataclass
class PlaybackStatus:
    """Progress event delivered by a playback backend."""

    position_ms: int = 0
    is_playing: bool = False
    did_finish: bool = False
    error: str | None = None


@dataclass
class PlaybackState:
    active_segment_index: int = 0
    local_position_ms: int = 0
    global_position_ms: int = 0
    is_playing: bool = False
    is_seeking: bool = False
    playback_speed: float = PLAYBACK_SPEEDS[0]
    load_state: str = LOADING
    error: str | None = None


@dataclass
class CachedAudio:
    uri: str
    from_cache: bool
    local: bool
