"""Shared fixtures for audio tour tests."""

import pytest
from pydub import AudioSegment

from audio_tour.models import AudioGuide, Chapter, PlaybackStatus, Segment


@pytest.fixture
def tiny_wav(tmp_path):
    """Generate a 100ms silent WAV for testing."""
    path = tmp_path / "test.wav"
    silence = AudioSegment.silent(duration=100)
    silence.export(str(path), format="wav")
    return path


class FakeHandle:
    """In-memory playback handle that records what the engine asked of it."""

    def __init__(self, uri, start_position_ms, on_progress):
        self.uri = uri
        self.start_position_ms = start_position_ms
        self.position_ms = start_position_ms
        self.on_progress = on_progress
        self.playing = False
        self.rate = 1.0
        self.stopped = False
        self.unloaded = False
        self.positions = []
        self.seek_error = None
        self.cleanup_error = None

    async def play(self):
        self.playing = True

    async def pause(self):
        self.playing = False

    async def stop(self):
        self.playing = False
        self.stopped = True
        if self.cleanup_error:
            raise self.cleanup_error

    async def unload(self):
        self.unloaded = True
        if self.cleanup_error:
            raise self.cleanup_error

    async def set_position(self, position_ms):
        if self.seek_error:
            raise self.seek_error
        self.positions.append(position_ms)
        self.position_ms = position_ms

    async def set_rate(self, rate):
        self.rate = rate

    def emit(self, position_ms=None, did_finish=False, error=None, is_playing=None):
        """Deliver a progress event the way a backend timer would."""
        if position_ms is not None:
            self.position_ms = position_ms
        if is_playing is None:
            is_playing = self.playing and not did_finish
        self.on_progress(PlaybackStatus(
            position_ms=self.position_ms,
            is_playing=is_playing,
            did_finish=did_finish,
            error=error,
        ))


class FakeBackend:
    """Creates FakeHandles; URIs in fail_uris raise, and gate can hold creation open."""

    def __init__(self):
        self.handles = []
        self.created = []
        self.fail_uris = set()
        self.gate = None
        self.progress_intervals = []

    async def create(self, uri, start_position_ms, on_progress, progress_interval_ms=None):
        self.created.append((uri, start_position_ms))
        self.progress_intervals.append(progress_interval_ms)
        if self.gate is not None:
            await self.gate.wait()
        if uri in self.fail_uris:
            raise RuntimeError(f"Cannot decode {uri}")
        handle = FakeHandle(uri, start_position_ms, on_progress)
        self.handles.append(handle)
        return handle

    @property
    def last(self):
        return self.handles[-1]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def two_segment_guide():
    """Two back-to-back segments: a covers 0-10s, b covers 10-25s."""
    return AudioGuide(
        title="Harbour Walk",
        duration=25,
        segments=[
            Segment(uri="a.mp3", start_time=0, duration=10),
            Segment(uri="b.mp3", start_time=10, duration=15),
        ],
    )


@pytest.fixture
def tour_guide():
    """A 40-minute guide in three segments starting at 0, 900 and 2100s."""
    return AudioGuide(
        title="Old Town",
        duration=2400,
        segments=[
            Segment(uri="intro.mp3", start_time=0, duration=900),
            Segment(uri="market.mp3", start_time=900, duration=1200),
            Segment(uri="cathedral.mp3", start_time=2100, duration=300),
        ],
        chapters=[
            Chapter(title="Welcome", timestamp=0, id="chapter_1"),
            Chapter(title="Market Square", timestamp=900, id="chapter_2"),
            Chapter(title="Cathedral", timestamp=2100, id="chapter_3"),
        ],
    )
