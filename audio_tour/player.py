"""Continuous playback of a guide made of separately loaded audio segments.

PlaybackEngine presents one timeline (0..duration_ms) to the caller while only
one segment's audio is loaded at a time. Positions the caller sees are global;
the backend handle only ever sees positions local to its own segment.

All methods run on one asyncio event loop. Every load takes a fresh token;
any continuation that resumes after its token was superseded, or after
close(), drops its result instead of touching engine state.

The engine plays nothing itself. Callers pass a backend object with an async
create() that wraps their audio library and returns a handle per segment.
"""

import asyncio
import functools
import logging
from typing import Callable, Protocol

from audio_tour.cache import AudioCache
from audio_tour.constants import (
    PLAYBACK_SPEEDS,
    PROGRESS_INTERVAL_MS,
    SEEK_DEBOUNCE_MS,
    SEEK_RELEASE_MS,
    SKIP_SECONDS,
)
from audio_tour.models import (
    ERROR,
    LOADING,
    READY,
    AudioGuide,
    Chapter,
    PlaybackState,
    PlaybackStatus,
)
from audio_tour.timeline import (
    build_segments,
    guide_duration_ms,
    local_position_ms,
    resolve_segment_index,
)

logger = logging.getLogger(__name__)


class SeekInterruptedError(Exception):
    """A seek was superseded by a newer one before it completed."""


def is_interrupted(error: BaseException) -> bool:
    return isinstance(error, SeekInterruptedError) or "interrupted" in str(error).lower()


class AudioHandle(Protocol):
    """One decoded audio asset, positioned in its own (local) time."""

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def stop(self) -> None: ...

    async def unload(self) -> None: ...

    async def set_position(self, position_ms: int) -> None: ...

    async def set_rate(self, rate: float) -> None: ...


class AudioBackend(Protocol):
    """Creates handles; on_progress is called every progress_interval_ms while loaded."""

    async def create(
        self,
        uri: str,
        start_position_ms: int,
        on_progress: Callable[[PlaybackStatus], None],
        progress_interval_ms: int = PROGRESS_INTERVAL_MS,
    ) -> AudioHandle: ...


class PlaybackEngine:
    """Drives a single play-head across a guide's segments."""

    def __init__(
        self,
        guide: AudioGuide,
        backend: AudioBackend,
        cache: AudioCache | None = None,
    ):
        self.guide = guide
        self.backend = backend
        self.cache = cache
        self.segments = build_segments(guide)
        self.duration_ms = guide_duration_ms(guide, self.segments)
        self.state = PlaybackState()

        self._handle: AudioHandle | None = None
        self._load_token = 0
        self._finished_token = None
        self._closed = False
        self._tasks: set[asyncio.Task] = set()
        self._scrub_task: asyncio.Task | None = None
        self._scrub_generation = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None and self.state.load_state == READY

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- loading ---

    async def open(self) -> None:
        """Load the first segment, paused at 0."""
        await self.load(0, should_play=False, global_position_ms=0)

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self._load_token

    async def load(
        self,
        index: int,
        should_play: bool = False,
        global_position_ms: float | None = None,
    ) -> None:
        """Replace the loaded asset with segment `index`.

        Starts at global_position_ms (default: the segment's start) and plays
        if should_play. Load failures set load_state to ERROR; they are not
        raised.
        """
        self._load_token += 1
        token = self._load_token
        state = self.state

        previous = self._handle
        self._handle = None
        if previous is not None:
            await self._release(previous)

        if not self._is_current(token):
            return

        segment = self.segments[index] if 0 <= index < len(self.segments) else None
        if segment is None or not segment.uri:
            logger.error("No playable audio for segment %d of %d", index, len(self.segments))
            state.load_state = ERROR
            state.error = f"Segment {index} has no audio"
            state.is_playing = False
            return

        if global_position_ms is None:
            global_position_ms = segment.start_time * 1000
        local_ms = local_position_ms(segment, global_position_ms)

        state.load_state = LOADING
        state.error = None
        state.active_segment_index = index
        state.global_position_ms = int(global_position_ms)
        state.local_position_ms = local_ms

        logger.info("Loading segment %d (%s) at %dms", index, segment.uri, local_ms)

        try:
            uri = segment.uri
            if self.cache is not None:
                uri = (await self.cache.resolve(uri)).uri
            if not self._is_current(token):
                return
            handle = await self.backend.create(
                uri,
                start_position_ms=local_ms,
                on_progress=functools.partial(self._on_progress, token),
                progress_interval_ms=PROGRESS_INTERVAL_MS,
            )
        except Exception as e:
            if self._is_current(token):
                logger.error("Failed to load segment %d: %s", index, e)
                state.load_state = ERROR
                state.error = str(e)
                state.is_playing = False
            return

        if not self._is_current(token):
            logger.debug("Discarding stale load of segment %d", index)
            await self._release(handle)
            return

        self._handle = handle

        try:
            await handle.set_rate(state.playback_speed)
        except Exception as e:
            logger.warning("Could not apply playback speed %s: %s", state.playback_speed, e)

        if not self._is_current(token):
            return

        state.load_state = READY
        state.is_playing = False

        if should_play:
            try:
                await handle.play()
            except Exception as e:
                logger.error("Could not start playback of segment %d: %s", index, e)
                return
            if self._is_current(token):
                state.is_playing = True

    async def _release(self, handle: AudioHandle) -> None:
        """Stop and unload a handle; failures are logged, never raised."""
        for name in ("stop", "unload"):
            try:
                await getattr(handle, name)()
            except Exception as e:
                logger.warning("Cleanup %s failed: %s", name, e)

    def _on_progress(self, token: int, status: PlaybackStatus) -> None:
        if not self._is_current(token):
            return
        if status.error:
            logger.warning("Playback status error: %s", status.error)
            return

        state = self.state
        index = state.active_segment_index
        segment = self.segments[index]

        if not state.is_seeking:
            state.local_position_ms = status.position_ms
            state.global_position_ms = int(segment.start_time * 1000) + status.position_ms
        state.is_playing = status.is_playing

        if not status.did_finish or self._finished_token == token:
            return
        self._finished_token = token

        next_index = index + 1
        if next_index < len(self.segments):
            logger.info("Segment %d finished, advancing to %d", index, next_index)
            start_ms = self.segments[next_index].start_time * 1000
            self._spawn(self.load(next_index, should_play=True, global_position_ms=start_ms))
        else:
            logger.info("Playback finished")
            state.is_playing = False

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        """Wait for background work (auto-advance, scrub seeks) to finish."""
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._tasks if t is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # --- transport controls ---

    async def toggle_play_pause(self) -> None:
        """Flip play/pause; does nothing until a segment is loaded."""
        handle = self._handle
        if handle is None or self.state.load_state != READY:
            return
        try:
            if self.state.is_playing:
                await handle.pause()
                self.state.is_playing = False
            else:
                await handle.play()
                self.state.is_playing = True
        except Exception as e:
            logger.error("Play/pause failed: %s", e)

    async def seek(self, global_ms: float) -> None:
        """Move the play-head, keeping the current play/pause intent.

        Inside the active segment this is an in-place position change; a
        different segment is loaded from scratch.
        """
        global_ms = max(0, global_ms)
        index = resolve_segment_index(self.segments, global_ms)
        state = self.state

        try:
            if index != state.active_segment_index or self._handle is None:
                await self.load(index, should_play=state.is_playing, global_position_ms=global_ms)
                return

            local_ms = local_position_ms(self.segments[index], global_ms)
            await self._handle.set_position(local_ms)
            state.local_position_ms = local_ms
            state.global_position_ms = int(global_ms)
        except Exception as e:
            if is_interrupted(e):
                logger.debug("Seek to %dms interrupted", global_ms)
            else:
                logger.error("Seek to %dms failed: %s", global_ms, e)

    async def seek_and_play(self, global_ms: float) -> None:
        """Seek and make sure playback is running afterwards."""
        global_ms = max(0, global_ms)
        index = resolve_segment_index(self.segments, global_ms)
        state = self.state

        try:
            if index != state.active_segment_index or not self.is_loaded:
                await self.load(index, should_play=True, global_position_ms=global_ms)
                return

            handle = self._handle
            local_ms = local_position_ms(self.segments[index], global_ms)
            await handle.set_position(local_ms)
            state.local_position_ms = local_ms
            state.global_position_ms = int(global_ms)
            if not state.is_playing:
                await handle.play()
                state.is_playing = True
        except Exception as e:
            if is_interrupted(e):
                logger.debug("Seek to %dms interrupted", global_ms)
            else:
                logger.error("Seek to %dms failed: %s", global_ms, e)

    async def skip_forward(self, seconds: float = SKIP_SECONDS) -> None:
        target = min(self.duration_ms, self.state.global_position_ms + seconds * 1000)
        await self.seek_and_play(target)

    async def skip_backward(self, seconds: float = SKIP_SECONDS) -> None:
        target = max(0, self.state.global_position_ms - seconds * 1000)
        await self.seek_and_play(target)

    async def jump_to_chapter(self, chapter: Chapter) -> None:
        await self.seek_and_play(chapter.timestamp * 1000)

    # --- scrubbing ---

    def begin_scrub(self) -> None:
        """Start a drag gesture: progress events stop moving the position."""
        self._scrub_generation += 1
        self.state.is_seeking = True
        if self._scrub_task is not None:
            self._scrub_task.cancel()
            self._scrub_task = None

    def scrub_to(self, global_ms: float) -> None:
        if self.state.is_seeking:
            self.state.global_position_ms = int(max(0, global_ms))

    def end_scrub(self, global_ms: float) -> None:
        """Release the drag; seeks after a short debounce."""
        if self._scrub_task is not None:
            self._scrub_task.cancel()
        self._scrub_task = self._spawn(self._finish_scrub(global_ms, self._scrub_generation))

    async def _finish_scrub(self, global_ms: float, generation: int) -> None:
        await asyncio.sleep(SEEK_DEBOUNCE_MS / 1000)
        # Past the debounce the seek runs to completion
        self._scrub_task = None
        await self.seek(global_ms)
        await asyncio.sleep(SEEK_RELEASE_MS / 1000)
        if generation == self._scrub_generation:
            self.state.is_seeking = False

    # --- speed / stop / close ---

    async def change_speed(self) -> float:
        """Advance 1x -> 1.5x -> 2x -> 1x and apply it without moving the play-head."""
        try:
            i = PLAYBACK_SPEEDS.index(self.state.playback_speed)
        except ValueError:
            i = -1
        speed = PLAYBACK_SPEEDS[(i + 1) % len(PLAYBACK_SPEEDS)]
        self.state.playback_speed = speed

        if self._handle is not None:
            try:
                await self._handle.set_rate(speed)
            except Exception as e:
                logger.error("Could not change speed to %s: %s", speed, e)
        return speed

    async def stop(self) -> None:
        """Rewind to 0 and reload the first segment paused."""
        state = self.state
        state.is_playing = False
        state.active_segment_index = 0
        state.global_position_ms = 0
        state.local_position_ms = 0
        await self.load(0, should_play=False, global_position_ms=0)

    async def close(self) -> None:
        """Stop playback and release every resource. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._load_token += 1

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        state = self.state
        state.is_playing = False
        state.is_seeking = False
        state.global_position_ms = 0
        state.local_position_ms = 0

        handle = self._handle
        self._handle = None
        if handle is not None:
            await self._release(handle)
        logger.info("Player closed")
