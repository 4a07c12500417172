"""Chunk synthesis via edge-tts with retry logic."""

import asyncio
import os
import time

import edge_tts

from audio_tour.constants import (
    TTS_MIN_CHARS,
    TTS_PROVIDER_MAX_CHARS,
    TTS_RATE,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
    TTS_VOICE,
)
from audio_tour.sanitizer import sanitize


def generate_single(text: str, voice: str, output_path: str, rate: str = TTS_RATE) -> None:
    """Generate a single TTS clip with retry logic.

    Text is sanitized to the provider ceiling first; anything shorter than
    TTS_MIN_CHARS after cleaning raises ValueError without a request. Retries
    on network errors, HTTP errors, or 0-byte output files.
    """
    cleaned = sanitize(text, max_length=TTS_PROVIDER_MAX_CHARS)
    if len(cleaned) < TTS_MIN_CHARS:
        raise ValueError(f"Text too short or invalid after sanitization: {text[:50]!r}")

    last_error = None
    for attempt in range(TTS_RETRY_COUNT):
        try:
            communicate = edge_tts.Communicate(cleaned, voice, rate=rate)
            asyncio.run(communicate.save(output_path))

            if os.path.exists(output_path) and os.path.getsize(output_path) > 0:
                return

            last_error = Exception(f"TTS produced 0-byte file for: {cleaned[:50]}...")
        except Exception as e:
            last_error = e

        if attempt < TTS_RETRY_COUNT - 1:
            delay = TTS_RETRY_BASE_DELAY * (2 ** attempt)
            time.sleep(delay)

    raise last_error


def chunk_filename(index: int) -> str:
    return f"chunk_{index:03d}.mp3"


def generate_tts(
    chunks: list[str],
    output_dir: str,
    voice: str = TTS_VOICE,
    rate: str = TTS_RATE,
) -> list[str]:
    """Generate one audio file per chunk, in order.

    Returns list of output file paths. Existing non-empty files are reused,
    so an interrupted run picks up where it stopped. Prints progress counter.
    """
    total = len(chunks)
    paths = []

    for i, chunk in enumerate(chunks):
        filename = chunk_filename(i)
        output_path = os.path.join(output_dir, filename)

        if os.path.exists(output_path) and os.path.getsize(output_path) > 0:
            print(f"  [skip] Chunk {i + 1}/{total}: {filename}")
            paths.append(output_path)
            continue

        print(f"  Generating chunk {i + 1}/{total}: {filename} ({len(chunk)} chars)")
        generate_single(chunk, voice, output_path, rate=rate)
        paths.append(output_path)

    return paths
