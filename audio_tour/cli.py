"""CLI interface with subcommand routing."""

import argparse
import asyncio
import json
import logging
import math
import os
import shutil
import sys

from audio_tour.artifacts import (
    init_output_dir,
    list_guides,
    load_guide,
    save_guide,
    slug_from_path,
)
from audio_tour.cache import AudioCache, is_remote
from audio_tour.chunker import count_words, split_into_chunks, split_sections
from audio_tour.constants import (
    CACHE_DIR,
    CHUNK_MAX_CHARS,
    CHUNK_MIN_CHARS,
    OUTPUT_DIR,
    SANITIZE_MAX_LENGTH,
    TTS_RATE,
    TTS_VOICE,
    VERSION,
)
from audio_tour.models import AudioGuide, Chapter
from audio_tour.sanitizer import sanitize
from audio_tour.timeline import (
    build_segments,
    build_timeline,
    chapter_duration,
    estimate_durations,
    format_time,
    guide_duration_ms,
    local_position_ms,
    measure_durations,
    resolve_segment_index,
)
from audio_tour.tts import generate_tts


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required to measure segment durations.", file=sys.stderr)
        print("Install it, or pass --minutes to estimate durations instead.", file=sys.stderr)
        raise SystemExit(1)


def _read_text(path: str) -> str:
    if not os.path.exists(path):
        print(f"Error: File not found: {path}", file=sys.stderr)
        raise SystemExit(1)

    with open(path) as f:
        text = f.read()

    if not text.strip():
        print(f"Error: File is empty: {path}", file=sys.stderr)
        raise SystemExit(1)
    return text


def _get_guide(slug: str) -> tuple[str, AudioGuide]:
    """Get guide directory and manifest, verify it exists."""
    guide_dir = os.path.join(OUTPUT_DIR, slug)
    guide = load_guide(guide_dir)
    if guide is None:
        print(f"Error: Guide '{slug}' not found.", file=sys.stderr)
        print("Run 'audio-tour build <file>' to create a guide.", file=sys.stderr)
        raise SystemExit(1)
    return guide_dir, guide


def cmd_sanitize(args):
    """Print the TTS-safe version of a text file."""
    text = _read_text(args.file)
    max_length = args.max_length if args.max_length > 0 else math.inf
    print(sanitize(text, max_length=max_length))


def cmd_chunk(args):
    """Print the chunks a text file would be synthesized as."""
    text = _read_text(args.file)
    chunks = split_into_chunks(
        text,
        min_chars=args.min_chars,
        max_chars=args.max_chars,
        min_words=args.min_words,
        max_words=args.max_words,
    )

    if args.json:
        print(json.dumps(chunks, indent=2))
        return

    for i, chunk in enumerate(chunks):
        print(f"[{i + 1}/{len(chunks)}] {len(chunk)} chars, {count_words(chunk)} words")
        print(chunk)
        print()
    print(f"{len(chunks)} chunks")


def cmd_build(args):
    """Chunk a narration script, synthesize it and write guide.json."""
    text = _read_text(args.file)
    if args.minutes is None:
        _check_ffmpeg()

    # "# Heading" lines start chapters; chapters begin on a fresh chunk
    chunks = []
    chapter_starts = []
    for title, body in split_sections(text):
        section_chunks = split_into_chunks(body, min_chars=args.min_chars, max_chars=args.max_chars)
        if not section_chunks:
            continue
        if title:
            chapter_starts.append((title, len(chunks)))
        chunks.extend(section_chunks)

    if not chunks:
        print(f"Error: No narration left after sanitization: {args.file}", file=sys.stderr)
        raise SystemExit(1)

    guide_dir = init_output_dir(args.file, output_base=OUTPUT_DIR)
    seg_dir = os.path.join(guide_dir, "segments")

    print(f"Generating TTS for {len(chunks)} chunks...")
    paths = generate_tts(chunks, seg_dir, voice=args.voice, rate=args.rate)

    if args.minutes is not None:
        durations = estimate_durations(chunks, args.minutes * 60)
    else:
        durations = measure_durations(paths)
    segments = build_timeline([os.path.abspath(p) for p in paths], durations)

    chapters = [
        Chapter(title=title, timestamp=segments[index].start_time, id=f"chapter_{n + 1}")
        for n, (title, index) in enumerate(chapter_starts)
    ]

    slug = slug_from_path(args.file)
    guide = AudioGuide(
        title=args.title or slug.replace("_", " ").title(),
        duration=args.minutes * 60 if args.minutes is not None else segments[-1].end_time,
        audio_url=segments[0].uri,
        segments=segments,
        chapters=chapters,
        script=text,
    )
    path = save_guide(guide_dir, guide)

    print(f"Built {len(segments)} segments, {format_time(guide.duration * 1000)} total")
    print(f"Done: {path}")


def cmd_info(args):
    """Show a guide's timeline."""
    _, guide = _get_guide(args.slug)
    segments = build_segments(guide)
    total_ms = guide_duration_ms(guide, segments)

    print(f"Guide:    {guide.title}")
    print(f"Duration: {format_time(total_ms)}")
    print(f"Segments: {len(segments)}")
    for i, seg in enumerate(segments):
        name = os.path.basename(seg.uri) if not is_remote(seg.uri) else seg.uri
        print(
            f"  [{i:>3}] {format_time(seg.start_time * 1000):>8}"
            f"  +{format_time(seg.duration * 1000):<8} {name}"
        )

    if guide.chapters:
        print("Chapters:")
        for i, chapter in enumerate(guide.chapters):
            span = chapter_duration(guide.chapters, i, total_ms / 1000)
            span_text = format_time(span * 1000) if span > 0 else "--:--"
            print(f"  {format_time(chapter.timestamp * 1000):>8}  {chapter.title} ({span_text})")

    if args.at is not None:
        global_ms = args.at * 1000
        index = resolve_segment_index(segments, global_ms)
        local_ms = local_position_ms(segments[index], global_ms)
        print(f"At {format_time(global_ms)}: segment {index}, offset {format_time(local_ms)}")


async def _warm_cache(cache: AudioCache, uris: list[str]):
    return [await cache.resolve(uri) for uri in uris]


def cmd_cache(args):
    """Download a guide's remote segments into the local cache."""
    _, guide = _get_guide(args.slug)
    remote = [s.uri for s in guide.segments if is_remote(s.uri)]
    if not remote:
        print("No remote segments to cache.")
        return

    cache = AudioCache(args.cache_dir)
    results = asyncio.run(_warm_cache(cache, remote))

    failed = 0
    for uri, result in zip(remote, results):
        if result.from_cache:
            marker = "[hit] "
        elif result.local:
            marker = "[new] "
        else:
            marker = "[fail]"
            failed += 1
        print(f"  {marker} {uri}")

    print(f"Cached {len(remote) - failed}/{len(remote)} segments in {args.cache_dir}")


def cmd_list(args):
    """List all guides."""
    guides = list_guides(output_base=OUTPUT_DIR)
    if not guides:
        print("No guides found.")
        return
    print("Guides:")
    for name in guides:
        print(f"  {name}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="audio-tour",
        description="Audio Tour: narration chunking, synthesis and guide timelines",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress details")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sanitize
    sanitize_parser = subparsers.add_parser("sanitize", help="Print TTS-safe text")
    sanitize_parser.add_argument("file", help="Path to the narration text file")
    sanitize_parser.add_argument(
        "--max-length", type=int, default=SANITIZE_MAX_LENGTH,
        help="Truncate to this many characters (0 = no limit)",
    )
    sanitize_parser.set_defaults(func=cmd_sanitize)

    # chunk
    chunk_parser = subparsers.add_parser("chunk", help="Split text into TTS chunks")
    chunk_parser.add_argument("file", help="Path to the narration text file")
    chunk_parser.add_argument("--min-chars", type=int, default=CHUNK_MIN_CHARS)
    chunk_parser.add_argument("--max-chars", type=int, default=CHUNK_MAX_CHARS)
    chunk_parser.add_argument("--min-words", type=int, default=None)
    chunk_parser.add_argument("--max-words", type=int, default=None)
    chunk_parser.add_argument("--json", action="store_true", help="Print chunks as a JSON list")
    chunk_parser.set_defaults(func=cmd_chunk)

    # build
    build_parser = subparsers.add_parser("build", help="Synthesize a guide from a narration file")
    build_parser.add_argument("file", help="Path to the narration text file")
    build_parser.add_argument("--title", help="Guide title (default: from filename)")
    build_parser.add_argument("--voice", default=TTS_VOICE, help="edge-tts voice name")
    build_parser.add_argument("--rate", default=TTS_RATE, help="Relative speech rate, e.g. -10%%")
    build_parser.add_argument(
        "--minutes", type=float, default=None,
        help="Nominal guide length; segment durations are estimated instead of measured",
    )
    build_parser.add_argument("--min-chars", type=int, default=CHUNK_MIN_CHARS)
    build_parser.add_argument("--max-chars", type=int, default=CHUNK_MAX_CHARS)
    build_parser.set_defaults(func=cmd_build)

    # info
    info_parser = subparsers.add_parser("info", help="Show a guide's segments and chapters")
    info_parser.add_argument("slug", help="Guide slug (from filename)")
    info_parser.add_argument("--at", type=float, default=None, help="Resolve a time in seconds")
    info_parser.set_defaults(func=cmd_info)

    # cache
    cache_parser = subparsers.add_parser("cache", help="Download remote segments for offline playback")
    cache_parser.add_argument("slug", help="Guide slug")
    cache_parser.add_argument("--cache-dir", default=CACHE_DIR)
    cache_parser.set_defaults(func=cmd_cache)

    # list
    list_parser = subparsers.add_parser("list", help="List all guides")
    list_parser.set_defaults(func=cmd_list)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
