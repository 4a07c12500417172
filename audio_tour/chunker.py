"""Split narration text into TTS-sized chunks at sentence boundaries."""

import logging
import math
import re

from audio_tour.constants import CHUNK_MIN_CHARS, CHUNK_MAX_CHARS, CHUNK_MIN_KEEP_CHARS
from audio_tour.sanitizer import sanitize

logger = logging.getLogger(__name__)

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")
_HEADING_RE = re.compile(r"^#{1,6}[ \t]+(.+?)[ \t#]*$", re.MULTILINE)


def split_sections(text: str) -> list[tuple[str | None, str]]:
    """Split narration on markdown "#" headings into (title, body) pairs.

    Text before the first heading is returned with title None. Sections with
    an empty body are skipped.
    """
    sections = []
    title = None
    pos = 0
    for match in _HEADING_RE.finditer(text):
        body = text[pos:match.start()]
        if body.strip():
            sections.append((title, body.strip()))
        title = match.group(1).strip()
        pos = match.end()

    body = text[pos:]
    if body.strip():
        sections.append((title, body.strip()))
    return sections


def count_words(text: str) -> int:
    return len(text.split())


def split_sentences(text: str) -> list[str]:
    """Split text after runs of terminal punctuation (. ! ?).

    Text without any terminal punctuation is returned as one unit. A tail
    after the last terminator is kept as its own unit.
    """
    units = []
    last_end = 0
    for match in _SENTENCE_RE.finditer(text):
        units.append(match.group(0))
        last_end = match.end()

    if not units:
        return [text]

    tail = text[last_end:]
    if tail.strip():
        units.append(tail)
    return units


def split_long_unit(unit: str, max_chars: int) -> list[str]:
    """Split an over-long sentence at word boundaries.

    A single word longer than max_chars is hard-cut into max_chars pieces.
    """
    parts = []
    current = ""

    for word in unit.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            parts.append(current)
        while len(word) > max_chars:
            parts.append(word[:max_chars])
            word = word[max_chars:]
        current = word

    if current:
        parts.append(current)
    return parts


def _meets_minimum(chunk: str, min_chars: int, min_words: int | None) -> bool:
    if len(chunk) >= min_chars:
        return True
    return min_words is not None and count_words(chunk) >= min_words


def split_into_chunks(
    text: str | None,
    min_chars: int = CHUNK_MIN_CHARS,
    max_chars: int = CHUNK_MAX_CHARS,
    min_words: int | None = None,
    max_words: int | None = None,
) -> list[str]:
    """Sanitize text and split it into chunks of at most max_chars characters.

    Sentences are packed greedily into a running chunk while the result stays
    within max_chars (and max_words, if given). min_chars / min_words are
    preferences only: a chunk that cannot grow any further is emitted even
    below the minimum. A final chunk shorter than CHUNK_MIN_KEEP_CHARS is
    dropped, and a short last chunk is folded into the previous one when the
    merge still fits. Returns [] for empty input; never raises for any text.
    """
    if max_chars < 1:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    # Boundaries are computed on the fully cleaned text, never a truncated one
    sanitized = sanitize(text, max_length=math.inf)
    if not sanitized:
        return []

    chunks = []
    current = ""

    for unit in split_sentences(sanitized):
        unit = unit.strip()
        if not unit:
            continue

        parts = split_long_unit(unit, max_chars) if len(unit) > max_chars else [unit]

        for part in parts:
            candidate = f"{current} {part}" if current else part
            within_chars = len(candidate) <= max_chars
            within_words = max_words is None or count_words(candidate) <= max_words

            if within_chars and within_words:
                current = candidate
                continue

            if not current:
                # The part alone breaks the word ceiling; emit it on its own
                chunks.append(part[:max_chars])
                continue

            if not _meets_minimum(current, min_chars, min_words):
                logger.debug("Closing chunk below minimum (%d chars)", len(current))
            chunks.append(current)
            current = part

    current = current.strip()
    if len(current) >= CHUNK_MIN_KEEP_CHARS:
        chunks.append(current)
    elif current:
        logger.debug("Dropping trailing fragment: %r", current)

    if not chunks:
        return [sanitized[:max_chars].strip()]

    if len(chunks) > 1 and len(chunks[-1]) < min_chars // 2:
        merged = f"{chunks[-2]} {chunks[-1]}"
        if len(merged) <= max_chars:
            chunks[-2:] = [merged]

    return chunks
