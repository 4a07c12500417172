"""Clean narration text before it is sent to a TTS provider.

The cleaner is an ordered list of small string transforms. Each one is a plain
function so the removal rules can be read and tested one at a time. The whole
list is re-applied until the text stops changing, which makes sanitize()
idempotent even when one removal exposes a pattern an earlier step handles
(a symbol inside "www." only goes at the whitelist step, after URLs were
already stripped).
"""

import math
import re
import unicodedata

from audio_tour.constants import SANITIZE_MAX_LENGTH

SQL_KEYWORDS = (
    "select", "insert", "update", "delete", "drop", "create",
    "alter", "exec", "execute", "script", "union", "declare",
)

_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_UNDERLINE_RE = re.compile(r"__([^_]+)__")
_CODE_RE = re.compile(r"`([^`]+)`")
_LINK_RE = re.compile(r"\[(.*?)\]\((.*?)\)")

_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_WWW_RE = re.compile(r"www\.\S+", re.IGNORECASE)

_SCRIPT_BLOCK_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)

_UNICODE_SPACE_RE = re.compile("[\u00a0\u2000-\u200a\u2028\u2029\u202f\u205f\u3000]")
_SMART_QUOTE_RE = re.compile("[\u2018-\u201f\u2032\u2033]")
_DASH_RE = re.compile("[\u2012-\u2015]")

# Keeps \t \n \r and the other ASCII whitespace; list markers need line starts.
_CONTROL_RE = re.compile("[\x00-\x08\x0e-\x1f\x7f-\x9f]")

_SYMBOL_BLOCK_RE = re.compile("[\u2000-\u206f\u2e00-\u2e7f\ufff0-\uffff]")
_ASCII_SYMBOL_RE = re.compile(r"[<>{}\[\]\\`$%&*+=~^#@|_]")

_EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\U0001F900-\U0001F9FF"  # supplemental pictographs
    "\u2600-\u26ff"          # misc symbols
    "\u2700-\u27bf"          # dingbats
    "]"
)

_NON_WHITELIST_RE = re.compile(r"[^A-Za-z0-9\s.,!?;:()'\"\-]")

_SQL_KEYWORD_RE = re.compile(r"\b(?:%s)\b" % "|".join(SQL_KEYWORDS), re.IGNORECASE)

_LIST_MARKER_RE = re.compile(r"^\s*(?:(?:[-*\u2022]|\d+\.)\s+)+", re.MULTILINE)

_REPEATED_PUNCT_RE = re.compile(r"([,!?;:])\1+")
_LONG_DOTS_RE = re.compile(r"\.{4,}")
_DOUBLE_DOT_RE = re.compile(r"(?<!\.)\.\.(?!\.)")
_WHITESPACE_RE = re.compile(r"\s+")


def unwrap_markdown(text: str) -> str:
    """Replace **bold**, __bold__, `code` and [label](url) with their inner text."""
    text = _BOLD_RE.sub(r"\1", text)
    text = _UNDERLINE_RE.sub(r"\1", text)
    text = _CODE_RE.sub(r"\1", text)
    return _LINK_RE.sub(r"\1", text)


def strip_urls(text: str) -> str:
    text = _URL_RE.sub("", text)
    return _WWW_RE.sub("", text)


def strip_markup(text: str) -> str:
    """Remove <script> blocks with their content, then any remaining tags."""
    text = _SCRIPT_BLOCK_RE.sub("", text)
    return _TAG_RE.sub("", text)


def strip_script_handlers(text: str) -> str:
    """Remove javascript: URLs and inline onxxx= handler attributes."""
    text = _JS_PROTOCOL_RE.sub("", text)
    return _EVENT_HANDLER_RE.sub("", text)


def normalize_punctuation(text: str) -> str:
    """Map typographic spaces, quotes, dashes and ellipses to ASCII."""
    text = _UNICODE_SPACE_RE.sub(" ", text)
    text = _SMART_QUOTE_RE.sub("'", text)
    text = _DASH_RE.sub("-", text)
    return text.replace("\u2026", "...")


def strip_control_chars(text: str) -> str:
    return _CONTROL_RE.sub("", text)


def strip_symbols(text: str) -> str:
    """Drop the general/supplemental punctuation blocks and ASCII symbols."""
    text = _SYMBOL_BLOCK_RE.sub("", text)
    return _ASCII_SYMBOL_RE.sub("", text)


def strip_emoji(text: str) -> str:
    return _EMOJI_RE.sub("", text)


def fold_accents(text: str) -> str:
    """Strip combining accents (NFKD) so accented place names keep their base letters."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def apply_whitelist(text: str) -> str:
    """Drop every character outside [A-Za-z0-9 .,!?;:()'"-] and whitespace."""
    return _NON_WHITELIST_RE.sub("", text)


def strip_sql_keywords(text: str) -> str:
    """Remove denylisted SQL keywords when they stand as whole words.

    This is a defensive heuristic inherited from the narration pipeline. It
    also removes ordinary narration words such as "create" or "select".
    """
    return _SQL_KEYWORD_RE.sub("", text)


def strip_list_markers(text: str) -> str:
    """Remove "- ", "* ", bullet and "12. " prefixes at the start of each line."""
    return _LIST_MARKER_RE.sub("", text)


def collapse_punctuation(text: str) -> str:
    """Collapse "!!" to "!", ".." to "." and runs of four or more dots to "..."."""
    text = _REPEATED_PUNCT_RE.sub(r"\1", text)
    text = _LONG_DOTS_RE.sub("...", text)
    return _DOUBLE_DOT_RE.sub(".", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


PIPELINE = (
    unwrap_markdown,
    strip_urls,
    strip_markup,
    strip_script_handlers,
    normalize_punctuation,
    strip_control_chars,
    strip_symbols,
    strip_emoji,
    fold_accents,
    apply_whitelist,
    strip_sql_keywords,
    strip_list_markers,
    collapse_punctuation,
    collapse_whitespace,
)


def _clean(text: str, strip_sql: bool) -> str:
    steps = [s for s in PIPELINE if strip_sql or s is not strip_sql_keywords]
    previous = None
    while text != previous:
        previous = text
        for step in steps:
            text = step(text)
    return text


def sanitize(
    text: str | None,
    max_length: float | None = SANITIZE_MAX_LENGTH,
    strip_sql: bool = True,
) -> str:
    """Return text that is safe to send to a TTS provider.

    The result contains only letters, digits, single spaces and .,!?;:()'"-.
    It is truncated to max_length when that is positive and finite; pass
    math.inf (or None) to skip truncation. Never raises.
    """
    if not text:
        return ""

    cleaned = _clean(text, strip_sql)

    if max_length is not None and math.isfinite(max_length) and max_length > 0:
        limit = int(max_length)
        if len(cleaned) > limit:
            # Cutting can leave a trailing space or split "..." in two
            cleaned = _clean(cleaned[:limit], strip_sql)

    return cleaned
