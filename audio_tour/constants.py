"""All magic numbers and configuration constants."""

SANITIZE_MAX_LENGTH = 1400          # chars, default truncation for sanitize()
CHUNK_MIN_CHARS = 200               # soft lower bound per chunk
CHUNK_MAX_CHARS = 300               # hard ceiling per chunk
CHUNK_MIN_KEEP_CHARS = 10           # trailing fragments shorter than this are dropped
TTS_PROVIDER_MAX_CHARS = 4000       # per-request ceiling of the synthesis service
TTS_MIN_CHARS = 10                  # sanitized text shorter than this is not sent
TTS_RETRY_COUNT = 3                 # max retries per TTS chunk
TTS_RETRY_BASE_DELAY = 1.0         # seconds, base delay for exponential backoff
TTS_RATE = "+0%"                    # speech rate relative to the voice default
TTS_VOICE = "en-US-AriaNeural"      # guide narrator
ESTIMATE_MIN_SEGMENT_SECONDS = 5    # floor for proportional duration estimates
DEFAULT_GUIDE_DURATION_MS = 60_000  # used when a guide has no usable duration
CACHE_DIR = ".cache/audio-guides"
CACHE_DOWNLOAD_RETRIES = 2          # attempts per remote asset before streaming fallback
CACHE_RETRY_BASE_DELAY = 0.5        # seconds
CACHE_DOWNLOAD_TIMEOUT = 60.0       # seconds
SKIP_SECONDS = 15                   # skip forward/back step
PLAYBACK_SPEEDS = (1.0, 1.5, 2.0)   # change_speed() ladder
SEEK_DEBOUNCE_MS = 50               # scrub release → seek
SEEK_RELEASE_MS = 50                # seek done → progress updates resume
PROGRESS_INTERVAL_MS = 100          # expected cadence of backend progress events
OUTPUT_DIR = "output"
GUIDE_FILENAME = "guide.json"
VERSION = "0.1.0"
