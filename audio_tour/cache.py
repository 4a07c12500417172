"""Local cache for remote segment audio.

Remote segments are downloaded once into a cache directory keyed by a hash of
the URI, so replays and scrubbing read from disk. Caching is an optimization:
any failure falls back to streaming the remote URI.
"""

import asyncio
import hashlib
import logging
import os
import re
from urllib.parse import urlparse

import httpx

from audio_tour.constants import (
    CACHE_DIR,
    CACHE_DOWNLOAD_RETRIES,
    CACHE_RETRY_BASE_DELAY,
    CACHE_DOWNLOAD_TIMEOUT,
)
from audio_tour.models import CachedAudio

logger = logging.getLogger(__name__)

_REMOTE_RE = re.compile(r"^https?://", re.IGNORECASE)
_AUDIO_EXTENSIONS = {".mp3", ".m4a", ".aac", ".wav", ".ogg", ".opus", ".webm"}


def is_remote(uri: str) -> bool:
    return bool(_REMOTE_RE.match(uri or ""))


def cache_filename(uri: str) -> str:
    """Deterministic file name for a URI: audio_<sha256 prefix><ext>."""
    digest = hashlib.sha256(uri.encode()).hexdigest()[:16]
    ext = os.path.splitext(urlparse(uri).path)[1].lower()
    if ext not in _AUDIO_EXTENSIONS:
        ext = ".mp3"
    return f"audio_{digest}{ext}"


class AudioCache:
    """Resolve segment URIs to something the playback backend can open."""

    def __init__(
        self,
        cache_dir: str = CACHE_DIR,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = CACHE_DOWNLOAD_TIMEOUT,
    ):
        self.cache_dir = cache_dir
        self._transport = transport
        self._timeout = timeout

    def path_for(self, uri: str) -> str:
        return os.path.join(self.cache_dir, cache_filename(uri))

    async def resolve(self, uri: str) -> CachedAudio:
        """Return a local path for remote URIs when possible.

        Local paths and data: URIs are returned unchanged. Never raises for
        cache problems; the remote URI is returned instead.
        """
        if not uri:
            return CachedAudio(uri=uri, from_cache=False, local=False)

        if not is_remote(uri):
            return CachedAudio(uri=uri, from_cache=True, local=True)

        path = self.path_for(uri)
        if os.path.exists(path) and os.path.getsize(path) > 0:
            return CachedAudio(uri=path, from_cache=True, local=True)

        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            data = await self._download(uri)
            self._write(path, data)
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Cache download failed for %s, streaming instead: %s", uri, e)
            return CachedAudio(uri=uri, from_cache=False, local=False)

        logger.info("Cached %s -> %s (%d bytes)", uri, path, len(data))
        return CachedAudio(uri=path, from_cache=False, local=True)

    async def _download(self, uri: str) -> bytes:
        """GET the asset with exponential backoff between attempts."""
        last_error = None
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for attempt in range(CACHE_DOWNLOAD_RETRIES):
                try:
                    response = await client.get(uri)
                    response.raise_for_status()
                    if not response.content:
                        raise httpx.HTTPError(f"Empty response body from {uri}")
                    return response.content
                except httpx.HTTPError as e:
                    last_error = e

                if attempt < CACHE_DOWNLOAD_RETRIES - 1:
                    await asyncio.sleep(CACHE_RETRY_BASE_DELAY * (2 ** attempt))

        raise last_error

    @staticmethod
    def _write(path: str, data: bytes) -> None:
        # Write beside the target and rename so a partial file is never a cache hit
        tmp_path = path + ".part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
