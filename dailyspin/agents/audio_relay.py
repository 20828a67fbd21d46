"""
Audio relay: streams Suno audio to clients from an allowlisted set of CDN
hosts. Validation happens before any upstream request is made.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, Optional
from urllib.parse import urlsplit

from ..errors import NetworkError, RelayError
from ..extractors.html_fetcher import HTMLFetcher

logger = logging.getLogger(__name__)

CACHE_CONTROL = 'public, max-age=3600'
DEFAULT_CONTENT_TYPE = 'audio/mpeg'
RELAY_USER_AGENT = 'Daily-Spin/1.0'


def is_allowed_audio_host(hostname: Optional[str], allowed_hosts: Iterable[str]) -> bool:
    """True if `hostname` equals, or is a subdomain of, an allowlisted host."""
    if not hostname:
        return False
    lower = hostname.lower()
    for allowed in allowed_hosts:
        if lower == allowed or lower.endswith(f".{allowed}"):
            return True
    return False


def validate_audio_source(src: Optional[str], allowed_hosts: Iterable[str]) -> str:
    """
    Check a relay source URL.

    Returns:
        The URL, unchanged

    Raises:
        RelayError: 400 for missing/invalid/non-HTTPS URLs, 403 for hosts
            outside the allowlist
    """
    if not src or not isinstance(src, str):
        raise RelayError('A valid audio URL is required.', status_code=400)

    try:
        parts = urlsplit(src.strip())
        hostname = parts.hostname
    except ValueError:
        raise RelayError('Audio URL is invalid.', status_code=400)
    if not parts.scheme or not parts.netloc:
        raise RelayError('Audio URL is invalid.', status_code=400)

    if parts.scheme.lower() != 'https':
        raise RelayError('Only HTTPS audio sources are supported.', status_code=400)

    if not is_allowed_audio_host(hostname, allowed_hosts):
        raise RelayError('Audio host is not permitted.', status_code=403)

    return src.strip()


@dataclass
class RelayStream:
    content_type: str
    content_length: Optional[str]
    body: AsyncIterator[bytes]

    @property
    def headers(self) -> Dict[str, str]:
        headers = {'Cache-Control': CACHE_CONTROL}
        if self.content_length:
            headers['Content-Length'] = self.content_length
        return headers


class AudioRelay:
    """
    Opens upstream audio for streaming once the source passes validation.
    """

    def __init__(self, fetcher: HTMLFetcher, allowed_hosts: Iterable[str]):
        self.fetcher = fetcher
        self.allowed_hosts = tuple(host.lower() for host in allowed_hosts)

    async def open(self, src: Optional[str]) -> RelayStream:
        """
        Validate `src` and open the upstream audio.

        Raises:
            RelayError: Validation failure (400/403), upstream non-2xx or
                missing body (upstream status or 502), network failure (502)
        """
        url = validate_audio_source(src, self.allowed_hosts)

        try:
            upstream = await self.fetcher.open_stream(url, headers={'User-Agent': RELAY_USER_AGENT})
        except NetworkError as e:
            logger.warning(f"[audio_relay] Upstream request failed for {url}: {e.message}")
            raise RelayError('Audio proxy request failed.', details=e.message, status_code=502)

        if not upstream.ok or not upstream.has_body:
            upstream.release()
            logger.warning(f"[audio_relay] Upstream answered {upstream.status} for {url}")
            status = upstream.status if upstream.status >= 400 else 502
            raise RelayError('Unable to retrieve audio from source.', status_code=status)

        return RelayStream(
            content_type=upstream.headers.get('content-type') or DEFAULT_CONTENT_TYPE,
            content_length=upstream.headers.get('content-length'),
            body=upstream.chunks(),
        )
