"""
Async HTTP fetcher shared by every outbound call.

Features:
- One lazily created aiohttp session per process
- Total timeout per request; streams are bounded per socket read instead
- Non-2xx statuses returned to the caller, never raised
- Connection failures and timeouts raised as NetworkError
- Streaming responses for the audio relay
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import aiohttp

from ..errors import NetworkError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
NO_BODY_STATUSES = frozenset({204, 304})


@dataclass
class FetchResponse:
    status: int
    url: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Parsed JSON body, or the raw text when the body is not JSON."""
        try:
            return json.loads(self.text)
        except ValueError:
            return self.text


class StreamResponse:
    """
    An upstream response whose body has not been read yet.

    The caller must exhaust `chunks()` or call `release()`.
    """

    def __init__(self, response: aiohttp.ClientResponse):
        self._response = response
        self.status = response.status
        self.headers = {key.lower(): value for key, value in response.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def has_body(self) -> bool:
        if self.status in NO_BODY_STATUSES:
            return False
        return self.headers.get('content-length', '').strip() != '0'

    async def chunks(self) -> AsyncIterator[bytes]:
        """
        Yield the body in chunks, releasing the connection when done.

        Raises:
            NetworkError: When the upstream stalls or drops mid-body
        """
        url = str(self._response.url)
        try:
            async for chunk in self._response.content.iter_chunked(CHUNK_SIZE):
                yield chunk
        except asyncio.TimeoutError as e:
            logger.warning(f"[html_fetcher] Stream from {url} stalled")
            raise NetworkError(f"Stream from {url} stalled") from e
        except aiohttp.ClientError as e:
            logger.warning(f"[html_fetcher] Stream from {url} broke off: {e}")
            raise NetworkError(f"Stream from {url} failed: {e}") from e
        finally:
            self.release()

    def release(self) -> None:
        self._response.release()


class HTMLFetcher:
    """
    Async HTTP client with a default User-Agent and a total timeout.
    """

    def __init__(
        self,
        user_agent: str,
        timeout_sec: float = 15,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize HTMLFetcher.

        Args:
            user_agent: Default User-Agent header
            timeout_sec: Total timeout for each request
            session: Optional pre-built session (owned by the caller)
        """
        self.user_agent = user_agent
        self.timeout_sec = timeout_sec
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def _headers(self, headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged = {'User-Agent': self.user_agent}
        if headers:
            merged.update(headers)
        return merged

    async def fetch(self, url: str, headers: Optional[Mapping[str, str]] = None) -> FetchResponse:
        """
        GET a URL and read the whole body as text.

        Args:
            url: URL to fetch
            headers: Extra headers (override the defaults)

        Returns:
            FetchResponse with status, final URL and body text

        Raises:
            NetworkError: On connection failure or timeout
        """
        return await self.request('GET', url, headers=headers)

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None
    ) -> FetchResponse:
        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                headers=self._headers(headers),
                json=json_body,
            ) as response:
                text = await response.text(errors='replace')
                logger.debug(f"[html_fetcher] {method} {url} -> {response.status} ({len(text)} chars)")
                return FetchResponse(
                    status=response.status,
                    url=str(response.url),
                    text=text,
                    headers={key.lower(): value for key, value in response.headers.items()},
                )
        except asyncio.TimeoutError as e:
            logger.warning(f"[html_fetcher] Timeout on {method} {url}")
            raise NetworkError(f"Request to {url} timed out after {self.timeout_sec}s") from e
        except aiohttp.ClientError as e:
            logger.warning(f"[html_fetcher] Error on {method} {url}: {e}")
            raise NetworkError(f"Request to {url} failed: {e}") from e

    async def open_stream(self, url: str, headers: Optional[Mapping[str, str]] = None) -> StreamResponse:
        """
        GET a URL without reading the body.

        The session's total timeout does not apply: the body may take as
        long as it takes, but connecting and each socket read are bounded
        by `timeout_sec`.

        Raises:
            NetworkError: On connection failure or timeout
        """
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.timeout_sec,
            sock_read=self.timeout_sec,
        )
        try:
            response = await session.get(url, headers=self._headers(headers), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request to {url} timed out after {self.timeout_sec}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        logger.debug(f"[html_fetcher] Streaming {url} -> {response.status}")
        return StreamResponse(response)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
