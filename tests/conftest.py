import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from dailyspin.agents.model_chain import ChatProvider, ModelChain, ProviderError, RetryPolicy
from dailyspin.config import FeedSource, Settings
from dailyspin.extractors.html_fetcher import FetchResponse


def respond(status: int = 200, body: Any = '', url: str = '', headers: Optional[Dict[str, str]] = None) -> FetchResponse:
    text = body if isinstance(body, str) else json.dumps(body)
    return FetchResponse(status=status, url=url, text=text, headers=headers or {})


class FakeStream:
    def __init__(self, status: int = 200, headers: Optional[Dict[str, str]] = None, body: bytes = b'', has_body: bool = True):
        self.status = status
        self.headers = {key.lower(): value for key, value in (headers or {}).items()}
        self.body = body
        self.has_body = has_body
        self.released = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def chunks(self):
        try:
            for start in range(0, len(self.body), 4):
                yield self.body[start:start + 4]
        finally:
            self.release()

    def release(self) -> None:
        self.released = True


class FakeFetcher:
    """
    Stands in for HTMLFetcher.

    Routes map a URL, or a (METHOD, URL) pair, to a FetchResponse, an
    exception to raise, or a list of those consumed one call at a time
    (the last entry repeats).
    """

    def __init__(self, routes: Optional[Dict[Any, Any]] = None, streams: Optional[Dict[str, Any]] = None):
        self.routes = dict(routes or {})
        self.streams = dict(streams or {})
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _resolve(self, table: Dict[Any, Any], method: str, url: str) -> Any:
        result = table.get((method, url), table.get(url))
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def fetch(self, url: str, headers=None) -> FetchResponse:
        return await self.request('GET', url, headers=headers)

    async def request(self, method: str, url: str, headers=None, json_body=None) -> FetchResponse:
        self.calls.append({'method': method, 'url': url, 'headers': dict(headers or {}), 'json': json_body})
        result = self._resolve(self.routes, method, url)
        if result is None:
            return respond(404, 'not found', url=url)
        return result

    async def open_stream(self, url: str, headers=None):
        self.calls.append({'method': 'STREAM', 'url': url, 'headers': dict(headers or {}), 'json': None})
        result = self._resolve(self.streams, 'GET', url)
        if result is None:
            return FakeStream(status=404)
        return result

    async def close(self) -> None:
        self.closed = True


class ScriptedProvider(ChatProvider):
    """
    A provider whose replies come from a script: strings are returned,
    exceptions raised, callables called with the messages.
    """

    def __init__(self, name: str, outcomes: List[Any]):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = 0

    async def complete(self, messages):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if callable(outcome):
            outcome = outcome(messages)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RoutingProvider(ChatProvider):
    """A provider that answers through `handler(messages)`."""

    def __init__(self, handler: Callable, name: str = 'router/model'):
        self.handler = handler
        self.name = name
        self.prompts: List[str] = []
        self.messages: List[list] = []

    async def complete(self, messages):
        self.prompts.append(messages[0]["content"])
        self.messages.append(messages)
        outcome = self.handler(messages)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def terminal(status: int = 400) -> ProviderError:
    return ProviderError(f"status {status}", status=status)


def retryable(status: int = 503) -> ProviderError:
    return ProviderError(f"status {status}", status=status)


def make_chain(*providers: ChatProvider, sleep: Optional[SleepRecorder] = None) -> ModelChain:
    return ModelChain(providers, RetryPolicy(sleep=sleep or SleepRecorder()))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openrouter_api_key='or-test-key',
        suno_api_key='suno-test-key',
        suno_api_base='https://suno.test/api/v1',
        feed_sources=(
            FeedSource(url='https://feeds.test/alpha.xml', source='Alpha'),
            FeedSource(url='https://feeds.test/beta.xml', source='Beta'),
        ),
        poll_interval_sec=1.0,
        poll_timeout_sec=5.0,
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


def rss(*items: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Test feed</title>'
        + ''.join(items)
        + '</channel></rss>'
    )


def rss_item(title: str, link: str = '', description: str = '') -> str:
    parts = [f"<title>{title}</title>"]
    if link:
        parts.append(f"<link>{link}</link>")
    if description:
        parts.append(f"<description>{description}</description>")
    return f"<item>{''.join(parts)}</item>"
