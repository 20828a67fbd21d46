import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from dailyspin.agents.model_chain import (
    OpenRouterProvider,
    ProviderError,
    build_model_chain,
)
from dailyspin.config import Settings
from dailyspin.errors import ConfigurationError, ModelChainExhausted

from conftest import ScriptedProvider, make_chain, retryable, terminal

MESSAGES = [{"role": "user", "content": "hello"}]


def test_first_non_empty_reply_wins():
    first = ScriptedProvider('model/one', ['lyrics from one'])
    second = ScriptedProvider('model/two', ['lyrics from two'])

    result = asyncio.run(make_chain(first, second).try_in_order(MESSAGES))

    assert result.text == 'lyrics from one'
    assert result.model == 'model/one'
    assert second.calls == 0


def test_terminal_failure_skips_model_without_retry(sleep_recorder):
    first = ScriptedProvider('model/one', [terminal(400)])
    second = ScriptedProvider('model/two', ['fallback lyrics'])

    result = asyncio.run(make_chain(first, second, sleep=sleep_recorder).try_in_order(MESSAGES))

    assert result.model == 'model/two'
    assert first.calls == 1
    assert sleep_recorder.delays == []


def test_retryable_failure_is_retried_with_backoff(sleep_recorder):
    first = ScriptedProvider('model/one', [retryable(503)])
    second = ScriptedProvider('model/two', ['fallback lyrics'])

    result = asyncio.run(make_chain(first, second, sleep=sleep_recorder).try_in_order(MESSAGES))

    assert result.model == 'model/two'
    assert first.calls == 3
    assert sleep_recorder.delays == [0.75, 1.5]


def test_retry_recovers_within_same_model(sleep_recorder):
    first = ScriptedProvider('model/one', [retryable(0), 'second attempt works'])
    second = ScriptedProvider('model/two', ['never used'])

    result = asyncio.run(make_chain(first, second, sleep=sleep_recorder).try_in_order(MESSAGES))

    assert result.text == 'second attempt works'
    assert first.calls == 2
    assert second.calls == 0
    assert sleep_recorder.delays == [0.75]


def test_exhausted_chain_reports_every_model():
    chain = make_chain(
        ScriptedProvider('model/one', [terminal(401)]),
        ScriptedProvider('model/two', [retryable(500)]),
    )

    with pytest.raises(ModelChainExhausted) as excinfo:
        asyncio.run(chain.try_in_order(MESSAGES))

    assert len(excinfo.value.errors) == 2
    assert '[model/one]' in excinfo.value.details
    assert '[model/two]' in excinfo.value.details
    assert excinfo.value.status_code == 502


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(**create_kwargs):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**create_kwargs)
    return client


def test_openrouter_provider_sends_model_and_temperature():
    client = _client(return_value=_completion('  some lyrics  '))
    provider = OpenRouterProvider(client, 'openai/gpt-4o-mini', temperature=0.5)

    text = asyncio.run(provider.complete(MESSAGES))

    assert text == 'some lyrics'
    client.chat.completions.create.assert_awaited_once_with(
        model='openai/gpt-4o-mini',
        messages=MESSAGES,
        temperature=0.5,
    )


def test_openrouter_provider_treats_empty_reply_as_retryable():
    provider = OpenRouterProvider(_client(return_value=_completion('   ')), 'model/x')

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(MESSAGES))

    assert excinfo.value.status == 0
    assert excinfo.value.retryable


@pytest.mark.parametrize('status, is_retryable', [(429, False), (400, False), (502, True)])
def test_openrouter_provider_maps_http_status(status, is_retryable):
    request = httpx.Request('POST', 'https://openrouter.test/api/v1/chat/completions')
    error = openai.APIStatusError('upstream said no', response=httpx.Response(status, request=request), body=None)
    provider = OpenRouterProvider(_client(side_effect=error), 'model/x')

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(MESSAGES))

    assert excinfo.value.status == status
    assert excinfo.value.retryable is is_retryable


def test_openrouter_provider_maps_connection_errors_to_status_zero():
    request = httpx.Request('POST', 'https://openrouter.test/api/v1/chat/completions')
    provider = OpenRouterProvider(_client(side_effect=openai.APITimeoutError(request=request)), 'model/x')

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(MESSAGES))

    assert excinfo.value.status == 0


def test_build_model_chain_requires_key():
    with pytest.raises(ConfigurationError):
        build_model_chain(Settings(openrouter_api_key=''))


def test_build_model_chain_keeps_model_order():
    settings = Settings(openrouter_api_key='key', lyric_models=('a/one', 'b/two'), model_attempts=2)

    chain = build_model_chain(settings, client=MagicMock())

    assert [provider.name for provider in chain.providers] == ['a/one', 'b/two']
    assert chain.policy.attempts == 2


def test_openrouter_provider_maps_other_client_errors_to_status_zero():
    provider = OpenRouterProvider(_client(side_effect=openai.OpenAIError('bad payload')), 'model/x')

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(MESSAGES))

    assert excinfo.value.status == 0
    assert 'bad payload' in excinfo.value.message


@pytest.mark.parametrize('reply', [
    SimpleNamespace(choices=[SimpleNamespace()]),
    SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=['not', 'text']))]),
    SimpleNamespace(),
])
def test_openrouter_provider_rejects_malformed_reply(reply):
    provider = OpenRouterProvider(_client(return_value=reply), 'model/x')

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(MESSAGES))

    assert excinfo.value.status == 0


def test_client_error_moves_chain_to_next_model(sleep_recorder):
    broken = OpenRouterProvider(_client(side_effect=openai.OpenAIError('bad payload')), 'model/broken')
    second = ScriptedProvider('model/two', ['fallback lyrics'])

    result = asyncio.run(make_chain(broken, second, sleep=sleep_recorder).try_in_order(MESSAGES))

    assert result.model == 'model/two'
    assert result.text == 'fallback lyrics'
