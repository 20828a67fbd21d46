"""
Ordered model fallback with per-model retries.

A ModelChain tries each provider in turn, strictly one at a time. Within a
provider, retryable failures (network errors, timeouts, empty replies, 5xx)
are retried with exponential backoff; any other failure moves straight on
to the next provider. The first non-empty reply wins.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings
from ..errors import ConfigurationError, ModelChainExhausted, UpstreamError

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


class ProviderError(UpstreamError):
    """A single model call failed; `status` drives retry classification."""


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.retryable


class ChatProvider(ABC):
    """One language-model backend."""

    name: str = ''

    @abstractmethod
    async def complete(self, messages: Messages) -> str:
        """
        Run one chat completion.

        Returns:
            Non-empty reply text

        Raises:
            ProviderError: With the HTTP status, 0 for network/timeout/empty
        """


class OpenRouterProvider(ChatProvider):
    """
    OpenRouter chat completions through the OpenAI SDK.
    """

    def __init__(self, client: AsyncOpenAI, model: str, temperature: float = 0.85):
        self.client = client
        self.model = model
        self.name = model
        self.temperature = temperature

    async def complete(self, messages: Messages) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )
        except openai.APIStatusError as e:
            raise ProviderError(f"OpenRouter {e.status_code}: {e.message}", status=e.status_code) from e
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise ProviderError(f"OpenRouter request failed: {e}", status=0) from e
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenRouter client error: {e}", status=0) from e

        try:
            content = ''
            if response.choices:
                content = (response.choices[0].message.content or '').strip()
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderError(f"OpenRouter returned a malformed reply: {e}", status=0) from e
        if not content:
            raise ProviderError('OpenRouter did not return content', status=0)
        return content


@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-provider retry policy: `attempts` tries in total, waiting
    `initial_delay` seconds before the first retry and doubling after.
    """
    attempts: int = 3
    initial_delay: float = 0.75
    backoff: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=self.backoff),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )


@dataclass
class ChainResult:
    text: str
    model: str


class ModelChain:
    """
    An ordered list of providers plus a retry policy.
    """

    def __init__(self, providers: Sequence[ChatProvider], policy: Optional[RetryPolicy] = None):
        self.providers = list(providers)
        self.policy = policy or RetryPolicy()

    async def _call_with_retries(self, provider: ChatProvider, messages: Messages) -> str:
        async for attempt in self.policy.retrying():
            with attempt:
                return await provider.complete(messages)
        raise ProviderError(f"{provider.name} produced no attempts")

    async def try_in_order(self, messages: Messages) -> ChainResult:
        """
        Return the first non-empty reply from the providers, in order.

        Raises:
            ModelChainExhausted: When every provider failed
        """
        errors = []
        for provider in self.providers:
            logger.info(f"[model_chain] Trying model {provider.name}")
            try:
                text = await self._call_with_retries(provider, messages)
            except ProviderError as e:
                logger.warning(f"[model_chain] {provider.name} failed: {e.message}")
                errors.append(f"[{provider.name}] {e.message}")
                continue
            return ChainResult(text=text, model=provider.name)

        raise ModelChainExhausted('No response from any language model.', errors=errors)


def build_model_chain(settings: Settings, client: Optional[AsyncOpenAI] = None) -> ModelChain:
    """
    Build the OpenRouter chain from settings.

    Raises:
        ConfigurationError: If the OpenRouter key is missing
    """
    if not settings.openrouter_api_key:
        raise ConfigurationError('OpenRouter API key is not configured.')

    if client is None:
        client = AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.model_timeout_sec,
            max_retries=0,
            default_headers={
                'HTTP-Referer': settings.site_url,
                'X-Title': settings.app_title,
            },
        )

    providers = [
        OpenRouterProvider(client, model, temperature=settings.model_temperature)
        for model in settings.lyric_models
    ]
    policy = RetryPolicy(
        attempts=settings.model_attempts,
        initial_delay=settings.model_initial_backoff_sec,
    )
    return ModelChain(providers, policy)
