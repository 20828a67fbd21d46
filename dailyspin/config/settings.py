import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class FeedSource:
    url: str
    source: str


# Syndication feeds scanned for headlines, in fetch order
DEFAULT_FEED_SOURCES: Tuple[FeedSource, ...] = (
    FeedSource(url='https://feeds.bbci.co.uk/news/rss.xml', source='BBC News'),
    FeedSource(url='https://feeds.npr.org/1001/rss.xml', source='NPR'),
)

# Order matters: fastest/cheapest first, then stronger fallbacks
DEFAULT_LYRIC_MODELS: Tuple[str, ...] = (
    'deepseek/deepseek-chat-v3.1:free',
    'meta-llama/llama-3.1-8b-instruct:free',
    'openai/gpt-4o-mini',
    'anthropic/claude-3.5-sonnet',
    'google/gemini-1.5-flash',
    'meta/llama-3.1-8b-instruct',
)

DEFAULT_ALLOWED_AUDIO_HOSTS: Tuple[str, ...] = (
    'audiopipe.suno.ai',
    'cdn.suno.ai',
    'cdn1.suno.ai',
    'cdn2.suno.ai',
    'cdn3.suno.ai',
)

# Deprecated Suno audio hosts and their current equivalents
DEFAULT_AUDIO_HOST_MIGRATIONS: Dict[str, str] = {
    'audiopipe.suno.ai': 'cdn1.suno.ai',
}

DEFAULT_USER_AGENT = 'Daily-Spin/1.0 (+https://example.com)'
DEFAULT_ARTICLE_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36'
)


def _split_list(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(',') if part.strip())


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, built once at start-up and passed into
    every component constructor.
    """
    # OpenRouter (lyrics, podcast planning)
    openrouter_api_key: str = ''
    openrouter_base_url: str = 'https://openrouter.ai/api/v1'
    site_url: str = 'http://localhost:3000'
    app_title: str = 'Daily Spin'
    lyric_models: Tuple[str, ...] = DEFAULT_LYRIC_MODELS
    model_timeout_sec: float = 20.0
    model_attempts: int = 3
    model_initial_backoff_sec: float = 0.75
    model_temperature: float = 0.85

    # Suno (audio synthesis)
    suno_api_key: str = ''
    suno_api_base: str = 'https://api.sunoapi.com/api/v1'
    suno_model_version: str = 'chirp-v5'
    suno_prompt_max_chars: int = 3000

    # News collection
    feed_sources: Tuple[FeedSource, ...] = DEFAULT_FEED_SOURCES
    headline_limit: int = 120
    song_headline_count: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    article_user_agent: str = DEFAULT_ARTICLE_USER_AGENT
    request_timeout_sec: float = 15.0

    # Audio relay
    allowed_audio_hosts: Tuple[str, ...] = DEFAULT_ALLOWED_AUDIO_HOSTS
    audio_host_migrations: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_AUDIO_HOST_MIGRATIONS))
    )

    # Client-side polling
    poll_interval_sec: float = 2.5
    poll_timeout_sec: float = 120.0

    # Podcast songs
    podcast_song_tags: str = 'news, spoken word, acoustic'

    log_level: str = 'INFO'


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the process environment.

    A local .env file is read first; variables already set in the
    environment win.

    Args:
        env_file: Optional explicit path to a .env file

    Returns:
        Immutable Settings instance
    """
    load_dotenv(env_file)

    suno_api_key = (
        os.getenv('suno_api')
        or os.getenv('SUNO_API')
        or os.getenv('SUNO_API_KEY')
        or ''
    )

    lyric_models = _split_list(os.getenv('LYRIC_MODELS', '')) or DEFAULT_LYRIC_MODELS

    return Settings(
        openrouter_api_key=os.getenv('OPEN_ROUTER_KEY', ''),
        openrouter_base_url=os.getenv('OPENROUTER_BASE_URL', 'https://openrouter.ai/api/v1'),
        site_url=os.getenv('SITE_URL', 'http://localhost:3000'),
        app_title=os.getenv('APP_TITLE', 'Daily Spin'),
        lyric_models=lyric_models,
        model_timeout_sec=float(os.getenv('MODEL_TIMEOUT_SEC', '20')),
        model_attempts=int(os.getenv('MODEL_ATTEMPTS', '3')),
        model_initial_backoff_sec=float(os.getenv('MODEL_INITIAL_BACKOFF_SEC', '0.75')),
        model_temperature=float(os.getenv('MODEL_TEMPERATURE', '0.85')),
        suno_api_key=suno_api_key,
        suno_api_base=os.getenv('SUNO_API_BASE', 'https://api.sunoapi.com/api/v1').rstrip('/'),
        suno_model_version=os.getenv('SUNO_MODEL_VERSION', 'chirp-v5'),
        suno_prompt_max_chars=int(os.getenv('SUNO_PROMPT_MAX_CHARS', '3000')),
        headline_limit=int(os.getenv('HEADLINE_LIMIT', '120')),
        song_headline_count=int(os.getenv('SONG_HEADLINE_COUNT', '5')),
        user_agent=os.getenv('USER_AGENT', DEFAULT_USER_AGENT),
        article_user_agent=os.getenv('ARTICLE_USER_AGENT', DEFAULT_ARTICLE_USER_AGENT),
        request_timeout_sec=float(os.getenv('REQUEST_TIMEOUT', '15')),
        poll_interval_sec=float(os.getenv('POLL_INTERVAL_SEC', '2.5')),
        poll_timeout_sec=float(os.getenv('POLL_TIMEOUT_SEC', '120')),
        podcast_song_tags=os.getenv('PODCAST_SONG_TAGS', 'news, spoken word, acoustic'),
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    )


def configure_logging(level: str = 'INFO') -> None:
    """Root logging setup shared by the server and the CLI."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
