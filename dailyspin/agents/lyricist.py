"""
Lyric Synthesizer - turns news into song lyrics for Suno

Two paths:
- Article path: one full article summarized into a factual song; fails
  when no model answers
- Headlines path: several headlines woven into one song; when no model
  answers, the formatted headline digest itself becomes the lyrics
"""

import logging
import re
from typing import Iterable, List

from ..errors import InvalidRequestError, ModelChainExhausted
from ..models import Story
from .model_chain import Messages, ModelChain

logger = logging.getLogger(__name__)

SUNO_PROMPT_MAX_CHARS = 3000
MAX_ARTICLE_CHARS = 20000
ELLIPSIS = '…'

ARTICLE_SYSTEM_PROMPT = " ".join([
    "You are a songwriter who transforms news articles into factual, clear, and comprehensive songs.",
    "Your goal is to accurately convey the main points, background, context, and implications of the article as directly and clearly as possible.",
    "Prioritize clarity and completeness over artistic style.",
    "The song should explain events, causes, people involved, timelines, and consequences in a way that someone unfamiliar with the topic could fully understand.",
    "Use plain, direct language and avoid rhyme, metaphor, symbolism, or exaggeration unless absolutely necessary for readability.",
    "Maintain a neutral, explanatory, and informative tone, similar to a well-written summary that happens to have rhythm and phrasing like a song.",
    "Organize the lyrics logically (intro, body, conclusion), showing cause and effect where relevant.",
    "Prefer factual density: include as many specific details from the article as possible while keeping natural flow.",
    "The final output should be close to {max_chars} characters, but must not exceed that limit.",
    "Do not invent or infer facts not clearly stated in the article. Respond with plain text only.",
])

HEADLINES_SYSTEM_PROMPT = (
    "You are a news reporter writing literal, clear, factual lyrics about current events. "
    "Keep the response under {max_chars} characters. "
    "Do not include introductions or commentary; respond with lyrics only."
)

_WORD = re.compile(r'\w')


def enforce_limit(text: str, limit: int = SUNO_PROMPT_MAX_CHARS) -> str:
    """
    Cap `text` at `limit` characters.

    Whitespace is trimmed; over-long text is cut to limit-1 characters,
    trimmed again and closed with an ellipsis. A cap of zero or less
    leaves nothing.
    """
    if not isinstance(text, str) or limit <= 0:
        return ''
    normalized = text.strip()
    if len(normalized) <= limit:
        return normalized
    return f"{normalized[:limit - 1].rstrip()}{ELLIPSIS}"


def format_stories_for_model(stories: Iterable[Story]) -> str:
    """Numbered digest: one line per story with source, headline and summary."""
    lines = []
    for index, story in enumerate(stories, 1):
        prefix = f"[{story.source}]" if story.source else "Headline"
        parts = [f"{index}. {prefix} {story.headline}".strip()]
        if story.summary:
            parts.append(f"Summary: {story.summary}")
        lines.append(" — ".join(parts))
    return "\n".join(lines)


def build_article_messages(headline: str, source: str, article_text: str, max_chars: int) -> Messages:
    if len(article_text) > MAX_ARTICLE_CHARS:
        article_text = f"{article_text[:MAX_ARTICLE_CHARS]}{ELLIPSIS}"
    user_prompt = (
        "Write a factual, explanatory song based on the following news article. "
        "Keep it clear, informative, and comprehensive, following the above rules.\n\n"
        f"Headline: {headline or 'Unknown headline'}\n"
        f"Source: {source or 'Unknown source'}\n\n"
        f"Article Content:\n{article_text}"
    )
    return [
        {"role": "system", "content": ARTICLE_SYSTEM_PROMPT.format(max_chars=max_chars)},
        {"role": "user", "content": user_prompt},
    ]


def build_headline_messages(digest: str, max_chars: int) -> Messages:
    user_prompt = (
        "Use these headlines to craft a cohesive set of song lyrics. "
        "Mention the concrete events and provide details. "
        f"Prefer accurate clear description of the news.\n\n{digest}"
    )
    return [
        {"role": "system", "content": HEADLINES_SYSTEM_PROMPT.format(max_chars=max_chars)},
        {"role": "user", "content": user_prompt},
    ]


class LyricSynthesizer:
    """
    Builds lyric prompts and runs them through the model chain.
    """

    def __init__(self, chain: ModelChain, max_chars: int = SUNO_PROMPT_MAX_CHARS):
        self.chain = chain
        self.max_chars = max_chars

    async def summarize_article(self, headline: str, source: str, article_text: str) -> str:
        """
        Turn one article into lyrics.

        Raises:
            InvalidRequestError: If no article text was given
            ModelChainExhausted: If every model failed
        """
        if not article_text:
            raise InvalidRequestError('No article content was provided for summarisation.')

        messages = build_article_messages(headline, source, article_text, self.max_chars)
        result = await self.chain.try_in_order(messages)
        lyrics = enforce_limit(result.text, self.max_chars)
        logger.info(f"[lyricist] Article lyrics from {result.model}: {len(lyrics)} chars")
        return lyrics

    async def lyrics_from_headlines(self, stories: List[Story]) -> str:
        """
        Turn several headlines into lyrics, never failing on model errors.

        When every model fails, or none returns any word characters, the
        formatted digest is returned so submission can still proceed.
        """
        digest = format_stories_for_model(stories)
        messages = build_headline_messages(digest, self.max_chars)
        try:
            result = await self.chain.try_in_order(messages)
        except ModelChainExhausted as e:
            logger.warning(f"[lyricist] All models failed, using headline digest: {e.details}")
            return enforce_limit(digest, self.max_chars)

        if not _WORD.search(result.text):
            logger.warning(f"[lyricist] {result.model} returned no words, using headline digest")
            return enforce_limit(digest, self.max_chars)

        lyrics = enforce_limit(result.text, self.max_chars)
        logger.info(f"[lyricist] Headline lyrics from {result.model}: {len(lyrics)} chars")
        return lyrics
