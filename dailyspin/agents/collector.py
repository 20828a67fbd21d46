import asyncio
import logging
from typing import Any, Dict, Iterable, List, Sequence

import feedparser
from bs4 import BeautifulSoup

from ..config import FeedSource
from ..errors import UpstreamError
from ..extractors.html_fetcher import HTMLFetcher
from ..extractors.text_extractor import normalize_whitespace
from ..models import Story

logger = logging.getLogger(__name__)

FEED_HEADERS = {'Accept': 'application/rss+xml, application/xml'}


def _clean_html_to_text(html: str) -> str:
    if not html:
        return ''
    if "<" not in html and "&" not in html:
        return normalize_whitespace(html)
    soup = BeautifulSoup(html, "html.parser")
    return normalize_whitespace(soup.get_text(separator=" "))


def _entry_value(entry: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = entry.get(key)
        if value:
            return str(value)
    return ''


def parse_feed(xml: str, limit: int) -> List[Story]:
    """
    Parse one feed document into at most `limit` stories, in document order.

    Items without a usable headline are skipped and do not count toward
    the limit. The source is left empty for the caller to fill in.
    """
    parsed = feedparser.parse(xml)
    entries = parsed.entries if hasattr(parsed, "entries") else []

    stories: List[Story] = []
    for entry in entries:
        if len(stories) >= limit:
            break
        headline = _clean_html_to_text(_entry_value(entry, "title"))
        if not headline:
            continue
        summary = _clean_html_to_text(_entry_value(entry, "summary", "description"))
        link = _entry_value(entry, "link").strip()
        stories.append(Story(headline=headline, summary=summary, link=link))
    return stories


def dedupe_stories(stories: Iterable[Story], limit: int) -> List[Story]:
    """
    Drop headline-less and duplicate stories, keeping at most `limit`.
    """
    seen = set()
    unique: List[Story] = []
    for story in stories:
        if not story.headline:
            continue
        if story.key in seen:
            continue
        seen.add(story.key)
        unique.append(story)
        if len(unique) >= limit:
            break
    return unique


class FeedCollector:
    """
    Fetches the configured feeds concurrently and merges their stories.
    """

    def __init__(self, fetcher: HTMLFetcher, sources: Sequence[FeedSource]):
        self.fetcher = fetcher
        self.sources = list(sources)

    async def fetch_source(self, source: FeedSource, limit: int) -> List[Story]:
        """Stories from one feed; any failure yields an empty list."""
        try:
            response = await self.fetcher.fetch(source.url, headers=FEED_HEADERS)
            if not response.ok:
                raise UpstreamError(
                    f"Request failed with status {response.status}",
                    status=response.status,
                )
            stories = parse_feed(response.text, limit)
        except UpstreamError as e:
            logger.warning(f"[collector] Unable to retrieve latest news from {source.source}: {e.message}")
            return []

        for story in stories:
            story.source = source.source
        logger.info(f"[collector] Collected {len(stories)} stories from {source.source}")
        return stories

    async def collect(self, limit: int) -> List[Story]:
        """
        Latest stories from every source: source order, then item order.

        Args:
            limit: Maximum number of stories taken from each source

        Returns:
            Stories tagged with their source
        """
        results = await asyncio.gather(
            *(self.fetch_source(source, limit) for source in self.sources)
        )
        stories = [story for batch in results for story in batch]
        logger.info(f"[collector] {len(stories)} stories from {len(self.sources)} feeds")
        return stories
