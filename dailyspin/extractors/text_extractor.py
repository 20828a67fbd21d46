"""
Readable-text extraction from arbitrary article pages.

Heuristic, best-effort:
- Candidate blocks in priority order: <article>, <main>, <body> (or the whole page)
- Paragraph harvesting with a minimum length per paragraph
- Whole-block text as fallback when a block has no usable paragraphs
- A second, looser pass over the whole document
"""

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Comment
from bs4.element import Tag

from ..errors import ExtractionError, InvalidRequestError, UpstreamError
from .html_fetcher import HTMLFetcher

logger = logging.getLogger(__name__)

MIN_PARAGRAPH_CHARS = 60
MIN_BLOCK_CHARS = 400
MIN_DOCUMENT_CHARS = 200

NOISE_TAGS = ['script', 'style', 'noscript', 'iframe']

ARTICLE_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
    'Accept-Encoding': 'gzip, deflate',
}

_WHITESPACE = re.compile(r'\s+')


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(' ', value).strip()


def _strip_noise(soup: BeautifulSoup) -> None:
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()


def candidate_blocks(soup: BeautifulSoup) -> List[Tag]:
    """
    Regions likely to hold the main content, highest priority first.
    """
    blocks: List[Tag] = []
    for name in ('article', 'main'):
        block = soup.find(name)
        if block is not None:
            blocks.append(block)
    body = soup.find('body')
    blocks.append(body if body is not None else soup)
    return blocks


def extract_paragraphs(block: Tag) -> List[str]:
    """
    Paragraph texts longer than MIN_PARAGRAPH_CHARS.

    Falls back to the whole block's text as a single paragraph when no
    <p> element qualifies.
    """
    paragraphs = []
    for p in block.find_all('p'):
        text = normalize_whitespace(p.get_text(' '))
        if len(text) > MIN_PARAGRAPH_CHARS:
            paragraphs.append(text)

    if paragraphs:
        return paragraphs

    fallback = normalize_whitespace(block.get_text(' '))
    return [fallback] if fallback else []


def merge_paragraphs(paragraphs: List[str]) -> List[str]:
    """Case-insensitive dedup, first occurrence wins."""
    seen = set()
    ordered = []
    for paragraph in paragraphs:
        key = paragraph.lower()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(paragraph)
    return ordered


def _join(paragraphs: List[str]) -> str:
    return '\n\n'.join(merge_paragraphs(paragraphs))


def extract_article_text(html: str) -> Optional[str]:
    """
    Extract the readable body of an HTML page.

    Deterministic: identical input always yields identical output.

    Args:
        html: Raw HTML document

    Returns:
        Paragraphs joined by blank lines, or None if nothing long enough
        was found
    """
    soup = BeautifulSoup(html, 'html.parser')
    _strip_noise(soup)

    for block in candidate_blocks(soup):
        candidate = _join(extract_paragraphs(block))
        if len(candidate) > MIN_BLOCK_CHARS:
            return candidate

    fallback = _join(extract_paragraphs(soup))
    if len(fallback) > MIN_DOCUMENT_CHARS:
        return fallback

    return None


class TextExtractor:
    """
    Fetches an article page and extracts its readable text.
    """

    def __init__(self, fetcher: HTMLFetcher, user_agent: str):
        """
        Initialize TextExtractor.

        Args:
            fetcher: Shared HTTP fetcher
            user_agent: Browser-like User-Agent sent to article hosts
        """
        self.fetcher = fetcher
        self.user_agent = user_agent

    async def extract(self, url: str) -> str:
        """
        Fetch `url` and return its article text.

        Raises:
            InvalidRequestError: If no URL was given
            UpstreamError: If the page answered with a non-2xx status
            NetworkError: If the page could not be reached
            ExtractionError: If no candidate met the length thresholds
        """
        if not url or not isinstance(url, str):
            raise InvalidRequestError('A valid article URL must be provided.')

        headers = dict(ARTICLE_HEADERS, **{'User-Agent': self.user_agent})
        response = await self.fetcher.fetch(url, headers=headers)
        if not response.ok:
            raise UpstreamError(
                f"Failed to retrieve article (status {response.status})",
                status=response.status,
            )

        text = extract_article_text(response.text)
        if not text:
            logger.warning(f"[text_extractor] No readable content found at {url}")
            raise ExtractionError('Unable to extract article content from the provided URL.')

        logger.info(f"[text_extractor] Extracted {len(text)} chars from {url}")
        return text
