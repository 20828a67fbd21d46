"""
Extractors package for outbound HTTP and article text.

Provides utilities for:
- HTTP fetching and streaming over a shared aiohttp session (html_fetcher)
- Article text extraction from HTML (text_extractor)
"""

from .html_fetcher import HTMLFetcher
from .text_extractor import TextExtractor, extract_article_text

__all__ = ['HTMLFetcher', 'TextExtractor', 'extract_article_text']
