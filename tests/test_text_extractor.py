import asyncio

import pytest

from dailyspin.errors import ExtractionError, InvalidRequestError, UpstreamError
from dailyspin.extractors.text_extractor import TextExtractor, extract_article_text

from conftest import FakeFetcher, respond

PARA_A = "The city council voted on Tuesday to approve a new transit plan that expands bus service to the northern suburbs."
PARA_B = "Officials said the plan would be funded through a combination of state grants and a small increase in local fares."
PARA_C = "Residents who spoke at the meeting were divided, with some praising the expansion and others worried about cost."
PARA_D = "Construction of the first new routes is expected to begin next spring, with full service planned within two years."


def page(body: str) -> str:
    return f"<html><head><title>t</title><style>p {{ color: red; }}</style></head><body>{body}</body></html>"


def test_article_paragraphs_are_joined_and_deduplicated():
    html = page(
        "<nav>Home | World | Sport</nav>"
        "<article>"
        f"<p>{PARA_A}</p><p>{PARA_B}</p><p>Short caption</p>"
        f"<script>var tracking = '{PARA_D}';</script>"
        f"<p>{PARA_C}</p><p>{PARA_A.upper()}</p><p>{PARA_D}</p>"
        "<!-- a comment that should never appear in the output text at all, not even a little bit -->"
        "</article>"
    )

    text = extract_article_text(html)

    assert text == "\n\n".join([PARA_A, PARA_B, PARA_C, PARA_D])


def test_short_article_falls_back_to_body():
    html = page(
        f"<article><p>{PARA_A}</p></article>"
        f"<div><p>{PARA_B}</p><p>{PARA_C}</p><p>{PARA_D}</p></div>"
    )

    text = extract_article_text(html)

    assert text.split("\n\n") == [PARA_A, PARA_B, PARA_C, PARA_D]


def test_block_without_paragraphs_uses_its_whole_text():
    words = " ".join(f"word{i}" for i in range(80))
    html = page(f"<main><div>{words}</div></main>")

    assert extract_article_text(html) == words


def test_short_page_yields_nothing():
    assert extract_article_text(page("<p>Too short to be an article.</p>")) is None


def test_extraction_is_deterministic():
    html = page(f"<article><p>{PARA_A}</p><p>{PARA_B}</p><p>{PARA_C}</p><p>{PARA_D}</p></article>")

    assert extract_article_text(html) == extract_article_text(html)


def test_extract_fetches_with_browser_headers():
    html = page(f"<article><p>{PARA_A}</p><p>{PARA_B}</p><p>{PARA_C}</p><p>{PARA_D}</p></article>")
    fetcher = FakeFetcher({'https://news.test/story': respond(200, html)})
    extractor = TextExtractor(fetcher, user_agent='Browser/1.0')

    text = asyncio.run(extractor.extract('https://news.test/story'))

    assert text.startswith(PARA_A)
    headers = fetcher.calls[0]['headers']
    assert headers['User-Agent'] == 'Browser/1.0'
    assert 'text/html' in headers['Accept']


def test_extract_fails_on_non_2xx():
    fetcher = FakeFetcher({'https://news.test/missing': respond(404, 'nope')})
    extractor = TextExtractor(fetcher, user_agent='Browser/1.0')

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(extractor.extract('https://news.test/missing'))

    assert excinfo.value.status == 404
    assert '404' in excinfo.value.message


def test_extract_fails_when_no_content_found():
    fetcher = FakeFetcher({'https://news.test/empty': respond(200, page('<p>Nothing here.</p>'))})
    extractor = TextExtractor(fetcher, user_agent='Browser/1.0')

    with pytest.raises(ExtractionError) as excinfo:
        asyncio.run(extractor.extract('https://news.test/empty'))

    assert excinfo.value.message == 'Unable to extract article content from the provided URL.'


def test_extract_rejects_missing_url_without_fetching():
    fetcher = FakeFetcher()
    extractor = TextExtractor(fetcher, user_agent='Browser/1.0')

    with pytest.raises(InvalidRequestError):
        asyncio.run(extractor.extract(''))

    assert fetcher.calls == []
