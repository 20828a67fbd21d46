import pytest

from dailyspin.models import Story
from dailyspin.podcast_agent.headline_matcher import (
    best_match,
    headline_similarity,
    match_headline,
    tokenize,
)

CANDIDATES = [
    Story(headline="Parliament passes new climate bill", source='Alpha'),
    Story(headline="Storm batters east coast towns", source='Beta'),
    Story(headline="Local bakery wins national award", source='Alpha'),
]


def test_tokenize_lowercases_and_ignores_punctuation():
    assert tokenize("Storm: Batters EAST-coast, towns!") == {'storm', 'batters', 'east', 'coast', 'towns'}


def test_similarity_bounds():
    assert headline_similarity('Same words here', 'same words HERE') == 1.0
    assert headline_similarity('alpha beta', 'gamma delta') == 0.0
    assert headline_similarity('', 'anything') == 0.0


def test_similarity_uses_larger_token_set():
    assert headline_similarity('climate bill', 'parliament passes new climate bill') == pytest.approx(2 / 5)


def test_best_match_prefers_highest_score():
    story, score = best_match('Storm batters the east coast', CANDIDATES)

    assert story is CANDIDATES[1]
    assert score == pytest.approx(4 / 5)


def test_match_headline_tolerates_punctuation_changes():
    assert match_headline('Parliament passes new climate bill.', CANDIDATES) is CANDIDATES[0]
    assert match_headline("Local bakery wins 'national' award!", CANDIDATES) is CANDIDATES[2]


def test_match_headline_rejects_weak_matches():
    assert match_headline('Markets rally on tech earnings', CANDIDATES) is None
    assert match_headline('climate talks stall', CANDIDATES, threshold=0.35) is None
