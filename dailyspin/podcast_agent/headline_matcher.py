"""
Token-overlap matching of model-written headlines back to real stories.
"""

import re
from typing import FrozenSet, Optional, Sequence, Tuple

from ..models import Story

MATCH_THRESHOLD = 0.35

_TOKEN = re.compile(r"[a-z0-9]+(?:'[a-z0-9]+)*")


def tokenize(text: str) -> FrozenSet[str]:
    return frozenset(_TOKEN.findall((text or "").lower()))


def headline_similarity(a: str, b: str) -> float:
    """
    |A ∩ B| / max(|A|, |B|) over lowercased word tokens; 0.0 if either is empty.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / max(len(tokens_a), len(tokens_b))


def best_match(headline: str, candidates: Sequence[Story]) -> Tuple[Optional[Story], float]:
    """Highest-scoring candidate (first one wins ties) and its score."""
    best: Optional[Story] = None
    best_score = 0.0
    for candidate in candidates:
        score = headline_similarity(headline, candidate.headline)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score


def match_headline(
    headline: str,
    candidates: Sequence[Story],
    threshold: float = MATCH_THRESHOLD
) -> Optional[Story]:
    """The best candidate if it scores at least `threshold`, else None."""
    story, score = best_match(headline, candidates)
    if story is None or score < threshold:
        return None
    return story
