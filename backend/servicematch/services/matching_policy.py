"""
ServiceMatch Backend - Matching Policy
=======================================

Thresholds and selection rules applied on top of ranked similarity results.

    DEFAULT_SEARCH_THRESHOLD   0.3   floor for free-text search
    HIGH_CONFIDENCE_THRESHOLD  0.6   strict floor for notifying a provider
    FANOUT_TOP_N               10    candidates considered by the fan-out
    DEFAULT_SIMILAR_LIMIT      5     results of "similar services"

These are product decisions, not deployment settings, so they stay constants.
"""

import math
from typing import Iterable, List, Sequence

from servicematch.services.similarity_search import MatchResult

DEFAULT_SEARCH_THRESHOLD = 0.3
HIGH_CONFIDENCE_THRESHOLD = 0.6
FANOUT_TOP_N = 10
DEFAULT_SIMILAR_LIMIT = 5
DEFAULT_SEARCH_LIMIT = 20
DEFAULT_MATCHING_LIMIT = 10


def is_high_confidence(similarity: float) -> bool:
    # Strictly greater: exactly 0.6 does not qualify
    return similarity > HIGH_CONFIDENCE_THRESHOLD


def select_notify_set(matches: Sequence[MatchResult]) -> List[MatchResult]:
    """High-confidence matches among the first FANOUT_TOP_N, in rank order."""
    return [m for m in matches[:FANOUT_TOP_N] if is_high_confidence(m.similarity)]


def match_percentage(similarity: float) -> int:
    """Similarity as a whole percentage, rounding halves up (0.625 → 63)."""
    return int(math.floor(similarity * 100 + 0.5))


def rank(matches: Iterable[MatchResult]) -> List[MatchResult]:
    """Sort by similarity, best first. Ties keep their incoming order."""
    return sorted(matches, key=lambda m: m.similarity, reverse=True)
