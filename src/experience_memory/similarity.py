"""
similarity.py — Scoring primitives and the two blends built on them.

Every signal lands in [0, 1], is symmetric, and is 0 when either side is
empty. Division by zero resolves to 0, never NaN.

Blends:
  dedup   0.6 * substring_overlap + 0.4 * jaccard      (one field pair)
  search  0.4 * keyword + 0.4 * tag + 0.2 * title (+ w * cosine)
          where each of keyword/tag/title is the dedup blend applied
          to a different field pair
"""

from dataclasses import dataclass
from typing import AbstractSet, Dict, Iterable, Optional

import numpy as np


@dataclass(frozen=True)
class DedupWeights:
    substring: float = 0.6
    jaccard: float = 0.4


@dataclass(frozen=True)
class SearchWeights:
    keyword: float = 0.4
    tag: float = 0.4
    title: float = 0.2
    cosine: float = 0.0


# ---------------------------------------------------------------------------
# Vector signal
# ---------------------------------------------------------------------------

def reconcile(a: np.ndarray, b: np.ndarray):
    """Zero-pad the shorter vector so both share the longer's length."""
    if len(a) < len(b):
        a = np.pad(a, (0, len(b) - len(a)))
    elif len(b) < len(a):
        b = np.pad(b, (0, len(a) - len(b)))
    return a, b


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    a, b = reconcile(np.asarray(a, dtype=np.float64),
                     np.asarray(b, dtype=np.float64))
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return _clip(float(np.dot(a, b)) / (na * nb))


# ---------------------------------------------------------------------------
# Set signals
# ---------------------------------------------------------------------------

def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = _as_set(a), _as_set(b)
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / len(sa | sb)


def substring_overlap(a: Iterable[str], b: Iterable[str],
                      substring_weight: float = 0.7) -> float:
    """
    Weighted containment of one term set in the other.

    Each term scores 1.0 on an exact hit, substring_weight when it contains
    or is contained in some term on the other side, 0 otherwise. Both
    directions are accumulated and averaged, then divided by the larger set.
    """
    sa, sb = _as_set(a), _as_set(b)
    if not sa or not sb:
        return 0.0
    forward = _directed_hits(sa, sb, substring_weight)
    backward = _directed_hits(sb, sa, substring_weight)
    return _clip((forward + backward) / 2.0 / max(len(sa), len(sb)))


def _directed_hits(source: AbstractSet[str], target: AbstractSet[str],
                   substring_weight: float) -> float:
    total = 0.0
    for term in source:
        if term in target:
            total += 1.0
        elif any(term in other or other in term for other in target):
            total += substring_weight
    return total


def _as_set(terms) -> AbstractSet[str]:
    if isinstance(terms, (set, frozenset)):
        return terms
    if terms is None:
        return frozenset()
    return frozenset(terms)


def _clip(x: float) -> float:
    if x != x or x <= 0.0:
        return 0.0
    return 1.0 if x > 1.0 else x


# ---------------------------------------------------------------------------
# Blends
# ---------------------------------------------------------------------------

class SimilarityScorer:
    """Holds the blend weights so search and dedup can differ per engine."""

    def __init__(
        self,
        dedup_weights: Optional[DedupWeights] = None,
        search_weights: Optional[SearchWeights] = None,
        substring_weight: float = 0.7,
    ):
        self.dedup_weights = dedup_weights or DedupWeights()
        self.search_weights = search_weights or SearchWeights()
        self.substring_weight = substring_weight

    def overlap(self, a: Iterable[str], b: Iterable[str]) -> float:
        """Dedup blend on one pair of term sets."""
        sa, sb = _as_set(a), _as_set(b)
        if not sa or not sb:
            return 0.0
        w = self.dedup_weights
        score = (w.substring * substring_overlap(sa, sb, self.substring_weight)
                 + w.jaccard * jaccard(sa, sb))
        return _clip(score)

    def search_breakdown(
        self,
        query_keywords: AbstractSet[str],
        query_tags: AbstractSet[str],
        entry_keywords: AbstractSet[str],
        entry_tags: AbstractSet[str],
        title_keywords: AbstractSet[str],
        cosine_score: float = 0.0,
    ) -> Dict[str, float]:
        """Per-signal scores plus the weighted 'score' used for ranking."""
        w = self.search_weights
        parts = {
            'keyword': self.overlap(query_keywords, entry_keywords),
            'tag': self.overlap(query_tags, entry_tags),
            'title': self.overlap(query_keywords, title_keywords),
            'cosine': _clip(cosine_score),
        }
        parts['score'] = _clip(
            w.keyword * parts['keyword']
            + w.tag * parts['tag']
            + w.title * parts['title']
            + w.cosine * parts['cosine']
        )
        return parts
