"""
index.py — Corpus storage plus a lazily validated vector cache.

The index owns the entries and one cached TF-IDF vector per entry. A cached
vector is reused as long as it was built against the current IDF version;
if the vocabulary grew since, it is zero-padded (exact, since the entry's
own terms were indexed when it was built). A newer IDF version forces a
rebuild.

Ranked search scores every non-failure entry on the overlap blend and,
for the cosine signal, scores the whole corpus in one sparse
matrix-vector product.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np
from scipy import sparse as sp

from experience_memory.entries import Entry
from experience_memory.features import FeatureExtractor
from experience_memory.similarity import SimilarityScorer
from experience_memory.vectors import Vectorizer

logger = logging.getLogger("experience_memory.index")


@dataclass
class SearchHit:
    entry: Entry
    score: float
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        d = self.entry.to_dict()
        d['score'] = round(self.score, 4)
        d['match_details'] = {k: round(v, 4) for k, v in self.breakdown.items()
                              if k != 'score'}
        return d


class RetrievalIndex:
    """
    Entries by id, in insertion order, with cached vectors.

    Not thread-safe on its own; the engine serializes access.
    """

    def __init__(self, extractor: FeatureExtractor, vectorizer: Vectorizer,
                 scorer: SimilarityScorer):
        self.extractor = extractor
        self.vectorizer = vectorizer
        self.scorer = scorer

        self._entries: Dict[str, Entry] = {}
        # id -> (vector, idf version it was built with)
        self._vectors: Dict[str, Tuple[np.ndarray, int]] = {}
        self._title_terms: Dict[str, FrozenSet[str]] = {}

    # -----------------------------------------------------------------------
    # Storage
    # -----------------------------------------------------------------------

    def add(self, entry: Entry):
        """Insert and vectorize immediately so the vocabulary absorbs the entry."""
        self._entries[entry.id] = entry
        self.refresh(entry)

    def refresh(self, entry: Entry):
        """Rebuild derived caches after an entry's text changed."""
        self._title_terms[entry.id] = frozenset(
            self.extractor.keywords(entry.title)
        )
        self._vectors[entry.id] = self._build(entry)

    def remove(self, entry_id: str) -> bool:
        if entry_id not in self._entries:
            return False
        del self._entries[entry_id]
        self._vectors.pop(entry_id, None)
        self._title_terms.pop(entry_id, None)
        return True

    def clear(self):
        self._entries.clear()
        self._vectors.clear()
        self._title_terms.clear()

    def get(self, entry_id: str) -> Optional[Entry]:
        return self._entries.get(entry_id)

    def entries(self, include_failures: bool = False) -> List[Entry]:
        return [e for e in self._entries.values()
                if include_failures or not e.is_failure]

    def failures(self) -> List[Entry]:
        return [e for e in self._entries.values() if e.is_failure]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id) -> bool:
        return entry_id in self._entries

    @property
    def cache_size(self) -> int:
        return len(self._vectors)

    # -----------------------------------------------------------------------
    # Vectors
    # -----------------------------------------------------------------------

    def _build(self, entry: Entry) -> Tuple[np.ndarray, int]:
        vec = self.vectorizer.vectorize(entry.keywords)
        return vec, self.vectorizer.idf.version

    def vector(self, entry_id: str) -> np.ndarray:
        """Cached vector reconciled to the current vocabulary size."""
        entry = self._entries[entry_id]
        cached = self._vectors.get(entry_id)
        if cached is None or cached[1] != self.vectorizer.idf.version:
            cached = self._build(entry)
            self._vectors[entry_id] = cached
        vec = cached[0]
        size = len(self.vectorizer.vocabulary)
        if len(vec) < size:
            vec = np.pad(vec, (0, size - len(vec)))
            self._vectors[entry_id] = (vec, cached[1])
        return vec

    def invalidate(self):
        self._vectors.clear()

    def matrix(self, entries: List[Entry]) -> sp.csr_matrix:
        """Sparse (n_entries, n_terms) matrix of current vectors."""
        size = len(self.vectorizer.vocabulary)
        if not entries:
            return sp.csr_matrix((0, size), dtype=np.float64)
        rows = [sp.csr_matrix(self.vector(e.id)) for e in entries]
        return sp.vstack(rows, format='csr')

    def cosine_scores(self, query_vec: np.ndarray,
                      entries: List[Entry]) -> np.ndarray:
        """Cosine of the query against each entry (vectors are unit length)."""
        mat = self.matrix(entries)
        if mat.shape[0] == 0:
            return np.zeros(0, dtype=np.float64)
        q = query_vec
        if len(q) < mat.shape[1]:
            q = np.pad(q, (0, mat.shape[1] - len(q)))
        scores = np.asarray(mat.dot(q)).ravel()
        return np.clip(scores, 0.0, 1.0)

    # -----------------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------------

    def search(self, query: str, top_k: int = 10, min_score: float = 0.3,
               touch: bool = True) -> List[SearchHit]:
        """
        Ranked non-failure entries for a free-text query.

        Ties on score go to the higher usage_count, then the older entry.

        Side effect: when touch is set, the top hit's usage_count and
        updated_at are bumped. Reads are not pure.
        """
        candidates = self.entries()
        if not candidates:
            return []

        features = self.extractor.extract(query)
        q_keywords = features.term_set
        q_vec = self.vectorizer.vectorize(features.terms)
        cosines = self.cosine_scores(q_vec, candidates)

        hits: List[SearchHit] = []
        for entry, cos in zip(candidates, cosines):
            parts = self.scorer.search_breakdown(
                q_keywords, features.tags,
                entry.keyword_set, entry.tags,
                self._title_terms.get(entry.id, frozenset()),
                float(cos),
            )
            score = parts.pop('score')
            if score >= min_score:
                hits.append(SearchHit(entry=entry, score=score, breakdown=parts))

        hits.sort(key=lambda h: (-h.score, -h.entry.usage_count,
                                 h.entry.created_at))
        hits = hits[:max(0, int(top_k))]

        if touch and hits:
            hits[0].entry.touch()

        logger.debug("search %r: %d candidates, %d hits",
                     query[:40], len(candidates), len(hits))
        return hits
