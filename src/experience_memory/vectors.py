"""
vectors.py — Vocabulary, IDF table and TF-IDF vectorization.

Vocabulary is process-lifetime and append-only: a term gets the next free
column the first time any document or query mentions it, and keeps that
column forever. Vectors built earlier are therefore a prefix of what they
would be if rebuilt now, and zero-padding them is exact.

IDF is batch-computed and may be stale. Terms added after the last
recompute weigh 1.0 until the next one.
"""

import math
import logging
from typing import Counter as CounterT, Dict, Iterable, Iterator, List, Optional

import numpy as np

from experience_memory.errors import InvalidInput

logger = logging.getLogger("experience_memory.vectors")


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

class Vocabulary:
    """term -> column index. Grows by exactly one per unseen term."""

    def __init__(self):
        self._index: Dict[str, int] = {}
        self._terms: List[str] = []

    def index_of(self, term: str) -> int:
        idx = self._index.get(term)
        if idx is None:
            idx = len(self._index)
            self._index[term] = idx
            self._terms.append(term)
        return idx

    def get(self, term: str) -> Optional[int]:
        return self._index.get(term)

    def term_at(self, idx: int) -> Optional[str]:
        if 0 <= idx < len(self._terms):
            return self._terms[idx]
        return None

    def to_dict(self) -> Dict[str, int]:
        return dict(self._index)

    @classmethod
    def from_dict(cls, data) -> "Vocabulary":
        if not isinstance(data, dict):
            raise InvalidInput("vocabulary must be a mapping of term -> index")
        vocab = cls()
        for term, idx in sorted(data.items(), key=lambda kv: kv[1]):
            if not isinstance(term, str) or not isinstance(idx, int) \
                    or isinstance(idx, bool):
                raise InvalidInput(f"bad vocabulary item {term!r}: {idx!r}")
            if idx != len(vocab._index):
                raise InvalidInput(
                    f"vocabulary indices must be 0..n-1 without gaps "
                    f"(term {term!r} has {idx}, expected {len(vocab._index)})"
                )
            vocab._index[term] = idx
            vocab._terms.append(term)
        return vocab

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, term) -> bool:
        return term in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)


# ---------------------------------------------------------------------------
# IDF
# ---------------------------------------------------------------------------

class IdfTable:
    """
    term -> ln(N / df).

    `version` increments on every recompute or load; vector caches compare
    it to decide whether a cached vector still reflects current weights.
    """

    NEUTRAL = 1.0

    def __init__(self):
        self._idf: Dict[str, float] = {}
        self.n_documents: int = 0
        self.version: int = 0

    def weight(self, term: str) -> float:
        return self._idf.get(term, self.NEUTRAL)

    def recompute(self, documents: Iterable[Iterable[str]],
                  vocabulary: Vocabulary):
        """One pass over the corpus term sets. Covers every vocabulary term."""
        df: Dict[str, int] = {}
        n = 0
        for terms in documents:
            n += 1
            for t in set(terms):
                df[t] = df.get(t, 0) + 1

        idf: Dict[str, float] = {}
        for term in vocabulary:
            d = df.get(term, 0)
            idf[term] = math.log(n / d) if d > 0 else 0.0
        self._idf = idf
        self.n_documents = n
        self.version += 1
        logger.debug("IDF recomputed: %d documents, %d terms", n, len(idf))

    def to_dict(self) -> Dict[str, float]:
        return dict(self._idf)

    def load(self, data, n_documents: int = 0):
        if not isinstance(data, dict):
            raise InvalidInput("idf must be a mapping of term -> weight")
        try:
            self._idf = {str(k): float(v) for k, v in data.items()}
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"bad idf weight: {e}") from e
        self.n_documents = int(n_documents or 0)
        self.version += 1

    def __len__(self) -> int:
        return len(self._idf)

    def __contains__(self, term) -> bool:
        return term in self._idf


# ---------------------------------------------------------------------------
# Vectorizer
# ---------------------------------------------------------------------------

class Vectorizer:
    """
    Term multiset -> L2-normalized TF-IDF vector over the current vocabulary.

    tf = count / max_count, weight = tf * idf (idf = 1 when disabled).
    Pure given (terms, vocabulary, idf): identical inputs give bit-identical
    output.
    """

    def __init__(self, vocabulary: Vocabulary, idf: IdfTable,
                 use_idf: bool = True):
        self.vocabulary = vocabulary
        self.idf = idf
        self.use_idf = use_idf

    def vectorize(self, terms: CounterT[str]) -> np.ndarray:
        # Index first so the array is sized after any vocabulary growth.
        slots = [(self.vocabulary.index_of(t), t, c)
                 for t, c in terms.items() if c > 0]
        vec = np.zeros(len(self.vocabulary), dtype=np.float64)
        if not slots:
            return vec

        max_count = max(c for _, _, c in slots)
        for j, term, count in slots:
            w = self.idf.weight(term) if self.use_idf else 1.0
            vec[j] = (count / max_count) * w

        norm = float(np.linalg.norm(vec))
        if norm > 0:
            vec /= norm
        return vec
