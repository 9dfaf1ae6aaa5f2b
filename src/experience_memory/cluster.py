"""
cluster.py — Post-hoc grouping of the corpus by cosine-distance k-means.

Best effort: random distinct seeds, assign/recompute until assignments
stop changing or the iteration cap is hit. Every corpus entry, failures
included, lands in exactly one cluster; empty clusters are dropped, so
there are never more than min(k, N) groups.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from scipy import sparse as sp

from experience_memory.errors import InvalidInput
from experience_memory.index import RetrievalIndex

logger = logging.getLogger("experience_memory.cluster")


@dataclass
class Cluster:
    cluster_id: str
    entry_ids: List[str] = field(default_factory=list)
    representative_id: str = ''
    top_terms: List[str] = field(default_factory=list)
    cohesion: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'cluster_id': self.cluster_id,
            'entry_ids': list(self.entry_ids),
            'representative_id': self.representative_id,
            'top_terms': list(self.top_terms),
            'cohesion': round(self.cohesion, 4),
        }


def _row_normalize(mat: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(mat, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return mat / norms


class ClusterEngine:

    def __init__(self, index: RetrievalIndex, max_iterations: int = 50,
                 n_top_terms: int = 5):
        self.index = index
        self.max_iterations = max_iterations
        self.n_top_terms = n_top_terms

    def cluster(self, k: int, max_iterations: Optional[int] = None,
                seed: Optional[int] = None) -> List[Cluster]:
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise InvalidInput(f"k must be a positive integer, got {k!r}")
        if max_iterations is None:
            iterations = self.max_iterations
        elif isinstance(max_iterations, bool) \
                or not isinstance(max_iterations, int) or max_iterations < 1:
            raise InvalidInput(
                f"max_iterations must be a positive integer, got {max_iterations!r}"
            )
        else:
            iterations = max_iterations

        entries = self.index.entries(include_failures=True)
        n = len(entries)
        if n == 0:
            return []
        ids = [e.id for e in entries]

        if n < k:
            return [Cluster(cluster_id=_cluster_name(i), entry_ids=[eid],
                            representative_id=eid,
                            top_terms=self._top_terms(self.index.vector(eid)),
                            cohesion=1.0)
                    for i, eid in enumerate(ids)]

        X = self.index.matrix(entries)                     # (n, V) sparse
        rng = np.random.default_rng(seed)
        seeds = rng.choice(n, size=k, replace=False)
        centroids = X[seeds].toarray()

        assignments = None
        for it in range(iterations):
            sims = self._similarities(X, centroids)        # (n, k)
            new = np.argmax(sims, axis=1)
            if assignments is not None and np.array_equal(new, assignments):
                logger.debug("k-means converged after %d iterations", it)
                break
            assignments = new
            for c in range(k):
                members = np.flatnonzero(assignments == c)
                if len(members):
                    centroids[c] = np.asarray(X[members].mean(axis=0)).ravel()
        else:
            logger.debug("k-means stopped at iteration cap %d", iterations)

        sims = self._similarities(X, centroids)
        clusters: List[Cluster] = []
        for c in range(k):
            members = np.flatnonzero(assignments == c)
            if not len(members):
                continue
            member_sims = sims[members, c]
            rep = members[int(np.argmax(member_sims))]
            clusters.append(Cluster(
                cluster_id=_cluster_name(len(clusters)),
                entry_ids=[ids[i] for i in members],
                representative_id=ids[rep],
                top_terms=self._top_terms(centroids[c]),
                cohesion=float(member_sims.mean()),
            ))
        logger.debug("clustered %d entries into %d groups", n, len(clusters))
        return clusters

    @staticmethod
    def _similarities(X: sp.csr_matrix, centroids: np.ndarray) -> np.ndarray:
        # Rows of X are unit length (or zero); normalize centroids only.
        C = _row_normalize(centroids)
        return np.clip(np.asarray(X.dot(C.T)), 0.0, 1.0)

    def _top_terms(self, vec: np.ndarray) -> List[str]:
        vec = np.asarray(vec).ravel()
        if not vec.any():
            return []
        order = np.argsort(-vec, kind='stable')[:self.n_top_terms]
        vocab = self.index.vectorizer.vocabulary
        return [vocab.term_at(int(j)) for j in order if vec[j] > 0]


def _cluster_name(i: int) -> str:
    return f'cl_{i:03d}'
