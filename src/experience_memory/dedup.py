"""
dedup.py — Insert-time near-duplicate detection and merging.

A candidate entry is compared (dedup blend over keyword sets) with every
entry of its own bucket: successful entries against successful ones,
failures against failures. Above merge_threshold the candidate is folded
into the best match instead of growing the corpus.

The same scorer answers "was this approach tried and did it fail": the
proposed solution is compared against the solution of each recorded
failure. Context never scores on its own. When both sides carry one it
gates the match, and a matching context strengthens a solution score
in proportion to that score, so solutions sharing no terms never match.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from experience_memory.entries import Entry
from experience_memory.features import FeatureExtractor, entry_text
from experience_memory.index import RetrievalIndex
from experience_memory.similarity import SimilarityScorer

logger = logging.getLogger("experience_memory.dedup")


class Action(str, Enum):
    INSERT = 'insert'
    MERGE = 'merge'


@dataclass
class Proposal:
    action: Action
    target: Optional[str] = None
    similarity: float = 0.0


@dataclass
class FailureCheck:
    is_failed: bool
    matched_failure: Optional[Entry] = None
    similarity: Optional[float] = None
    solution_similarity: Optional[float] = None
    context_similarity: Optional[float] = None
    message: str = ''

    def to_dict(self) -> Dict:
        return {
            'is_failed': self.is_failed,
            'matched_failure': (self.matched_failure.to_dict()
                                if self.matched_failure else None),
            'similarity': self.similarity,
            'solution_similarity': self.solution_similarity,
            'context_similarity': self.context_similarity,
            'message': self.message,
        }


class DedupMerger:

    def __init__(self, index: RetrievalIndex, scorer: SimilarityScorer,
                 extractor: FeatureExtractor, merge_threshold: float = 0.75):
        self.index = index
        self.scorer = scorer
        self.extractor = extractor
        self.merge_threshold = merge_threshold

    # -----------------------------------------------------------------------
    # Insert-time dedup
    # -----------------------------------------------------------------------

    def similar(self, candidate: Entry,
                threshold: Optional[float] = None) -> List[Dict]:
        """Same-bucket entries scoring above threshold, best first."""
        threshold = self.merge_threshold if threshold is None else threshold
        pool = (self.index.failures() if candidate.is_failure
                else self.index.entries())
        keywords = candidate.keyword_set
        out = []
        for entry in pool:
            if entry.id == candidate.id:
                continue
            score = self.scorer.overlap(keywords, entry.keyword_set)
            if score > threshold:
                out.append({'entry': entry, 'similarity': score})
        out.sort(key=lambda d: (-d['similarity'], d['entry'].created_at))
        return out

    def propose_insert(self, candidate: Entry) -> Proposal:
        matches = self.similar(candidate)
        if not matches:
            return Proposal(action=Action.INSERT)
        best = matches[0]
        return Proposal(action=Action.MERGE, target=best['entry'].id,
                        similarity=best['similarity'])

    def merge(self, target: Entry, incoming: Entry) -> Entry:
        """
        Fold incoming into target in place.

        Solution text gains a timestamped update block, derived features are
        recomputed from the merged text and unioned with the incoming ones,
        success rates are averaged, usage_count goes up by one.
        """
        new_solution = incoming.solution.strip()
        if new_solution and new_solution not in target.solution:
            stamp = datetime.now().isoformat(timespec="seconds")
            target.solution = (f"{target.solution}\n\n"
                               f"**Update ({stamp}):**\n{new_solution}")
        if incoming.context and incoming.context not in target.context:
            target.context = entry_text(target.context, incoming.context)

        target.derive(self.extractor)
        target.tags = target.tags | incoming.tags
        target.keywords = target.keywords | incoming.keywords

        if not target.is_failure:
            incoming_rate = (incoming.success_rate
                             if incoming.success_rate is not None else 100.0)
            current = (target.success_rate
                       if target.success_rate is not None else 100.0)
            target.success_rate = (current + incoming_rate) / 2.0
        if incoming.reason and incoming.reason not in target.reason:
            target.reason = entry_text(target.reason, incoming.reason)

        target.touch()
        logger.info("merged into %s (usage_count=%d)",
                    target.id, target.usage_count)
        return target

    # -----------------------------------------------------------------------
    # Failure lookup
    # -----------------------------------------------------------------------

    def _terms(self, text: str) -> FrozenSet[str]:
        return frozenset(self.extractor.keywords(text))

    def check_prior_failure(self, solution: str, context: str = '',
                            threshold: float = 0.7,
                            context_threshold: float = 0.5,
                            context_boost: float = 1.0) -> FailureCheck:
        """
        Best recorded failure whose solution resembles this one.

        similarity = s + (1 - s) * s * context_boost * c, where s is the
        solution overlap and c the context overlap (0 unless both sides
        carry a context). s == 0 always gives 0.
        """
        attempt = self._terms(solution)
        if not attempt:
            return FailureCheck(is_failed=False)
        context_terms = self._terms(context)

        best: Optional[FailureCheck] = None
        for failure in self.index.failures():
            sol_sim = self.scorer.overlap(attempt, self._terms(failure.solution))
            if sol_sim <= 0.0:
                continue

            ctx_sim = None
            if context_terms and failure.context.strip():
                ctx_sim = self.scorer.overlap(context_terms,
                                              self._terms(failure.context))
                if ctx_sim < context_threshold:
                    continue

            sim = sol_sim
            if ctx_sim:
                sim = min(1.0, sol_sim
                          + (1.0 - sol_sim) * sol_sim * context_boost * ctx_sim)
            if sim <= threshold:
                continue

            if best is None or sim > best.similarity:
                best = FailureCheck(
                    is_failed=True,
                    matched_failure=failure,
                    similarity=sim,
                    solution_similarity=sol_sim,
                    context_similarity=ctx_sim,
                    message=(
                        f"this approach failed before "
                        f"(similarity {sim:.0%}): "
                        f"{failure.reason or 'no reason recorded'}"
                    ),
                )

        if best is None:
            return FailureCheck(is_failed=False)
        logger.info("prior failure matched: %s (%.2f)",
                    best.matched_failure.id, best.similarity)
        return best
