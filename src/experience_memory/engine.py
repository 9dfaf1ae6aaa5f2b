"""
engine.py — The experience engine: one corpus, one vocabulary, one lock.

Retrieval and deduplication share a single computational core:

  text -> FeatureExtractor -> (terms, tags)
       -> Vectorizer (grows Vocabulary, reads IDF) -> cached in RetrievalIndex
  query follows the same path and is scored with SimilarityScorer
  insert runs DedupMerger against the index before committing
  ClusterEngine groups the corpus post hoc

Engines are plain objects, so independent corpora (one per project, one
per test) never share state.

Concurrency: single writer. Every public method takes the engine's lock,
including search, which grows the vocabulary and bumps the top hit's
usage_count.

Persistence is the host's job: export_snapshot() / import_snapshot() are
the only contract. See library.py for a host.
"""

import time
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from experience_memory.cluster import Cluster, ClusterEngine
from experience_memory.config import EngineConfig, IdfPolicy
from experience_memory.dedup import Action, DedupMerger, FailureCheck
from experience_memory.entries import Category, Entry, new_entry_id
from experience_memory.errors import InvalidInput, optional_text, require_text
from experience_memory.features import FeatureExtractor, entry_text
from experience_memory.index import RetrievalIndex, SearchHit
from experience_memory.similarity import SimilarityScorer
from experience_memory.vectors import IdfTable, Vectorizer, Vocabulary

logger = logging.getLogger("experience_memory.engine")

SNAPSHOT_VERSION = 1


@dataclass
class RecordResult:
    id: str
    merged: bool = False
    merged_into: Optional[str] = None
    similarity: Optional[float] = None

    def to_dict(self) -> Dict:
        return {'id': self.id, 'merged': self.merged,
                'merged_into': self.merged_into,
                'similarity': self.similarity}


class ExperienceEngine:
    """
    Feature extraction, TF-IDF vectors, blended similarity, dedup/merge and
    k-means clustering over an append-only corpus of experience entries.

    Parameters come from EngineConfig; keyword overrides are applied on top:

        engine = ExperienceEngine(merge_threshold=0.8, idf_policy='manual')
    """

    def __init__(self, config: Optional[EngineConfig] = None, **overrides):
        config = config or EngineConfig()
        if overrides:
            config = config.with_overrides(**overrides)
        self.config = config
        self._lock = threading.RLock()

        self.extractor = FeatureExtractor(
            min_term_length=config.min_term_length,
            stop_words=config.stop_words,
            tag_dictionary=config.tag_dictionary,
        )
        self.scorer = SimilarityScorer(
            dedup_weights=config.dedup_weights,
            search_weights=config.search_weights,
            substring_weight=config.substring_weight,
        )
        self._reset(Vocabulary(), IdfTable())

    def _reset(self, vocabulary: Vocabulary, idf: IdfTable):
        self.vocabulary = vocabulary
        self.idf = idf
        self.vectorizer = Vectorizer(vocabulary, idf,
                                     use_idf=self.config.use_idf)
        self.index = RetrievalIndex(self.extractor, self.vectorizer,
                                    self.scorer)
        self.dedup = DedupMerger(self.index, self.scorer, self.extractor,
                                 merge_threshold=self.config.merge_threshold)
        self.clusters = ClusterEngine(
            self.index, max_iterations=self.config.cluster_max_iterations
        )

    # -----------------------------------------------------------------------
    # Recording
    # -----------------------------------------------------------------------

    def record_entry(
        self,
        category,
        title: str,
        problem: str,
        solution: str,
        context: Optional[str] = '',
        success_rate: Optional[float] = 100.0,
        reason: Optional[str] = '',
    ) -> RecordResult:
        """
        Insert a new entry, or merge it into a near-duplicate.

        Returns the id that now holds the experience and whether a merge
        happened.
        """
        with self._lock:
            result = self._record(category, title, problem, solution,
                                  context, success_rate, reason)
            if self.config.idf_policy is IdfPolicy.EACH_INSERT:
                self._recompute_idf()
            return result

    def record_entries(self, items: Iterable[Dict]) -> List[RecordResult]:
        """
        Batch insert. Under the batch_only policy IDF is refreshed once at
        the end. Items before an invalid one stay recorded.
        """
        with self._lock:
            results = []
            for item in items:
                if not isinstance(item, dict):
                    raise InvalidInput(
                        f"batch items must be mappings, got {type(item).__name__}"
                    )
                results.append(self._record(
                    item.get('category', item.get('type', 'pattern')),
                    item.get('title', ''),
                    item.get('problem'),
                    item.get('solution'),
                    item.get('context', ''),
                    item.get('success_rate', 100.0),
                    item.get('reason', ''),
                ))
                if self.config.idf_policy is IdfPolicy.EACH_INSERT:
                    self._recompute_idf()
            if results and self.config.idf_policy is IdfPolicy.BATCH_ONLY:
                self._recompute_idf()
            return results

    def record_failure(self, problem: str, attempted_solution: str,
                       reason: Optional[str] = '',
                       context: Optional[str] = '',
                       title: Optional[str] = '') -> RecordResult:
        """Record an approach that did not work, for check_prior_failure."""
        return self.record_entry(Category.FAILURE, title or '', problem,
                                 attempted_solution, context=context,
                                 success_rate=None, reason=reason)

    def _record(self, category, title, problem, solution, context,
                success_rate, reason) -> RecordResult:
        category = Category.parse(category)
        title = optional_text('title', title)
        problem = require_text('problem', problem)
        solution = require_text('solution', solution)
        context = optional_text('context', context)
        reason = optional_text('reason', reason)

        if category is Category.FAILURE:
            success_rate = None
        else:
            success_rate = _check_rate(success_rate)

        now = time.time()
        entry = Entry(
            id=self._new_id(category, entry_text(title, problem, solution)),
            category=category,
            title=title,
            problem=problem,
            solution=solution,
            context=context,
            success_rate=success_rate,
            reason=reason,
            created_at=now,
            updated_at=now,
        )
        entry.derive(self.extractor)

        proposal = self.dedup.propose_insert(entry)
        if proposal.action is Action.MERGE:
            target = self.index.get(proposal.target)
            self.dedup.merge(target, entry)
            self.index.refresh(target)
            return RecordResult(id=target.id, merged=True,
                                merged_into=target.id,
                                similarity=proposal.similarity)

        self.index.add(entry)
        logger.info("recorded %s %s: %s", category.value, entry.id,
                    (title or problem)[:60])
        return RecordResult(id=entry.id)

    def _new_id(self, category: Category, text: str) -> str:
        while True:
            entry_id = new_entry_id(category, text)
            if entry_id not in self.index:
                return entry_id

    # -----------------------------------------------------------------------
    # Retrieval
    # -----------------------------------------------------------------------

    def find_solution(self, problem_text: str,
                      min_score: Optional[float] = None,
                      top_k: Optional[int] = None) -> List[SearchHit]:
        """
        Rank successful entries against a problem description.

        Side effect: the top hit's usage_count and updated_at are bumped.
        """
        require_text('problem_text', problem_text)
        min_score = self.config.default_min_score if min_score is None \
            else float(min_score)
        top_k = self.config.default_top_k if top_k is None else int(top_k)
        if top_k < 1:
            raise InvalidInput("top_k must be >= 1")
        with self._lock:
            hits = self.index.search(problem_text, top_k=top_k,
                                     min_score=min_score)
        logger.debug("find_solution: %d hits", len(hits))
        return hits

    def check_prior_failure(self, solution_text: str,
                            context_text: Optional[str] = '',
                            threshold: Optional[float] = None) -> FailureCheck:
        """Does this proposed solution resemble a recorded failure?"""
        require_text('solution_text', solution_text)
        context_text = optional_text('context_text', context_text)
        threshold = self.config.failure_threshold if threshold is None \
            else float(threshold)
        with self._lock:
            return self.dedup.check_prior_failure(
                solution_text, context_text, threshold=threshold,
                context_threshold=self.config.failure_context_threshold,
                context_boost=self.config.failure_context_boost,
            )

    def similarity(self, text_a: str, text_b: str) -> float:
        """
        Dedup-blend similarity of two free texts.

        Texts made only of stop words or short terms fall back to their
        unfiltered lowercase pieces, so similarity(x, x) is 1 for any x
        with at least one word character. Both sides always use the same
        representation.
        """
        require_text('text_a', text_a)
        require_text('text_b', text_b)
        a = frozenset(self.extractor.keywords(text_a))
        b = frozenset(self.extractor.keywords(text_b))
        if not a or not b:
            a = self.extractor.surface_terms(text_a)
            b = self.extractor.surface_terms(text_b)
        return self.scorer.overlap(a, b)

    def find_similar(self, title: str, problem: str, solution: str,
                     threshold: Optional[float] = None) -> List[Dict]:
        """Existing entries an entry with this text would be compared to on insert."""
        candidate = Entry(id='', category=Category.PATTERN,
                          title=optional_text('title', title),
                          problem=require_text('problem', problem),
                          solution=require_text('solution', solution))
        candidate.derive(self.extractor)
        with self._lock:
            return self.dedup.similar(candidate, threshold)

    # -----------------------------------------------------------------------
    # Clustering / IDF
    # -----------------------------------------------------------------------

    def cluster(self, k: int, max_iterations: Optional[int] = None,
                seed: Optional[int] = None) -> List[Cluster]:
        with self._lock:
            return self.clusters.cluster(
                k, max_iterations=max_iterations,
                seed=self.config.seed if seed is None else seed,
            )

    def recompute_idf(self):
        with self._lock:
            self._recompute_idf()

    def _recompute_idf(self):
        self.idf.recompute(
            (e.keywords for e in self.index.entries(include_failures=True)),
            self.vocabulary,
        )

    # -----------------------------------------------------------------------
    # Snapshot
    # -----------------------------------------------------------------------

    def export_snapshot(self) -> Dict:
        """JSON-ready state: parameters, entries, vocabulary and IDF."""
        with self._lock:
            return {
                'version': SNAPSHOT_VERSION,
                'params': self.config.to_dict(),
                'entries': [e.to_dict()
                            for e in self.index.entries(include_failures=True)],
                'vocabulary': self.vocabulary.to_dict(),
                'idf': self.idf.to_dict(),
                'idf_documents': self.idf.n_documents,
            }

    def import_snapshot(self, snapshot: Dict):
        """
        Replace this engine's corpus with a snapshot's.

        Parameters stay those of this engine; use from_snapshot() to adopt
        the snapshot's. Entries are restored as-is, without dedup.
        """
        if not isinstance(snapshot, dict):
            raise InvalidInput("snapshot must be a mapping")
        raw_entries = snapshot.get('entries', [])
        if not isinstance(raw_entries, list):
            raise InvalidInput("snapshot entries must be a list")

        vocabulary = Vocabulary.from_dict(snapshot.get('vocabulary') or {})
        idf = IdfTable()
        idf.load(snapshot.get('idf') or {}, snapshot.get('idf_documents', 0))
        entries = [Entry.from_dict(d, self.extractor) for d in raw_entries]
        seen = set()
        for e in entries:
            if e.id in seen:
                raise InvalidInput(f"duplicate entry id in snapshot: {e.id}")
            seen.add(e.id)

        with self._lock:
            self._reset(vocabulary, idf)
            for e in entries:
                self.index.add(e)
            if self.config.idf_policy is not IdfPolicy.MANUAL:
                self._recompute_idf()
        logger.info("imported snapshot: %d entries, %d terms",
                    len(entries), len(vocabulary))

    @classmethod
    def from_snapshot(cls, snapshot: Dict, **overrides) -> "ExperienceEngine":
        if not isinstance(snapshot, dict):
            raise InvalidInput("snapshot must be a mapping")
        config = EngineConfig.from_dict(snapshot.get('params'))
        engine = cls(config, **overrides)
        engine.import_snapshot(snapshot)
        return engine

    # -----------------------------------------------------------------------
    # Inspection
    # -----------------------------------------------------------------------

    def get(self, entry_id: str) -> Optional[Entry]:
        with self._lock:
            return self.index.get(entry_id)

    def entries(self, category=None) -> List[Entry]:
        with self._lock:
            all_entries = self.index.entries(include_failures=True)
        if category is None:
            return all_entries
        category = Category.parse(category)
        return [e for e in all_entries if e.category is category]

    def most_used(self, n: int = 5) -> List[Dict]:
        with self._lock:
            ranked = sorted(self.index.entries(),
                            key=lambda e: (-e.usage_count, e.created_at))[:n]
            return [{'id': e.id, 'title': e.title, 'usage_count': e.usage_count}
                    for e in ranked]

    def recently_added(self, n: int = 5) -> List[Dict]:
        with self._lock:
            ranked = sorted(self.index.entries(),
                            key=lambda e: e.created_at, reverse=True)[:n]
            return [{'id': e.id, 'title': e.title, 'created_at': e.created_at}
                    for e in ranked]

    def stats(self) -> Dict:
        with self._lock:
            all_entries = self.index.entries(include_failures=True)
            by_category = {c.value: 0 for c in Category}
            for e in all_entries:
                by_category[e.category.value] += 1
            return {
                'total': len(all_entries),
                'by_category': by_category,
                'vocabulary_size': len(self.vocabulary),
                'idf_terms': len(self.idf),
                'idf_documents': self.idf.n_documents,
                'idf_policy': self.config.idf_policy.value,
                'cached_vectors': self.index.cache_size,
                'most_used': self.most_used(5),
                'recently_added': self.recently_added(5),
            }

    def __len__(self) -> int:
        return len(self.index)


def _check_rate(rate) -> float:
    if rate is None:
        return 100.0
    if isinstance(rate, bool):
        raise InvalidInput("success_rate must be a number")
    try:
        rate = float(rate)
    except (TypeError, ValueError):
        raise InvalidInput(f"success_rate must be a number, got {rate!r}") from None
    if not 0.0 <= rate <= 100.0:
        raise InvalidInput(f"success_rate must be within [0, 100], got {rate}")
    return rate
