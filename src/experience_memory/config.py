"""
config.py — Engine parameters.

Every tunable of the engine lives on EngineConfig so a snapshot can carry
the parameters it was built with (`params` block), the same way a saved
store records its constructor arguments.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from experience_memory.errors import InvalidInput
from experience_memory.features import STOP_WORDS, TAG_DICTIONARY
from experience_memory.similarity import DedupWeights, SearchWeights


class IdfPolicy(str, Enum):
    EACH_INSERT = 'each_insert'   # recompute after every insert or merge
    BATCH_ONLY = 'batch_only'     # after record_entries / import_snapshot
    MANUAL = 'manual'             # only on recompute_idf()

    @classmethod
    def parse(cls, value) -> "IdfPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace('-', '_'))
        except ValueError:
            raise InvalidInput(
                f"unknown idf_policy {value!r}; expected one of "
                f"{', '.join(p.value for p in cls)}"
            ) from None


@dataclass
class EngineConfig:
    # feature extraction
    min_term_length: int = 2
    stop_words: Tuple[str, ...] = tuple(sorted(STOP_WORDS))
    tag_dictionary: Tuple[str, ...] = TAG_DICTIONARY

    # vectorization
    use_idf: bool = True
    idf_policy: IdfPolicy = IdfPolicy.BATCH_ONLY

    # scoring
    substring_weight: float = 0.7
    dedup_weights: DedupWeights = field(default_factory=DedupWeights)
    search_weights: SearchWeights = field(default_factory=SearchWeights)

    # thresholds
    merge_threshold: float = 0.75
    failure_threshold: float = 0.7
    failure_context_threshold: float = 0.5
    failure_context_boost: float = 1.0
    default_min_score: float = 0.3
    default_top_k: int = 10

    # clustering
    cluster_max_iterations: int = 50
    seed: Optional[int] = None

    def __post_init__(self):
        self.idf_policy = IdfPolicy.parse(self.idf_policy)
        if isinstance(self.dedup_weights, dict):
            self.dedup_weights = DedupWeights(**self.dedup_weights)
        elif isinstance(self.dedup_weights, (tuple, list)):
            self.dedup_weights = DedupWeights(*self.dedup_weights)
        if isinstance(self.search_weights, dict):
            self.search_weights = SearchWeights(**self.search_weights)
        elif isinstance(self.search_weights, (tuple, list)):
            self.search_weights = SearchWeights(*self.search_weights)
        self.stop_words = tuple(self.stop_words)
        self.tag_dictionary = tuple(self.tag_dictionary)

        for name in ('merge_threshold', 'failure_threshold',
                     'failure_context_threshold', 'failure_context_boost',
                     'default_min_score', 'substring_weight'):
            v = getattr(self, name)
            if not 0.0 <= float(v) <= 1.0:
                raise InvalidInput(f"{name} must be within [0, 1], got {v}")
        if self.default_top_k < 1:
            raise InvalidInput("default_top_k must be >= 1")
        if self.cluster_max_iterations < 1:
            raise InvalidInput("cluster_max_iterations must be >= 1")
        if self.min_term_length < 1:
            raise InvalidInput("min_term_length must be >= 1")

    def with_overrides(self, **overrides) -> "EngineConfig":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidInput(f"unknown engine parameter(s): {sorted(unknown)}")
        return replace(self, **overrides)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['idf_policy'] = self.idf_policy.value
        d['stop_words'] = list(self.stop_words)
        d['tag_dictionary'] = list(self.tag_dictionary)
        return d

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> "EngineConfig":
        if not d:
            return cls()
        if not isinstance(d, dict):
            raise InvalidInput("params must be a mapping")
        known = {f.name for f in fields(cls)}
        try:
            return cls(**{k: v for k, v in d.items() if k in known})
        except TypeError as e:
            raise InvalidInput(f"bad engine params: {e}") from e
