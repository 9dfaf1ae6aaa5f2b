"""
Experience Memory — Reusable problem/solution memory for assistants.

Retrieval and deduplication over an append-only corpus of experience
entries, built on lightweight tokenization, TF-IDF vectors and blended
overlap scoring. No embeddings, no model dependency.

Usage:
    from experience_memory import ExperienceEngine

    engine = ExperienceEngine()
    engine.record_entry("bugfix", "PM2 startup failure",
                        "PM2 cannot start, module type error",
                        "rename to .cjs, use CommonJS")
    hits = engine.find_solution("pm2 module error on start")
    check = engine.check_prior_failure("hardcode resolution 1920x1080")

    snapshot = engine.export_snapshot()      # persist however you like
    engine = ExperienceEngine.from_snapshot(snapshot)
"""

__version__ = "1.0.0"

from experience_memory.cluster import Cluster, ClusterEngine
from experience_memory.config import EngineConfig, IdfPolicy
from experience_memory.dedup import Action, DedupMerger, FailureCheck, Proposal
from experience_memory.engine import ExperienceEngine, RecordResult
from experience_memory.entries import Category, Entry
from experience_memory.errors import ExperienceMemoryError, InvalidInput
from experience_memory.features import FeatureExtractor, Features
from experience_memory.index import RetrievalIndex, SearchHit
from experience_memory.library import ExperienceLibrary
from experience_memory.similarity import (
    DedupWeights,
    SearchWeights,
    SimilarityScorer,
    cosine,
    jaccard,
    substring_overlap,
)
from experience_memory.vectors import IdfTable, Vectorizer, Vocabulary

__all__ = [
    "Action",
    "Category",
    "Cluster",
    "ClusterEngine",
    "DedupMerger",
    "DedupWeights",
    "EngineConfig",
    "Entry",
    "ExperienceEngine",
    "ExperienceLibrary",
    "ExperienceMemoryError",
    "FailureCheck",
    "FeatureExtractor",
    "Features",
    "IdfPolicy",
    "IdfTable",
    "InvalidInput",
    "Proposal",
    "RecordResult",
    "RetrievalIndex",
    "SearchHit",
    "SearchWeights",
    "SimilarityScorer",
    "Vectorizer",
    "Vocabulary",
    "cosine",
    "jaccard",
    "substring_overlap",
]
