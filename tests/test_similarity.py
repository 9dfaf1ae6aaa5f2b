"""Tests for the scoring primitives and blends."""

import numpy as np
import pytest

from experience_memory import (
    DedupWeights,
    SearchWeights,
    SimilarityScorer,
    cosine,
    jaccard,
    substring_overlap,
)


class TestPrimitives:

    def test_jaccard(self):
        assert jaccard({"aa", "bb"}, {"bb", "cc"}) == pytest.approx(1 / 3)
        assert jaccard(set(), {"aa"}) == 0.0

    def test_substring_overlap_exact(self):
        assert substring_overlap({"aa", "bb"}, {"aa", "bb"}) == pytest.approx(1.0)

    def test_substring_overlap_partial(self):
        score = substring_overlap({"screenshot"}, {"screenshots"})
        assert score == pytest.approx(0.7)

    def test_substring_overlap_symmetric(self):
        a, b = {"ab"}, {"ab", "a"}
        assert substring_overlap(a, b) == pytest.approx(substring_overlap(b, a))
        assert substring_overlap(a, b) == pytest.approx(0.675)

    def test_substring_overlap_empty(self):
        assert substring_overlap(set(), {"aa"}) == 0.0

    def test_cosine_pads_shorter_vector(self):
        assert cosine(np.array([1.0, 0.0]), np.array([1.0, 0.0, 0.0])) == \
            pytest.approx(1.0)

    def test_cosine_zero_and_orthogonal(self):
        assert cosine(np.zeros(3), np.ones(3)) == 0.0
        assert cosine(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == 0.0


class TestScorer:

    def test_overlap_identity(self):
        scorer = SimilarityScorer()
        terms = {"pm2", "module", "error"}
        assert scorer.overlap(terms, terms) == pytest.approx(1.0)

    def test_overlap_empty(self):
        assert SimilarityScorer().overlap(set(), {"aa"}) == 0.0

    def test_overlap_bounded_and_symmetric(self):
        scorer = SimilarityScorer()
        a = {"gui", "screenshot", "test"}
        b = {"screenshots", "gui", "window", "settle"}
        s = scorer.overlap(a, b)
        assert 0.0 <= s <= 1.0
        assert s == pytest.approx(scorer.overlap(b, a))

    def test_custom_dedup_weights(self):
        scorer = SimilarityScorer(dedup_weights=DedupWeights(substring=0.0,
                                                             jaccard=1.0))
        assert scorer.overlap({"aa", "bb"}, {"bb", "cc"}) == pytest.approx(1 / 3)

    def test_search_breakdown_keys(self):
        parts = SimilarityScorer().search_breakdown(
            {"gui"}, {"gui"}, {"gui"}, {"gui"}, {"gui"}, 0.5
        )
        assert set(parts) == {"keyword", "tag", "title", "cosine", "score"}
        assert parts["score"] == pytest.approx(1.0)

    def test_search_weights(self):
        scorer = SimilarityScorer(
            search_weights=SearchWeights(keyword=1.0, tag=0.0, title=0.0)
        )
        parts = scorer.search_breakdown(
            {"aa", "bb"}, {"gui"}, {"bb", "cc"}, set(), set()
        )
        assert parts["tag"] == 0.0
        assert parts["score"] == pytest.approx(parts["keyword"])
