"""
Tests for the statistical helpers used by the alias detection analyzers.
"""

import math

import pytest

from playergraph.utils.statistics import (
    clamp,
    cosine_similarity,
    distribution_similarity,
    hour_histogram,
    jaccard_similarity,
    js_divergence,
    ratio_similarity,
    safe_divide,
    safe_mean,
    to_probabilities,
    top_n,
)


class TestSafeHelpers:
    """Test the zero-safe arithmetic helpers."""

    def test_safe_divide_returns_default_for_zero_denominator(self):
        assert safe_divide(10, 0) == 0.0
        assert safe_divide(10, 0, default=-1.0) == -1.0
        assert safe_divide(10, 4) == 2.5

    def test_safe_mean_of_empty_list(self):
        assert safe_mean([]) == 0.0
        assert safe_mean([1.0, 2.0, 3.0]) == 2.0

    def test_clamp(self):
        assert clamp(1.7) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.4) == 0.4


class TestRatioSimilarity:
    """Test ratio based similarity of magnitudes."""

    def test_equal_values_score_one(self):
        assert ratio_similarity(2.5, 2.5) == 1.0

    def test_both_zero_score_one(self):
        assert ratio_similarity(0, 0) == 1.0

    def test_one_zero_scores_zero(self):
        assert ratio_similarity(0, 3.0) == 0.0

    def test_is_symmetric_and_decreasing(self):
        close = ratio_similarity(1.0, 1.1)
        far = ratio_similarity(1.0, 2.0)
        assert close == ratio_similarity(1.1, 1.0)
        assert far < close < 1.0
        assert far == pytest.approx(0.5**1.5)


class TestCosineSimilarity:
    """Test cosine similarity."""

    def test_parallel_vectors(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


def test_jaccard_similarity():
    """Test intersection over union, including two empty sets."""
    assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
    assert jaccard_similarity(set(), set()) == 0.0
    assert jaccard_similarity({"a"}, {"a"}) == 1.0


def test_hour_histogram_ignores_out_of_range_hours():
    """Test sparse hour counts expand into 24 buckets."""
    histogram = hour_histogram({0: 2, 23: 1, 24: 5, -1: 3})

    assert len(histogram) == 24
    assert histogram[0] == 2
    assert histogram[23] == 1
    assert sum(histogram) == 3


def test_to_probabilities_keeps_empty_histogram_zero():
    """Test normalization of empty and non-empty histograms."""
    assert to_probabilities([0, 0, 0]) == [0.0, 0.0, 0.0]
    assert to_probabilities([1, 3]) == [0.25, 0.75]


class TestJensenShannon:
    """Test the Jensen-Shannon divergence and derived similarity."""

    def test_identical_distributions(self):
        p = to_probabilities(hour_histogram({20: 5, 21: 10, 22: 5}))

        assert js_divergence(p, p) == pytest.approx(0.0)
        assert distribution_similarity(p, p) == pytest.approx(1.0)

    def test_disjoint_distributions(self):
        p = to_probabilities(hour_histogram({3: 4, 4: 4}))
        q = to_probabilities(hour_histogram({20: 4, 21: 4}))

        assert js_divergence(p, q) == pytest.approx(1.0)
        assert distribution_similarity(p, q) == pytest.approx(0.0)

    def test_divergence_is_symmetric_and_bounded(self):
        p = [0.5, 0.3, 0.2]
        q = [0.1, 0.1, 0.8]

        forward = js_divergence(p, q)
        assert forward == pytest.approx(js_divergence(q, p))
        assert 0.0 < forward < 1.0
        assert not math.isnan(forward)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            js_divergence([1.0], [0.5, 0.5])


def test_top_n_orders_by_count_then_key():
    """Test ties are broken by key."""
    counts = {"b": 3, "a": 3, "c": 5, "d": 1}

    assert top_n(counts, 3) == ["c", "a", "b"]
    assert top_n(counts, 10) == ["c", "a", "b", "d"]
