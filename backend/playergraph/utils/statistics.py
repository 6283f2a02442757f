"""Statistical utility functions for safe calculations and similarity measures."""

import math
import statistics
from typing import Iterable, List, Mapping, Sequence, Set, TypeVar

T = TypeVar("T")


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is zero.

    :param numerator: The numerator
    :param denominator: The denominator
    :param default: Value to return if denominator is zero
    :returns: Result of division or default value
    """
    return numerator / denominator if denominator > 0 else default


def safe_mean(values: List[float], default: float = 0.0) -> float:
    """
    Safely calculate mean of values, returning default if list is empty.

    :param values: List of numeric values
    :param default: Value to return if list is empty
    :returns: Mean of values or default value
    """
    return statistics.mean(values) if values else default


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp ``value`` into ``[lower, upper]``."""
    return max(lower, min(upper, value))


def ratio_similarity(value1: float, value2: float, exponent: float = 1.5) -> float:
    """
    Similarity of two non-negative magnitudes based on their ratio.

    With ``r = max / min`` the similarity is ``(1 / r) ** exponent``, so equal
    values score 1.0 and the score falls off quickly as they drift apart.

    :param value1: First magnitude
    :param value2: Second magnitude
    :param exponent: Steepness of the fall-off
    :returns: 1.0 when both are zero, 0.0 when exactly one is zero
    """
    if value1 == 0 and value2 == 0:
        return 1.0
    if value1 == 0 or value2 == 0:
        return 0.0

    low, high = sorted((abs(value1), abs(value2)))
    ratio = high / low
    return (1.0 / ratio) ** exponent


def cosine_similarity(vector1: Sequence[float], vector2: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    :returns: Similarity in [-1, 1], or 0.0 when either vector has zero length
    """
    if len(vector1) != len(vector2):
        raise ValueError("Vectors must have the same length")

    dot = sum(a * b for a, b in zip(vector1, vector2))
    norm1 = math.sqrt(sum(a * a for a in vector1))
    norm2 = math.sqrt(sum(b * b for b in vector2))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


def jaccard_similarity(set1: Set[T], set2: Set[T]) -> float:
    """Intersection over union, 0.0 when both sets are empty."""
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def to_probabilities(counts: Sequence[float]) -> List[float]:
    """Normalize a histogram to probabilities; an empty histogram stays all zero."""
    total = sum(counts)
    if total <= 0:
        return [0.0] * len(counts)
    return [count / total for count in counts]


def hour_histogram(hour_counts: Mapping[int, float], buckets: int = 24) -> List[float]:
    """Expand a sparse ``{hour: count}`` mapping into a dense hour-of-day histogram."""
    histogram = [0.0] * buckets
    for hour, count in hour_counts.items():
        if 0 <= hour < buckets:
            histogram[hour] += count
    return histogram


def kl_divergence(p: Sequence[float], q: Sequence[float]) -> float:
    """
    Kullback-Leibler divergence KL(p || q) in bits.

    Terms where either probability is zero contribute nothing.
    """
    divergence = 0.0
    for p_i, q_i in zip(p, q):
        if p_i > 0 and q_i > 0:
            divergence += p_i * math.log2(p_i / q_i)
    return divergence


def js_divergence(p: Sequence[float], q: Sequence[float]) -> float:
    """
    Jensen-Shannon divergence of two probability distributions.

    Uses base-2 logarithms so the result is bounded by [0, 1]: 0.0 for
    identical distributions and 1.0 for distributions with disjoint support.
    """
    if len(p) != len(q):
        raise ValueError("Distributions must have the same length")

    m = [(p_i + q_i) / 2 for p_i, q_i in zip(p, q)]
    divergence = 0.5 * kl_divergence(p, m) + 0.5 * kl_divergence(q, m)
    return clamp(divergence)


def distribution_similarity(p: Sequence[float], q: Sequence[float]) -> float:
    """``1 - JS divergence``: 1.0 for identical, 0.0 for disjoint distributions."""
    return 1.0 - js_divergence(p, q)


def top_n(counts: Mapping[T, float], n: int) -> List[T]:
    """Keys of ``counts`` ordered by count descending then key, first ``n`` only."""
    ordered: Iterable[T] = sorted(counts, key=lambda key: (-counts[key], str(key)))
    return list(ordered)[:n]
