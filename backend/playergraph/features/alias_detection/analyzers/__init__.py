"""
Alias detection analyzers.

This package contains one analyzer module per similarity dimension. Each
analyzer reads its own aggregates and returns a result with a score, a data
sufficiency tag and an explanation.
"""

from .activity_timeline import ActivityTimelineAnalyzer
from .base_analyzer import BaseSimilarityAnalyzer
from .behavioral_pattern import BehavioralPatternAnalyzer
from .network_similarity import NetworkSimilarityAnalyzer
from .stat_similarity import StatSimilarityAnalyzer
from .temporal_consistency import TemporalConsistencyAnalyzer

__all__ = [
    "ActivityTimelineAnalyzer",
    "BaseSimilarityAnalyzer",
    "BehavioralPatternAnalyzer",
    "NetworkSimilarityAnalyzer",
    "StatSimilarityAnalyzer",
    "TemporalConsistencyAnalyzer",
]
