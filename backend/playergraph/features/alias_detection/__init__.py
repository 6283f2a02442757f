"""Alias detection: pairwise similarity analyzers, score fusion and flag rules."""

from .config import AliasDetectionWeights, classify_suspicion
from .flags import analysis_confidence, identify_flags
from .schemas import (
    ActivityTimeline,
    AliasBatchReport,
    AliasSuspicionReport,
    BehavioralAnalysis,
    NetworkAnalysis,
    StatSimilarityAnalysis,
    TemporalAnalysis,
)
from .service import AliasDetectionService, explain_report, fuse_scores

__all__ = [
    "AliasDetectionWeights",
    "classify_suspicion",
    "analysis_confidence",
    "identify_flags",
    "ActivityTimeline",
    "AliasBatchReport",
    "AliasSuspicionReport",
    "BehavioralAnalysis",
    "NetworkAnalysis",
    "StatSimilarityAnalysis",
    "TemporalAnalysis",
    "AliasDetectionService",
    "explain_report",
    "fuse_scores",
]
