"""
Configuration for alias detection.

This module contains the fusion weights, suspicion level thresholds and
look-back defaults used by the alias detection engine.
"""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from playergraph.core.enums import SuspicionLevel

# Ten years, so long-dormant accounts still have history to compare.
DEFAULT_LOOK_BACK_DAYS = 3650

TIMELINE_DAYS = 180
TIMELINE_WIDTH = 40

WEIGHT_TOLERANCE = 0.01

# Minimum overall score per level, checked from the top down
SUSPICION_LEVEL_THRESHOLDS: Dict[SuspicionLevel, float] = {
    SuspicionLevel.VERY_LIKELY: 0.85,
    SuspicionLevel.LIKELY: 0.70,
    SuspicionLevel.POTENTIAL: 0.50,
}


class AliasDetectionWeights(BaseModel):
    """How much each analysis dimension contributes to the overall score."""

    model_config = ConfigDict(frozen=True)

    stat_weight: float = Field(default=0.25, ge=0.0)
    behavioral_weight: float = Field(default=0.15, ge=0.0)
    network_weight: float = Field(default=0.20, ge=0.0)
    temporal_weight: float = Field(default=0.10, ge=0.0)
    switchover_weight: float = Field(
        default=0.30, ge=0.0, description="Account switchover pattern weight"
    )

    @classmethod
    def defaults(cls) -> "AliasDetectionWeights":
        return cls()

    @property
    def total(self) -> float:
        return (
            self.stat_weight
            + self.behavioral_weight
            + self.network_weight
            + self.temporal_weight
            + self.switchover_weight
        )

    def is_valid(self) -> bool:
        """Weights must sum to 1.0 within a small tolerance."""
        return abs(self.total - 1.0) < WEIGHT_TOLERANCE

    def normalized(self) -> "AliasDetectionWeights":
        """
        Return a copy scaled to sum to 1.0.

        All-zero weights are returned unchanged.
        """
        total = self.total
        if total == 0:
            return self
        return AliasDetectionWeights(
            stat_weight=self.stat_weight / total,
            behavioral_weight=self.behavioral_weight / total,
            network_weight=self.network_weight / total,
            temporal_weight=self.temporal_weight / total,
            switchover_weight=self.switchover_weight / total,
        )


def classify_suspicion(score: float) -> SuspicionLevel:
    """Map an overall similarity score to a suspicion level."""
    for level, threshold in SUSPICION_LEVEL_THRESHOLDS.items():
        if score >= threshold:
            return level
    return SuspicionLevel.UNRELATED
