"""Shared enums used across features.

This module provides a single source of truth for enums used in both services and schemas.
"""

from enum import Enum


class SuspicionLevel(str, Enum):
    """How strongly two accounts look like the same person."""

    UNRELATED = "UNRELATED"
    POTENTIAL = "POTENTIAL"
    LIKELY = "LIKELY"
    VERY_LIKELY = "VERY_LIKELY"


class DataSufficiency(str, Enum):
    """Whether an analyzer had enough history to produce a real score."""

    SUFFICIENT = "SUFFICIENT"
    INSUFFICIENT = "INSUFFICIENT"
    UNAVAILABLE = "UNAVAILABLE"


class LifecycleStage(str, Enum):
    """Server population trend derived from net player migration."""

    GROWING = "Growing"
    STABLE = "Stable"
    DECLINING = "Declining"
    DEAD = "Dead"
