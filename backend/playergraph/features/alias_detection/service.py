"""
Alias detection service.

Runs the similarity analyzers for a pair of players concurrently, fuses
their scores with configurable weights, and turns the results into a
suspicion report with red and green flags. Reports are computed on demand
and never stored.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import structlog

from playergraph.core.decorators import service_error_handler
from playergraph.core.exceptions import ServiceException
from playergraph.features.relationships.repository import (
    RelationshipGraphRepositoryInterface,
)
from playergraph.features.sessions.repository import SessionRepositoryInterface

from .analyzers import (
    ActivityTimelineAnalyzer,
    BehavioralPatternAnalyzer,
    NetworkSimilarityAnalyzer,
    StatSimilarityAnalyzer,
    TemporalConsistencyAnalyzer,
)
from .config import DEFAULT_LOOK_BACK_DAYS, AliasDetectionWeights, classify_suspicion
from .flags import analysis_confidence, identify_flags
from .schemas import (
    ActivityTimeline,
    AliasBatchReport,
    AliasSuspicionReport,
    AnalyzerResult,
    BehavioralAnalysis,
    NetworkAnalysis,
    StatSimilarityAnalysis,
    TemporalAnalysis,
)

logger = structlog.get_logger(__name__)

DEFAULT_TOP_COUNT = 10


def resolve_weights(weights: Optional[AliasDetectionWeights]) -> AliasDetectionWeights:
    """Use the defaults when no weights are given; rescale weights that do not sum to 1."""
    if weights is None:
        return AliasDetectionWeights.defaults()
    if not weights.is_valid():
        if weights.total == 0:
            raise ValueError("At least one alias detection weight must be positive")
        normalized = weights.normalized()
        logger.debug(
            "Normalized alias detection weights",
            original_total=weights.total,
            weights=normalized.model_dump(),
        )
        return normalized
    return weights


def fuse_scores(
    weights: AliasDetectionWeights,
    stat_score: float,
    behavioral_score: float,
    network_score: float,
    temporal_score: float,
    switchover_score: float,
) -> float:
    """Weighted sum of the five dimension scores, clamped to [0, 1]."""
    overall = (
        stat_score * weights.stat_weight
        + behavioral_score * weights.behavioral_weight
        + network_score * weights.network_weight
        + temporal_score * weights.temporal_weight
        + switchover_score * weights.switchover_weight
    )
    return max(0.0, min(1.0, overall))


def explain_report(report: AliasSuspicionReport) -> str:
    """Render a report as plain text for moderators."""
    lines = [
        f"Alias comparison: {report.player1} vs {report.player2}",
        f"Overall similarity: {report.overall_similarity_score:.2f} "
        f"({report.suspicion_level.value})",
        f"Confidence: {report.analysis_confidence:.0%} "
        f"over {report.days_analyzed} days of history",
        "",
        "Dimensions:",
    ]

    results: Sequence[Tuple[str, AnalyzerResult]] = (
        ("Statistics", report.stat_analysis),
        ("Behavior", report.behavioral_analysis),
        ("Network", report.network_analysis),
        ("Temporal", report.temporal_analysis),
    )
    for label, result in results:
        lines.append(
            f"  {label:<11}{result.score:.2f} [{result.data_sufficiency.value}] "
            f"{result.analysis}"
        )
    timeline = report.activity_timeline
    lines.append(
        f"  {'Switchover':<11}{timeline.switchover_suspicion_score:.2f} "
        f"[{timeline.data_sufficiency.value}] {timeline.analysis}"
    )

    if report.red_flags:
        lines.append("")
        lines.append("Red flags:")
        lines.extend(f"  - {flag}" for flag in report.red_flags)

    if report.green_flags:
        lines.append("")
        lines.append("Green flags:")
        lines.extend(f"  + {flag}" for flag in report.green_flags)

    return "\n".join(lines)


class AliasDetectionService:
    """
    Compare players for signs of being the same person.

    The analyzers are independent reads and run concurrently. When the
    session repository is backed by a single database session, give each
    SQL-backed analyzer its own repository instance.
    """

    def __init__(
        self,
        stat_analyzer: StatSimilarityAnalyzer,
        behavioral_analyzer: BehavioralPatternAnalyzer,
        network_analyzer: NetworkSimilarityAnalyzer,
        temporal_analyzer: TemporalConsistencyAnalyzer,
        timeline_analyzer: ActivityTimelineAnalyzer,
    ):
        self.stat_analyzer = stat_analyzer
        self.behavioral_analyzer = behavioral_analyzer
        self.network_analyzer = network_analyzer
        self.temporal_analyzer = temporal_analyzer
        self.timeline_analyzer = timeline_analyzer

    @classmethod
    def from_repositories(
        cls,
        sessions: SessionRepositoryInterface,
        graph: RelationshipGraphRepositoryInterface,
    ) -> "AliasDetectionService":
        """Build every analyzer on the same pair of repositories."""
        return cls(
            stat_analyzer=StatSimilarityAnalyzer(sessions),
            behavioral_analyzer=BehavioralPatternAnalyzer(sessions),
            network_analyzer=NetworkSimilarityAnalyzer(graph),
            temporal_analyzer=TemporalConsistencyAnalyzer(sessions, graph),
            timeline_analyzer=ActivityTimelineAnalyzer(sessions),
        )

    @staticmethod
    def default_weights() -> AliasDetectionWeights:
        return AliasDetectionWeights.defaults()

    @service_error_handler("AliasDetectionService")
    async def compare_players(
        self,
        player1: str,
        player2: str,
        look_back_days: int = DEFAULT_LOOK_BACK_DAYS,
        weights: Optional[AliasDetectionWeights] = None,
    ) -> AliasSuspicionReport:
        """
        Compare two players across all dimensions.

        :param player1: First player name
        :param player2: Second player name
        :param look_back_days: History window for the analyzers
        :param weights: Fusion weights; defaults when omitted, rescaled when
            they do not sum to 1
        :returns: Suspicion report with flags and confidence
        """
        player1, player2 = self._validate_pair(player1, player2)
        if look_back_days < 1:
            raise ValueError("look_back_days must be positive")
        resolved = resolve_weights(weights)

        stat, behavioral, network, temporal, timeline = await asyncio.gather(
            self.stat_analyzer.analyze(player1, player2, look_back_days),
            self.behavioral_analyzer.analyze(player1, player2, look_back_days),
            self.network_analyzer.analyze(player1, player2, look_back_days),
            self.temporal_analyzer.analyze(player1, player2, look_back_days),
            self.timeline_analyzer.analyze(player1, player2, look_back_days),
        )

        report = self._build_report(
            player1,
            player2,
            look_back_days,
            resolved,
            stat,
            behavioral,
            network,
            temporal,
            timeline,
        )
        logger.info(
            "Alias comparison completed",
            player1=player1,
            player2=player2,
            overall_score=round(report.overall_similarity_score, 4),
            suspicion_level=report.suspicion_level.value,
            confidence=report.analysis_confidence,
            red_flags=len(report.red_flags),
            green_flags=len(report.green_flags),
        )
        return report

    @service_error_handler("AliasDetectionService")
    async def get_activity_timeline(
        self,
        player1: str,
        player2: str,
        look_back_days: int = DEFAULT_LOOK_BACK_DAYS,
    ) -> ActivityTimeline:
        """Activity timeline of two players without the rest of the comparison."""
        player1, player2 = self._validate_pair(player1, player2)
        return await self.timeline_analyzer.analyze(player1, player2, look_back_days)

    @service_error_handler("AliasDetectionService")
    async def find_potential_aliases(
        self,
        target_player: str,
        candidates: Sequence[str],
        top_count: int = DEFAULT_TOP_COUNT,
        look_back_days: int = DEFAULT_LOOK_BACK_DAYS,
        weights: Optional[AliasDetectionWeights] = None,
    ) -> AliasBatchReport:
        """
        Compare one player against many candidates.

        The target itself and candidates whose comparison fails are skipped.

        :returns: All comparisons plus the ``top_count`` highest scoring ones
        """
        if not target_player.strip():
            raise ValueError("target_player cannot be empty")
        if top_count < 1:
            raise ValueError("top_count must be positive")

        comparisons: List[AliasSuspicionReport] = []
        target_key = target_player.strip().lower()
        for candidate in candidates:
            if not candidate.strip() or candidate.strip().lower() == target_key:
                continue
            try:
                comparisons.append(
                    await self.compare_players(
                        target_player, candidate, look_back_days, weights
                    )
                )
            except ServiceException as e:
                logger.warning(
                    "Skipping alias candidate after failed comparison",
                    target_player=target_player,
                    candidate=candidate,
                    error=str(e),
                )

        ranked = sorted(
            comparisons,
            key=lambda r: (-r.overall_similarity_score, r.player2),
        )
        return AliasBatchReport(
            target_player=target_player,
            comparisons=comparisons,
            top_suspects=ranked[:top_count],
        )

    @staticmethod
    def _validate_pair(player1: str, player2: str) -> tuple[str, str]:
        player1, player2 = player1.strip(), player2.strip()
        if not player1 or not player2:
            raise ValueError("Player names cannot be empty")
        if player1.lower() == player2.lower():
            raise ValueError("Cannot compare a player with themselves")
        return player1, player2

    def _build_report(
        self,
        player1: str,
        player2: str,
        look_back_days: int,
        weights: AliasDetectionWeights,
        stat: StatSimilarityAnalysis,
        behavioral: BehavioralAnalysis,
        network: NetworkAnalysis,
        temporal: TemporalAnalysis,
        timeline: ActivityTimeline,
    ) -> AliasSuspicionReport:
        overall = fuse_scores(
            weights,
            stat.score,
            behavioral.score,
            network.score,
            temporal.score,
            timeline.switchover_suspicion_score,
        )
        red_flags, green_flags = identify_flags(
            stat, behavioral, network, temporal, timeline, overall
        )

        return AliasSuspicionReport(
            player1=player1,
            player2=player2,
            overall_similarity_score=overall,
            suspicion_level=classify_suspicion(overall),
            stat_analysis=stat,
            behavioral_analysis=behavioral,
            network_analysis=network,
            temporal_analysis=temporal,
            activity_timeline=timeline,
            red_flags=red_flags,
            green_flags=green_flags,
            analysis_timestamp=datetime.now(timezone.utc),
            days_analyzed=look_back_days,
            analysis_confidence=analysis_confidence(stat, behavioral, network),
            weights=weights,
        )
