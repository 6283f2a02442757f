"""
Temporal consistency analyzer.

One person cannot easily be online on two accounts at once. Shared sessions
are strong evidence against an alias; accounts whose last activity is far
apart look more like one player moving on to a new account.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from playergraph.core.enums import DataSufficiency
from playergraph.features.relationships.repository import (
    RelationshipGraphRepositoryInterface,
)
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.utils.statistics import clamp

from ..schemas import TemporalAnalysis
from .base_analyzer import BaseSimilarityAnalyzer

CO_SESSION_FACTOR = 0.3
SIGNIFICANT_CO_SESSIONS = 10
UNKNOWN_GAP_SCORE = 0.5

# (minimum days between last activities, score), checked in order
GAP_STEPS = ((30, 0.9), (14, 0.7), (7, 0.5))
SHORT_GAP_SCORE = 0.2


def inverted_activity_score(
    last_active1: Optional[datetime], last_active2: Optional[datetime]
) -> float:
    """Score the gap between two players' last activity; larger gaps score higher."""
    if last_active1 is None or last_active2 is None:
        return UNKNOWN_GAP_SCORE

    gap_days = abs((last_active1 - last_active2).total_seconds()) / 86400
    for minimum, score in GAP_STEPS:
        if gap_days > minimum:
            return score
    return SHORT_GAP_SCORE


class TemporalConsistencyAnalyzer(BaseSimilarityAnalyzer[TemporalAnalysis]):
    """Counts co-sessions and scores how far apart the accounts were last active."""

    def __init__(
        self,
        sessions: SessionRepositoryInterface,
        graph: RelationshipGraphRepositoryInterface,
    ):
        super().__init__("temporal_consistency")
        self.sessions = sessions
        self.graph = graph

    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> TemporalAnalysis:
        return TemporalAnalysis(
            score=UNKNOWN_GAP_SCORE,
            data_sufficiency=data_sufficiency,
            analysis=analysis,
        )

    async def _analyze(
        self, player1: str, player2: str, look_back_days: int
    ) -> TemporalAnalysis:
        cutoff = datetime.now(timezone.utc) - timedelta(days=look_back_days)

        co_sessions = 0
        relationship = await self.graph.get_relationship(player1, player2)
        if (
            relationship is not None
            and relationship.last_played_together is not None
            and relationship.last_played_together >= cutoff
        ):
            co_sessions = relationship.session_count

        last_active1 = await self.sessions.get_last_activity(player1)
        last_active2 = await self.sessions.get_last_activity(player2)

        score = 1.0
        if co_sessions > 0:
            score *= CO_SESSION_FACTOR
        gap_score = inverted_activity_score(last_active1, last_active2)
        score *= gap_score

        if co_sessions > SIGNIFICANT_CO_SESSIONS:
            analysis = "SIGNIFICANT CO-SESSION OVERLAP - Not aliases"
        elif co_sessions > 0:
            analysis = "Some co-sessions found - unlikely aliases"
        else:
            analysis = (
                f"Co-sessions in period: {co_sessions}; "
                f"{player1} last active: {_format_day(last_active1)}; "
                f"{player2} last active: {_format_day(last_active2)}; "
                f"Temporal separation score: {gap_score:.2f}"
            )

        sufficiency = (
            DataSufficiency.SUFFICIENT
            if last_active1 is not None and last_active2 is not None
            else DataSufficiency.INSUFFICIENT
        )

        return TemporalAnalysis(
            score=clamp(score),
            data_sufficiency=sufficiency,
            analysis=analysis,
            co_session_count=co_sessions,
            significant_temporal_overlap=co_sessions > SIGNIFICANT_CO_SESSIONS,
            inverted_activity_score=gap_score,
            player1_last_active=last_active1,
            player2_last_active=last_active2,
        )


def _format_day(value: Optional[datetime]) -> str:
    return f"{value:%Y-%m-%d}" if value is not None else "unknown"
