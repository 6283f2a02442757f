"""
Behavioral pattern analyzer.

Compares when, where and how long two players play. Each player's window is
anchored at their own last activity, so an account that went dormant years
ago is compared on its active period rather than on an empty recent window.
"""

from datetime import timedelta
from typing import Dict

from playergraph.core.enums import DataSufficiency
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import SessionStats
from playergraph.utils.statistics import (
    clamp,
    distribution_similarity,
    hour_histogram,
    jaccard_similarity,
    safe_mean,
    to_probabilities,
)

from ..schemas import BehavioralAnalysis
from .base_analyzer import BaseSimilarityAnalyzer

PLAY_TIME_WEIGHT = 0.30
SERVER_AFFINITY_WEIGHT = 0.30
PING_WEIGHT = 0.20
SESSION_PATTERN_WEIGHT = 0.20

NO_PING_DATA_SCORE = 0.5
NO_COMMON_PING_SERVERS_SCORE = 0.3
NO_SESSIONS_PATTERN_SCORE = 0.5

# (upper bound on average relative ping difference, score)
PING_STEPS = ((0.05, 0.95), (0.15, 0.70), (0.30, 0.40))
PING_FALLBACK_SCORE = 0.10

MINUTES_PER_DAY = 1440


def ping_consistency(pings1: Dict[str, float], pings2: Dict[str, float]) -> float:
    """
    Stepped score for how closely average pings agree on shared servers.

    Players on the same connection see nearly the same ping on a server.
    """
    if not pings1 or not pings2:
        return NO_PING_DATA_SCORE

    common = set(pings1) & set(pings2)
    if not common:
        return NO_COMMON_PING_SERVERS_SCORE

    differences = []
    for server_guid in common:
        highest = max(pings1[server_guid], pings2[server_guid])
        if highest > 0:
            differences.append(abs(pings1[server_guid] - pings2[server_guid]) / highest)

    if not differences:
        return NO_PING_DATA_SCORE

    average = safe_mean(differences)
    for bound, score in PING_STEPS:
        if average < bound:
            return score
    return PING_FALLBACK_SCORE


def session_pattern_similarity(stats1: SessionStats, stats2: SessionStats) -> float:
    """0.6 average-duration similarity plus 0.4 session-frequency similarity."""
    if stats1.session_count == 0 or stats2.session_count == 0:
        return NO_SESSIONS_PATTERN_SCORE

    longest = max(stats1.avg_session_minutes, stats2.avg_session_minutes)
    duration_similarity = (
        1.0 - min(1.0, abs(stats1.avg_session_minutes - stats2.avg_session_minutes) / longest)
        if longest > 0
        else 0.5
    )

    frequency1 = stats1.session_count / max(1, int(stats1.total_minutes / MINUTES_PER_DAY))
    frequency2 = stats2.session_count / max(1, int(stats2.total_minutes / MINUTES_PER_DAY))
    max_frequency = max(frequency1 + 0.1, frequency2 + 0.1)
    frequency_similarity = 1.0 - min(1.0, abs(frequency1 - frequency2) / max_frequency)

    return duration_similarity * 0.6 + frequency_similarity * 0.4


def build_behavioral_analysis_text(
    play_time: float, server_affinity: float, ping: float, look_back_days: int
) -> str:
    parts = [f"Analysis window: last {look_back_days} days from each player's activity"]

    if play_time > 0.75:
        parts.append("Play at very similar times of day")
    elif play_time > 0.50:
        parts.append("Significant play time overlap")
    elif play_time < 0.30:
        parts.append("Play at different times")

    if server_affinity > 0.70:
        parts.append("Very similar server preferences")

    if ping > 0.80:
        parts.append("Nearly identical ping on same servers (likely same location)")
    elif ping < 0.30:
        parts.append("Very different pings (likely different geographic locations)")

    return "; ".join(parts)


class BehavioralPatternAnalyzer(BaseSimilarityAnalyzer[BehavioralAnalysis]):
    """Compares hour-of-day habits, server choice, ping and session shape."""

    def __init__(self, sessions: SessionRepositoryInterface):
        super().__init__("behavioral_pattern")
        self.sessions = sessions

    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> BehavioralAnalysis:
        return BehavioralAnalysis(
            score=0.0,
            data_sufficiency=data_sufficiency,
            analysis=analysis,
            play_time_overlap_score=0.0,
            server_affinity_score=0.0,
            ping_consistency_score=0.5,
            session_pattern_score=0.0,
        )

    async def _analyze(
        self, player1: str, player2: str, look_back_days: int
    ) -> BehavioralAnalysis:
        last_active1 = await self.sessions.get_last_activity(player1)
        last_active2 = await self.sessions.get_last_activity(player2)
        if last_active1 is None or last_active2 is None:
            return self.neutral_result(
                player1,
                player2,
                DataSufficiency.INSUFFICIENT,
                "Insufficient session data",
            )

        since1 = last_active1 - timedelta(days=look_back_days)
        since2 = last_active2 - timedelta(days=look_back_days)

        histogram1 = hour_histogram(await self.sessions.get_hour_histogram(player1, since1))
        histogram2 = hour_histogram(await self.sessions.get_hour_histogram(player2, since2))
        if sum(histogram1) == 0 or sum(histogram2) == 0:
            play_time = 0.0
        else:
            play_time = distribution_similarity(
                to_probabilities(histogram1), to_probabilities(histogram2)
            )

        server_affinity = jaccard_similarity(
            await self.sessions.get_server_set(player1, since1),
            await self.sessions.get_server_set(player2, since2),
        )

        ping = ping_consistency(
            await self.sessions.get_average_ping_by_server(player1),
            await self.sessions.get_average_ping_by_server(player2),
        )

        session_pattern = session_pattern_similarity(
            await self.sessions.get_session_stats(player1, since1),
            await self.sessions.get_session_stats(player2, since2),
        )

        score = (
            play_time * PLAY_TIME_WEIGHT
            + server_affinity * SERVER_AFFINITY_WEIGHT
            + ping * PING_WEIGHT
            + session_pattern * SESSION_PATTERN_WEIGHT
        )

        return BehavioralAnalysis(
            score=clamp(score),
            data_sufficiency=DataSufficiency.SUFFICIENT,
            analysis=build_behavioral_analysis_text(
                play_time, server_affinity, ping, look_back_days
            ),
            play_time_overlap_score=play_time,
            server_affinity_score=server_affinity,
            ping_consistency_score=ping,
            session_pattern_score=session_pattern,
        )
