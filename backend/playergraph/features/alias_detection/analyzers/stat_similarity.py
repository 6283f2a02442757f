"""
Statistical profile similarity analyzer.

Compares lifetime combat numbers of two players. Aliases tend to carry the
same skill level across accounts, so near-identical K/D, kill rate and
per-map performance raise the score.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple

from playergraph.core.enums import DataSufficiency
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import KillDeathStats, PlayerStatsSummary
from playergraph.utils.statistics import clamp, cosine_similarity, ratio_similarity

from ..schemas import StatSimilarityAnalysis
from .base_analyzer import BaseSimilarityAnalyzer

KD_WEIGHT = 0.40
KILL_RATE_WEIGHT = 0.25
SCORE_PER_ROUND_WEIGHT = 0.15
MAP_WEIGHT = 0.15
SERVER_WEIGHT = 0.05

NO_BREAKDOWN_SCORE = 0.5
NO_COMMON_KEYS_SCORE = 0.3


def breakdown_similarity(
    buckets1: Dict[str, KillDeathStats], buckets2: Dict[str, KillDeathStats]
) -> float:
    """
    Cosine similarity of K/D vectors over buckets both players scored kills in.

    :param buckets1: Per-map or per-server kill/death totals of player 1
    :param buckets2: Same breakdown for player 2
    :returns: Similarity in [0, 1]; 0.5 without data, 0.3 without common buckets
    """
    if not buckets1 or not buckets2:
        return NO_BREAKDOWN_SCORE

    common = sorted(set(buckets1) & set(buckets2))
    if not common:
        return NO_COMMON_KEYS_SCORE

    vectors: Tuple[List[float], List[float]] = ([], [])
    for key in common:
        if buckets1[key].kills > 0 and buckets2[key].kills > 0:
            vectors[0].append(buckets1[key].kd_ratio)
            vectors[1].append(buckets2[key].kd_ratio)

    if not vectors[0]:
        return NO_BREAKDOWN_SCORE
    return clamp(cosine_similarity(vectors[0], vectors[1]))


def build_stat_analysis_text(
    player1: str,
    player2: str,
    stats1: PlayerStatsSummary,
    stats2: PlayerStatsSummary,
    kd_similarity: float,
    map_similarity: float,
    server_similarity: float,
) -> str:
    parts = [
        f"{player1} K/D: {stats1.kd_ratio:.2f}, {player2} K/D: {stats2.kd_ratio:.2f}"
    ]

    if kd_similarity > 0.85:
        parts.append("K/D ratios nearly identical")
    elif kd_similarity > 0.70:
        parts.append("K/D ratios very similar")
    elif kd_similarity < 0.30:
        parts.append("K/D ratios significantly different")

    if map_similarity > 0.80:
        parts.append("Very similar map performance patterns")
    elif map_similarity < 0.40:
        parts.append("Different map performance patterns")

    if server_similarity > 0.80:
        parts.append("Very similar server performance")

    return "; ".join(parts)


class StatSimilarityAnalyzer(BaseSimilarityAnalyzer[StatSimilarityAnalysis]):
    """Compares K/D, kill rate, score per round and per-map/server performance."""

    def __init__(self, sessions: SessionRepositoryInterface):
        super().__init__("stat_similarity")
        self.sessions = sessions

    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> StatSimilarityAnalysis:
        return StatSimilarityAnalysis(
            score=0.0, data_sufficiency=data_sufficiency, analysis=analysis
        )

    async def _analyze(
        self, player1: str, player2: str, look_back_days: int
    ) -> StatSimilarityAnalysis:
        since = datetime.now(timezone.utc) - timedelta(days=look_back_days)

        stats1 = await self.sessions.get_player_stats(player1, since)
        stats2 = await self.sessions.get_player_stats(player2, since)
        if stats1 is None or stats2 is None:
            return self.neutral_result(
                player1,
                player2,
                DataSufficiency.INSUFFICIENT,
                "Insufficient player data for comparison",
            )

        kd_similarity = ratio_similarity(stats1.kd_ratio, stats2.kd_ratio)
        kill_rate_similarity = ratio_similarity(stats1.kill_rate, stats2.kill_rate)
        score_per_round_similarity = ratio_similarity(
            stats1.avg_score_per_round, stats2.avg_score_per_round
        )

        map_similarity = breakdown_similarity(
            await self.sessions.get_map_kill_deaths(player1, since),
            await self.sessions.get_map_kill_deaths(player2, since),
        )
        server_similarity = breakdown_similarity(
            await self.sessions.get_server_kill_deaths(player1, since),
            await self.sessions.get_server_kill_deaths(player2, since),
        )

        score = (
            kd_similarity * KD_WEIGHT
            + kill_rate_similarity * KILL_RATE_WEIGHT
            + score_per_round_similarity * SCORE_PER_ROUND_WEIGHT
            + map_similarity * MAP_WEIGHT
            + server_similarity * SERVER_WEIGHT
        )

        return StatSimilarityAnalysis(
            score=clamp(score),
            data_sufficiency=DataSufficiency.SUFFICIENT,
            analysis=build_stat_analysis_text(
                player1,
                player2,
                stats1,
                stats2,
                kd_similarity,
                map_similarity,
                server_similarity,
            ),
            kd_ratio_similarity=kd_similarity,
            kill_rate_similarity=kill_rate_similarity,
            score_per_round_similarity=score_per_round_similarity,
            map_performance_similarity=map_similarity,
            server_performance_similarity=server_similarity,
            player1_kd_ratio=stats1.kd_ratio,
            player2_kd_ratio=stats2.kd_ratio,
        )
