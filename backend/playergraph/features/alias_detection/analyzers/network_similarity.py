"""
Network similarity analyzer.

Two accounts run by one person keep playing with the same friends. High
teammate overlap is therefore a strong alias signal, especially when the
two accounts never appear together.
"""

from typing import Set

from playergraph.core.enums import DataSufficiency
from playergraph.features.relationships.repository import (
    RelationshipGraphRepositoryInterface,
)
from playergraph.utils.statistics import clamp, jaccard_similarity

from ..schemas import NetworkAnalysis
from .base_analyzer import BaseSimilarityAnalyzer

JACCARD_WEIGHT = 0.6
SHAPE_WEIGHT = 0.4
DIRECT_CONNECTION_FACTOR = 0.9
MUTUAL_CONNECTION_CAP = 10
NEUTRAL_SCORE = 0.5


def network_shape_similarity(degree1: int, degree2: int) -> float:
    """Similarity of network sizes: 1.0 for equal degree, 0.0 at a 3x ratio or more."""
    if degree1 == 0 or degree2 == 0:
        return 0.5
    ratio = max(degree1, degree2) / min(degree1, degree2)
    return max(0.0, 1.0 - min(1.0, (ratio - 1) / 2))


class NetworkSimilarityAnalyzer(BaseSimilarityAnalyzer[NetworkAnalysis]):
    """Compares the co-play neighbourhoods of two players."""

    def __init__(self, graph: RelationshipGraphRepositoryInterface):
        super().__init__("network_similarity")
        self.graph = graph

    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> NetworkAnalysis:
        return NetworkAnalysis(
            score=NEUTRAL_SCORE,
            data_sufficiency=data_sufficiency,
            analysis=analysis,
            network_shape_similarity=0.5,
        )

    async def _analyze(
        self, player1: str, player2: str, look_back_days: int
    ) -> NetworkAnalysis:
        teammates1 = await self.graph.get_teammate_names(player1)
        teammates2 = await self.graph.get_teammate_names(player2)
        if teammates1 is None or teammates2 is None:
            return self.neutral_result(
                player1,
                player2,
                DataSufficiency.INSUFFICIENT,
                "Insufficient graph data",
            )

        has_direct_connection = player2 in teammates1 or player1 in teammates2

        pair = {player1, player2}
        others1: Set[str] = teammates1 - pair
        others2: Set[str] = teammates2 - pair
        shared = others1 & others2

        overlap = jaccard_similarity(others1, others2)
        shape = network_shape_similarity(len(others1), len(others2))

        score = overlap * JACCARD_WEIGHT + shape * SHAPE_WEIGHT
        if has_direct_connection:
            score *= DIRECT_CONNECTION_FACTOR

        analysis = (
            f"Shared teammates: {len(shared)}; "
            f"{player1} teammates: {len(others1)}, {player2} teammates: {len(others2)}; "
            f"Direct connection: {'YES' if has_direct_connection else 'NO'}; "
            f"Mutual connections: {len(shared)}"
        )

        return NetworkAnalysis(
            score=clamp(score),
            data_sufficiency=DataSufficiency.SUFFICIENT,
            analysis=analysis,
            shared_teammate_count=len(shared),
            teammate_overlap=overlap,
            mutual_connection_score=min(1.0, len(shared) / MUTUAL_CONNECTION_CAP),
            has_direct_connection=has_direct_connection,
            network_shape_similarity=shape,
        )
