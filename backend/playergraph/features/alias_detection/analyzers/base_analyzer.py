"""
Base class for alias detection analyzers.

This module provides the abstract base class that all pairwise analyzers
inherit from to ensure consistent interface, logging and failure handling.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

import structlog

from playergraph.core.enums import DataSufficiency

R = TypeVar("R")


class BaseSimilarityAnalyzer(ABC, Generic[R]):
    """
    Abstract base class for pairwise similarity analyzers.

    Analyzers never raise out of :meth:`analyze`: a failed store read is
    logged and turned into the analyzer's neutral result marked
    ``UNAVAILABLE``, so one broken dimension cannot abort fusion.
    """

    def __init__(self, analyzer_name: str):
        self.analyzer_name = analyzer_name
        self.logger = structlog.get_logger(f"{__name__}.{analyzer_name}")

    async def analyze(self, player1: str, player2: str, look_back_days: int) -> R:
        """
        Compare two players along this analyzer's dimension.

        :param player1: First player name
        :type player1: str
        :param player2: Second player name
        :type player2: str
        :param look_back_days: How far back to read history
        :type look_back_days: int
        :returns: Analyzer result, neutral when data is missing or unreachable
        """
        self._log_analysis_start(player1, player2, {"look_back_days": look_back_days})
        try:
            result = await self._analyze(player1, player2, look_back_days)
        except Exception as e:
            return self._create_error_result(e, player1, player2)

        self._log_analysis_result(player1, player2, result)
        return result

    @abstractmethod
    async def _analyze(self, player1: str, player2: str, look_back_days: int) -> R:
        pass

    @abstractmethod
    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> R:
        """The result reported when there is nothing to compare."""
        pass

    def _log_analysis_start(
        self, player1: str, player2: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.logger.debug(
            "Starting similarity analysis",
            analyzer=self.analyzer_name,
            player1=player1,
            player2=player2,
            **(context or {}),
        )

    def _log_analysis_result(self, player1: str, player2: str, result: R) -> None:
        self.logger.debug(
            "Similarity analysis completed",
            analyzer=self.analyzer_name,
            player1=player1,
            player2=player2,
            score=getattr(result, "score", None),
            data_sufficiency=getattr(result, "data_sufficiency", None),
        )

    def _create_error_result(self, error: Exception, player1: str, player2: str) -> R:
        """
        Create the neutral result for a failed analysis.

        :param error: Exception raised while reading or computing
        :param player1: First player name
        :param player2: Second player name
        :returns: Neutral result marked UNAVAILABLE
        """
        self.logger.warning(
            "Similarity analysis failed, using neutral result",
            analyzer=self.analyzer_name,
            player1=player1,
            player2=player2,
            error=str(error),
            error_type=type(error).__name__,
        )
        return self.neutral_result(
            player1,
            player2,
            DataSufficiency.UNAVAILABLE,
            f"{self.analyzer_name} analysis unavailable: {error}",
        )
