"""Dependencies for the alias detection feature."""

from contextlib import AsyncExitStack
from typing import Annotated, AsyncGenerator

from fastapi import Depends

from playergraph.core import get_db_manager
from playergraph.features.relationships.dependencies import get_relationship_repository
from playergraph.features.relationships.repository import Neo4jRelationshipRepository
from playergraph.features.sessions.repository import SQLAlchemySessionRepository

from .analyzers import (
    ActivityTimelineAnalyzer,
    BehavioralPatternAnalyzer,
    NetworkSimilarityAnalyzer,
    StatSimilarityAnalyzer,
    TemporalConsistencyAnalyzer,
)
from .service import AliasDetectionService


async def get_alias_detection_service(
    graph: Annotated[Neo4jRelationshipRepository, Depends(get_relationship_repository)],
) -> AsyncGenerator[AliasDetectionService, None]:
    """
    Get alias detection service instance.

    Each SQL-backed analyzer gets its own database session because the
    analyzers run concurrently and a session must not be shared across tasks.
    """
    manager = get_db_manager()
    async with AsyncExitStack() as stack:
        sessions = [
            SQLAlchemySessionRepository(
                await stack.enter_async_context(manager.get_session())
            )
            for _ in range(4)
        ]
        yield AliasDetectionService(
            stat_analyzer=StatSimilarityAnalyzer(sessions[0]),
            behavioral_analyzer=BehavioralPatternAnalyzer(sessions[1]),
            network_analyzer=NetworkSimilarityAnalyzer(graph),
            temporal_analyzer=TemporalConsistencyAnalyzer(sessions[2], graph),
            timeline_analyzer=ActivityTimelineAnalyzer(sessions[3]),
        )


# Type aliases for cleaner dependency injection
AliasDetectionServiceDep = Annotated[
    AliasDetectionService, Depends(get_alias_detection_service)
]

__all__ = [
    "get_alias_detection_service",
    "AliasDetectionServiceDep",
]
