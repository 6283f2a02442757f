"""Dependencies for the communities feature."""

from typing import Annotated

from fastapi import Depends

from playergraph.core.dependencies import GraphDatabaseDep, SettingsDep
from playergraph.features.relationships.cache import RelationshipCache
from playergraph.features.relationships.dependencies import get_relationship_cache

from .repository import Neo4jCommunityRepository
from .service import CachedCommunityService, CommunityService


def get_community_repository(graph: GraphDatabaseDep) -> Neo4jCommunityRepository:
    """Get community repository instance."""
    return Neo4jCommunityRepository(graph)


def get_community_service(
    repository: Annotated[Neo4jCommunityRepository, Depends(get_community_repository)],
    cache: Annotated[RelationshipCache, Depends(get_relationship_cache)],
    settings: SettingsDep,
) -> CachedCommunityService:
    """Get the cached community service."""
    inner = CommunityService(
        repository,
        min_sessions=settings.community_min_sessions,
        min_size=settings.community_min_size,
    )
    return CachedCommunityService(inner, cache)


# Type aliases for cleaner dependency injection
CommunityServiceDep = Annotated[CachedCommunityService, Depends(get_community_service)]

__all__ = [
    "get_community_repository",
    "get_community_service",
    "CommunityServiceDep",
]
