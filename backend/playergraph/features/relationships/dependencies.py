"""Dependencies for the relationships feature."""

from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from playergraph.core import get_db
from playergraph.core.dependencies import GraphDatabaseDep, SettingsDep
from playergraph.features.sessions.repository import SQLAlchemySessionRepository

from .cache import CachedRelationshipService, RelationshipCache, build_cache_store
from .etl import RelationshipEtlService
from .repository import Neo4jRelationshipRepository
from .service import RelationshipQueryService

_relationship_cache: Optional[RelationshipCache] = None


def get_relationship_cache(settings: SettingsDep) -> RelationshipCache:
    """Get the process-wide relationship cache."""
    global _relationship_cache
    if _relationship_cache is None:
        _relationship_cache = RelationshipCache(
            build_cache_store(settings), key_prefix=settings.cache_key_prefix
        )
    return _relationship_cache


def get_relationship_repository(graph: GraphDatabaseDep) -> Neo4jRelationshipRepository:
    """Get co-play graph repository instance."""
    return Neo4jRelationshipRepository(graph)


def get_relationship_service(
    repository: Annotated[
        Neo4jRelationshipRepository, Depends(get_relationship_repository)
    ],
    cache: Annotated[RelationshipCache, Depends(get_relationship_cache)],
    settings: SettingsDep,
) -> CachedRelationshipService:
    """Get the cached relationship query service."""
    inner = RelationshipQueryService(
        repository, online_window_minutes=settings.online_window_minutes
    )
    return CachedRelationshipService(inner, cache)


async def get_etl_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    repository: Annotated[
        Neo4jRelationshipRepository, Depends(get_relationship_repository)
    ],
    settings: SettingsDep,
) -> RelationshipEtlService:
    """Get relationship ETL service instance."""
    return RelationshipEtlService(SQLAlchemySessionRepository(db), repository, settings)


# Type aliases for cleaner dependency injection
RelationshipCacheDep = Annotated[RelationshipCache, Depends(get_relationship_cache)]
RelationshipServiceDep = Annotated[
    CachedRelationshipService, Depends(get_relationship_service)
]
EtlServiceDep = Annotated[RelationshipEtlService, Depends(get_etl_service)]

__all__ = [
    "get_relationship_cache",
    "get_relationship_repository",
    "get_relationship_service",
    "get_etl_service",
    "RelationshipCacheDep",
    "RelationshipServiceDep",
    "EtlServiceDep",
]
