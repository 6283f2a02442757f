"""Co-play graph feature: ETL into the graph store, relationship queries and caching."""

from .cache import (
    CachedRelationshipService,
    InMemoryCacheStore,
    RedisCacheStore,
    RelationshipCache,
    build_cache_store,
)
from .etl import (
    CoPlayPair,
    RelationshipEtlService,
    RelationshipMetrics,
    aggregate_relationships,
    detect_co_play_pairs,
    merge_relationships,
)
from .repository import Neo4jRelationshipRepository, RelationshipGraphRepositoryInterface
from .service import RelationshipQueryService, classify_lifecycle_stage

__all__ = [
    "CachedRelationshipService",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "RelationshipCache",
    "build_cache_store",
    "CoPlayPair",
    "RelationshipEtlService",
    "RelationshipMetrics",
    "aggregate_relationships",
    "detect_co_play_pairs",
    "merge_relationships",
    "Neo4jRelationshipRepository",
    "RelationshipGraphRepositoryInterface",
    "RelationshipQueryService",
    "classify_lifecycle_stage",
]
