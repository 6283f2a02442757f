"""Player communities: detection over strong co-play edges and community reads."""

from .detection import (
    StrongEdge,
    assign_community_ids,
    build_communities,
    cohesion_score,
    union_find_components,
)
from .repository import CommunityRepositoryInterface, Neo4jCommunityRepository
from .schemas import (
    CommunityDetectionResult,
    CommunityServerMap,
    PlayerCommunity,
)
from .service import CachedCommunityService, CommunityService

__all__ = [
    "StrongEdge",
    "assign_community_ids",
    "build_communities",
    "cohesion_score",
    "union_find_components",
    "CommunityRepositoryInterface",
    "Neo4jCommunityRepository",
    "CommunityDetectionResult",
    "CommunityServerMap",
    "PlayerCommunity",
    "CachedCommunityService",
    "CommunityService",
]
