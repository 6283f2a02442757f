"""
Community service.

Detection reads the strong-edge subgraph, groups players and rewrites every
Community node in a single write transaction. Readers see either the old
set or the new one, never a mix.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog

from playergraph.core.decorators import service_error_handler
from playergraph.core.exceptions import ServiceException
from playergraph.features.relationships.cache import (
    ALL_COMMUNITIES_TTL,
    PLAYER_COMMUNITIES_TTL,
    RelationshipCache,
)

from .detection import build_communities
from .repository import CommunityRepositoryInterface
from .schemas import CommunityDetectionResult, CommunityServerMap, PlayerCommunity

logger = structlog.get_logger(__name__)

DEFAULT_MIN_SIZE = 3
ACTIVE_WINDOW = timedelta(days=30)


class CommunityService:
    """Detect, store and read player communities."""

    def __init__(
        self,
        repository: CommunityRepositoryInterface,
        min_sessions: int = 3,
        min_size: int = DEFAULT_MIN_SIZE,
    ):
        """
        Initialize the community service.

        :param repository: Community repository
        :param min_sessions: Minimum PLAYED_WITH sessionCount for a strong edge
        :param min_size: Smallest community stored by detection
        """
        self.repository = repository
        self.min_sessions = min_sessions
        self.min_size = min_size

    @service_error_handler("CommunityService")
    async def detect_and_store_communities(self) -> CommunityDetectionResult:
        """Recompute all communities and replace the stored set."""
        started = time.monotonic()
        logger.info(
            "Starting community detection",
            min_sessions=self.min_sessions,
            min_size=self.min_size,
        )

        edges = await self.repository.get_strong_edges(self.min_sessions)
        players = {name for edge in edges for name in (edge.player1, edge.player2)}
        server_counts = await self.repository.get_server_play_counts(players)

        communities = build_communities(edges, server_counts, min_size=self.min_size)
        await self.repository.replace_communities(communities)

        result = CommunityDetectionResult(
            communities_detected=len(communities),
            players_assigned=sum(len(c.members) for c in communities),
            strong_edges=len(edges),
            duration_seconds=round(time.monotonic() - started, 3),
        )
        logger.info("Community detection completed", **result.model_dump())
        return result

    @service_error_handler("CommunityService")
    async def get_communities(
        self, min_size: int = DEFAULT_MIN_SIZE, active_only: bool = True
    ) -> List[PlayerCommunity]:
        """Stored communities with at least ``min_size`` members, largest first."""
        if min_size < 1:
            raise ValueError("min_size must be positive")
        active_since = (
            datetime.now(timezone.utc) - ACTIVE_WINDOW if active_only else None
        )
        return await self.repository.get_communities(min_size, active_since)

    @service_error_handler("CommunityService")
    async def get_community_by_id(self, community_id: str) -> Optional[PlayerCommunity]:
        if not community_id.strip():
            return None
        return await self.repository.get_community(community_id)

    @service_error_handler("CommunityService")
    async def get_player_communities(self, player_name: str) -> List[PlayerCommunity]:
        if not player_name.strip():
            return []
        return await self.repository.get_player_communities(player_name)

    @service_error_handler("CommunityService")
    async def get_community_server_map(
        self, community_id: str
    ) -> Optional[CommunityServerMap]:
        """Bipartite map of a community's members and the servers they play on."""
        if not community_id.strip():
            return None
        return await self.repository.get_community_server_map(community_id)


class CachedCommunityService:
    """
    Caching decorator for :class:`CommunityService`.

    Only the default community listing is cached. Lookups by id and server
    maps always go to the graph.
    """

    def __init__(self, inner: CommunityService, cache: RelationshipCache):
        self.inner = inner
        self.cache = cache

    async def detect_and_store_communities(self) -> CommunityDetectionResult:
        await self.cache.delete(RelationshipCache.all_communities_key())
        result = await self.inner.detect_and_store_communities()

        try:
            communities = await self.inner.get_communities()
        except ServiceException as e:
            # The rewrite already committed; the next listing reloads the cache
            logger.warning(
                "Community cache refill failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return result

        await self.cache.set(
            RelationshipCache.all_communities_key(),
            communities,
            List[PlayerCommunity],
            ALL_COMMUNITIES_TTL,
        )
        return result

    async def get_communities(
        self, min_size: int = DEFAULT_MIN_SIZE, active_only: bool = True
    ) -> List[PlayerCommunity]:
        if min_size != DEFAULT_MIN_SIZE or not active_only:
            return await self.inner.get_communities(min_size, active_only)

        return await self.cache.get_or_load(
            RelationshipCache.all_communities_key(),
            List[PlayerCommunity],
            ALL_COMMUNITIES_TTL,
            lambda: self.inner.get_communities(min_size, active_only),
        )

    async def get_community_by_id(self, community_id: str) -> Optional[PlayerCommunity]:
        return await self.inner.get_community_by_id(community_id)

    async def get_player_communities(self, player_name: str) -> List[PlayerCommunity]:
        return await self.cache.get_or_load(
            RelationshipCache.player_communities_key(player_name),
            List[PlayerCommunity],
            PLAYER_COMMUNITIES_TTL,
            lambda: self.inner.get_player_communities(player_name),
        )

    async def get_community_server_map(
        self, community_id: str
    ) -> Optional[CommunityServerMap]:
        return await self.inner.get_community_server_map(community_id)
