"""
TTL cache in front of the hot relationship read paths.

Values are stored as JSON produced by pydantic, so the same entries work for
the in-process store and for Redis. A cache that cannot be reached behaves
exactly like an empty one: reads miss, writes are dropped, the error is
logged and never surfaces to the caller.
"""

import threading
import time
from datetime import datetime, timedelta
from functools import lru_cache
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
)

import redis.asyncio as redis
import structlog
from pydantic import TypeAdapter

from playergraph.core.config import Settings

from .schemas import (
    MigrationServerNode,
    PlayerMigrationFlow,
    PlayerNetworkGraph,
    PlayerNetworkStats,
    PlayerRelationship,
    PotentialConnection,
    ServerSocialStats,
    SquadRecommendation,
)
from .service import RelationshipQueryService

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TEAMMATES_TTL = timedelta(minutes=30)
RELATIONSHIP_TTL = timedelta(hours=1)
SHARED_SERVERS_TTL = timedelta(hours=1)
NETWORK_STATS_TTL = timedelta(hours=2)
NETWORK_GRAPH_TTL = timedelta(minutes=15)
SERVER_SOCIAL_STATS_TTL = timedelta(hours=1)
PLAYER_COMMUNITIES_TTL = timedelta(hours=1)
ALL_COMMUNITIES_TTL = timedelta(hours=24)
MIGRATION_FLOW_TTL = timedelta(hours=6)
SERVER_LIFECYCLE_TTL = timedelta(hours=12)

DEFAULT_TEAMMATES_LIMIT = 20
DEFAULT_NETWORK_DEPTH = 2
DEFAULT_NETWORK_MAX_NODES = 100


class CacheStore(Protocol):
    """Minimal key/value contract with per-entry TTL."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryCacheStore:
    """Simple TTL cache with thread-safe operations and per-entry expiry."""

    def __init__(
        self, maxsize: int = 5000, clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the in-process store.

        :param maxsize: Maximum number of entries
        :param clock: Monotonic time source in seconds
        """
        self.maxsize = maxsize
        self.clock = clock
        self.cache: Dict[str, Tuple[str, float]] = {}
        self.lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[str]:
        with self.lock:
            entry = self.cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, expiry = entry
            if self.clock() < expiry:
                self._hits += 1
                return value

            del self.cache[key]
            self._misses += 1
            logger.debug("Cache expired", key=key)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self.lock:
            # Simple FIFO eviction: if cache is full, remove oldest entry
            if len(self.cache) >= self.maxsize and key not in self.cache:
                oldest_key = next(iter(self.cache))
                del self.cache[oldest_key]
                logger.debug("Cache eviction", key=oldest_key, reason="full")

            self.cache[key] = (value, self.clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        with self.lock:
            self.cache.pop(key, None)

    def stats(self) -> Dict[str, float]:
        """Get cache statistics."""
        with self.lock:
            total = self._hits + self._misses
            return {
                "size": len(self.cache),
                "maxsize": self.maxsize,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }

    def __len__(self) -> int:
        return len(self.cache)


class RedisCacheStore:
    """Cache store backed by Redis."""

    def __init__(self, client: "redis.Redis"):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        value = await self.client.get(key)
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)


def build_cache_store(settings: Settings) -> CacheStore:
    """Create the cache store selected by ``settings.cache_backend``."""
    if settings.cache_backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Using Redis relationship cache", redis_url=settings.redis_url)
        return RedisCacheStore(client)

    logger.info("Using in-memory relationship cache", maxsize=settings.cache_max_entries)
    return InMemoryCacheStore(maxsize=settings.cache_max_entries)


@lru_cache(maxsize=None)
def _adapter(model_type: Any) -> TypeAdapter:
    return TypeAdapter(model_type)


class RelationshipCache:
    """
    Typed, fault-tolerant cache over a :class:`CacheStore`.

    ``get`` returns None on a miss and on any store or decoding error;
    ``set`` and ``delete`` never raise.
    """

    def __init__(self, store: CacheStore, key_prefix: str = "bf1942:relationships:"):
        self.store = store
        self.key_prefix = key_prefix

    async def get(self, key: str, model_type: Any) -> Optional[Any]:
        full_key = self.key_prefix + key
        try:
            raw = await self.store.get(full_key)
            if raw is None:
                return None
            value = _adapter(model_type).validate_json(raw)
            logger.debug("Cache hit", key=full_key)
            return value
        except Exception as e:
            logger.warning(
                "Cache read failed, treating as miss",
                key=full_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def set(self, key: str, value: Any, model_type: Any, ttl: timedelta) -> None:
        full_key = self.key_prefix + key
        try:
            payload = _adapter(model_type).dump_json(value).decode()
            await self.store.set(full_key, payload, int(ttl.total_seconds()))
            logger.debug("Cache set", key=full_key, ttl_seconds=int(ttl.total_seconds()))
        except Exception as e:
            logger.warning(
                "Cache write failed, continuing without cache",
                key=full_key,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def delete(self, key: str) -> None:
        full_key = self.key_prefix + key
        try:
            await self.store.delete(full_key)
        except Exception as e:
            logger.warning(
                "Cache delete failed",
                key=full_key,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def get_or_load(
        self,
        key: str,
        model_type: Any,
        ttl: timedelta,
        loader: Callable[[], Awaitable[T]],
        cache_none: bool = False,
    ) -> T:
        """Return the cached value, or load it and cache the result."""
        cached = await self.get(key, model_type)
        if cached is not None:
            return cached

        value = await loader()
        if value is not None or cache_none:
            await self.set(key, value, model_type, ttl)
        return value

    # Key builders

    @staticmethod
    def teammates_key(player_name: str, limit: int) -> str:
        return f"player:{player_name}:teammates:{limit}"

    @staticmethod
    def relationship_key(player1: str, player2: str) -> str:
        return f"relationship:{player1}:{player2}"

    @staticmethod
    def shared_servers_key(player1: str, player2: str) -> str:
        return f"relationship:{player1}:{player2}:servers"

    @staticmethod
    def network_stats_key(player_name: str) -> str:
        return f"player:{player_name}:network-stats"

    @staticmethod
    def network_graph_key(player_name: str, depth: int, max_nodes: int) -> str:
        return f"player:{player_name}:network-graph:{depth}:{max_nodes}"

    @staticmethod
    def server_social_stats_key(server_guid: str) -> str:
        return f"server:{server_guid}:social-stats"

    @staticmethod
    def all_communities_key() -> str:
        return "communities:all"

    @staticmethod
    def player_communities_key(player_name: str) -> str:
        return f"player:{player_name}:communities"

    @staticmethod
    def migration_flow_key(start: datetime, end: datetime, game: Optional[str]) -> str:
        return f"migration-flow:{start:%Y-%m-%d}:{end:%Y-%m-%d}:{game or 'all'}"

    @staticmethod
    def server_lifecycle_key(days_back: int) -> str:
        return f"server-lifecycle:{days_back}"


class CachedRelationshipService:
    """
    Caching decorator for :class:`RelationshipQueryService`.

    Potential connections, recent connections, squad recommendations and
    feedback writes always go to the graph.
    """

    def __init__(self, inner: RelationshipQueryService, cache: RelationshipCache):
        self.inner = inner
        self.cache = cache

    async def get_most_frequent_co_players(
        self, player_name: str, limit: int = DEFAULT_TEAMMATES_LIMIT
    ) -> List[PlayerRelationship]:
        return await self.cache.get_or_load(
            RelationshipCache.teammates_key(player_name, limit),
            List[PlayerRelationship],
            TEAMMATES_TTL,
            lambda: self.inner.get_most_frequent_co_players(player_name, limit),
        )

    async def get_potential_connections(
        self, player_name: str, limit: int = 20, days_active: int = 30
    ) -> List[PotentialConnection]:
        return await self.inner.get_potential_connections(player_name, limit, days_active)

    async def get_shared_servers(self, player1: str, player2: str) -> List[str]:
        return await self.cache.get_or_load(
            RelationshipCache.shared_servers_key(player1, player2),
            List[str],
            SHARED_SERVERS_TTL,
            lambda: self.inner.get_shared_servers(player1, player2),
        )

    async def get_recent_connections(
        self, player_name: str, days_since: int = 7
    ) -> List[PlayerRelationship]:
        return await self.inner.get_recent_connections(player_name, days_since)

    async def get_relationship(
        self, player1: str, player2: str
    ) -> Optional[PlayerRelationship]:
        return await self.cache.get_or_load(
            RelationshipCache.relationship_key(player1, player2),
            PlayerRelationship,
            RELATIONSHIP_TTL,
            lambda: self.inner.get_relationship(player1, player2),
        )

    async def get_player_network_stats(
        self, player_name: str
    ) -> Optional[PlayerNetworkStats]:
        return await self.cache.get_or_load(
            RelationshipCache.network_stats_key(player_name),
            PlayerNetworkStats,
            NETWORK_STATS_TTL,
            lambda: self.inner.get_player_network_stats(player_name),
        )

    async def get_player_network_graph(
        self,
        player_name: str,
        depth: int = DEFAULT_NETWORK_DEPTH,
        max_nodes: int = DEFAULT_NETWORK_MAX_NODES,
    ) -> Optional[PlayerNetworkGraph]:
        return await self.cache.get_or_load(
            RelationshipCache.network_graph_key(player_name, depth, max_nodes),
            PlayerNetworkGraph,
            NETWORK_GRAPH_TTL,
            lambda: self.inner.get_player_network_graph(player_name, depth, max_nodes),
        )

    async def get_server_social_stats(
        self, server_guid: str
    ) -> Optional[ServerSocialStats]:
        return await self.cache.get_or_load(
            RelationshipCache.server_social_stats_key(server_guid),
            ServerSocialStats,
            SERVER_SOCIAL_STATS_TTL,
            lambda: self.inner.get_server_social_stats(server_guid),
        )

    async def get_squad_recommendations(
        self, player_name: str, limit: int = 10, online_only: bool = False
    ) -> List[SquadRecommendation]:
        return await self.inner.get_squad_recommendations(player_name, limit, online_only)

    async def record_squad_feedback(
        self, player_name: str, recommended_player: str, was_helpful: bool
    ) -> bool:
        return await self.inner.record_squad_feedback(
            player_name, recommended_player, was_helpful
        )

    async def get_player_migration_flow(
        self, start: datetime, end: datetime, game: Optional[str] = None
    ) -> PlayerMigrationFlow:
        return await self.cache.get_or_load(
            RelationshipCache.migration_flow_key(start, end, game),
            PlayerMigrationFlow,
            MIGRATION_FLOW_TTL,
            lambda: self.inner.get_player_migration_flow(start, end, game),
        )

    async def get_server_lifecycle_analysis(
        self, days_back: int = 90
    ) -> List[MigrationServerNode]:
        return await self.cache.get_or_load(
            RelationshipCache.server_lifecycle_key(days_back),
            List[MigrationServerNode],
            SERVER_LIFECYCLE_TTL,
            lambda: self.inner.get_server_lifecycle_analysis(days_back),
        )

    async def invalidate_player(self, player_name: str) -> None:
        """Drop the default-parameter entries keyed by one player."""
        for key in (
            RelationshipCache.teammates_key(player_name, DEFAULT_TEAMMATES_LIMIT),
            RelationshipCache.network_stats_key(player_name),
            RelationshipCache.network_graph_key(
                player_name, DEFAULT_NETWORK_DEPTH, DEFAULT_NETWORK_MAX_NODES
            ),
            RelationshipCache.player_communities_key(player_name),
        ):
            await self.cache.delete(key)

    async def invalidate_relationship(self, player1: str, player2: str) -> None:
        """Drop both orientations of a pair's relationship entries."""
        for first, second in ((player1, player2), (player2, player1)):
            await self.cache.delete(RelationshipCache.relationship_key(first, second))
            await self.cache.delete(RelationshipCache.shared_servers_key(first, second))

    async def invalidate_server(self, server_guid: str) -> None:
        await self.cache.delete(RelationshipCache.server_social_stats_key(server_guid))
