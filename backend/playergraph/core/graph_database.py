"""Graph store connection management for Neo4j using the official async driver."""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction

from .config import get_global_settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TransactionWork = Callable[..., Awaitable[T]]


class GraphDatabaseManager:
    """
    Thin wrapper around the Neo4j async driver.

    Every :meth:`execute_read` / :meth:`execute_write` call runs its work
    function inside one managed transaction, so each call commits atomically
    or not at all.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
        driver: Optional[AsyncDriver] = None,
    ):
        settings = get_global_settings()
        self.database = database or settings.neo4j_database
        self.driver: AsyncDriver = driver or AsyncGraphDatabase.driver(
            uri or settings.neo4j_uri,
            auth=(user or settings.neo4j_user, password or settings.neo4j_password),
            max_connection_pool_size=settings.neo4j_max_connection_pool_size,
            connection_timeout=settings.neo4j_connection_timeout_seconds,
        )

    async def execute_read(self, work: TransactionWork[T], *args: Any, **kwargs: Any) -> T:
        """Run ``work(tx, *args, **kwargs)`` in a read transaction."""
        async with self.driver.session(database=self.database) as session:
            return await session.execute_read(work, *args, **kwargs)

    async def execute_write(self, work: TransactionWork[T], *args: Any, **kwargs: Any) -> T:
        """Run ``work(tx, *args, **kwargs)`` in a write transaction."""
        async with self.driver.session(database=self.database) as session:
            return await session.execute_write(work, *args, **kwargs)

    async def verify_connectivity(self) -> bool:
        """Return True when the graph store answers."""
        try:
            await self.driver.verify_connectivity()
            return True
        except Exception as e:
            logger.warning(
                "Graph store connectivity check failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def close(self) -> None:
        """Close the driver and its connection pool."""
        await self.driver.close()


async def fetch_all(
    tx: AsyncManagedTransaction, query: str, **parameters: Any
) -> list[dict[str, Any]]:
    """Run a query and return every record as a plain dict."""
    result = await tx.run(query, **parameters)
    return [record.data() async for record in result]


async def fetch_single(
    tx: AsyncManagedTransaction, query: str, **parameters: Any
) -> Optional[dict[str, Any]]:
    """Run a query and return the first record as a dict, or None."""
    result = await tx.run(query, **parameters)
    record = await result.single()
    return record.data() if record is not None else None


async def run_and_consume(
    tx: AsyncManagedTransaction, query: str, **parameters: Any
) -> None:
    """Run a write query and discard its result."""
    result = await tx.run(query, **parameters)
    await result.consume()


def to_native_datetime(value: Any) -> Optional[datetime]:
    """Convert a Neo4j temporal value (or ISO string) to an aware ``datetime``."""
    if value is None:
        return None
    if hasattr(value, "to_native"):
        value = value.to_native()
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


_graph_manager: Optional[GraphDatabaseManager] = None


def get_graph_manager() -> GraphDatabaseManager:
    """Get or create the global graph database manager."""
    global _graph_manager
    if _graph_manager is None:
        _graph_manager = GraphDatabaseManager()
    return _graph_manager


async def close_graph_manager() -> None:
    """Close the global graph database manager, if one was created."""
    global _graph_manager
    if _graph_manager is not None:
        await _graph_manager.close()
        _graph_manager = None
