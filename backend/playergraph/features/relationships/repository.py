"""Repository pattern implementation for the co-play graph.

The interface isolates the ETL and the query service from Cypher, so both
can be tested against in-memory fakes. The Neo4j implementation runs every
call as one managed transaction through :class:`GraphDatabaseManager`.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import structlog
from neo4j import AsyncManagedTransaction

from playergraph.core.graph_database import (
    GraphDatabaseManager,
    fetch_all,
    fetch_single,
    run_and_consume,
    to_native_datetime,
)

from .schemas import (
    NetworkEdge,
    NetworkNode,
    PlayerNetworkGraph,
    PlayerNetworkStats,
    PlayerRelationship,
    PotentialConnection,
    ServerSocialStats,
)

logger = structlog.get_logger(__name__)

MAX_NETWORK_DEPTH = 3


class RelationshipGraphRepositoryInterface(ABC):
    """Interface for co-play graph reads and writes.

    Absent players, servers or pairs come back as ``None`` or empty lists.
    """

    # Writes

    @abstractmethod
    async def upsert_played_with(
        self, batch: List[Dict[str, Any]], chunk_size: int = 1000
    ) -> None:
        """Atomically merge one flush of PLAYED_WITH metrics.

        The batch is sent as statements of at most ``chunk_size`` pairs, all
        inside a single write transaction: either every pair commits or none.
        Each element carries ``player1``, ``player2``, ``observationCount``,
        ``firstSeen``, ``lastSeen`` and ``serverGuids``.
        """
        pass

    @abstractmethod
    async def upsert_plays_on(self, batch: List[Dict[str, Any]]) -> None:
        """Atomically merge one chunk of PLAYS_ON metrics.

        Each element carries ``playerName``, ``serverGuid``, ``serverName``,
        ``game``, ``sessionCount``, ``firstPlayed`` and ``lastPlayed``.
        """
        pass

    @abstractmethod
    async def record_squad_feedback(
        self, player_name: str, recommended_player: str, was_helpful: bool, at: datetime
    ) -> bool:
        """Count one piece of squad feedback; False when either player is unknown."""
        pass

    # Reads

    @abstractmethod
    async def get_co_players(self, player_name: str, limit: int) -> List[PlayerRelationship]:
        pass

    @abstractmethod
    async def get_potential_connections(
        self, player_name: str, active_since: datetime, limit: int
    ) -> List[PotentialConnection]:
        pass

    @abstractmethod
    async def get_relationship(
        self, player1: str, player2: str
    ) -> Optional[PlayerRelationship]:
        """The PLAYED_WITH edge between two players, or None.

        The edge metrics are symmetric, but the record follows argument order:
        its ``player1`` is the first argument and its ``player2`` the second.
        """
        pass

    @abstractmethod
    async def get_recent_connections(
        self, player_name: str, since: datetime, limit: int
    ) -> List[PlayerRelationship]:
        pass

    @abstractmethod
    async def get_network_stats(self, player_name: str) -> Optional[PlayerNetworkStats]:
        pass

    @abstractmethod
    async def get_network_graph(
        self, player_name: str, depth: int, max_nodes: int
    ) -> Optional[PlayerNetworkGraph]:
        pass

    @abstractmethod
    async def get_server_social_stats(
        self, server_guid: str, active_30_since: datetime, active_90_since: datetime
    ) -> Optional[ServerSocialStats]:
        pass

    @abstractmethod
    async def get_squad_candidates(
        self, player_name: str, limit: int
    ) -> List[Dict[str, Any]]:
        """Players sharing servers with ``player_name``.

        Each row has ``playerName``, ``lastSeen``, ``mutualConnections`` and
        ``commonServers`` (a list of dicts with ``guid``, ``name``,
        ``mySessions``, ``theirSessions``, ``myLast`` and ``theirLast``).
        """
        pass

    @abstractmethod
    async def get_migration_links(
        self, start: datetime, end: datetime, game: Optional[str]
    ) -> List[Dict[str, Any]]:
        """Server-to-server transitions aggregated per (source, target).

        Each row has ``sourceGuid``/``sourceName``/``sourceGame``,
        ``targetGuid``/``targetName``/``targetGame``, ``playerCount``,
        ``sessionCount`` and ``avgMigrationDays``.
        """
        pass

    @abstractmethod
    async def get_teammate_names(self, player_name: str) -> Optional[Set[str]]:
        """Names of everyone the player has a PLAYED_WITH edge to; None if unknown."""
        pass


def _relationship_from_record(player_name: str, record: Dict[str, Any]) -> PlayerRelationship:
    return PlayerRelationship(
        player1=player_name,
        player2=record["otherPlayer"],
        session_count=int(record.get("sessionCount") or 0),
        first_played_together=to_native_datetime(record.get("firstPlayed")),
        last_played_together=to_native_datetime(record.get("lastPlayed")),
        server_guids=list(record.get("servers") or []),
    )


class Neo4jRelationshipRepository(RelationshipGraphRepositoryInterface):
    """Neo4j implementation of the co-play graph repository."""

    def __init__(self, graph: GraphDatabaseManager):
        """Initialize repository with a graph database manager.

        :param graph: Graph database manager used for managed transactions
        """
        self.graph = graph

    async def upsert_played_with(
        self, batch: List[Dict[str, Any]], chunk_size: int = 1000
    ) -> None:
        query = """
            UNWIND $relationships AS rel
            MERGE (p1:Player {name: rel.player1})
            ON CREATE SET p1.firstSeen = rel.firstSeen,
                          p1.lastSeen = rel.lastSeen
            ON MATCH SET p1.lastSeen = CASE
                WHEN rel.lastSeen > p1.lastSeen THEN rel.lastSeen
                ELSE p1.lastSeen
            END
            MERGE (p2:Player {name: rel.player2})
            ON CREATE SET p2.firstSeen = rel.firstSeen,
                          p2.lastSeen = rel.lastSeen
            ON MATCH SET p2.lastSeen = CASE
                WHEN rel.lastSeen > p2.lastSeen THEN rel.lastSeen
                ELSE p2.lastSeen
            END
            MERGE (p1)-[r:PLAYED_WITH]-(p2)
            ON CREATE SET r.sessionCount = rel.observationCount,
                          r.firstPlayedTogether = rel.firstSeen,
                          r.lastPlayedTogether = rel.lastSeen,
                          r.servers = rel.serverGuids
            ON MATCH SET r.sessionCount = r.sessionCount + rel.observationCount,
                         r.firstPlayedTogether = CASE
                             WHEN rel.firstSeen < r.firstPlayedTogether THEN rel.firstSeen
                             ELSE r.firstPlayedTogether
                         END,
                         r.lastPlayedTogether = CASE
                             WHEN rel.lastSeen > r.lastPlayedTogether THEN rel.lastSeen
                             ELSE r.lastPlayedTogether
                         END,
                         r.servers = r.servers + [x IN rel.serverGuids WHERE NOT x IN r.servers]
        """

        async def work(tx: AsyncManagedTransaction) -> None:
            for start in range(0, len(batch), chunk_size):
                await run_and_consume(
                    tx, query, relationships=batch[start : start + chunk_size]
                )

        await self.graph.execute_write(work)

    async def upsert_plays_on(self, batch: List[Dict[str, Any]]) -> None:
        query = """
            UNWIND $relationships AS rel
            MERGE (p:Player {name: rel.playerName})
            ON CREATE SET p.firstSeen = rel.firstPlayed,
                          p.lastSeen = rel.lastPlayed
            ON MATCH SET p.lastSeen = CASE
                WHEN p.lastSeen IS NULL OR rel.lastPlayed > p.lastSeen THEN rel.lastPlayed
                ELSE p.lastSeen
            END
            MERGE (s:Server {guid: rel.serverGuid})
            ON CREATE SET s.name = rel.serverName,
                          s.game = rel.game
            MERGE (p)-[r:PLAYS_ON]->(s)
            ON CREATE SET r.sessionCount = rel.sessionCount,
                          r.firstPlayed = rel.firstPlayed,
                          r.lastPlayed = rel.lastPlayed
            ON MATCH SET r.sessionCount = r.sessionCount + rel.sessionCount,
                         r.firstPlayed = CASE
                             WHEN r.firstPlayed IS NULL OR rel.firstPlayed < r.firstPlayed
                             THEN rel.firstPlayed
                             ELSE r.firstPlayed
                         END,
                         r.lastPlayed = CASE
                             WHEN rel.lastPlayed > r.lastPlayed THEN rel.lastPlayed
                             ELSE r.lastPlayed
                         END
        """

        async def work(tx: AsyncManagedTransaction) -> None:
            result = await tx.run(query, relationships=batch)
            await result.consume()

        await self.graph.execute_write(work)

    async def record_squad_feedback(
        self, player_name: str, recommended_player: str, was_helpful: bool, at: datetime
    ) -> bool:
        query = """
            MATCH (p:Player {name: $playerName}), (r:Player {name: $recommendedPlayer})
            MERGE (p)-[f:SQUAD_FEEDBACK]->(r)
            ON CREATE SET f.helpfulCount = 0, f.unhelpfulCount = 0
            SET f.helpfulCount = f.helpfulCount + CASE WHEN $wasHelpful THEN 1 ELSE 0 END,
                f.unhelpfulCount = f.unhelpfulCount + CASE WHEN $wasHelpful THEN 0 ELSE 1 END,
                f.lastFeedbackAt = $at
            RETURN count(f) AS written
        """

        async def work(tx: AsyncManagedTransaction) -> bool:
            record = await fetch_single(
                tx,
                query,
                playerName=player_name,
                recommendedPlayer=recommended_player,
                wasHelpful=was_helpful,
                at=at,
            )
            return bool(record and record["written"])

        return await self.graph.execute_write(work)

    async def get_co_players(self, player_name: str, limit: int) -> List[PlayerRelationship]:
        query = """
            MATCH (p:Player {name: $playerName})-[r:PLAYED_WITH]-(other:Player)
            RETURN other.name AS otherPlayer,
                   r.sessionCount AS sessionCount,
                   r.firstPlayedTogether AS firstPlayed,
                   r.lastPlayedTogether AS lastPlayed,
                   r.servers AS servers
            ORDER BY r.sessionCount DESC, other.name
            LIMIT $limit
        """
        records = await self.graph.execute_read(
            fetch_all, query, playerName=player_name, limit=limit
        )
        return [_relationship_from_record(player_name, record) for record in records]

    async def get_potential_connections(
        self, player_name: str, active_since: datetime, limit: int
    ) -> List[PotentialConnection]:
        query = """
            MATCH (p:Player {name: $playerName})-[r1:PLAYS_ON]->(s:Server)
            WHERE r1.lastPlayed > $cutoff
            WITH p, s
            MATCH (other:Player)-[r2:PLAYS_ON]->(s)
            WHERE other.name <> $playerName
              AND r2.lastPlayed > $cutoff
              AND NOT EXISTS { MATCH (p)-[:PLAYED_WITH]-(other) }
            WITH other.name AS otherPlayer,
                 collect(DISTINCT s.guid) AS commonServers,
                 max(r2.lastPlayed) AS lastPlayed
            RETURN otherPlayer, commonServers, size(commonServers) AS commonServerCount, lastPlayed
            ORDER BY commonServerCount DESC, otherPlayer
            LIMIT $limit
        """
        records = await self.graph.execute_read(
            fetch_all, query, playerName=player_name, cutoff=active_since, limit=limit
        )
        return [
            PotentialConnection(
                player_name=record["otherPlayer"],
                common_server_count=int(record["commonServerCount"]),
                common_servers=sorted(record["commonServers"]),
                last_played=to_native_datetime(record["lastPlayed"]),
            )
            for record in records
        ]

    async def get_relationship(
        self, player1: str, player2: str
    ) -> Optional[PlayerRelationship]:
        query = """
            MATCH (p1:Player {name: $player1})-[r:PLAYED_WITH]-(p2:Player {name: $player2})
            RETURN p2.name AS otherPlayer,
                   r.sessionCount AS sessionCount,
                   r.firstPlayedTogether AS firstPlayed,
                   r.lastPlayedTogether AS lastPlayed,
                   r.servers AS servers
            LIMIT 1
        """
        record = await self.graph.execute_read(
            fetch_single, query, player1=player1, player2=player2
        )
        if record is None:
            return None
        return _relationship_from_record(player1, record)

    async def get_recent_connections(
        self, player_name: str, since: datetime, limit: int
    ) -> List[PlayerRelationship]:
        query = """
            MATCH (p:Player {name: $playerName})-[r:PLAYED_WITH]-(other:Player)
            WHERE r.firstPlayedTogether > $cutoff OR r.lastPlayedTogether > $cutoff
            RETURN other.name AS otherPlayer,
                   r.sessionCount AS sessionCount,
                   r.firstPlayedTogether AS firstPlayed,
                   r.lastPlayedTogether AS lastPlayed,
                   r.servers AS servers
            ORDER BY r.firstPlayedTogether DESC, other.name
            LIMIT $limit
        """
        records = await self.graph.execute_read(
            fetch_all, query, playerName=player_name, cutoff=since, limit=limit
        )
        return [_relationship_from_record(player_name, record) for record in records]

    async def get_network_stats(self, player_name: str) -> Optional[PlayerNetworkStats]:
        query = """
            MATCH (p:Player {name: $playerName})
            OPTIONAL MATCH (p)-[r:PLAYED_WITH]-(other:Player)
            WITH p, count(DISTINCT other) AS connectionCount,
                 coalesce(sum(r.sessionCount), 0) AS totalSessions
            OPTIONAL MATCH (p)-[:PLAYS_ON]->(s:Server)
            RETURN p.firstSeen AS firstSeen,
                   p.lastSeen AS lastSeen,
                   connectionCount,
                   totalSessions,
                   count(DISTINCT s) AS serverCount
        """
        record = await self.graph.execute_read(
            fetch_single, query, playerName=player_name
        )
        if record is None:
            return None
        return PlayerNetworkStats(
            player_name=player_name,
            connection_count=int(record["connectionCount"]),
            total_co_play_sessions=int(record["totalSessions"]),
            server_count=int(record["serverCount"]),
            first_seen=to_native_datetime(record["firstSeen"]),
            last_seen=to_native_datetime(record["lastSeen"]),
        )

    async def get_network_graph(
        self, player_name: str, depth: int, max_nodes: int
    ) -> Optional[PlayerNetworkGraph]:
        depth = max(1, min(MAX_NETWORK_DEPTH, int(depth)))
        # Variable-length bounds cannot be parameters; depth is a clamped int.
        edges_query = f"""
            MATCH path = (p:Player {{name: $playerName}})-[:PLAYED_WITH*1..{depth}]-(other:Player)
            WITH path LIMIT $pathLimit
            UNWIND relationships(path) AS rel
            WITH DISTINCT rel
            WITH rel, startNode(rel) AS n1, endNode(rel) AS n2
            RETURN n1.name AS source, n1.communityId AS sourceCommunity,
                   n2.name AS target, n2.communityId AS targetCommunity,
                   rel.sessionCount AS weight,
                   rel.lastPlayedTogether AS lastInteraction
            ORDER BY weight DESC
        """
        center_query = """
            MATCH (p:Player {name: $playerName})
            RETURN p.name AS name, p.communityId AS communityId
        """

        async def work(tx: AsyncManagedTransaction) -> Optional[Dict[str, Any]]:
            center = await fetch_single(tx, center_query, playerName=player_name)
            if center is None:
                return None
            edges = await fetch_all(
                tx, edges_query, playerName=player_name, pathLimit=max_nodes * 10
            )
            return {"center": center, "edges": edges}

        data = await self.graph.execute_read(work)
        if data is None:
            return None

        return build_network_graph(
            player_name,
            depth,
            max_nodes,
            center_community=data["center"].get("communityId"),
            edge_records=data["edges"],
        )

    async def get_server_social_stats(
        self, server_guid: str, active_30_since: datetime, active_90_since: datetime
    ) -> Optional[ServerSocialStats]:
        query = """
            MATCH (s:Server {guid: $serverGuid})
            OPTIONAL MATCH (p:Player)-[r:PLAYS_ON]->(s)
            WITH s,
                 collect(DISTINCT p) AS players,
                 count(DISTINCT CASE WHEN r.lastPlayed >= $cutoff30 THEN p END) AS active30,
                 count(DISTINCT CASE WHEN r.lastPlayed >= $cutoff90 THEN p END) AS active90
            UNWIND CASE WHEN size(players) = 0 THEN [null] ELSE players END AS a
            OPTIONAL MATCH (a)-[pw:PLAYED_WITH]-(b:Player)-[:PLAYS_ON]->(s)
            WHERE a.name < b.name
            RETURN s.name AS name, s.game AS game,
                   size(players) AS uniquePlayers,
                   active30, active90,
                   count(DISTINCT pw) AS connections
        """
        record = await self.graph.execute_read(
            fetch_single,
            query,
            serverGuid=server_guid,
            cutoff30=active_30_since,
            cutoff90=active_90_since,
        )
        if record is None:
            return None

        unique_players = int(record["uniquePlayers"])
        connections = int(record["connections"])
        active30 = int(record["active30"])
        active90 = int(record["active90"])
        return ServerSocialStats(
            server_guid=server_guid,
            server_name=record["name"] or "Unknown",
            game=record["game"] or "unknown",
            unique_players=unique_players,
            total_connections=connections,
            avg_connections_per_player=(
                2.0 * connections / unique_players if unique_players else 0.0
            ),
            active_last_30_days=active30,
            active_last_90_days=active90,
            retention_ratio=min(1.0, active30 / active90) if active90 else 0.0,
        )

    async def get_squad_candidates(
        self, player_name: str, limit: int
    ) -> List[Dict[str, Any]]:
        query = """
            MATCH (me:Player {name: $playerName})-[myPlay:PLAYS_ON]->(s:Server)
                  <-[theirPlay:PLAYS_ON]-(other:Player)
            WHERE other.name <> $playerName
            WITH me, other, collect({
                guid: s.guid,
                name: s.name,
                mySessions: myPlay.sessionCount,
                theirSessions: theirPlay.sessionCount,
                myLast: myPlay.lastPlayed,
                theirLast: theirPlay.lastPlayed
            }) AS commonServers
            ORDER BY size(commonServers) DESC, other.name
            LIMIT $limit
            OPTIONAL MATCH (me)-[:PLAYED_WITH]-(mutual:Player)-[:PLAYED_WITH]-(other)
            WHERE mutual <> me AND mutual <> other
            RETURN other.name AS playerName,
                   other.lastSeen AS lastSeen,
                   commonServers,
                   count(DISTINCT mutual) AS mutualConnections
        """
        records = await self.graph.execute_read(
            fetch_all, query, playerName=player_name, limit=limit
        )
        for record in records:
            record["lastSeen"] = to_native_datetime(record.get("lastSeen"))
            for server in record["commonServers"]:
                server["myLast"] = to_native_datetime(server.get("myLast"))
                server["theirLast"] = to_native_datetime(server.get("theirLast"))
        return records

    async def get_migration_links(
        self, start: datetime, end: datetime, game: Optional[str]
    ) -> List[Dict[str, Any]]:
        query = """
            MATCH (p:Player)-[src:PLAYS_ON]->(s1:Server)
            WHERE src.lastPlayed >= $start AND src.lastPlayed <= $end
              AND ($game IS NULL OR s1.game = $game)
            MATCH (p)-[dst:PLAYS_ON]->(s2:Server)
            WHERE s2 <> s1
              AND dst.firstPlayed IS NOT NULL
              AND dst.firstPlayed > src.lastPlayed
              AND dst.firstPlayed <= $end
              AND ($game IS NULL OR s2.game = $game)
            WITH s1, s2, p, dst,
                 duration.inDays(src.lastPlayed, dst.firstPlayed).days AS gapDays
            RETURN s1.guid AS sourceGuid, s1.name AS sourceName, s1.game AS sourceGame,
                   s2.guid AS targetGuid, s2.name AS targetName, s2.game AS targetGame,
                   count(DISTINCT p) AS playerCount,
                   sum(dst.sessionCount) AS sessionCount,
                   avg(gapDays) AS avgMigrationDays
            ORDER BY playerCount DESC, sourceGuid, targetGuid
        """
        return await self.graph.execute_read(
            fetch_all, query, start=start, end=end, game=game
        )

    async def get_teammate_names(self, player_name: str) -> Optional[Set[str]]:
        query = """
            OPTIONAL MATCH (p:Player {name: $playerName})
            OPTIONAL MATCH (p)-[:PLAYED_WITH]-(other:Player)
            RETURN p IS NOT NULL AS playerExists, collect(DISTINCT other.name) AS teammates
        """
        record = await self.graph.execute_read(
            fetch_single, query, playerName=player_name
        )
        if record is None or not record["playerExists"]:
            return None
        return set(record["teammates"])


def build_network_graph(
    player_name: str,
    depth: int,
    max_nodes: int,
    center_community: Optional[str],
    edge_records: List[Dict[str, Any]],
) -> PlayerNetworkGraph:
    """
    Turn traversal edges into a node-capped graph.

    Edges arrive strongest first; nodes are admitted in that order until the
    cap is reached and only edges between admitted nodes are kept.
    """
    nodes: Dict[str, NetworkNode] = {
        player_name: NetworkNode(
            id=player_name,
            label=player_name,
            community_id=center_community,
            is_center=True,
        )
    }
    edges: List[NetworkEdge] = []

    for record in edge_records:
        endpoints = (
            (record["source"], record.get("sourceCommunity")),
            (record["target"], record.get("targetCommunity")),
        )
        missing = [name for name, _ in endpoints if name not in nodes]
        if len(nodes) + len(missing) > max_nodes:
            continue
        for name, community in endpoints:
            if name not in nodes:
                nodes[name] = NetworkNode(id=name, label=name, community_id=community)
        edges.append(
            NetworkEdge(
                source=record["source"],
                target=record["target"],
                weight=int(record.get("weight") or 0),
                last_interaction=to_native_datetime(record.get("lastInteraction")),
            )
        )

    return PlayerNetworkGraph(
        center_player=player_name,
        depth=depth,
        nodes=list(nodes.values()),
        edges=edges,
    )
