"""Repository pattern implementation for community nodes in the graph store."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog
from neo4j import AsyncManagedTransaction

from playergraph.core.graph_database import (
    GraphDatabaseManager,
    fetch_all,
    fetch_single,
    run_and_consume,
    to_native_datetime,
)

from .detection import StrongEdge
from .schemas import CommunityServerMap, PlayerCommunity, ServerMapEdge, ServerMapNode

logger = structlog.get_logger(__name__)

_COMMUNITY_FIELDS = """
    c.id AS id, c.name AS name, c.members AS members, c.coreMembers AS coreMembers,
    c.primaryServers AS primaryServers, c.formationDate AS formationDate,
    c.lastActiveDate AS lastActiveDate, c.avgSessionsPerPair AS avgSessionsPerPair,
    c.cohesionScore AS cohesionScore
"""


class CommunityRepositoryInterface(ABC):
    """Interface for community reads and the all-at-once community rewrite."""

    @abstractmethod
    async def get_strong_edges(self, min_sessions: int) -> List[StrongEdge]:
        pass

    @abstractmethod
    async def get_server_play_counts(
        self, player_names: Iterable[str]
    ) -> Dict[str, Dict[str, int]]:
        """``{player: {server_guid: session_count}}`` from PLAYS_ON edges."""
        pass

    @abstractmethod
    async def replace_communities(self, communities: List[PlayerCommunity]) -> None:
        """Delete every community and write the new set in one transaction."""
        pass

    @abstractmethod
    async def get_communities(
        self, min_size: int, active_since: Optional[datetime]
    ) -> List[PlayerCommunity]:
        pass

    @abstractmethod
    async def get_community(self, community_id: str) -> Optional[PlayerCommunity]:
        pass

    @abstractmethod
    async def get_player_communities(self, player_name: str) -> List[PlayerCommunity]:
        pass

    @abstractmethod
    async def get_community_server_map(
        self, community_id: str
    ) -> Optional[CommunityServerMap]:
        pass


def _community_from_record(record: Dict[str, Any]) -> PlayerCommunity:
    return PlayerCommunity(
        id=record["id"],
        name=record.get("name") or record["id"],
        members=list(record.get("members") or []),
        core_members=list(record.get("coreMembers") or []),
        primary_servers=list(record.get("primaryServers") or []),
        formation_date=to_native_datetime(record.get("formationDate")),
        last_active_date=to_native_datetime(record.get("lastActiveDate")),
        avg_sessions_per_pair=float(record.get("avgSessionsPerPair") or 0.0),
        cohesion_score=float(record.get("cohesionScore") or 0.0),
    )


def _community_params(community: PlayerCommunity) -> Dict[str, Any]:
    return {
        "id": community.id,
        "name": community.name,
        "members": community.members,
        "coreMembers": community.core_members,
        "primaryServers": community.primary_servers,
        "formationDate": community.formation_date,
        "lastActiveDate": community.last_active_date,
        "avgSessionsPerPair": community.avg_sessions_per_pair,
        "cohesionScore": community.cohesion_score,
        "memberCount": len(community.members),
    }


class Neo4jCommunityRepository(CommunityRepositoryInterface):
    """Neo4j implementation of the community repository."""

    def __init__(self, graph: GraphDatabaseManager):
        self.graph = graph

    async def get_strong_edges(self, min_sessions: int) -> List[StrongEdge]:
        query = """
            MATCH (p1:Player)-[r:PLAYED_WITH]-(p2:Player)
            WHERE p1.name < p2.name AND r.sessionCount >= $minSessions
            RETURN p1.name AS player1, p2.name AS player2,
                   r.sessionCount AS sessionCount,
                   r.firstPlayedTogether AS firstPlayed,
                   r.lastPlayedTogether AS lastPlayed
        """
        records = await self.graph.execute_read(
            fetch_all, query, minSessions=min_sessions
        )
        return [
            StrongEdge(
                player1=record["player1"],
                player2=record["player2"],
                session_count=int(record["sessionCount"]),
                first_played=to_native_datetime(record["firstPlayed"]),
                last_played=to_native_datetime(record["lastPlayed"]),
            )
            for record in records
        ]

    async def get_server_play_counts(
        self, player_names: Iterable[str]
    ) -> Dict[str, Dict[str, int]]:
        names = sorted(set(player_names))
        if not names:
            return {}

        query = """
            UNWIND $names AS name
            MATCH (p:Player {name: name})-[r:PLAYS_ON]->(s:Server)
            RETURN p.name AS player, s.guid AS serverGuid, r.sessionCount AS sessionCount
        """
        records = await self.graph.execute_read(fetch_all, query, names=names)

        counts: Dict[str, Dict[str, int]] = {}
        for record in records:
            counts.setdefault(record["player"], {})[record["serverGuid"]] = int(
                record["sessionCount"] or 0
            )
        return counts

    async def replace_communities(self, communities: List[PlayerCommunity]) -> None:
        params = [_community_params(community) for community in communities]

        async def work(tx: AsyncManagedTransaction) -> None:
            await run_and_consume(tx, "MATCH (c:Community) DETACH DELETE c")
            await run_and_consume(
                tx,
                "MATCH (p:Player) WHERE p.communityId IS NOT NULL REMOVE p.communityId",
            )
            await run_and_consume(
                tx,
                """
                UNWIND $communities AS community
                CREATE (c:Community)
                SET c = community
                WITH c, community
                UNWIND community.members AS member
                MATCH (p:Player {name: member})
                SET p.communityId = c.id
                MERGE (p)-[:MEMBER_OF]->(c)
                """,
                communities=params,
            )

        await self.graph.execute_write(work)
        logger.info("Communities replaced", count=len(communities))

    async def get_communities(
        self, min_size: int, active_since: Optional[datetime]
    ) -> List[PlayerCommunity]:
        query = f"""
            MATCH (c:Community)
            WHERE c.memberCount >= $minSize
              AND ($activeSince IS NULL OR c.lastActiveDate >= $activeSince)
            RETURN {_COMMUNITY_FIELDS}
            ORDER BY c.memberCount DESC, c.id
        """
        records = await self.graph.execute_read(
            fetch_all, query, minSize=min_size, activeSince=active_since
        )
        return [_community_from_record(record) for record in records]

    async def get_community(self, community_id: str) -> Optional[PlayerCommunity]:
        query = f"""
            MATCH (c:Community {{id: $communityId}})
            RETURN {_COMMUNITY_FIELDS}
        """
        record = await self.graph.execute_read(
            fetch_single, query, communityId=community_id
        )
        return _community_from_record(record) if record else None

    async def get_player_communities(self, player_name: str) -> List[PlayerCommunity]:
        query = f"""
            MATCH (:Player {{name: $playerName}})-[:MEMBER_OF]->(c:Community)
            RETURN {_COMMUNITY_FIELDS}
            ORDER BY c.memberCount DESC, c.id
        """
        records = await self.graph.execute_read(
            fetch_all, query, playerName=player_name
        )
        return [_community_from_record(record) for record in records]

    async def get_community_server_map(
        self, community_id: str
    ) -> Optional[CommunityServerMap]:
        query = """
            MATCH (c:Community {id: $communityId})
            OPTIONAL MATCH (p:Player)-[:MEMBER_OF]->(c)
            OPTIONAL MATCH (p)-[r:PLAYS_ON]->(s:Server)
            RETURN c.coreMembers AS coreMembers,
                   p.name AS player,
                   s.guid AS serverGuid, s.name AS serverName,
                   r.sessionCount AS sessionCount, r.lastPlayed AS lastPlayed
        """
        records = await self.graph.execute_read(
            fetch_all, query, communityId=community_id
        )
        if not records:
            return None

        core = set(records[0].get("coreMembers") or [])
        players: Dict[str, ServerMapNode] = {}
        servers: Dict[str, ServerMapNode] = {}
        edges: List[ServerMapEdge] = []
        for record in records:
            player = record.get("player")
            if player is None:
                continue
            players.setdefault(
                player,
                ServerMapNode(id=player, label=player, type="player", is_core=player in core),
            )
            server_guid = record.get("serverGuid")
            if server_guid is None:
                continue
            servers.setdefault(
                server_guid,
                ServerMapNode(
                    id=server_guid,
                    label=record.get("serverName") or server_guid,
                    type="server",
                ),
            )
            edges.append(
                ServerMapEdge(
                    source=player,
                    target=server_guid,
                    weight=int(record.get("sessionCount") or 0),
                    last_played=to_native_datetime(record.get("lastPlayed")),
                )
            )

        return CommunityServerMap(
            community_id=community_id,
            players=sorted(players.values(), key=lambda node: node.id),
            servers=sorted(servers.values(), key=lambda node: node.id),
            edges=edges,
        )
