"""
Relationship query service.

Side-effect-free reads over the co-play graph, plus the squad feedback write.
A missing player, server or pair yields ``None`` or an empty list; graph
store failures propagate as :class:`GraphStoreUnavailableError`.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from playergraph.core.decorators import service_error_handler
from playergraph.core.enums import LifecycleStage

from .repository import MAX_NETWORK_DEPTH, RelationshipGraphRepositoryInterface
from .schemas import (
    CommonServer,
    MigrationLink,
    MigrationServerNode,
    PlayerMigrationFlow,
    PlayerNetworkGraph,
    PlayerNetworkStats,
    PlayerRelationship,
    PotentialConnection,
    ServerSocialStats,
    SquadRecommendation,
)

logger = structlog.get_logger(__name__)

RECENT_CONNECTIONS_LIMIT = 50
LIFECYCLE_THRESHOLD = 0.20
SQUAD_CANDIDATE_POOL_FACTOR = 5
SQUAD_OVERLAP_WINDOW = timedelta(days=7)

# Squad compatibility is a 0-100 linear score.
SQUAD_SERVER_POINTS = 40.0
SQUAD_SERVER_CAP = 5
SQUAD_OVERLAP_POINTS = 35.0
SQUAD_MUTUAL_POINTS = 25.0
SQUAD_MUTUAL_CAP = 10


def classify_lifecycle_stage(inflow: int, outflow: int) -> LifecycleStage:
    """
    Classify a server by its net migration relative to migration volume.

    A server nobody moves to or from, or one that only loses players, is
    Dead. Otherwise net/volume above +20% is Growing, below -20% Declining.
    """
    volume = inflow + outflow
    if volume == 0 or (inflow == 0 and outflow > 0):
        return LifecycleStage.DEAD

    ratio = (inflow - outflow) / volume
    if ratio > LIFECYCLE_THRESHOLD:
        return LifecycleStage.GROWING
    if ratio < -LIFECYCLE_THRESHOLD:
        return LifecycleStage.DECLINING
    return LifecycleStage.STABLE


def build_migration_flow(
    link_records: List[Dict[str, Any]], start: datetime, end: datetime
) -> PlayerMigrationFlow:
    """Aggregate source/target transition rows into links and per-server nodes."""
    links: List[MigrationLink] = []
    totals: Dict[str, Dict[str, Any]] = {}

    def node_for(guid: str, name: Optional[str], game: Optional[str]) -> Dict[str, Any]:
        return totals.setdefault(
            guid,
            {"name": name or "Unknown", "game": game or "unknown", "inflow": 0, "outflow": 0},
        )

    for record in link_records:
        player_count = int(record["playerCount"])
        links.append(
            MigrationLink(
                source_guid=record["sourceGuid"],
                target_guid=record["targetGuid"],
                player_count=player_count,
                session_count=int(record.get("sessionCount") or 0),
                avg_migration_days=round(float(record.get("avgMigrationDays") or 0.0), 1),
            )
        )
        node_for(record["sourceGuid"], record.get("sourceName"), record.get("sourceGame"))[
            "outflow"
        ] += player_count
        node_for(record["targetGuid"], record.get("targetName"), record.get("targetGame"))[
            "inflow"
        ] += player_count

    nodes = [
        MigrationServerNode(
            guid=guid,
            name=data["name"],
            game=data["game"],
            inflow=data["inflow"],
            outflow=data["outflow"],
            net_migration=data["inflow"] - data["outflow"],
            lifecycle_stage=classify_lifecycle_stage(data["inflow"], data["outflow"]),
        )
        for guid, data in totals.items()
    ]
    nodes.sort(key=lambda node: (-node.net_migration, node.guid))

    return PlayerMigrationFlow(start_date=start, end_date=end, links=links, nodes=nodes)


def score_squad_candidate(
    candidate: Dict[str, Any], now: datetime, online_window: timedelta
) -> SquadRecommendation:
    """Linear compatibility score from shared servers, timing overlap and mutual friends."""
    servers = candidate.get("commonServers") or []
    mutual = int(candidate.get("mutualConnections") or 0)

    overlapping = 0
    common_servers: List[CommonServer] = []
    last_activity: Optional[datetime] = candidate.get("lastSeen")
    for server in servers:
        my_last = server.get("myLast")
        their_last = server.get("theirLast")
        if my_last and their_last and abs(my_last - their_last) <= SQUAD_OVERLAP_WINDOW:
            overlapping += 1
        if their_last and (last_activity is None or their_last > last_activity):
            last_activity = their_last
        common_servers.append(
            CommonServer(
                server_guid=server["guid"],
                server_name=server.get("name") or "Unknown",
                both_played_sessions=min(
                    int(server.get("mySessions") or 0), int(server.get("theirSessions") or 0)
                ),
                last_seen_together=(
                    min(my_last, their_last) if my_last and their_last else None
                ),
            )
        )

    temporal_overlap = overlapping / len(servers) if servers else 0.0
    score = (
        min(len(servers), SQUAD_SERVER_CAP) / SQUAD_SERVER_CAP * SQUAD_SERVER_POINTS
        + temporal_overlap * SQUAD_OVERLAP_POINTS
        + min(mutual, SQUAD_MUTUAL_CAP) / SQUAD_MUTUAL_CAP * SQUAD_MUTUAL_POINTS
    )
    is_online = last_activity is not None and now - last_activity <= online_window

    reasons: List[str] = []
    if servers:
        plural = "server" if len(servers) == 1 else "servers"
        reasons.append(f"Plays on {len(servers)} of the same {plural}")
    if temporal_overlap >= 0.5:
        reasons.append("Active on shared servers around the same time")
    if mutual > 0:
        plural = "connection" if mutual == 1 else "connections"
        reasons.append(f"{mutual} mutual {plural}")
    if is_online:
        reasons.append("Online now")

    return SquadRecommendation(
        player_name=candidate["playerName"],
        compatibility_score=round(min(100.0, score), 1),
        reasons=reasons,
        common_servers=common_servers,
        temporal_overlap=temporal_overlap,
        mutual_connections=mutual,
        is_online=is_online,
    )


class RelationshipQueryService:
    """Read API over the co-play graph."""

    def __init__(
        self,
        repository: RelationshipGraphRepositoryInterface,
        online_window_minutes: int = 15,
    ):
        """
        Initialize the query service.

        :param repository: Co-play graph repository
        :param online_window_minutes: A player seen this recently counts as online
        """
        self.repository = repository
        self.online_window = timedelta(minutes=online_window_minutes)

    @service_error_handler("RelationshipQueryService")
    async def get_most_frequent_co_players(
        self, player_name: str, limit: int = 20
    ) -> List[PlayerRelationship]:
        """Top co-players by shared session count, strongest first."""
        if limit < 1:
            raise ValueError("limit must be positive")
        if not player_name.strip():
            return []
        return await self.repository.get_co_players(player_name, limit)

    @service_error_handler("RelationshipQueryService")
    async def get_potential_connections(
        self, player_name: str, limit: int = 20, days_active: int = 30
    ) -> List[PotentialConnection]:
        """Players active on the same servers recently who have never played with the subject."""
        if limit < 1 or days_active < 1:
            raise ValueError("limit and days_active must be positive")
        if not player_name.strip():
            return []
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_active)
        return await self.repository.get_potential_connections(player_name, cutoff, limit)

    @service_error_handler("RelationshipQueryService")
    async def get_shared_servers(self, player1: str, player2: str) -> List[str]:
        """Servers on which the pair has been seen together."""
        relationship = await self.get_relationship(player1, player2)
        return list(relationship.server_guids) if relationship else []

    @service_error_handler("RelationshipQueryService")
    async def get_recent_connections(
        self, player_name: str, days_since: int = 7
    ) -> List[PlayerRelationship]:
        """Edges first formed or last refreshed inside the trailing window, newest first."""
        if days_since < 1:
            raise ValueError("days_since must be positive")
        if not player_name.strip():
            return []
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_since)
        return await self.repository.get_recent_connections(
            player_name, cutoff, RECENT_CONNECTIONS_LIMIT
        )

    @service_error_handler("RelationshipQueryService")
    async def get_relationship(
        self, player1: str, player2: str
    ) -> Optional[PlayerRelationship]:
        """The PLAYED_WITH edge between two players as seen from ``player1``."""
        if not player1.strip() or not player2.strip() or player1 == player2:
            return None
        return await self.repository.get_relationship(player1, player2)

    @service_error_handler("RelationshipQueryService")
    async def get_player_network_stats(
        self, player_name: str
    ) -> Optional[PlayerNetworkStats]:
        if not player_name.strip():
            return None
        return await self.repository.get_network_stats(player_name)

    @service_error_handler("RelationshipQueryService")
    async def get_player_network_graph(
        self, player_name: str, depth: int = 2, max_nodes: int = 100
    ) -> Optional[PlayerNetworkGraph]:
        """Neighbourhood of a player, depth clamped to 1..3 and capped at ``max_nodes``."""
        if max_nodes < 1:
            raise ValueError("max_nodes must be positive")
        if not player_name.strip():
            return None
        depth = max(1, min(MAX_NETWORK_DEPTH, depth))
        return await self.repository.get_network_graph(player_name, depth, max_nodes)

    @service_error_handler("RelationshipQueryService")
    async def get_server_social_stats(
        self, server_guid: str
    ) -> Optional[ServerSocialStats]:
        if not server_guid.strip():
            return None
        now = datetime.now(timezone.utc)
        return await self.repository.get_server_social_stats(
            server_guid, now - timedelta(days=30), now - timedelta(days=90)
        )

    @service_error_handler("RelationshipQueryService")
    async def get_squad_recommendations(
        self, player_name: str, limit: int = 10, online_only: bool = False
    ) -> List[SquadRecommendation]:
        """Rank players who share servers with the subject by compatibility."""
        if limit < 1:
            raise ValueError("limit must be positive")
        if not player_name.strip():
            return []

        candidates = await self.repository.get_squad_candidates(
            player_name, limit * SQUAD_CANDIDATE_POOL_FACTOR
        )
        now = datetime.now(timezone.utc)
        recommendations = [
            score_squad_candidate(candidate, now, self.online_window)
            for candidate in candidates
        ]
        if online_only:
            recommendations = [r for r in recommendations if r.is_online]

        recommendations.sort(key=lambda r: (-r.compatibility_score, r.player_name))
        logger.debug(
            "Squad recommendations computed",
            player_name=player_name,
            candidates=len(candidates),
            returned=min(limit, len(recommendations)),
        )
        return recommendations[:limit]

    @service_error_handler("RelationshipQueryService")
    async def record_squad_feedback(
        self, player_name: str, recommended_player: str, was_helpful: bool
    ) -> bool:
        """Store whether a squad recommendation helped; False if either player is unknown."""
        if not player_name.strip() or not recommended_player.strip():
            raise ValueError("player names cannot be empty")
        written = await self.repository.record_squad_feedback(
            player_name, recommended_player, was_helpful, datetime.now(timezone.utc)
        )
        logger.info(
            "Squad feedback recorded",
            player_name=player_name,
            recommended_player=recommended_player,
            was_helpful=was_helpful,
            written=written,
        )
        return written

    @service_error_handler("RelationshipQueryService")
    async def get_player_migration_flow(
        self, start: datetime, end: datetime, game: Optional[str] = None
    ) -> PlayerMigrationFlow:
        """Server-to-server movement of players whose activity on a source ended in the range."""
        if start > end:
            raise ValueError("start must not be after end")
        records = await self.repository.get_migration_links(start, end, game)
        return build_migration_flow(records, start, end)

    @service_error_handler("RelationshipQueryService")
    async def get_server_lifecycle_analysis(
        self, days_back: int = 90
    ) -> List[MigrationServerNode]:
        """Lifecycle stage of every server with migration activity in the trailing window."""
        if days_back < 1:
            raise ValueError("days_back must be positive")
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days_back)
        flow = await self.get_player_migration_flow(start, end)
        return flow.nodes
