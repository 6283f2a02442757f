"""Pydantic schemas for the co-play graph: relationships, networks, squads and migration."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from playergraph.core.enums import LifecycleStage


class PlayerRelationship(BaseModel):
    """A PLAYED_WITH edge as seen from ``player1``."""

    player1: str
    player2: str
    session_count: int = Field(..., ge=0, description="Co-play observations recorded")
    first_played_together: Optional[datetime] = None
    last_played_together: Optional[datetime] = None
    server_guids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class PotentialConnection(BaseModel):
    """A player sharing recent servers with the subject but never seen in the same round."""

    player_name: str
    common_server_count: int
    common_servers: List[str] = Field(default_factory=list)
    last_played: Optional[datetime] = Field(
        None, description="Most recent activity on any of the common servers"
    )


class PlayerNetworkStats(BaseModel):
    """Size of one player's social footprint."""

    player_name: str
    connection_count: int = Field(..., description="Distinct co-players")
    total_co_play_sessions: int
    server_count: int = Field(..., description="Distinct servers played on")
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


class NetworkNode(BaseModel):
    """A player in an extracted network graph."""

    id: str
    label: str
    community_id: Optional[str] = None
    is_center: bool = False


class NetworkEdge(BaseModel):
    """A weighted co-play edge in an extracted network graph."""

    source: str
    target: str
    weight: int
    last_interaction: Optional[datetime] = None


class PlayerNetworkGraph(BaseModel):
    """Bounded neighbourhood of a player."""

    center_player: str
    depth: int
    nodes: List[NetworkNode] = Field(default_factory=list)
    edges: List[NetworkEdge] = Field(default_factory=list)


class ServerSocialStats(BaseModel):
    """How social a server's player base is."""

    server_guid: str
    server_name: str
    game: str
    unique_players: int
    total_connections: int = Field(
        ..., description="PLAYED_WITH edges between players of this server"
    )
    avg_connections_per_player: float
    active_last_30_days: int
    active_last_90_days: int
    retention_ratio: float = Field(
        ..., ge=0.0, le=1.0, description="Players active in 30 days over those active in 90"
    )


class CommonServer(BaseModel):
    """A server both players of a squad recommendation play on."""

    server_guid: str
    server_name: str
    both_played_sessions: int
    last_seen_together: Optional[datetime] = None


class SquadRecommendation(BaseModel):
    """A player worth teaming up with, plus the reasons why."""

    player_name: str
    compatibility_score: float = Field(..., ge=0.0, le=100.0)
    reasons: List[str] = Field(default_factory=list)
    common_servers: List[CommonServer] = Field(default_factory=list)
    temporal_overlap: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Share of common servers both players used within a week of each other",
    )
    mutual_connections: int = 0
    is_online: bool = False


class MigrationLink(BaseModel):
    """Players who left one server and later showed up on another."""

    source_guid: str
    target_guid: str
    player_count: int
    session_count: int
    avg_migration_days: float


class MigrationServerNode(BaseModel):
    """Inflow/outflow totals for one server in a migration flow."""

    guid: str
    name: str
    game: str
    inflow: int
    outflow: int
    net_migration: int
    lifecycle_stage: LifecycleStage


class PlayerMigrationFlow(BaseModel):
    """Server-to-server player movement over a date range."""

    start_date: datetime
    end_date: datetime
    links: List[MigrationLink] = Field(default_factory=list)
    nodes: List[MigrationServerNode] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Outcome of one ETL pass."""

    success: bool = True
    relationships_processed: int = 0
    rounds_processed: int = 0
    flushes: int = 0
    duration_seconds: float = 0.0


class FullSyncResult(BaseModel):
    """Outcome of the player-server pass followed by the co-play pass."""

    player_servers: SyncResult
    relationships: SyncResult
