"""Pydantic schemas for detected player communities."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

ACTIVE_WINDOW = timedelta(days=30)


class PlayerCommunity(BaseModel):
    """A group of players bound by repeated co-play."""

    id: str
    name: str
    members: List[str]
    core_members: List[str] = Field(
        default_factory=list, description="Top members by internal degree"
    )
    primary_servers: List[str] = Field(
        default_factory=list, description="Servers the members play on most"
    )
    formation_date: Optional[datetime] = None
    last_active_date: Optional[datetime] = None
    avg_sessions_per_pair: float = 0.0
    cohesion_score: float = Field(
        ..., ge=0.0, le=1.0, description="Edge density of the induced subgraph"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def member_count(self) -> int:
        return len(self.members)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_active(self) -> bool:
        if self.last_active_date is None:
            return False
        return datetime.now(timezone.utc) - self.last_active_date <= ACTIVE_WINDOW


class ServerMapNode(BaseModel):
    """A player or a server in a community's bipartite map."""

    id: str
    label: str
    type: str = Field(..., description="'player' or 'server'")
    is_core: bool = False


class ServerMapEdge(BaseModel):
    """How much a member plays on a server."""

    source: str
    target: str
    weight: int
    last_played: Optional[datetime] = None


class CommunityServerMap(BaseModel):
    """Bipartite member/server map of one community."""

    community_id: str
    players: List[ServerMapNode] = Field(default_factory=list)
    servers: List[ServerMapNode] = Field(default_factory=list)
    edges: List[ServerMapEdge] = Field(default_factory=list)


class CommunityDetectionResult(BaseModel):
    """Outcome of one detection run."""

    communities_detected: int
    players_assigned: int
    strong_edges: int
    duration_seconds: float
