"""
Shared fixtures for alias detection tests.

Builds session and graph repository mocks answering from per-player
profiles, so whole comparisons can run without a database.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Optional, Set
from unittest.mock import AsyncMock

import pytest

from playergraph.features.relationships.repository import (
    RelationshipGraphRepositoryInterface,
)
from playergraph.features.relationships.schemas import PlayerRelationship
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import (
    ActivityPeriodStats,
    KillDeathStats,
    PlayerStatsSummary,
    SessionStats,
)


@dataclass
class PlayerProfile:
    stats: PlayerStatsSummary
    last_active: datetime
    period: ActivityPeriodStats
    hours: Dict[int, int]
    servers: Set[str]
    pings: Dict[str, float]
    session_stats: SessionStats
    teammates: Set[str]
    map_kd: Dict[str, KillDeathStats] = field(default_factory=dict)
    server_kd: Dict[str, KillDeathStats] = field(default_factory=dict)


class PlayerWorld:
    """Repository mocks backed by profiles and co-play edges."""

    def __init__(self):
        self.profiles: Dict[str, PlayerProfile] = {}
        self.edges: Dict[FrozenSet[str], PlayerRelationship] = {}
        self.sessions = AsyncMock(spec=SessionRepositoryInterface)
        self.graph = AsyncMock(spec=RelationshipGraphRepositoryInterface)

        def profile(name: str) -> Optional[PlayerProfile]:
            return self.profiles.get(name)

        s = self.sessions
        s.get_player_stats.side_effect = lambda name, since: getattr(profile(name), "stats", None)
        s.get_map_kill_deaths.side_effect = lambda name, since: profile(name).map_kd
        s.get_server_kill_deaths.side_effect = lambda name, since: profile(name).server_kd
        s.get_last_activity.side_effect = lambda name: getattr(profile(name), "last_active", None)
        s.get_hour_histogram.side_effect = lambda name, since: profile(name).hours
        s.get_server_set.side_effect = lambda name, since: profile(name).servers
        s.get_average_ping_by_server.side_effect = lambda name: profile(name).pings
        s.get_session_stats.side_effect = lambda name, since: profile(name).session_stats
        s.get_activity_period.side_effect = lambda name: getattr(profile(name), "period", None)
        s.get_daily_activity.side_effect = lambda name, since: []

        self.graph.get_teammate_names.side_effect = lambda name: (
            set(self.profiles[name].teammates) if name in self.profiles else None
        )
        self.graph.get_relationship.side_effect = self._relationship

    def _relationship(self, player1: str, player2: str) -> Optional[PlayerRelationship]:
        edge = self.edges.get(frozenset((player1, player2)))
        if edge is None:
            return None
        return edge.model_copy(update={"player1": player1, "player2": player2})

    def add_edge(self, player1: str, player2: str, sessions: int, last_played: datetime):
        self.edges[frozenset((player1, player2))] = PlayerRelationship(
            player1=player1,
            player2=player2,
            session_count=sessions,
            first_played_together=last_played - timedelta(days=30),
            last_played_together=last_played,
            server_guids=["s1"],
        )


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def world(now):
    """
    Alice, her alias account and Bob, a friend she plays with.

    Alice went quiet 20 days ago and "Alias" appeared the next day with the
    same skill, habits, location and friends. Bob plays with Alice regularly
    but at other hours, from far away, with a different skill level.
    """
    world = PlayerWorld()
    friends = {f"C{i}" for i in range(1, 10)}

    world.profiles["Alice"] = PlayerProfile(
        stats=PlayerStatsSummary(200, 100, 5000, 50, 1000.0),
        last_active=now - timedelta(days=20),
        period=ActivityPeriodStats(now - timedelta(days=40), now - timedelta(days=20), 20, 15),
        hours={20: 10, 21: 10},
        servers={"s1", "s2"},
        pings={"s1": 50.0},
        session_stats=SessionStats(20, 1200.0, 60.0),
        teammates=friends | {"Bob"},
        map_kd={"m1": KillDeathStats(10, 5), "m2": KillDeathStats(4, 4)},
        server_kd={"s1": KillDeathStats(20, 10)},
    )
    world.profiles["Alias"] = PlayerProfile(
        stats=PlayerStatsSummary(200, 100, 5000, 50, 1000.0),
        last_active=now - timedelta(days=1),
        period=ActivityPeriodStats(now - timedelta(days=19), now - timedelta(days=1), 20, 15),
        hours={20: 10, 21: 10},
        servers={"s1", "s2"},
        pings={"s1": 50.0},
        session_stats=SessionStats(20, 1200.0, 60.0),
        teammates=(friends - {"C9"}) | {"C10"},
        map_kd={"m1": KillDeathStats(10, 5), "m2": KillDeathStats(4, 4)},
        server_kd={"s1": KillDeathStats(20, 10)},
    )
    world.profiles["Bob"] = PlayerProfile(
        stats=PlayerStatsSummary(100, 100, 2000, 50, 1000.0),
        last_active=now - timedelta(hours=2),
        period=ActivityPeriodStats(
            now - timedelta(days=100), now - timedelta(hours=2), 100, 80
        ),
        hours={8: 10, 9: 10},
        servers={"s1", "s3"},
        pings={"s1": 150.0},
        session_stats=SessionStats(10, 300.0, 30.0),
        teammates={"Alice", "C1", "D1", "D2", "D3", "D4"},
    )
    world.add_edge("Alice", "Bob", sessions=25, last_played=now - timedelta(days=25))
    return world


@pytest.fixture
def handoff_world(now):
    """
    "Veteran" retires and "Newcomer" takes over a day later.

    The accounts never overlap and never meet, share four servers with the
    same ping, keep eight of their nine friends, and carry the same ratios.
    """
    world = PlayerWorld()
    friends = {f"F{i}" for i in range(1, 9)}
    hours = {19: 12, 20: 20, 21: 8}
    servers = {"s1", "s2", "s3", "s4"}

    world.profiles["Veteran"] = PlayerProfile(
        stats=PlayerStatsSummary(800, 400, 16000, 160, 4000.0),
        last_active=now - timedelta(days=3),
        period=ActivityPeriodStats(now - timedelta(days=43), now - timedelta(days=3), 80, 35),
        hours=hours,
        servers=servers,
        pings={"s1": 50.0, "s2": 60.0, "s3": 70.0, "s4": 80.0},
        session_stats=SessionStats(40, 2400.0, 60.0),
        teammates=friends | {"F9"},
        map_kd={"m1": KillDeathStats(40, 20), "m2": KillDeathStats(30, 10)},
        server_kd={"s1": KillDeathStats(20, 10)},
    )
    world.profiles["Newcomer"] = PlayerProfile(
        stats=PlayerStatsSummary(20, 10, 400, 4, 100.0),
        last_active=now - timedelta(days=1),
        period=ActivityPeriodStats(now - timedelta(days=2), now - timedelta(days=1), 2, 2),
        hours=hours,
        servers=servers,
        pings={"s1": 51.0, "s2": 61.0, "s3": 71.0, "s4": 82.0},
        session_stats=SessionStats(40, 2400.0, 60.0),
        teammates=friends | {"G1"},
        map_kd={"m1": KillDeathStats(4, 2), "m2": KillDeathStats(6, 2)},
        server_kd={"s1": KillDeathStats(2, 1)},
    )
    return world


@pytest.fixture
def rivals_world(now):
    """
    "Hawk" and "Wren" share a skill level and nothing else.

    Same K/D of 2.00, opposite hours, separate friend groups, and one
    recorded match together.
    """
    world = PlayerWorld()

    world.profiles["Hawk"] = PlayerProfile(
        stats=PlayerStatsSummary(400, 200, 8000, 80, 2000.0),
        last_active=now - timedelta(days=1),
        period=ActivityPeriodStats(now - timedelta(days=200), now - timedelta(days=1), 150, 90),
        hours={2: 10, 3: 10},
        servers={"s1", "s2"},
        pings={"s1": 40.0},
        session_stats=SessionStats(30, 1800.0, 60.0),
        teammates={"Wren", "H1", "H2", "H3", "H4"},
        map_kd={"m1": KillDeathStats(20, 10), "m2": KillDeathStats(9, 3)},
        server_kd={"s1": KillDeathStats(40, 20)},
    )
    world.profiles["Wren"] = PlayerProfile(
        stats=PlayerStatsSummary(300, 150, 6000, 60, 1500.0),
        last_active=now - timedelta(hours=2),
        period=ActivityPeriodStats(
            now - timedelta(days=150), now - timedelta(hours=2), 120, 70
        ),
        hours={14: 10, 15: 10},
        servers={"s1", "s3"},
        pings={"s1": 120.0},
        session_stats=SessionStats(30, 1800.0, 60.0),
        teammates={"Hawk", "W1", "W2", "W3", "W4"},
        map_kd={"m1": KillDeathStats(10, 5), "m2": KillDeathStats(6, 2)},
        server_kd={"s1": KillDeathStats(30, 15)},
    )
    world.add_edge("Hawk", "Wren", sessions=1, last_played=now - timedelta(days=10))
    return world
