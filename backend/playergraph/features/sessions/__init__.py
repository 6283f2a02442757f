"""Read access to the relational session store (rounds, sessions, observations)."""

from .repository import SessionRepositoryInterface, SQLAlchemySessionRepository
from .schemas import (
    ActivityPeriodStats,
    DailyActivityStats,
    KillDeathStats,
    Observation,
    PlayerServerActivity,
    PlayerStatsSummary,
    ServerInfo,
    SessionStats,
)

__all__ = [
    "SessionRepositoryInterface",
    "SQLAlchemySessionRepository",
    "ActivityPeriodStats",
    "DailyActivityStats",
    "KillDeathStats",
    "Observation",
    "PlayerServerActivity",
    "PlayerStatsSummary",
    "ServerInfo",
    "SessionStats",
]
