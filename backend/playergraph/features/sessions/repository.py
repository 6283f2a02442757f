"""Repository pattern implementation for the relational session store.

Provides the round enumeration used by the relationship ETL and the
server-side aggregates used by the alias detection analyzers. Raw session
rows are never pulled into memory for statistics.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

import structlog
from sqlalchemy import Date, and_, cast, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .orm_models import PlayerObservationORM, PlayerSessionORM, RoundORM, ServerORM
from .schemas import (
    ActivityPeriodStats,
    DailyActivityStats,
    KillDeathStats,
    Observation,
    PlayerServerActivity,
    PlayerStatsSummary,
    ServerInfo,
    SessionStats,
    optional_float,
)

logger = structlog.get_logger(__name__)


class SessionRepositoryInterface(ABC):
    """Interface for session store reads.

    Defines the contract the ETL and the analyzers depend on, so both can be
    exercised against in-memory fakes.
    """

    # ETL enumeration

    @abstractmethod
    async def count_rounds(self, from_ts: datetime, to_ts: datetime) -> int:
        """Count non-deleted rounds whose start time falls in the range."""
        pass

    @abstractmethod
    async def get_round_ids(
        self, from_ts: datetime, to_ts: datetime, offset: int, limit: int
    ) -> List[str]:
        """Page through round ids in the range, ordered by start time."""
        pass

    @abstractmethod
    async def get_round_observations(self, round_id: str) -> List[Observation]:
        """Every (player, timestamp, server) observation of a round's live sessions."""
        pass

    @abstractmethod
    async def get_player_server_activity(
        self, from_ts: datetime, to_ts: datetime
    ) -> List[PlayerServerActivity]:
        """Sessions grouped by (player, server) for sessions last seen in the range."""
        pass

    @abstractmethod
    async def get_servers(self, server_guids: Iterable[str]) -> Dict[str, ServerInfo]:
        """Look up server metadata by guid; unknown guids are simply absent."""
        pass

    # Behavioral aggregates

    @abstractmethod
    async def get_last_activity(self, player_name: str) -> Optional[datetime]:
        """Most recent session end for a player, or None if never seen."""
        pass

    @abstractmethod
    async def get_hour_histogram(
        self, player_name: str, since: datetime
    ) -> Dict[int, int]:
        """Session start counts per hour of day (0-23)."""
        pass

    @abstractmethod
    async def get_server_set(self, player_name: str, since: datetime) -> Set[str]:
        """Distinct servers a player started sessions on."""
        pass

    @abstractmethod
    async def get_average_ping_by_server(self, player_name: str) -> Dict[str, float]:
        """Average positive ping per server over the player's whole history."""
        pass

    @abstractmethod
    async def get_session_stats(self, player_name: str, since: datetime) -> SessionStats:
        """Session count and duration aggregates."""
        pass

    # Timeline aggregates

    @abstractmethod
    async def get_activity_period(
        self, player_name: str
    ) -> Optional[ActivityPeriodStats]:
        """Lifetime first/last seen, session count and active days."""
        pass

    @abstractmethod
    async def get_daily_activity(
        self, player_name: str, since: datetime
    ) -> List[DailyActivityStats]:
        """Per-day activity, newest day first."""
        pass

    # Statistical aggregates

    @abstractmethod
    async def get_player_stats(
        self, player_name: str, since: datetime
    ) -> Optional[PlayerStatsSummary]:
        """Kill, death, score and playtime totals; None without sessions."""
        pass

    @abstractmethod
    async def get_map_kill_deaths(
        self, player_name: str, since: datetime
    ) -> Dict[str, KillDeathStats]:
        """Kill/death totals per map."""
        pass

    @abstractmethod
    async def get_server_kill_deaths(
        self, player_name: str, since: datetime
    ) -> Dict[str, KillDeathStats]:
        """Kill/death totals per server."""
        pass


def _session_minutes():
    return (
        func.extract(
            "epoch", PlayerSessionORM.last_seen_time - PlayerSessionORM.start_time
        )
        / 60.0
    )


def _live_sessions_of(player_name: str, since: Optional[datetime] = None):
    conditions = [
        PlayerSessionORM.player_name == player_name,
        PlayerSessionORM.is_deleted.is_(False),
    ]
    if since is not None:
        conditions.append(PlayerSessionORM.start_time >= since)
    return and_(*conditions)


class SQLAlchemySessionRepository(SessionRepositoryInterface):
    """SQLAlchemy implementation of the session store repository.

    Every statistic is a single aggregate query executed by PostgreSQL.
    """

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session.

        :param db: Async database session
        """
        self.db = db

    async def count_rounds(self, from_ts: datetime, to_ts: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(RoundORM)
            .where(
                RoundORM.is_deleted.is_(False),
                RoundORM.start_time >= from_ts,
                RoundORM.start_time <= to_ts,
            )
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def get_round_ids(
        self, from_ts: datetime, to_ts: datetime, offset: int, limit: int
    ) -> List[str]:
        stmt = (
            select(RoundORM.round_id)
            .where(
                RoundORM.is_deleted.is_(False),
                RoundORM.start_time >= from_ts,
                RoundORM.start_time <= to_ts,
            )
            .order_by(RoundORM.start_time, RoundORM.round_id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_round_observations(self, round_id: str) -> List[Observation]:
        stmt = (
            select(
                PlayerSessionORM.player_name,
                PlayerObservationORM.timestamp,
                PlayerSessionORM.server_guid,
            )
            .join(
                PlayerSessionORM,
                PlayerObservationORM.session_id == PlayerSessionORM.session_id,
            )
            .where(
                PlayerSessionORM.round_id == round_id,
                PlayerSessionORM.is_deleted.is_(False),
            )
        )
        result = await self.db.execute(stmt)
        return [
            Observation(player_name=row[0], timestamp=row[1], server_guid=row[2])
            for row in result.all()
        ]

    async def get_player_server_activity(
        self, from_ts: datetime, to_ts: datetime
    ) -> List[PlayerServerActivity]:
        stmt = (
            select(
                PlayerSessionORM.player_name,
                PlayerSessionORM.server_guid,
                func.count().label("session_count"),
                func.min(PlayerSessionORM.start_time).label("first_played"),
                func.max(PlayerSessionORM.last_seen_time).label("last_played"),
            )
            .where(
                PlayerSessionORM.is_deleted.is_(False),
                PlayerSessionORM.last_seen_time >= from_ts,
                PlayerSessionORM.last_seen_time <= to_ts,
            )
            .group_by(PlayerSessionORM.player_name, PlayerSessionORM.server_guid)
        )
        result = await self.db.execute(stmt)
        return [
            PlayerServerActivity(
                player_name=row.player_name,
                server_guid=row.server_guid,
                session_count=int(row.session_count),
                first_played=row.first_played,
                last_played=row.last_played,
            )
            for row in result.all()
        ]

    async def get_servers(self, server_guids: Iterable[str]) -> Dict[str, ServerInfo]:
        guids = list(set(server_guids))
        if not guids:
            return {}

        stmt = select(ServerORM.guid, ServerORM.name, ServerORM.game).where(
            ServerORM.guid.in_(guids)
        )
        result = await self.db.execute(stmt)
        return {
            row.guid: ServerInfo(guid=row.guid, name=row.name, game=row.game)
            for row in result.all()
        }

    async def get_last_activity(self, player_name: str) -> Optional[datetime]:
        stmt = select(func.max(PlayerSessionORM.last_seen_time)).where(
            _live_sessions_of(player_name)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_hour_histogram(
        self, player_name: str, since: datetime
    ) -> Dict[int, int]:
        hour = func.extract("hour", PlayerSessionORM.start_time).label("hour")
        stmt = (
            select(hour, func.count().label("count"))
            .where(_live_sessions_of(player_name, since))
            .group_by(hour)
        )
        result = await self.db.execute(stmt)
        return {int(row.hour): int(row.count) for row in result.all()}

    async def get_server_set(self, player_name: str, since: datetime) -> Set[str]:
        stmt = select(distinct(PlayerSessionORM.server_guid)).where(
            _live_sessions_of(player_name, since)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def get_average_ping_by_server(self, player_name: str) -> Dict[str, float]:
        stmt = (
            select(
                PlayerSessionORM.server_guid,
                func.avg(PlayerObservationORM.ping).label("avg_ping"),
            )
            .join(
                PlayerSessionORM,
                PlayerObservationORM.session_id == PlayerSessionORM.session_id,
            )
            .where(
                _live_sessions_of(player_name),
                PlayerObservationORM.ping > 0,
            )
            .group_by(PlayerSessionORM.server_guid)
        )
        result = await self.db.execute(stmt)
        return {
            row.server_guid: float(row.avg_ping)
            for row in result.all()
            if row.avg_ping is not None
        }

    async def get_session_stats(self, player_name: str, since: datetime) -> SessionStats:
        minutes = _session_minutes()
        stmt = select(
            func.count().label("session_count"),
            func.sum(minutes).label("total_minutes"),
            func.avg(minutes).label("avg_minutes"),
        ).where(_live_sessions_of(player_name, since))
        row = (await self.db.execute(stmt)).one()
        return SessionStats(
            session_count=int(row.session_count),
            total_minutes=optional_float(row.total_minutes),
            avg_session_minutes=optional_float(row.avg_minutes),
        )

    async def get_activity_period(
        self, player_name: str
    ) -> Optional[ActivityPeriodStats]:
        stmt = select(
            func.min(PlayerSessionORM.start_time).label("first_seen"),
            func.max(PlayerSessionORM.last_seen_time).label("last_seen"),
            func.count().label("session_count"),
            func.count(distinct(cast(PlayerSessionORM.start_time, Date))).label(
                "active_days"
            ),
        ).where(_live_sessions_of(player_name))
        row = (await self.db.execute(stmt)).one()

        if not row.session_count or row.first_seen is None or row.last_seen is None:
            return None

        return ActivityPeriodStats(
            first_seen=row.first_seen,
            last_seen=row.last_seen,
            session_count=int(row.session_count),
            active_days=int(row.active_days),
        )

    async def get_daily_activity(
        self, player_name: str, since: datetime
    ) -> List[DailyActivityStats]:
        day = cast(PlayerSessionORM.start_time, Date).label("day")
        stmt = (
            select(
                day,
                func.count().label("session_count"),
                func.sum(_session_minutes()).label("total_minutes"),
                func.sum(PlayerSessionORM.total_kills).label("kills"),
                func.sum(PlayerSessionORM.total_deaths).label("deaths"),
            )
            .where(_live_sessions_of(player_name, since))
            .group_by(day)
            .order_by(day.desc())
        )
        result = await self.db.execute(stmt)

        timeline = []
        for row in result.all():
            if row.day is None:
                continue
            kd = KillDeathStats(kills=int(row.kills or 0), deaths=int(row.deaths or 0))
            timeline.append(
                DailyActivityStats(
                    day=row.day,
                    session_count=int(row.session_count),
                    total_minutes=int(optional_float(row.total_minutes)),
                    kd_ratio=kd.kd_ratio,
                )
            )
        return timeline

    async def get_player_stats(
        self, player_name: str, since: datetime
    ) -> Optional[PlayerStatsSummary]:
        stmt = select(
            func.count().label("rounds"),
            func.sum(PlayerSessionORM.total_kills).label("kills"),
            func.sum(PlayerSessionORM.total_deaths).label("deaths"),
            func.sum(PlayerSessionORM.total_score).label("score"),
            func.sum(_session_minutes()).label("minutes"),
        ).where(_live_sessions_of(player_name, since))
        row = (await self.db.execute(stmt)).one()

        if not row.rounds:
            return None

        return PlayerStatsSummary(
            total_kills=int(row.kills or 0),
            total_deaths=int(row.deaths or 0),
            total_score=int(row.score or 0),
            total_rounds=int(row.rounds),
            total_play_minutes=optional_float(row.minutes),
        )

    async def get_map_kill_deaths(
        self, player_name: str, since: datetime
    ) -> Dict[str, KillDeathStats]:
        stmt = (
            select(
                PlayerSessionORM.map_name,
                func.sum(PlayerSessionORM.total_kills).label("kills"),
                func.sum(PlayerSessionORM.total_deaths).label("deaths"),
            )
            .where(
                _live_sessions_of(player_name, since),
                PlayerSessionORM.map_name != "",
            )
            .group_by(PlayerSessionORM.map_name)
        )
        result = await self.db.execute(stmt)
        return {
            row.map_name: KillDeathStats(
                kills=int(row.kills or 0), deaths=int(row.deaths or 0)
            )
            for row in result.all()
        }

    async def get_server_kill_deaths(
        self, player_name: str, since: datetime
    ) -> Dict[str, KillDeathStats]:
        stmt = (
            select(
                PlayerSessionORM.server_guid,
                func.sum(PlayerSessionORM.total_kills).label("kills"),
                func.sum(PlayerSessionORM.total_deaths).label("deaths"),
            )
            .where(_live_sessions_of(player_name, since))
            .group_by(PlayerSessionORM.server_guid)
        )
        result = await self.db.execute(stmt)
        return {
            row.server_guid: KillDeathStats(
                kills=int(row.kills or 0), deaths=int(row.deaths or 0)
            )
            for row in result.all()
        }
