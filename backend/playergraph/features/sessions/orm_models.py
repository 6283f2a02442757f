"""SQLAlchemy 2.0 ORM models for the relational session store.

The session store is written by the player tracker. This package only reads
it: rounds, per-player sessions inside a round and the periodic observations
recorded during each session.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime as SQLDateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from playergraph.core.models import Base


class ServerORM(Base):
    """A game server known to the tracker."""

    __tablename__ = "servers"

    guid: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    game: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="",
        comment="Standardized game type (bf1942, fh2, bfvietnam)",
    )
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    sessions: Mapped[List["PlayerSessionORM"]] = relationship(back_populates="server")

    def __repr__(self) -> str:
        return f"<ServerORM(guid='{self.guid}', name='{self.name}')>"


class RoundORM(Base):
    """One round (match) played on a server."""

    __tablename__ = "rounds"
    __table_args__ = (Index("idx_rounds_start_time", "start_time"),)

    round_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    server_guid: Mapped[str] = mapped_column(
        String(64), ForeignKey("servers.guid"), nullable=False, index=True
    )
    map_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    start_time: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True), nullable=False
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(
        SQLDateTime(timezone=True), nullable=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<RoundORM(round_id='{self.round_id}', start_time='{self.start_time}')>"


class PlayerSessionORM(Base):
    """A continuous stretch of one player's presence on one server."""

    __tablename__ = "player_sessions"
    __table_args__ = (
        Index("idx_player_sessions_player_start", "player_name", "start_time"),
        Index("idx_player_sessions_round", "round_id"),
        Index("idx_player_sessions_last_seen", "last_seen_time"),
    )

    session_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    player_name: Mapped[str] = mapped_column(String(128), nullable=False)
    server_guid: Mapped[str] = mapped_column(
        String(64), ForeignKey("servers.guid"), nullable=False
    )
    round_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("rounds.round_id"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True), nullable=False
    )
    last_seen_time: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True), nullable=False
    )
    observation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_deaths: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    map_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    average_ping: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    server: Mapped[ServerORM] = relationship(back_populates="sessions")
    observations: Mapped[List["PlayerObservationORM"]] = relationship(
        back_populates="session"
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerSessionORM(session_id={self.session_id}, "
            f"player_name='{self.player_name}', server_guid='{self.server_guid}')>"
        )


class PlayerObservationORM(Base):
    """A single snapshot of a player taken while polling a server."""

    __tablename__ = "player_observations"
    __table_args__ = (Index("idx_player_observations_session", "session_id"),)

    observation_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("player_sessions.session_id"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deaths: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ping: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    session: Mapped[PlayerSessionORM] = relationship(back_populates="observations")
