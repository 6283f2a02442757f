"""Aggregated rows returned by the session store repository.

Statistics are always computed server-side; these records carry the
aggregated results, never raw session rows.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import NamedTuple, Optional


class Observation(NamedTuple):
    """One player seen on one server at one polling instant."""

    player_name: str
    timestamp: datetime
    server_guid: str


@dataclass(frozen=True)
class ServerInfo:
    """Display metadata for a server."""

    guid: str
    name: str
    game: str


@dataclass(frozen=True)
class PlayerServerActivity:
    """Sessions of one player on one server inside a time range."""

    player_name: str
    server_guid: str
    session_count: int
    first_played: datetime
    last_played: datetime


@dataclass(frozen=True)
class SessionStats:
    """Session volume and duration for one player in a window."""

    session_count: int
    total_minutes: float
    avg_session_minutes: float


@dataclass(frozen=True)
class ActivityPeriodStats:
    """Lifetime activity envelope of one player."""

    first_seen: datetime
    last_seen: datetime
    session_count: int
    active_days: int


@dataclass(frozen=True)
class DailyActivityStats:
    """Activity of one player on one calendar day."""

    day: date
    session_count: int
    total_minutes: int
    kd_ratio: float


@dataclass(frozen=True)
class KillDeathStats:
    """Kill and death totals for one bucket (a map or a server)."""

    kills: int
    deaths: int

    @property
    def kd_ratio(self) -> float:
        """Kills per death, or raw kills when the player never died."""
        return self.kills / self.deaths if self.deaths > 0 else float(self.kills)


@dataclass(frozen=True)
class PlayerStatsSummary:
    """Combat totals for one player in a window."""

    total_kills: int
    total_deaths: int
    total_score: int
    total_rounds: int
    total_play_minutes: float

    @property
    def kd_ratio(self) -> float:
        return (
            self.total_kills / self.total_deaths
            if self.total_deaths > 0
            else float(self.total_kills)
        )

    @property
    def kill_rate(self) -> float:
        """Kills per minute played."""
        if self.total_play_minutes <= 0:
            return 0.0
        return self.total_kills / self.total_play_minutes

    @property
    def avg_score_per_round(self) -> float:
        if self.total_rounds <= 0:
            return 0.0
        return self.total_score / self.total_rounds


def optional_float(value: Optional[float]) -> float:
    """Aggregates over empty sets come back as NULL; treat them as zero."""
    return float(value) if value is not None else 0.0
