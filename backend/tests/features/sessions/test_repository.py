"""
Tests for the SQLAlchemy session store repository.

The database session is mocked; these tests cover how aggregate rows are
turned into the records the ETL and the analyzers consume.
"""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from playergraph.features.sessions.repository import SQLAlchemySessionRepository
from playergraph.features.sessions.schemas import KillDeathStats, PlayerStatsSummary

NOW = datetime(2024, 6, 1, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    """Mock database session."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    return db


@pytest.fixture
def repository(mock_db):
    return SQLAlchemySessionRepository(mock_db)


def _result(rows=None, one=None, scalar=None, scalars=None):
    result = MagicMock()
    result.all.return_value = rows or []
    result.one.return_value = one
    result.scalar_one.return_value = scalar
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    return result


async def test_count_rounds(repository, mock_db):
    """Test the round count is read as a scalar."""
    mock_db.execute.return_value = _result(scalar=42)

    assert await repository.count_rounds(NOW - timedelta(days=1), NOW) == 42
    mock_db.execute.assert_called_once()


async def test_get_round_observations(repository, mock_db):
    """Test observation rows become Observation tuples."""
    mock_db.execute.return_value = _result(rows=[("Alice", NOW, "s1"), ("Bob", NOW, "s1")])

    observations = await repository.get_round_observations("r1")

    assert [o.player_name for o in observations] == ["Alice", "Bob"]
    assert observations[0].server_guid == "s1"
    assert observations[0].timestamp == NOW


async def test_get_servers_skips_query_for_no_guids(repository, mock_db):
    """Test an empty guid list does not hit the database."""
    assert await repository.get_servers([]) == {}
    mock_db.execute.assert_not_called()


async def test_get_last_activity_for_unknown_player(repository, mock_db):
    """Test a player without sessions has no last activity."""
    mock_db.execute.return_value = _result(scalar=None)

    assert await repository.get_last_activity("Ghost") is None


async def test_get_player_stats_without_rounds(repository, mock_db):
    """Test a player without rounds has no stats."""
    mock_db.execute.return_value = _result(
        one=SimpleNamespace(rounds=0, kills=None, deaths=None, score=None, minutes=None)
    )

    assert await repository.get_player_stats("Ghost", NOW) is None


async def test_get_player_stats(repository, mock_db):
    """Test aggregate totals and derived ratios."""
    mock_db.execute.return_value = _result(
        one=SimpleNamespace(rounds=10, kills=50, deaths=0, score=900, minutes=250.0)
    )

    stats = await repository.get_player_stats("Alice", NOW)

    assert stats == PlayerStatsSummary(50, 0, 900, 10, 250.0)
    assert stats.kd_ratio == 50.0
    assert stats.kill_rate == 0.2
    assert stats.avg_score_per_round == 90.0


async def test_get_session_stats_with_null_aggregates(repository, mock_db):
    """Test NULL sums over no sessions read as zero."""
    mock_db.execute.return_value = _result(
        one=SimpleNamespace(session_count=0, total_minutes=None, avg_minutes=None)
    )

    stats = await repository.get_session_stats("Ghost", NOW)

    assert stats.session_count == 0
    assert stats.total_minutes == 0.0
    assert stats.avg_session_minutes == 0.0


async def test_get_activity_period_for_unknown_player(repository, mock_db):
    """Test no sessions means no activity period."""
    mock_db.execute.return_value = _result(
        one=SimpleNamespace(first_seen=None, last_seen=None, session_count=0, active_days=0)
    )

    assert await repository.get_activity_period("Ghost") is None


async def test_get_daily_activity(repository, mock_db):
    """Test daily rows carry the day's K/D."""
    mock_db.execute.return_value = _result(
        rows=[
            SimpleNamespace(
                day=date(2024, 6, 1), session_count=3, total_minutes=95.5, kills=12, deaths=4
            ),
            SimpleNamespace(
                day=None, session_count=1, total_minutes=1.0, kills=0, deaths=0
            ),
        ]
    )

    timeline = await repository.get_daily_activity("Alice", NOW - timedelta(days=7))

    assert len(timeline) == 1
    assert timeline[0].day == date(2024, 6, 1)
    assert timeline[0].total_minutes == 95
    assert timeline[0].kd_ratio == 3.0


async def test_get_average_ping_skips_null_averages(repository, mock_db):
    """Test servers without a usable ping are left out."""
    mock_db.execute.return_value = _result(
        rows=[
            SimpleNamespace(server_guid="s1", avg_ping=48.5),
            SimpleNamespace(server_guid="s2", avg_ping=None),
        ]
    )

    assert await repository.get_average_ping_by_server("Alice") == {"s1": 48.5}


async def test_get_map_kill_deaths(repository, mock_db):
    """Test per-map totals."""
    mock_db.execute.return_value = _result(
        rows=[SimpleNamespace(map_name="wake", kills=30, deaths=None)]
    )

    assert await repository.get_map_kill_deaths("Alice", NOW) == {
        "wake": KillDeathStats(kills=30, deaths=0)
    }
