"""
Tests for the graph store helpers.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from playergraph.core.graph_database import (
    GraphDatabaseManager,
    fetch_all,
    fetch_single,
    to_native_datetime,
)


class FakeNeo4jDateTime:
    """Stands in for neo4j.time.DateTime."""

    def __init__(self, value: datetime):
        self.value = value

    def to_native(self) -> datetime:
        return self.value


class TestToNativeDatetime:
    """Test conversion of graph temporal values."""

    def test_none(self):
        assert to_native_datetime(None) is None

    def test_neo4j_temporal(self):
        value = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert to_native_datetime(FakeNeo4jDateTime(value)) == value

    def test_naive_values_are_treated_as_utc(self):
        converted = to_native_datetime(datetime(2024, 3, 1, 12, 0))
        assert converted.tzinfo == timezone.utc

    def test_iso_string(self):
        converted = to_native_datetime("2024-03-01T12:00:00+00:00")
        assert converted == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for row in self.rows:
            record = MagicMock()
            record.data.return_value = row
            yield record

    async def single(self):
        if not self.rows:
            return None
        record = MagicMock()
        record.data.return_value = self.rows[0]
        return record


async def test_fetch_all_returns_dicts():
    """Test every record is converted to a dict."""
    tx = MagicMock()
    tx.run = AsyncMock(return_value=FakeResult([{"name": "a"}, {"name": "b"}]))

    rows = await fetch_all(tx, "MATCH (p) RETURN p.name AS name", limit=2)

    assert rows == [{"name": "a"}, {"name": "b"}]
    tx.run.assert_called_once_with("MATCH (p) RETURN p.name AS name", limit=2)


async def test_fetch_single_without_record():
    """Test an empty result yields None."""
    tx = MagicMock()
    tx.run = AsyncMock(return_value=FakeResult([]))

    assert await fetch_single(tx, "MATCH (p) RETURN p") is None


async def test_execute_read_runs_work_in_session():
    """Test the manager delegates to a managed read transaction."""
    session = MagicMock()
    session.execute_read = AsyncMock(return_value="result")
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    driver = MagicMock()
    driver.session.return_value = session

    manager = GraphDatabaseManager(database="graph", driver=driver)
    work = AsyncMock()

    assert await manager.execute_read(work, "x", flag=True) == "result"
    driver.session.assert_called_once_with(database="graph")
    session.execute_read.assert_called_once_with(work, "x", flag=True)


async def test_verify_connectivity_reports_failure():
    """Test connectivity failures are reported as False."""
    driver = MagicMock()
    driver.verify_connectivity = AsyncMock(side_effect=OSError("down"))

    manager = GraphDatabaseManager(database="graph", driver=driver)

    assert await manager.verify_connectivity() is False
