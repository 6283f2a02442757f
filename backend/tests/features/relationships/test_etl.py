"""
Tests for the relationship ETL.

Covers co-play detection, in-memory aggregation and the paged sync with its
flush checkpoints and failure reporting.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from playergraph.core.config import Settings
from playergraph.core.exceptions import BatchSyncError, ValidationError
from playergraph.features.relationships.etl import (
    CoPlayPair,
    RelationshipEtlService,
    RelationshipMetrics,
    aggregate_relationships,
    canonical_pair,
    detect_co_play_pairs,
    merge_relationships,
)
from playergraph.features.relationships.repository import (
    RelationshipGraphRepositoryInterface,
)
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import (
    Observation,
    PlayerServerActivity,
    ServerInfo,
)

T0 = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=1)
T2 = T0 + timedelta(days=1)


@pytest.fixture
def mock_sessions():
    return AsyncMock(spec=SessionRepositoryInterface)


@pytest.fixture
def mock_graph():
    return AsyncMock(spec=RelationshipGraphRepositoryInterface)


@pytest.fixture
def settings():
    return Settings(
        etl_round_page_size=2,
        etl_flush_every_rounds=2,
        etl_flush_pair_threshold=1000,
        etl_write_batch_size=2,
    )


@pytest.fixture
def etl_service(mock_sessions, mock_graph, settings):
    return RelationshipEtlService(mock_sessions, mock_graph, settings)


def _metrics(player1, player2, count, first, last, servers):
    return RelationshipMetrics(
        player1=player1,
        player2=player2,
        first_seen=first,
        last_seen=last,
        observation_count=count,
        server_guids=set(servers),
    )


class TestDetectCoPlayPairs:
    """Test co-play detection for a single round."""

    def test_groups_by_server_and_timestamp(self):
        observations = [
            Observation("Alice", T0, "s1"),
            Observation("Bob", T0, "s1"),
            Observation("Carol", T0, "s1"),
            Observation("Dave", T0, "s2"),
            Observation("Alice", T1, "s1"),
        ]

        pairs = detect_co_play_pairs(observations)

        assert sorted((p.player1, p.player2) for p in pairs) == [
            ("Alice", "Bob"),
            ("Alice", "Carol"),
            ("Bob", "Carol"),
        ]
        assert all(p.timestamp == T0 and p.server_guid == "s1" for p in pairs)

    def test_trims_names_and_drops_empty_ones(self):
        observations = [
            Observation("  Bob ", T0, "s1"),
            Observation("Alice", T0, "s1"),
            Observation("   ", T0, "s1"),
            Observation("Bob", T0, "s1"),
        ]

        pairs = detect_co_play_pairs(observations)

        assert pairs == [CoPlayPair("Alice", "Bob", T0, "s1")]

    def test_single_player_groups_yield_nothing(self):
        observations = [Observation("Alice", T0, "s1"), Observation("Bob", T1, "s1")]

        assert detect_co_play_pairs(observations) == []


def test_canonical_pair_uses_ordinal_order():
    """Test upper case sorts before lower case."""
    assert canonical_pair("bob", "Zed") == ("Zed", "bob")
    assert canonical_pair("Zed", "bob") == ("Zed", "bob")


def test_aggregate_relationships_counts_every_pair():
    """Test repeated pairs accumulate counts, extremes and servers."""
    pairs = [
        CoPlayPair("Alice", "Bob", T1, "s1"),
        CoPlayPair("Alice", "Bob", T0, "s2"),
        CoPlayPair("Alice", "Carol", T0, "s1"),
    ]

    relationships = aggregate_relationships(pairs)

    alice_bob = relationships[("Alice", "Bob")]
    assert alice_bob.observation_count == 2
    assert alice_bob.first_seen == T0
    assert alice_bob.last_seen == T1
    assert alice_bob.server_guids == {"s1", "s2"}
    assert relationships[("Alice", "Carol")].observation_count == 1


class TestMergeRelationships:
    """Test merging of accumulators."""

    def test_merge_is_commutative(self):
        a = {("A", "B"): _metrics("A", "B", 2, T0, T1, ["s1"])}
        b = {("A", "B"): _metrics("A", "B", 3, T1, T2, ["s2"])}

        left = merge_relationships(merge_relationships({}, a), b)
        right = merge_relationships(merge_relationships({}, b), a)

        assert left[("A", "B")].to_graph_params() == right[("A", "B")].to_graph_params()
        assert left[("A", "B")].observation_count == 5
        assert left[("A", "B")].first_seen == T0
        assert left[("A", "B")].last_seen == T2

    def test_merge_is_associative(self):
        a = {("A", "B"): _metrics("A", "B", 1, T1, T1, ["s1"])}
        b = {("A", "B"): _metrics("A", "B", 1, T0, T0, ["s2"])}
        c = {("A", "C"): _metrics("A", "C", 4, T2, T2, ["s3"])}

        grouped_left = merge_relationships(merge_relationships(merge_relationships({}, a), b), c)
        grouped_right = merge_relationships(
            merge_relationships({}, a), merge_relationships(merge_relationships({}, b), c)
        )

        assert {k: v.to_graph_params() for k, v in grouped_left.items()} == {
            k: v.to_graph_params() for k, v in grouped_right.items()
        }

    def test_source_entries_are_copied(self):
        source = {("A", "B"): _metrics("A", "B", 1, T0, T0, ["s1"])}
        target = merge_relationships({}, source)

        target[("A", "B")].absorb(_metrics("A", "B", 5, T1, T1, ["s2"]))

        assert source[("A", "B")].observation_count == 1
        assert source[("A", "B")].server_guids == {"s1"}

    def test_graph_params_sort_servers(self):
        metrics = _metrics("A", "B", 2, T0, T1, ["s9", "s1"])

        assert metrics.to_graph_params() == {
            "player1": "A",
            "player2": "B",
            "observationCount": 2,
            "firstSeen": T0,
            "lastSeen": T1,
            "serverGuids": ["s1", "s9"],
        }


ROUNDS = {
    "r1": [
        Observation("Alice", T0, "s1"),
        Observation("Bob", T0, "s1"),
        Observation("Carol", T0, "s1"),
        Observation("Dave", T0, "s2"),
    ],
    "r2": [Observation("Alice", T1, "s1"), Observation("Bob", T1, "s1")],
    "r3": [Observation(" Alice ", T2, "s2"), Observation("Bob", T2, "s2")],
}


def _page(from_ts, to_ts, offset, limit):
    return list(ROUNDS)[offset : offset + limit]


class TestSyncRelationships:
    """Test the paged co-play sync."""

    async def test_flushes_at_checkpoints_and_at_the_end(
        self, etl_service, mock_sessions, mock_graph
    ):
        mock_sessions.count_rounds.return_value = 3
        mock_sessions.get_round_ids.side_effect = _page
        mock_sessions.get_round_observations.side_effect = lambda round_id: ROUNDS[round_id]

        result = await etl_service.sync_relationships(T0, T2)

        assert result.success is True
        assert result.rounds_processed == 3
        assert result.flushes == 2
        # 3 pairs after the two-round checkpoint, then Alice/Bob again from r3
        assert result.relationships_processed == 4
        assert mock_graph.upsert_played_with.call_count == 2

        first_call, final_call = mock_graph.upsert_played_with.call_args_list
        assert first_call.kwargs == {"chunk_size": 2}
        checkpoint = {(p["player1"], p["player2"]): p for p in first_call.args[0]}
        assert len(checkpoint) == 3
        assert checkpoint[("Alice", "Bob")]["observationCount"] == 2
        assert checkpoint[("Alice", "Bob")]["firstSeen"] == T0
        assert checkpoint[("Alice", "Bob")]["lastSeen"] == T1

        assert final_call.args[0] == [
            {
                "player1": "Alice",
                "player2": "Bob",
                "observationCount": 1,
                "firstSeen": T2,
                "lastSeen": T2,
                "serverGuids": ["s2"],
            }
        ]

    async def test_empty_range(self, etl_service, mock_sessions, mock_graph):
        mock_sessions.count_rounds.return_value = 0

        result = await etl_service.sync_relationships(T0, T2)

        assert result.rounds_processed == 0
        assert result.relationships_processed == 0
        mock_sessions.get_round_ids.assert_not_called()
        mock_graph.upsert_played_with.assert_not_called()

    async def test_reversed_range_is_rejected(self, etl_service, mock_sessions):
        with pytest.raises(ValidationError):
            await etl_service.sync_relationships(T2, T0)

        mock_sessions.count_rounds.assert_not_called()

    async def test_failed_flush_reports_the_uncommitted_window(
        self, etl_service, mock_sessions, mock_graph
    ):
        mock_sessions.count_rounds.return_value = 3
        mock_sessions.get_round_ids.side_effect = _page
        mock_sessions.get_round_observations.side_effect = lambda round_id: ROUNDS[round_id]
        mock_graph.upsert_played_with.side_effect = [None, RuntimeError("write failed")]

        with pytest.raises(BatchSyncError) as exc_info:
            await etl_service.sync_relationships(T0, T2)

        error = exc_info.value
        assert error.pair_count == 1
        assert error.first_round_id == "r3"
        assert error.last_round_id == "r3"
        assert error.rounds_processed == 3
        assert error.relationships_committed == 3
        assert isinstance(error.original_error, RuntimeError)

    async def test_multi_chunk_flush_fails_as_a_whole(
        self, etl_service, mock_sessions, mock_graph
    ):
        """A flush larger than the write batch still commits or fails as one unit."""
        mock_sessions.count_rounds.return_value = 3
        mock_sessions.get_round_ids.side_effect = _page
        mock_sessions.get_round_observations.side_effect = lambda round_id: ROUNDS[round_id]
        mock_graph.upsert_played_with.side_effect = RuntimeError("second chunk failed")

        with pytest.raises(BatchSyncError) as exc_info:
            await etl_service.sync_relationships(T0, T2)

        error = exc_info.value
        # 3 pairs at write batch 2 span two statements of one transaction
        mock_graph.upsert_played_with.assert_called_once()
        assert len(mock_graph.upsert_played_with.call_args.args[0]) == 3
        assert error.relationships_committed == 0
        assert error.pair_count == 3
        assert error.first_round_id == "r1"
        assert error.last_round_id == "r2"
        assert error.rounds_processed == 2

    async def test_pair_threshold_triggers_early_flush(
        self, mock_sessions, mock_graph
    ):
        settings = Settings(
            etl_round_page_size=10,
            etl_flush_every_rounds=100,
            etl_flush_pair_threshold=3,
            etl_write_batch_size=100,
        )
        service = RelationshipEtlService(mock_sessions, mock_graph, settings)
        mock_sessions.count_rounds.return_value = 3
        mock_sessions.get_round_ids.side_effect = _page
        mock_sessions.get_round_observations.side_effect = lambda round_id: ROUNDS[round_id]

        result = await service.sync_relationships(T0, T2)

        assert result.flushes == 2
        assert mock_graph.upsert_played_with.call_count == 2


class TestSyncPlayerServerRelationships:
    """Test the player-server pass."""

    async def test_merges_trimmed_names_and_falls_back_for_unknown_servers(
        self, etl_service, mock_sessions, mock_graph
    ):
        mock_sessions.get_player_server_activity.return_value = [
            PlayerServerActivity("Alice ", "s1", 2, T1, T2),
            PlayerServerActivity("Alice", "s1", 3, T0, T1),
            PlayerServerActivity("Bob", "gone", 1, T0, T0),
            PlayerServerActivity("  ", "s1", 9, T0, T0),
        ]
        mock_sessions.get_servers.return_value = {
            "s1": ServerInfo(guid="s1", name="Server One", game="bf1942")
        }

        result = await etl_service.sync_player_server_relationships(T0, T2)

        assert result.relationships_processed == 2
        written = mock_graph.upsert_plays_on.call_args.args[0]
        by_player = {row["playerName"]: row for row in written}
        assert by_player["Alice"] == {
            "playerName": "Alice",
            "serverGuid": "s1",
            "sessionCount": 5,
            "firstPlayed": T0,
            "lastPlayed": T2,
            "serverName": "Server One",
            "game": "bf1942",
        }
        assert by_player["Bob"]["serverName"] == "Unknown"
        assert by_player["Bob"]["game"] == "unknown"

    async def test_nothing_to_sync(self, etl_service, mock_sessions, mock_graph):
        mock_sessions.get_player_server_activity.return_value = []

        result = await etl_service.sync_player_server_relationships(T0, T2)

        assert result.relationships_processed == 0
        mock_sessions.get_servers.assert_not_called()
        mock_graph.upsert_plays_on.assert_not_called()


async def test_run_full_sync_runs_both_passes(etl_service, mock_sessions, mock_graph):
    """Test the full sync reports both passes."""
    mock_sessions.get_player_server_activity.return_value = []
    mock_sessions.count_rounds.return_value = 0

    result = await etl_service.run_full_sync(T0, T2)

    assert result.player_servers.relationships_processed == 0
    assert result.relationships.rounds_processed == 0
    mock_sessions.get_player_server_activity.assert_called_once_with(T0, T2)
    mock_sessions.count_rounds.assert_called_once_with(T0, T2)
