"""
Tests for the community service and its caching decorator.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from playergraph.core.exceptions import GraphStoreUnavailableError, ValidationError
from playergraph.features.communities.detection import StrongEdge
from playergraph.features.communities.repository import CommunityRepositoryInterface
from playergraph.features.communities.schemas import (
    CommunityDetectionResult,
    PlayerCommunity,
)
from playergraph.features.communities.service import (
    CachedCommunityService,
    CommunityService,
)
from playergraph.features.relationships.cache import (
    InMemoryCacheStore,
    RelationshipCache,
)

NOW = datetime.now(timezone.utc)


@pytest.fixture
def mock_repository():
    return AsyncMock(spec=CommunityRepositoryInterface)


@pytest.fixture
def community_service(mock_repository):
    return CommunityService(mock_repository, min_sessions=3, min_size=3)


@pytest.fixture
def cache():
    return RelationshipCache(InMemoryCacheStore(maxsize=100))


def _community(leader="A", members=("A", "B", "C")):
    return PlayerCommunity(
        id=f"community:{leader}",
        name=f"Community around {leader}",
        members=list(members),
        last_active_date=NOW - timedelta(days=1),
        cohesion_score=1.0,
    )


class TestCommunityService:
    """Test detection and reads."""

    async def test_detect_replaces_stored_communities(
        self, community_service, mock_repository
    ):
        mock_repository.get_strong_edges.return_value = [
            StrongEdge("A", "B", 5),
            StrongEdge("A", "C", 4),
            StrongEdge("B", "C", 3),
            StrongEdge("X", "Y", 7),
        ]
        mock_repository.get_server_play_counts.return_value = {"A": {"s1": 3}}

        result = await community_service.detect_and_store_communities()

        assert result.communities_detected == 1
        assert result.players_assigned == 3
        assert result.strong_edges == 4
        mock_repository.get_strong_edges.assert_called_once_with(3)
        requested_players = mock_repository.get_server_play_counts.call_args.args[0]
        assert requested_players == {"A", "B", "C", "X", "Y"}
        stored = mock_repository.replace_communities.call_args.args[0]
        assert [c.id for c in stored] == ["community:A"]
        assert stored[0].primary_servers == ["s1"]

    async def test_detect_with_no_strong_edges_clears_communities(
        self, community_service, mock_repository
    ):
        mock_repository.get_strong_edges.return_value = []
        mock_repository.get_server_play_counts.return_value = {}

        result = await community_service.detect_and_store_communities()

        assert result.communities_detected == 0
        mock_repository.replace_communities.assert_called_once_with([])

    async def test_active_only_passes_cutoff(self, community_service, mock_repository):
        mock_repository.get_communities.return_value = []

        await community_service.get_communities()
        await community_service.get_communities(min_size=5, active_only=False)

        first, second = mock_repository.get_communities.call_args_list
        min_size, active_since = first.args
        assert min_size == 3
        assert timedelta(days=29) < datetime.now(timezone.utc) - active_since < timedelta(days=31)
        assert second.args == (5, None)

    async def test_invalid_min_size(self, community_service):
        with pytest.raises(ValidationError):
            await community_service.get_communities(min_size=0)

    async def test_blank_lookups(self, community_service, mock_repository):
        assert await community_service.get_community_by_id(" ") is None
        assert await community_service.get_player_communities("") == []
        assert await community_service.get_community_server_map("") is None
        mock_repository.get_community.assert_not_called()


class TestCachedCommunityService:
    """Test caching of community reads."""

    async def test_detect_repopulates_all_communities_entry(self, cache):
        inner = AsyncMock(spec=CommunityService)
        inner.get_communities.return_value = [_community()]
        service = CachedCommunityService(inner, cache)

        await service.detect_and_store_communities()
        cached = await service.get_communities()

        inner.detect_and_store_communities.assert_called_once()
        inner.get_communities.assert_called_once_with()
        assert [c.id for c in cached] == ["community:A"]

    async def test_detect_drops_stale_listing(self, cache):
        inner = AsyncMock(spec=CommunityService)
        inner.get_communities.side_effect = [
            [_community("A")],
            [_community("B", ("B", "C", "D"))],
        ]
        service = CachedCommunityService(inner, cache)

        before = await service.get_communities()
        await service.detect_and_store_communities()
        after = await service.get_communities()

        assert before[0].id == "community:A"
        assert after[0].id == "community:B"

    async def test_failed_refill_after_detection_is_a_cache_miss(self, cache):
        inner = AsyncMock(spec=CommunityService)
        detected = CommunityDetectionResult(
            communities_detected=1,
            players_assigned=3,
            strong_edges=3,
            duration_seconds=0.1,
        )
        inner.detect_and_store_communities.return_value = detected
        inner.get_communities.side_effect = [
            GraphStoreUnavailableError("read timed out"),
            [_community()],
        ]
        service = CachedCommunityService(inner, cache)

        result = await service.detect_and_store_communities()
        listing = await service.get_communities()

        assert result is detected
        assert [c.id for c in listing] == ["community:A"]
        assert inner.get_communities.call_count == 2

    async def test_only_default_listing_is_cached(self, cache):
        inner = AsyncMock(spec=CommunityService)
        inner.get_communities.return_value = []
        service = CachedCommunityService(inner, cache)

        await service.get_communities()
        await service.get_communities()
        await service.get_communities(min_size=5)
        await service.get_communities(min_size=5)

        assert inner.get_communities.call_count == 3

    async def test_player_communities_are_cached(self, cache):
        inner = AsyncMock(spec=CommunityService)
        inner.get_player_communities.return_value = [_community()]
        service = CachedCommunityService(inner, cache)

        await service.get_player_communities("B")
        result = await service.get_player_communities("B")

        assert result[0].members == ["A", "B", "C"]
        inner.get_player_communities.assert_called_once_with("B")

    async def test_lookups_by_id_are_not_cached(self, cache):
        inner = AsyncMock(spec=CommunityService)
        inner.get_community_by_id.return_value = _community()
        service = CachedCommunityService(inner, cache)

        await service.get_community_by_id("community:A")
        await service.get_community_by_id("community:A")

        assert inner.get_community_by_id.call_count == 2
