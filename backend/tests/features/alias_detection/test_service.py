"""
Tests for the alias detection service: fusion, weights and full comparisons.
"""

import pytest

from playergraph.core.enums import DataSufficiency, SuspicionLevel
from playergraph.core.exceptions import ValidationError
from playergraph.features.alias_detection.config import (
    AliasDetectionWeights,
    classify_suspicion,
)
from playergraph.features.alias_detection.flags import (
    CONFLICTING_GREEN_FLAG,
    ZERO_OVERLAP_FLAG,
)
from playergraph.features.alias_detection.service import (
    AliasDetectionService,
    explain_report,
    fuse_scores,
    resolve_weights,
)


@pytest.fixture
def alias_service(world):
    return AliasDetectionService.from_repositories(world.sessions, world.graph)


class TestWeights:
    """Test fusion weight handling."""

    def test_defaults_sum_to_one(self):
        weights = AliasDetectionService.default_weights()

        assert weights.is_valid()
        assert weights.switchover_weight == 0.30

    def test_unbalanced_weights_are_normalized(self):
        weights = AliasDetectionWeights(
            stat_weight=1,
            behavioral_weight=1,
            network_weight=1,
            temporal_weight=1,
            switchover_weight=1,
        )

        resolved = resolve_weights(weights)

        assert resolved.is_valid()
        assert resolved.stat_weight == pytest.approx(0.2)

    def test_all_zero_weights_are_rejected(self):
        zero = AliasDetectionWeights(
            stat_weight=0,
            behavioral_weight=0,
            network_weight=0,
            temporal_weight=0,
            switchover_weight=0,
        )

        with pytest.raises(ValueError):
            resolve_weights(zero)

    def test_none_means_defaults(self):
        assert resolve_weights(None) == AliasDetectionWeights.defaults()


class TestFuseScores:
    """Test the weighted fusion."""

    def test_all_ones_is_one(self):
        weights = AliasDetectionWeights.defaults()

        assert fuse_scores(weights, 1, 1, 1, 1, 1) == pytest.approx(1.0)

    @pytest.mark.parametrize("dimension", range(5))
    def test_raising_one_score_never_lowers_the_total(self, dimension):
        weights = AliasDetectionWeights.defaults()
        base = [0.3, 0.4, 0.5, 0.6, 0.2]
        raised = list(base)
        raised[dimension] = 0.9

        assert fuse_scores(weights, *raised) >= fuse_scores(weights, *base)

    def test_result_is_clamped(self):
        weights = AliasDetectionWeights(stat_weight=2.0)

        assert fuse_scores(weights, 1, 1, 1, 1, 1) == 1.0


@pytest.mark.parametrize(
    "score, level",
    [
        (0.85, SuspicionLevel.VERY_LIKELY),
        (0.70, SuspicionLevel.LIKELY),
        (0.84, SuspicionLevel.LIKELY),
        (0.50, SuspicionLevel.POTENTIAL),
        (0.49, SuspicionLevel.UNRELATED),
    ],
)
def test_classify_suspicion(score, level):
    """Test suspicion level thresholds."""
    assert classify_suspicion(score) == level


class TestComparePlayers:
    """Test full pairwise comparisons."""

    async def test_account_switchover_is_very_likely_an_alias(self, alias_service):
        report = await alias_service.compare_players("Alice", "Alias")

        assert report.suspicion_level == SuspicionLevel.VERY_LIKELY
        assert report.overall_similarity_score >= 0.85
        assert report.analysis_confidence == pytest.approx(1.0)
        assert ZERO_OVERLAP_FLAG in report.red_flags
        assert "TIGHT SWITCHOVER: Only 1 day(s) between accounts" in report.red_flags
        assert report.green_flags == []
        assert report.days_analyzed == 3650

    async def test_regular_teammate_is_unrelated(self, alias_service):
        report = await alias_service.compare_players("Alice", "Bob")

        assert report.suspicion_level == SuspicionLevel.UNRELATED
        assert report.overall_similarity_score < 0.5
        assert report.red_flags == []
        assert "Played together - suggests different accounts" in report.green_flags
        assert "Played together in multiple sessions" in report.green_flags
        assert report.temporal_analysis.co_session_count == 25

    async def test_player_without_history_gets_neutral_results(self, alias_service):
        report = await alias_service.compare_players("Alice", "Newbie")

        assert report.stat_analysis.data_sufficiency == DataSufficiency.INSUFFICIENT
        assert report.behavioral_analysis.data_sufficiency == DataSufficiency.INSUFFICIENT
        assert report.behavioral_analysis.ping_consistency_score == 0.5
        assert report.network_analysis.score == 0.5
        assert report.activity_timeline.switchover_suspicion_score == 0.0
        assert report.suspicion_level == SuspicionLevel.UNRELATED
        assert report.analysis_confidence == 0.5
        assert report.red_flags == []
        assert report.green_flags == []

    async def test_unreachable_store_degrades_instead_of_failing(self, alias_service, world):
        world.graph.get_teammate_names.side_effect = ConnectionError("graph down")

        report = await alias_service.compare_players("Alice", "Alias")

        assert report.network_analysis.data_sufficiency == DataSufficiency.UNAVAILABLE
        assert report.network_analysis.score == 0.5
        assert report.stat_analysis.data_sufficiency == DataSufficiency.SUFFICIENT

    async def test_custom_weights_are_reported(self, alias_service):
        weights = AliasDetectionWeights(
            stat_weight=1,
            behavioral_weight=0,
            network_weight=0,
            temporal_weight=0,
            switchover_weight=0,
        )

        report = await alias_service.compare_players("Alice", "Alias", weights=weights)

        assert report.weights == weights
        assert report.overall_similarity_score == pytest.approx(
            report.stat_analysis.score
        )

    @pytest.mark.parametrize("player2", ["Alice", " alice ", ""])
    async def test_invalid_pairs_are_rejected(self, alias_service, player2):
        with pytest.raises(ValidationError):
            await alias_service.compare_players("Alice", player2)

    async def test_non_positive_look_back_is_rejected(self, alias_service):
        with pytest.raises(ValidationError):
            await alias_service.compare_players("Alice", "Alias", look_back_days=0)

    async def test_explain_report(self, alias_service):
        report = await alias_service.compare_players("Alice", "Alias")

        text = explain_report(report)

        assert text.startswith("Alias comparison: Alice vs Alias")
        assert "VERY_LIKELY" in text
        assert "Red flags:" in text
        assert "Green flags:" not in text


async def test_get_activity_timeline(alias_service):
    """Test the timeline can be requested on its own."""
    timeline = await alias_service.get_activity_timeline("Alice", "Alias")

    assert timeline.gap.days_between == 1
    assert timeline.player1 == "Alice"


class TestFindPotentialAliases:
    """Test one-against-many comparisons."""

    async def test_ranks_candidates_and_skips_self_and_failures(
        self, alias_service, monkeypatch
    ):
        original = alias_service.timeline_analyzer.analyze

        async def flaky(player1, player2, look_back_days):
            if player2 == "Broken":
                raise RuntimeError("timeline store down")
            return await original(player1, player2, look_back_days)

        monkeypatch.setattr(alias_service.timeline_analyzer, "analyze", flaky)

        batch = await alias_service.find_potential_aliases(
            "Alice",
            ["Bob", "alice", "", "Alias", "Newbie", "Broken"],
            top_count=2,
        )

        assert batch.target_player == "Alice"
        assert sorted(r.player2 for r in batch.comparisons) == ["Alias", "Bob", "Newbie"]
        assert [r.player2 for r in batch.top_suspects] == ["Alias", "Bob"]

    async def test_invalid_arguments(self, alias_service):
        with pytest.raises(ValidationError):
            await alias_service.find_potential_aliases(" ", ["Bob"])
        with pytest.raises(ValidationError):
            await alias_service.find_potential_aliases("Alice", ["Bob"], top_count=0)


class TestPairScenarios:
    """Test comparisons built around recognizable account pairs."""

    async def test_clean_handoff_is_very_likely_an_alias(self, handoff_world):
        service = AliasDetectionService.from_repositories(
            handoff_world.sessions, handoff_world.graph
        )

        report = await service.compare_players("Veteran", "Newcomer")

        assert report.overall_similarity_score >= 0.85
        assert report.overall_similarity_score == pytest.approx(0.8645, abs=0.005)
        assert report.suspicion_level == SuspicionLevel.VERY_LIKELY
        assert report.network_analysis.teammate_overlap == pytest.approx(0.8)
        assert report.network_analysis.has_direct_connection is False
        assert report.behavioral_analysis.ping_consistency_score == 0.95
        assert report.temporal_analysis.co_session_count == 0
        assert report.temporal_analysis.score == pytest.approx(0.2)
        assert report.activity_timeline.switchover_suspicion_score == pytest.approx(0.9)
        assert (
            "High teammate overlap but no direct co-session (classic alias pattern)"
            in report.red_flags
        )
        assert ZERO_OVERLAP_FLAG in report.red_flags
        assert "TIGHT SWITCHOVER: Only 1 day(s) between accounts" in report.red_flags
        assert report.green_flags == []

    async def test_matching_skill_rivals_are_not_aliases(self, rivals_world):
        service = AliasDetectionService.from_repositories(
            rivals_world.sessions, rivals_world.graph
        )

        report = await service.compare_players("Hawk", "Wren")

        assert report.stat_analysis.kd_ratio_similarity == 1.0
        assert report.stat_analysis.score == pytest.approx(1.0)
        assert report.behavioral_analysis.play_time_overlap_score == pytest.approx(0.0)
        assert report.network_analysis.teammate_overlap == 0.0
        assert report.temporal_analysis.co_session_count == 1
        assert report.temporal_analysis.score == pytest.approx(0.06)
        assert report.overall_similarity_score == pytest.approx(0.451, abs=0.005)
        assert report.suspicion_level in (SuspicionLevel.UNRELATED, SuspicionLevel.POTENTIAL)
        assert "K/D ratios nearly identical" in report.red_flags
        assert "Played together - suggests different accounts" in report.green_flags
        assert "Play at significantly different times" in report.green_flags
        assert CONFLICTING_GREEN_FLAG in report.green_flags
        assert not any("SWITCHOVER" in flag.upper() for flag in report.red_flags)
