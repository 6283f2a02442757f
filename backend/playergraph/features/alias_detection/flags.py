"""
Rule table turning analyzer results into red and green flags.

Red flags point to one person behind both accounts, green flags to two
different people. Statistical and behavioral rules only fire when that
analyzer actually had data, so a neutral fallback never reads as evidence.
"""

from typing import List, Tuple

from .schemas import (
    ActivityTimeline,
    BehavioralAnalysis,
    NetworkAnalysis,
    StatSimilarityAnalysis,
    TemporalAnalysis,
)

ZERO_OVERLAP_FLAG = "Zero temporal overlap with high teammate overlap (likely same person)"
CONFLICTING_GREEN_FLAG = "Multiple contradicting signals suggest they are different players"
CONFLICTING_RED_FLAG = "Multiple matching signals despite some differences"
CONFLICT_SCORE_THRESHOLD = 0.60
SWITCHOVER_FLAG_THRESHOLD = 0.40
TIGHT_SWITCHOVER_DAYS = 3

CONFIDENCE_BASE = 0.5
CONFIDENCE_STAT_BONUS = 0.25
CONFIDENCE_BEHAVIORAL_BONUS = 0.15
CONFIDENCE_NETWORK_BONUS = 0.10
CONFIDENCE_SHARED_TEAMMATES = 5


def _has_zero_timeline_overlap(timeline: ActivityTimeline) -> bool:
    return timeline.gap is not None and timeline.gap.overlap_ratio == 0


def identify_flags(
    stat: StatSimilarityAnalysis,
    behavioral: BehavioralAnalysis,
    network: NetworkAnalysis,
    temporal: TemporalAnalysis,
    timeline: ActivityTimeline,
    overall_score: float,
) -> Tuple[List[str], List[str]]:
    """
    Evaluate the flag table.

    When both lists are non-empty the weaker side gets a conflicting-signals
    note. Switchover flags are appended afterwards and do not take part in
    that comparison.

    :returns: ``(red_flags, green_flags)``
    """
    red_flags: List[str] = []
    green_flags: List[str] = []

    # Red flags
    if stat.has_sufficient_data:
        if stat.kd_ratio_similarity > 0.85:
            red_flags.append("K/D ratios nearly identical")
        if stat.map_performance_similarity > 0.80:
            red_flags.append("Identical map performance patterns")

    if behavioral.has_sufficient_data:
        if behavioral.play_time_overlap_score > 0.75:
            red_flags.append("Play at nearly identical times of day")
        if behavioral.server_affinity_score > 0.70:
            red_flags.append("Strong server affinity match")
        if behavioral.ping_consistency_score > 0.85:
            red_flags.append("Nearly identical ping on same servers (same location)")

    if network.teammate_overlap > 0.70:
        red_flags.append("Very high teammate overlap")
    if not network.has_direct_connection and network.teammate_overlap > 0.60:
        red_flags.append(
            "High teammate overlap but no direct co-session (classic alias pattern)"
        )
    if _has_zero_timeline_overlap(timeline) and network.teammate_overlap > 0.50:
        red_flags.append(ZERO_OVERLAP_FLAG)

    if stat.has_sufficient_data and stat.kill_rate_similarity > 0.80:
        red_flags.append("Kill rate patterns nearly identical")

    # Green flags
    if temporal.significant_temporal_overlap:
        green_flags.append("Played together in multiple sessions")

    if behavioral.has_sufficient_data:
        if behavioral.play_time_overlap_score < 0.25:
            green_flags.append("Play at significantly different times")
        if (
            behavioral.ping_consistency_score < 0.30
            and behavioral.server_affinity_score > 0.50
        ):
            green_flags.append(
                "Very different pings on same servers (different locations)"
            )

    if stat.has_sufficient_data and stat.map_performance_similarity < 0.40:
        green_flags.append("Map-specific performance differs significantly")

    if network.has_direct_connection and ZERO_OVERLAP_FLAG not in red_flags:
        green_flags.append("Played together - suggests different accounts")

    if stat.has_sufficient_data and stat.kd_ratio_similarity < 0.30:
        green_flags.append("K/D ratios significantly different")

    if behavioral.has_sufficient_data and behavioral.server_affinity_score < 0.30:
        green_flags.append("Different server preferences")

    if red_flags and green_flags:
        if overall_score < CONFLICT_SCORE_THRESHOLD:
            green_flags.append(CONFLICTING_GREEN_FLAG)
        else:
            red_flags.append(CONFLICTING_RED_FLAG)

    red_flags.extend(switchover_flags(timeline))
    return red_flags, green_flags


def switchover_flags(timeline: ActivityTimeline) -> List[str]:
    """Red flags for a suspicious account handoff."""
    if timeline.gap is None or timeline.switchover_suspicion_score <= SWITCHOVER_FLAG_THRESHOLD:
        return []

    gap = timeline.gap
    flags = [f"Suspicious switchover: {gap.pattern_description}"]
    if gap.overlap_ratio == 0:
        flags.append("Zero temporal overlap - accounts never played simultaneously")
    if gap.switchover_window_days <= TIGHT_SWITCHOVER_DAYS:
        flags.append(
            f"TIGHT SWITCHOVER: Only {gap.switchover_window_days} day(s) between accounts"
        )
    return flags


def analysis_confidence(
    stat: StatSimilarityAnalysis,
    behavioral: BehavioralAnalysis,
    network: NetworkAnalysis,
) -> float:
    """Trust in the overall score, driven by how much data the analyzers had."""
    confidence = CONFIDENCE_BASE
    if stat.has_sufficient_data:
        confidence += CONFIDENCE_STAT_BONUS
    if behavioral.has_sufficient_data:
        confidence += CONFIDENCE_BEHAVIORAL_BONUS
    if network.shared_teammate_count > CONFIDENCE_SHARED_TEAMMATES:
        confidence += CONFIDENCE_NETWORK_BONUS
    return min(1.0, confidence)
