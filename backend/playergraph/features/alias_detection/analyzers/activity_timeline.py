"""
Activity timeline analyzer.

Lines up the lifetime activity of two accounts and scores the switchover
between them. A player moving to a new account typically stops on one and
starts on the other within days, with no period where both are active.
"""

from datetime import datetime, timedelta, timezone
from typing import List

from playergraph.core.enums import DataSufficiency
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import ActivityPeriodStats

from ..config import TIMELINE_DAYS, TIMELINE_WIDTH
from ..schemas import ActivityPeriod, ActivityTimeline, DailyActivity, GapAnalysis
from .base_analyzer import BaseSimilarityAnalyzer

ACTIVE_MARK = "│"
DORMANT_MARK = "·"


def build_activity_period(stats: ActivityPeriodStats, now: datetime) -> ActivityPeriod:
    """Derive dormancy and intensity from a player's lifetime envelope."""
    days_span = (stats.last_seen - stats.first_seen).total_seconds() / 86400
    return ActivityPeriod(
        first_seen=stats.first_seen,
        last_seen=stats.last_seen,
        total_active_days=stats.active_days,
        days_since_last=int((now - stats.last_seen).total_seconds() // 86400),
        total_sessions=stats.session_count,
        avg_sessions_per_day=stats.session_count / days_span if days_span > 0 else 0.0,
    )


def describe_switchover_pattern(
    days_between: int, overlap_ratio: float, stopped_first: str, started_second: str
) -> str:
    if overlap_ratio > 0.3:
        return f"Significant overlap ({overlap_ratio:.0%}) - accounts played simultaneously"
    if days_between < 0:
        return (
            f"Accounts overlapped - {started_second} started "
            f"{abs(days_between)} days before {stopped_first} ended"
        )
    if days_between == 0:
        return (
            f"Perfect handoff - {started_second} started exactly when "
            f"{stopped_first} stopped (suspicious timing)"
        )
    if days_between <= 3:
        return f"Very tight switchover - gap of only {days_between} days (highly suspicious)"
    if days_between <= 7:
        return f"Tight switchover - gap of {days_between} days (suspicious pattern)"
    if days_between <= 30:
        return f"Moderate gap - {days_between} days between accounts (possible alt)"
    return f"Large gap - {days_between} days between accounts (less suspicious)"


def analyze_gap(
    player1: str, period1: ActivityPeriod, player2: str, period2: ActivityPeriod
) -> GapAnalysis:
    """
    Measure the switchover between the account that stopped first and the other.

    :param player1: First player name
    :param period1: First player's activity period
    :param player2: Second player name
    :param period2: Second player's activity period
    :returns: Gap analysis with overlap ratio and pattern description
    """
    if period1.last_seen <= period2.last_seen:
        stopped_first, first_period = player1, period1
        started_second, second_period = player2, period2
    else:
        stopped_first, first_period = player2, period2
        started_second, second_period = player1, period1

    switchover_start = first_period.last_seen
    switchover_end = second_period.first_seen
    days_between = int((switchover_end - switchover_start).total_seconds() / 86400)

    overlap_start = max(period1.first_seen, period2.first_seen)
    overlap_end = min(period1.last_seen, period2.last_seen)
    overlap_days = max(0.0, (overlap_end - overlap_start).total_seconds() / 86400)
    total_span = max(
        (period1.last_seen - period1.first_seen).total_seconds() / 86400,
        (period2.last_seen - period2.first_seen).total_seconds() / 86400,
    )
    overlap_ratio = min(1.0, overlap_days / total_span) if total_span > 0 else 0.0

    return GapAnalysis(
        days_between=days_between,
        account_stopped_first=stopped_first,
        account_started_second=started_second,
        switchover_start=switchover_start,
        switchover_end=switchover_end,
        switchover_window_days=abs(days_between),
        overlap_ratio=overlap_ratio,
        pattern_description=describe_switchover_pattern(
            days_between, overlap_ratio, stopped_first, started_second
        ),
    )


def render_timebar(
    period: ActivityPeriod, start: datetime, day_range: int, width: int
) -> str:
    """One bar of ``width`` cells covering ``day_range`` days from ``start``."""
    bar = [DORMANT_MARK] * width
    first_offset = (period.first_seen.date() - start.date()).days
    last_offset = (period.last_seen.date() - start.date()).days

    for day in range(max(0, first_offset), min(last_offset, day_range - 1) + 1):
        bar[int(day * width / day_range)] = ACTIVE_MARK
    return "[" + "".join(bar) + "]"


def _status(period: ActivityPeriod) -> str:
    if period.is_currently_active:
        return "ACTIVE"
    return f"DORMANT ({period.days_since_last} days)"


def render_ascii_timeline(
    player1: str,
    period1: ActivityPeriod,
    player2: str,
    period2: ActivityPeriod,
    gap: GapAnalysis,
    now: datetime,
) -> str:
    start = now - timedelta(days=TIMELINE_DAYS)
    lines = [f"Activity Timeline (Last {TIMELINE_DAYS} days)", "=" * 35, ""]

    for name, period in ((player1, period1), (player2, period2)):
        lines.append(f"{name}: {period.first_seen:%Y-%m-%d} -> {period.last_seen:%Y-%m-%d}")
        lines.append(
            f"  Sessions: {period.total_sessions} | Active days: {period.total_active_days}"
        )
        lines.append(f"  Status: {_status(period)}")
        lines.append("")

    lines.extend(
        [
            "Switchover Analysis:",
            f"  {gap.account_stopped_first} last seen: {gap.switchover_start:%Y-%m-%d}",
            f"  {gap.account_started_second} first seen: {gap.switchover_end:%Y-%m-%d}",
            f"  Gap: {gap.days_between} days (window: {gap.switchover_window_days} days)",
            f"  Overlap: {gap.overlap_ratio:.0%}",
            "",
            f"Timeline Visualization ({ACTIVE_MARK} = active, {DORMANT_MARK} = dormant):",
            "",
        ]
    )

    label_width = max(len(player1), len(player2))
    for name, period in ((player1, period1), (player2, period2)):
        bar = render_timebar(period, start, TIMELINE_DAYS, TIMELINE_WIDTH)
        lines.append(f"{name.ljust(label_width)}: {bar}")
    lines.append("")

    return "\n".join(lines)


def build_timeline_analysis_text(
    period1: ActivityPeriod, period2: ActivityPeriod, gap: GapAnalysis
) -> str:
    parts = [
        f"Timeline Analysis: {period1.total_sessions} sessions vs "
        f"{period2.total_sessions} sessions"
    ]

    if gap.overlap_ratio == 0:
        parts.append("No temporal overlap - accounts never played simultaneously")
    else:
        parts.append(
            f"Temporal overlap: {gap.overlap_ratio:.1%} - accounts played at same time"
        )

    if gap.switchover_window_days <= 3:
        parts.append(
            f"TIGHT SWITCHOVER: Only {gap.switchover_window_days} day window between accounts"
        )
    elif gap.switchover_window_days <= 7:
        parts.append(
            f"SUSPICIOUS TIMING: {gap.switchover_window_days}-day gap suggests planned switchover"
        )

    if gap.overlap_ratio == 0 and -7 <= gap.days_between <= 3:
        parts.append("CLASSIC PATTERN: Clean account switchover with minimal/no overlap")

    return "; ".join(parts)


def switchover_suspicion_score(
    period1: ActivityPeriod, period2: ActivityPeriod, gap: GapAnalysis
) -> float:
    """
    Score how much the switchover looks planned.

    No overlap and a short window dominate; similar activity intensity and
    similar session counts add a little on top. Capped at 1.0.
    """
    score = 0.0

    if gap.overlap_ratio == 0:
        score += 0.40

    window = gap.switchover_window_days
    if window == 0:
        score += 0.40
    elif window <= 3:
        score += 0.35
    elif window <= 7:
        score += 0.25
    elif window <= 30:
        score += 0.10

    intensity_ratio = (
        period2.avg_sessions_per_day / period1.avg_sessions_per_day
        if period1.avg_sessions_per_day > 0
        else 1.0
    )
    if 0.8 < intensity_ratio < 1.2:
        score += 0.15

    session_ratio = period1.total_sessions / (period2.total_sessions + 1)
    if 0.7 < session_ratio < 1.3:
        score += 0.10

    return min(1.0, score)


class ActivityTimelineAnalyzer(BaseSimilarityAnalyzer[ActivityTimeline]):
    """Builds the side-by-side activity timeline of two accounts."""

    def __init__(self, sessions: SessionRepositoryInterface):
        super().__init__("activity_timeline")
        self.sessions = sessions

    def neutral_result(
        self,
        player1: str,
        player2: str,
        data_sufficiency: DataSufficiency,
        analysis: str,
    ) -> ActivityTimeline:
        return ActivityTimeline(
            player1=player1,
            player2=player2,
            ascii_timeline="Not enough data",
            analysis=analysis,
            switchover_suspicion_score=0.0,
            data_sufficiency=data_sufficiency,
        )

    async def _analyze(
        self, player1: str, player2: str, look_back_days: int
    ) -> ActivityTimeline:
        now = datetime.now(timezone.utc)

        stats1 = await self.sessions.get_activity_period(player1)
        stats2 = await self.sessions.get_activity_period(player2)
        if stats1 is None or stats2 is None:
            return self.neutral_result(
                player1,
                player2,
                DataSufficiency.INSUFFICIENT,
                "Need more session history",
            )

        period1 = build_activity_period(stats1, now)
        period2 = build_activity_period(stats2, now)
        gap = analyze_gap(player1, period1, player2, period2)

        since = now - timedelta(days=TIMELINE_DAYS)
        timeline1 = await self._daily_timeline(player1, since)
        timeline2 = await self._daily_timeline(player2, since)

        return ActivityTimeline(
            player1=player1,
            player2=player2,
            player1_activity=period1,
            player2_activity=period2,
            gap=gap,
            player1_timeline=timeline1,
            player2_timeline=timeline2,
            ascii_timeline=render_ascii_timeline(
                player1, period1, player2, period2, gap, now
            ),
            analysis=build_timeline_analysis_text(period1, period2, gap),
            switchover_suspicion_score=switchover_suspicion_score(period1, period2, gap),
            data_sufficiency=DataSufficiency.SUFFICIENT,
        )

    async def _daily_timeline(
        self, player_name: str, since: datetime
    ) -> List[DailyActivity]:
        rows = await self.sessions.get_daily_activity(player_name, since)
        return [
            DailyActivity(
                day=row.day,
                session_count=row.session_count,
                total_minutes=row.total_minutes,
                avg_kd=row.kd_ratio,
            )
            for row in rows
        ]
