"""Pydantic schemas for alias detection results.

Every analyzer returns a result carrying its score, whether it had enough
data to produce a real score, and a human-readable explanation. Fusion reads
``data_sufficiency`` instead of guessing from magic score values.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from playergraph.core.enums import DataSufficiency, SuspicionLevel

from .config import AliasDetectionWeights


class AnalyzerResult(BaseModel):
    """Common shape of every analyzer result."""

    score: float = Field(..., ge=0.0, le=1.0)
    data_sufficiency: DataSufficiency = DataSufficiency.SUFFICIENT
    analysis: str = ""

    @property
    def has_sufficient_data(self) -> bool:
        return self.data_sufficiency == DataSufficiency.SUFFICIENT


class StatSimilarityAnalysis(AnalyzerResult):
    """Combat statistics similarity."""

    kd_ratio_similarity: float = 0.0
    kill_rate_similarity: float = 0.0
    score_per_round_similarity: float = 0.0
    map_performance_similarity: float = 0.0
    server_performance_similarity: float = 0.0
    player1_kd_ratio: Optional[float] = None
    player2_kd_ratio: Optional[float] = None


class BehavioralAnalysis(AnalyzerResult):
    """Play time, server choice, ping and session habits."""

    play_time_overlap_score: float = Field(
        default=0.0, description="Hour-of-day distribution similarity"
    )
    server_affinity_score: float = Field(
        default=0.0, description="Jaccard similarity of server sets"
    )
    ping_consistency_score: float = Field(
        default=0.5, description="Ping agreement on shared servers"
    )
    session_pattern_score: float = Field(
        default=0.0, description="Session duration and frequency similarity"
    )


class NetworkAnalysis(AnalyzerResult):
    """Overlap of the two players' co-play neighbourhoods."""

    shared_teammate_count: int = 0
    teammate_overlap: float = Field(
        default=0.0, description="Jaccard similarity of teammate sets"
    )
    mutual_connection_score: float = 0.0
    has_direct_connection: bool = False
    network_shape_similarity: float = 0.5


class TemporalAnalysis(AnalyzerResult):
    """Whether the two players were ever online together."""

    co_session_count: int = 0
    significant_temporal_overlap: bool = False
    inverted_activity_score: float = 0.5
    player1_last_active: Optional[datetime] = None
    player2_last_active: Optional[datetime] = None


class ActivityPeriod(BaseModel):
    """Lifetime activity envelope of one account."""

    first_seen: datetime
    last_seen: datetime
    total_active_days: int
    days_since_last: int
    total_sessions: int
    avg_sessions_per_day: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_currently_active(self) -> bool:
        return self.days_since_last < 7


class GapAnalysis(BaseModel):
    """
    Gap between one account going quiet and the other appearing.

    ``days_between`` is negative when the accounts overlapped, zero for a
    same-day handoff and positive for a gap.
    """

    days_between: int
    account_stopped_first: str
    account_started_second: str
    switchover_start: datetime
    switchover_end: datetime
    switchover_window_days: int
    overlap_ratio: float = Field(..., ge=0.0, le=1.0)
    pattern_description: str


class DailyActivity(BaseModel):
    """Activity of one account on one day."""

    day: date
    session_count: int
    total_minutes: int
    avg_kd: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def was_active(self) -> bool:
        return self.session_count > 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def intensity_score(self) -> float:
        return min(1.0, self.session_count / 10.0 * (self.total_minutes / 1440.0))


class ActivityTimeline(BaseModel):
    """Side-by-side activity of two accounts and how suspicious the switchover looks."""

    player1: str
    player2: str
    player1_activity: Optional[ActivityPeriod] = None
    player2_activity: Optional[ActivityPeriod] = None
    gap: Optional[GapAnalysis] = None
    player1_timeline: List[DailyActivity] = Field(default_factory=list)
    player2_timeline: List[DailyActivity] = Field(default_factory=list)
    ascii_timeline: str = ""
    analysis: str = ""
    switchover_suspicion_score: float = Field(default=0.0, ge=0.0, le=1.0)
    data_sufficiency: DataSufficiency = DataSufficiency.SUFFICIENT

    @property
    def has_sufficient_data(self) -> bool:
        return self.data_sufficiency == DataSufficiency.SUFFICIENT


class AliasSuspicionReport(BaseModel):
    """Full comparison of two accounts. Never persisted."""

    player1: str
    player2: str
    overall_similarity_score: float = Field(..., ge=0.0, le=1.0)
    suspicion_level: SuspicionLevel
    stat_analysis: StatSimilarityAnalysis
    behavioral_analysis: BehavioralAnalysis
    network_analysis: NetworkAnalysis
    temporal_analysis: TemporalAnalysis
    activity_timeline: ActivityTimeline
    red_flags: List[str] = Field(default_factory=list)
    green_flags: List[str] = Field(default_factory=list)
    analysis_timestamp: datetime
    days_analyzed: int
    analysis_confidence: float = Field(..., ge=0.0, le=1.0)
    weights: AliasDetectionWeights


class AliasBatchReport(BaseModel):
    """One target compared against many candidates."""

    target_player: str
    comparisons: List[AliasSuspicionReport] = Field(default_factory=list)
    top_suspects: List[AliasSuspicionReport] = Field(
        default_factory=list, description="Highest overall score first"
    )
