"""
Relationship ETL: turns per-round observations into co-play graph edges.

Players observed on the same server at the same polling instant played
together. Pairs are detected per round, aggregated in memory keyed by the
canonically ordered name pair, and merged into the graph store in
independently committed flushes.

Replaying an overlapping time range adds its co-play counts a second time.
Callers must serialize syncs and never resubmit a range that already
completed; there is no per-round "already synced" marker.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

import structlog

from playergraph.core.config import Settings
from playergraph.core.decorators import service_error_handler
from playergraph.core.exceptions import BatchSyncError, ValidationError
from playergraph.features.sessions.repository import SessionRepositoryInterface
from playergraph.features.sessions.schemas import Observation

from .repository import RelationshipGraphRepositoryInterface
from .schemas import FullSyncResult, SyncResult

logger = structlog.get_logger(__name__)

PairKey = Tuple[str, str]

UNKNOWN_SERVER_NAME = "Unknown"
UNKNOWN_GAME = "unknown"


class CoPlayPair(NamedTuple):
    """Two players seen together; ``player1`` sorts before ``player2``."""

    player1: str
    player2: str
    timestamp: datetime
    server_guid: str


@dataclass
class RelationshipMetrics:
    """Accumulated co-play metrics for one unordered player pair."""

    player1: str
    player2: str
    first_seen: datetime
    last_seen: datetime
    observation_count: int = 0
    server_guids: Set[str] = field(default_factory=set)

    @property
    def key(self) -> PairKey:
        return (self.player1, self.player2)

    def absorb(self, other: "RelationshipMetrics") -> None:
        """Fold another accumulator for the same pair into this one."""
        self.observation_count += other.observation_count
        if other.first_seen < self.first_seen:
            self.first_seen = other.first_seen
        if other.last_seen > self.last_seen:
            self.last_seen = other.last_seen
        self.server_guids |= other.server_guids

    def copy(self) -> "RelationshipMetrics":
        return RelationshipMetrics(
            player1=self.player1,
            player2=self.player2,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            observation_count=self.observation_count,
            server_guids=set(self.server_guids),
        )

    def to_graph_params(self) -> dict:
        return {
            "player1": self.player1,
            "player2": self.player2,
            "observationCount": self.observation_count,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
            "serverGuids": sorted(self.server_guids),
        }


def canonical_pair(name1: str, name2: str) -> PairKey:
    """Order a pair of names by ordinal comparison."""
    return (name1, name2) if name1 < name2 else (name2, name1)


def detect_co_play_pairs(observations: Iterable[Observation]) -> List[CoPlayPair]:
    """
    Detect co-play pairs in one round's observations.

    Names are trimmed and empty names dropped. Observations are grouped by
    (server, timestamp); every group with at least two distinct players
    yields one pair per 2-combination, canonically ordered and de-duplicated.

    :param observations: Observations of a single round
    :returns: Distinct co-play pairs
    """
    groups: Dict[Tuple[str, datetime], Set[str]] = defaultdict(set)
    for observation in observations:
        name = (observation.player_name or "").strip()
        if not name:
            continue
        groups[(observation.server_guid, observation.timestamp)].add(name)

    pairs: List[CoPlayPair] = []
    for (server_guid, timestamp), names in groups.items():
        if len(names) < 2:
            continue
        for player1, player2 in combinations(sorted(names), 2):
            pairs.append(CoPlayPair(player1, player2, timestamp, server_guid))
    return pairs


def aggregate_relationships(
    pairs: Iterable[CoPlayPair],
) -> Dict[PairKey, RelationshipMetrics]:
    """Fold co-play pairs into per-pair metrics."""
    relationships: Dict[PairKey, RelationshipMetrics] = {}
    for pair in pairs:
        key = canonical_pair(pair.player1, pair.player2)
        metrics = relationships.get(key)
        if metrics is None:
            relationships[key] = RelationshipMetrics(
                player1=key[0],
                player2=key[1],
                first_seen=pair.timestamp,
                last_seen=pair.timestamp,
                observation_count=1,
                server_guids={pair.server_guid},
            )
            continue

        metrics.observation_count += 1
        if pair.timestamp < metrics.first_seen:
            metrics.first_seen = pair.timestamp
        if pair.timestamp > metrics.last_seen:
            metrics.last_seen = pair.timestamp
        metrics.server_guids.add(pair.server_guid)
    return relationships


def merge_relationships(
    target: Dict[PairKey, RelationshipMetrics],
    source: Dict[PairKey, RelationshipMetrics],
) -> Dict[PairKey, RelationshipMetrics]:
    """
    Merge ``source`` into ``target`` in place and return ``target``.

    Counts add, first/last timestamps take the extremum and server sets
    union, so merging is commutative and associative. Source entries are
    copied, never aliased.
    """
    for key, metrics in source.items():
        existing = target.get(key)
        if existing is None:
            target[key] = metrics.copy()
        else:
            existing.absorb(metrics)
    return target


def _chunks(items: List[dict], size: int) -> Iterable[List[dict]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class RelationshipEtlService:
    """Syncs co-play and player-server activity from the session store into the graph."""

    def __init__(
        self,
        sessions: SessionRepositoryInterface,
        graph: RelationshipGraphRepositoryInterface,
        settings: Settings,
    ):
        """
        Initialize the ETL service.

        :param sessions: Session store repository
        :param graph: Co-play graph repository
        :param settings: Batch sizes and flush thresholds
        """
        self.sessions = sessions
        self.graph = graph
        self.page_size = settings.etl_round_page_size
        self.flush_every_rounds = settings.etl_flush_every_rounds
        self.flush_pair_threshold = settings.etl_flush_pair_threshold
        self.write_batch_size = settings.etl_write_batch_size

    async def detect_co_play_sessions_for_round(self, round_id: str) -> List[CoPlayPair]:
        """Load one round's observations and detect its co-play pairs."""
        observations = await self.sessions.get_round_observations(round_id)
        if not observations:
            return []

        pairs = detect_co_play_pairs(observations)
        logger.debug(
            "Detected co-play pairs for round",
            round_id=round_id,
            observations=len(observations),
            pairs=len(pairs),
        )
        return pairs

    async def sync_to_graph(self, relationships: Dict[PairKey, RelationshipMetrics]) -> int:
        """
        Upsert accumulated relationships in one write transaction.

        Statements carry at most ``etl_write_batch_size`` pairs each; a failure
        or cancellation rolls back the whole call.

        :returns: Number of relationships written
        """
        if not relationships:
            logger.info("No relationships to sync to graph")
            return 0

        params = [metrics.to_graph_params() for metrics in relationships.values()]
        await self.graph.upsert_played_with(params, chunk_size=self.write_batch_size)

        logger.info("Synced relationships to graph", count=len(params))
        return len(params)

    @service_error_handler("RelationshipEtlService")
    async def sync_relationships(self, from_ts: datetime, to_ts: datetime) -> SyncResult:
        """
        Page through rounds in the range and merge their co-play into the graph.

        Accumulated pairs are flushed every ``etl_flush_every_rounds`` rounds
        or as soon as ``etl_flush_pair_threshold`` pairs are pending. Each
        flush is a single transaction that commits on its own; a failing
        flush raises :class:`BatchSyncError` describing the window that did
        not commit.

        :param from_ts: Inclusive start of the round start-time range
        :param to_ts: Inclusive end of the round start-time range
        :returns: Rounds and relationships processed
        """
        if from_ts > to_ts:
            raise ValidationError(
                "from_ts must not be after to_ts",
                service="RelationshipEtlService",
                operation="sync_relationships",
                field="from_ts",
                value=from_ts,
            )

        started = time.monotonic()
        logger.info("Starting relationship sync", from_ts=from_ts, to_ts=to_ts)

        total_rounds = await self.sessions.count_rounds(from_ts, to_ts)
        logger.info("Found rounds to process", total_rounds=total_rounds)

        result = SyncResult()
        if total_rounds == 0:
            result.duration_seconds = time.monotonic() - started
            return result

        pending: Dict[PairKey, RelationshipMetrics] = {}
        window_first_round: Optional[str] = None
        window_last_round: Optional[str] = None
        offset = 0

        while offset < total_rounds:
            round_ids = await self.sessions.get_round_ids(
                from_ts, to_ts, offset, self.page_size
            )
            if not round_ids:
                break

            logger.info(
                "Processing rounds",
                first=offset + 1,
                last=offset + len(round_ids),
                total=total_rounds,
            )

            for round_id in round_ids:
                if window_first_round is None:
                    window_first_round = round_id
                window_last_round = round_id

                pairs = await self.detect_co_play_sessions_for_round(round_id)
                if pairs:
                    merge_relationships(pending, aggregate_relationships(pairs))
                result.rounds_processed += 1

                if (
                    result.rounds_processed % self.flush_every_rounds == 0
                    or len(pending) >= self.flush_pair_threshold
                ) and pending:
                    logger.info(
                        "Flushing relationships to graph",
                        pending=len(pending),
                        checkpoint_round=result.rounds_processed,
                    )
                    await self._flush(pending, window_first_round, window_last_round, result)
                    pending = {}
                    window_first_round = None

            offset += len(round_ids)

        if pending:
            logger.info("Flushing final relationships to graph", pending=len(pending))
            await self._flush(pending, window_first_round, window_last_round, result)

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "Relationship sync completed",
            duration_seconds=round(result.duration_seconds, 2),
            rounds_processed=result.rounds_processed,
            relationships_processed=result.relationships_processed,
            flushes=result.flushes,
        )
        return result

    async def _flush(
        self,
        pending: Dict[PairKey, RelationshipMetrics],
        first_round_id: Optional[str],
        last_round_id: Optional[str],
        result: SyncResult,
    ) -> None:
        try:
            written = await self.sync_to_graph(pending)
        except BatchSyncError:
            raise
        except Exception as e:
            logger.error(
                "Relationship flush failed",
                pair_count=len(pending),
                first_round_id=first_round_id,
                last_round_id=last_round_id,
                rounds_processed=result.rounds_processed,
                relationships_committed=result.relationships_processed,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise BatchSyncError(
                str(e),
                pair_count=len(pending),
                first_round_id=first_round_id,
                last_round_id=last_round_id,
                rounds_processed=result.rounds_processed,
                relationships_committed=result.relationships_processed,
                operation="sync_relationships",
                original_error=e,
            ) from e

        result.relationships_processed += written
        result.flushes += 1

    @service_error_handler("RelationshipEtlService")
    async def sync_player_server_relationships(
        self, from_ts: datetime, to_ts: datetime
    ) -> SyncResult:
        """
        Merge per-(player, server) session activity into PLAYS_ON edges.

        Sessions are aggregated by the session store; names are trimmed and
        merged again in memory since trimming can fold two raw names together.
        """
        started = time.monotonic()
        logger.info("Syncing player-server relationships", from_ts=from_ts, to_ts=to_ts)

        activity = await self.sessions.get_player_server_activity(from_ts, to_ts)

        merged: Dict[PairKey, dict] = {}
        for row in activity:
            name = (row.player_name or "").strip()
            if not name:
                continue
            key = (name, row.server_guid)
            entry = merged.get(key)
            if entry is None:
                merged[key] = {
                    "playerName": name,
                    "serverGuid": row.server_guid,
                    "sessionCount": row.session_count,
                    "firstPlayed": row.first_played,
                    "lastPlayed": row.last_played,
                }
                continue
            entry["sessionCount"] += row.session_count
            entry["firstPlayed"] = min(entry["firstPlayed"], row.first_played)
            entry["lastPlayed"] = max(entry["lastPlayed"], row.last_played)

        result = SyncResult()
        if not merged:
            logger.info("No player-server relationships to sync")
            result.duration_seconds = time.monotonic() - started
            return result

        servers = await self.sessions.get_servers(guid for _, guid in merged)
        params = []
        for entry in merged.values():
            server = servers.get(entry["serverGuid"])
            entry["serverName"] = server.name if server else UNKNOWN_SERVER_NAME
            entry["game"] = server.game if server else UNKNOWN_GAME
            params.append(entry)

        for chunk in _chunks(params, self.write_batch_size):
            await self.graph.upsert_plays_on(chunk)
            result.relationships_processed += len(chunk)
            result.flushes += 1

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "Synced player-server relationships",
            count=result.relationships_processed,
            duration_seconds=round(result.duration_seconds, 2),
        )
        return result

    async def run_full_sync(self, from_ts: datetime, to_ts: datetime) -> FullSyncResult:
        """Run the player-server pass, then the co-play pass, for one range."""
        player_servers = await self.sync_player_server_relationships(from_ts, to_ts)
        relationships = await self.sync_relationships(from_ts, to_ts)
        return FullSyncResult(player_servers=player_servers, relationships=relationships)
