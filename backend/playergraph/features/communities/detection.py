"""
Community detection over the strong-edge subgraph.

Each player with at least one strong neighbour is assigned the
lexicographically smallest name among itself and its strong neighbours.
This is a one-hop approximation of connected components: players linked
only through a chain of strong edges can land in different communities.
:func:`union_find_components` computes the exact components for comparison
but is not used to assign communities.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Set

from playergraph.utils.statistics import top_n

from .schemas import PlayerCommunity

CORE_MEMBER_COUNT = 5
PRIMARY_SERVER_COUNT = 5


class StrongEdge(NamedTuple):
    """A PLAYED_WITH edge at or above the minimum session threshold."""

    player1: str
    player2: str
    session_count: int
    first_played: Optional[datetime] = None
    last_played: Optional[datetime] = None


def assign_community_ids(edges: Iterable[StrongEdge]) -> Dict[str, str]:
    """Map every player touching a strong edge to its one-hop leader."""
    leaders: Dict[str, str] = {}
    for edge in edges:
        for player, neighbour in ((edge.player1, edge.player2), (edge.player2, edge.player1)):
            current = leaders.get(player, player)
            leaders[player] = min(current, neighbour)
    return leaders


def cohesion_score(member_count: int, internal_edges: int) -> float:
    """Edge density ``2e / (n (n - 1))``; 0.0 for fewer than two members."""
    if member_count < 2:
        return 0.0
    return min(1.0, 2.0 * internal_edges / (member_count * (member_count - 1)))


def union_find_components(edges: Iterable[StrongEdge]) -> List[Set[str]]:
    """Exact connected components, smallest-name component first."""
    parent: Dict[str, str] = {}

    def find(node: str) -> str:
        root = node
        while parent[root] != root:
            root = parent[root]
        while parent[node] != root:
            parent[node], node = root, parent[node]
        return root

    for edge in edges:
        for node in (edge.player1, edge.player2):
            parent.setdefault(node, node)
        root1, root2 = find(edge.player1), find(edge.player2)
        if root1 != root2:
            # Smaller name becomes the root so roots are deterministic.
            if root2 < root1:
                root1, root2 = root2, root1
            parent[root2] = root1

    components: Dict[str, Set[str]] = defaultdict(set)
    for node in parent:
        components[find(node)].add(node)
    return [components[root] for root in sorted(components)]


def community_id_for(leader: str) -> str:
    return f"community:{leader}"


def build_communities(
    edges: List[StrongEdge],
    server_play_counts: Mapping[str, Mapping[str, int]],
    min_size: int = 3,
) -> List[PlayerCommunity]:
    """
    Group players by leader and describe every group of at least ``min_size``.

    :param edges: Strong edges of the co-play graph
    :param server_play_counts: ``{player: {server_guid: session_count}}``
    :param min_size: Smallest community kept
    :returns: Communities ordered by size, then id
    """
    leaders = assign_community_ids(edges)

    groups: Dict[str, Set[str]] = defaultdict(set)
    for player, leader in leaders.items():
        groups[leader].add(player)

    communities: List[PlayerCommunity] = []
    for leader, members in groups.items():
        if len(members) < min_size:
            continue

        internal = [e for e in edges if e.player1 in members and e.player2 in members]

        degree: Dict[str, int] = {member: 0 for member in members}
        for edge in internal:
            degree[edge.player1] += 1
            degree[edge.player2] += 1

        server_totals: Dict[str, int] = defaultdict(int)
        for member in members:
            for server_guid, count in server_play_counts.get(member, {}).items():
                server_totals[server_guid] += count

        first_dates = [e.first_played for e in internal if e.first_played is not None]
        last_dates = [e.last_played for e in internal if e.last_played is not None]
        internal_sessions = sum(e.session_count for e in internal)

        communities.append(
            PlayerCommunity(
                id=community_id_for(leader),
                name=f"Community around {leader}",
                members=sorted(members),
                core_members=top_n(degree, CORE_MEMBER_COUNT),
                primary_servers=top_n(server_totals, PRIMARY_SERVER_COUNT),
                formation_date=min(first_dates) if first_dates else None,
                last_active_date=max(last_dates) if last_dates else None,
                avg_sessions_per_pair=(
                    internal_sessions / len(internal) if internal else 0.0
                ),
                cohesion_score=cohesion_score(len(members), len(internal)),
            )
        )

    communities.sort(key=lambda c: (-len(c.members), c.id))
    return communities
