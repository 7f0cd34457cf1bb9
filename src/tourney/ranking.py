"""
Group ranking.

The tie-break policy is an ordered list of comparators. Each comparator
takes two TeamAggregates and the current RankingPass and returns a negative
number when the first team ranks higher, positive when the second does and
0 when it cannot separate them. The first non-zero answer wins.

Group policy:
1. Wins (desc)
2. Head-to-head, skipped when either team sits in a circular tie
3. Game difference (desc)
4. Point differential (desc)
5. Points for (desc)

Teams still level after all criteria keep the order the caller supplied
them in and are reported as unresolved.
"""
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional, Sequence

from .aggregation import TeamAggregate, compute_group_aggregates
from .head_to_head import HeadToHeadIndex, detect_circular_ties
from .models import Group, Match


class RankingPass:
    """State shared by the comparators during one ranking computation.

    Circular tie detection runs once here, when the pass is created, and is
    reused by every comparison in the pass.
    """

    def __init__(self, aggregates: Dict[str, TeamAggregate], index: Optional[HeadToHeadIndex] = None):
        self.aggregates = aggregates
        self.index = index
        if index is not None:
            self.invalidated = detect_circular_ties(
                index, {team_id: agg.wins for team_id, agg in aggregates.items()}
            )
        else:
            self.invalidated = set()

    def head_to_head(self, team_a, team_b) -> Optional[int]:
        if self.index is None:
            return None
        if team_a in self.invalidated or team_b in self.invalidated:
            return None
        return self.index.outcome(team_a, team_b)


def by_wins(a: TeamAggregate, b: TeamAggregate, ranking_pass: RankingPass) -> int:
    return b.wins - a.wins


def by_head_to_head(a: TeamAggregate, b: TeamAggregate, ranking_pass: RankingPass) -> int:
    outcome = ranking_pass.head_to_head(a.team_id, b.team_id)
    if outcome is None:
        return 0
    return -outcome


def by_game_difference(a: TeamAggregate, b: TeamAggregate, ranking_pass: RankingPass) -> int:
    return b.game_difference - a.game_difference


def by_point_differential(a: TeamAggregate, b: TeamAggregate, ranking_pass: RankingPass) -> int:
    return b.point_differential - a.point_differential


def by_points_for(a: TeamAggregate, b: TeamAggregate, ranking_pass: RankingPass) -> int:
    return b.points_for - a.points_for


GROUP_CRITERIA = (by_wins, by_head_to_head, by_game_difference, by_point_differential, by_points_for)

# Third-placed teams come from different groups and never met
WILDCARD_CRITERIA = (by_wins, by_game_difference, by_point_differential, by_points_for)


def compare(a: TeamAggregate, b: TeamAggregate, criteria: Sequence, ranking_pass: RankingPass) -> int:
    for criterion in criteria:
        result = criterion(a, b, ranking_pass)
        if result:
            return result
    return 0


def rank_aggregates(aggregates: Iterable[TeamAggregate], criteria: Sequence,
                    ranking_pass: RankingPass) -> List[TeamAggregate]:
    """Sort aggregates best first. The sort is stable, so exact ties keep input order."""
    return sorted(
        aggregates,
        key=cmp_to_key(lambda a, b: compare(a, b, criteria, ranking_pass)),
    )


def find_unresolved_ties(ordered: List[TeamAggregate], criteria: Sequence,
                         ranking_pass: RankingPass) -> List[List]:
    """Runs of consecutive teams that no criterion separates."""
    ties = []
    current = []
    for previous, team in zip(ordered, ordered[1:]):
        if compare(previous, team, criteria, ranking_pass) == 0:
            if not current:
                current = [previous.team_id]
            current.append(team.team_id)
        elif current:
            ties.append(current)
            current = []
    if current:
        ties.append(current)
    return ties


class StandingRow:
    def __init__(self, position: int, aggregate: TeamAggregate, head_to_head_invalidated: bool = False):
        self.position = position
        self.aggregate = aggregate
        self.head_to_head_invalidated = head_to_head_invalidated

    @property
    def team_id(self):
        return self.aggregate.team_id

    def to_dict(self) -> Dict:
        return {
            'position': self.position,
            'head_to_head_invalidated': self.head_to_head_invalidated,
            **self.aggregate.to_dict(),
        }

    def __repr__(self):
        return f"StandingRow({self.position}. {self.team_id})"


class GroupStandings:
    """Ranked table for one group."""

    def __init__(self, group_id, rows: List[StandingRow], circular_ties=None,
                 unresolved_ties=None, head_to_head=None):
        self.group_id = group_id
        self.rows = rows
        self.circular_ties = set(circular_ties or ())
        self.unresolved_ties = list(unresolved_ties or [])
        self.head_to_head = head_to_head

    def team_ids(self) -> List:
        return [row.team_id for row in self.rows]

    def at(self, position: int) -> Optional[StandingRow]:
        """Row at a 1-based position, or None if the group is smaller."""
        if 1 <= position <= len(self.rows):
            return self.rows[position - 1]
        return None

    def to_dict(self) -> Dict:
        return {
            'group_id': self.group_id,
            'teams': [row.to_dict() for row in self.rows],
            'circular_ties': sorted(self.circular_ties),
            'unresolved_ties': [list(t) for t in self.unresolved_ties],
        }

    def __repr__(self):
        return f"GroupStandings({self.group_id}: {self.team_ids()})"


def rank_group(group: Group, matches: Iterable[Match], criteria: Sequence = GROUP_CRITERIA) -> GroupStandings:
    """
    Rank a group's teams from its matches.

    A fresh aggregate set, head-to-head index and circular tie check are
    built for every call, so the result always reflects the current win
    counts.
    """
    matches = list(matches)
    aggregates = compute_group_aggregates(group, matches)
    index = HeadToHeadIndex(matches)
    ranking_pass = RankingPass(aggregates, index)

    # Group membership order is the final fallback
    ordered = rank_aggregates(
        [aggregates[team_id] for team_id in group.team_ids], criteria, ranking_pass
    )
    rows = [
        StandingRow(i + 1, agg, agg.team_id in ranking_pass.invalidated)
        for i, agg in enumerate(ordered)
    ]
    return GroupStandings(
        group.id,
        rows,
        circular_ties=ranking_pass.invalidated,
        unresolved_ties=find_unresolved_ties(ordered, criteria, ranking_pass),
        head_to_head=index,
    )


def rank_wildcards(aggregates: Iterable[TeamAggregate]) -> List[TeamAggregate]:
    """Rank teams from different groups against each other (no head-to-head)."""
    aggregates = list(aggregates)
    ranking_pass = RankingPass({agg.team_id: agg for agg in aggregates})
    return rank_aggregates(aggregates, WILDCARD_CRITERIA, ranking_pass)
