"""
Head-to-head lookup and circular tie detection.

Head-to-head only means something when it orders the tied teams without
contradiction. When three teams on the same win count beat each other in a
circle (A over B, B over C, C over A), none of the three may use it for
this ranking pass.
"""
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Set

from .models import Match


class HeadToHeadIndex:
    """Outcome lookup for ordered team pairs within one group.

    outcome(a, b) is 1 when a beat b, -1 when b beat a and None when they
    have not met (or have split their meetings evenly).
    """

    def __init__(self, matches: Iterable[Match]):
        net = {}
        for match in matches:
            if not match.is_completed:
                continue
            winner = match.winner_id()
            if winner is None:
                continue
            loser = match.loser_id()
            net[(winner, loser)] = net.get((winner, loser), 0) + 1
            net[(loser, winner)] = net.get((loser, winner), 0) - 1

        self._outcomes = {}
        for pair, balance in net.items():
            if balance > 0:
                self._outcomes[pair] = 1
            elif balance < 0:
                self._outcomes[pair] = -1

    def outcome(self, team_a, team_b) -> Optional[int]:
        return self._outcomes.get((team_a, team_b))

    def beat(self, team_a, team_b) -> bool:
        return self.outcome(team_a, team_b) == 1


def find_cycles(index: HeadToHeadIndex, team_ids: List) -> List[tuple]:
    """All 3-cycles among the given teams, as (a, b, c) in input order."""
    cycles = []
    for a, b, c in combinations(team_ids, 3):
        ab = index.outcome(a, b)
        bc = index.outcome(b, c)
        ca = index.outcome(c, a)
        if ab is None or bc is None or ca is None:
            continue
        # a->b->c->a or the reverse direction
        if ab == bc == ca:
            cycles.append((a, b, c))
    return cycles


def detect_circular_ties(index: HeadToHeadIndex, wins_by_team: Dict) -> Set:
    """
    Teams whose head-to-head results are invalidated for this ranking pass.

    Only buckets of three or more teams sharing a win count are inspected;
    every team in a detected 3-cycle is returned.
    """
    buckets = {}
    for team_id, wins in wins_by_team.items():
        buckets.setdefault(wins, []).append(team_id)

    invalidated = set()
    for wins in sorted(buckets):
        tied = buckets[wins]
        if len(tied) < 3:
            continue
        for cycle in find_cycles(index, tied):
            invalidated.update(cycle)
    return invalidated
