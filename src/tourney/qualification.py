"""
Knockout qualification.

The top `automatic_per_group` teams of every group qualify directly. The
next-placed team of each group goes into a wildcard pool that is ranked
across groups (head-to-head does not apply there) and the best teams fill
the remaining slots.

If the last wildcard slot falls inside an exact tie, nobody in the tie is
picked automatically: the result is flagged for manual resolution and the
operator's choice is fed back in through `resolution`.
"""
import logging
from typing import Dict, List, Optional, Sequence

from .errors import InputInvariantError
from .models import Tournament
from .ranking import (
    GroupStandings,
    RankingPass,
    WILDCARD_CRITERIA,
    compare,
    rank_group,
    rank_wildcards,
)

logger = logging.getLogger(__name__)


class QualificationResult:
    def __init__(self, standings: Dict[str, GroupStandings], automatic: List, wildcard_pool: List,
                 wildcards: List, tied_team_ids: List, open_slots: int, group_of: Dict,
                 group_boundary_ties: Optional[Dict[str, List]] = None):
        self.standings = standings
        self.automatic = automatic
        self.wildcard_pool = wildcard_pool
        self.wildcards = wildcards
        self.tied_team_ids = tied_team_ids
        self.open_slots = open_slots
        self.group_of = group_of
        self.group_boundary_ties = group_boundary_ties or {}

    @property
    def needs_manual_resolution(self) -> bool:
        return bool(self.tied_team_ids)

    @property
    def qualified(self) -> List:
        """Automatic qualifiers first (group order), then wildcards (rank order)."""
        return self.automatic + self.wildcards

    def origin_groups(self) -> Dict:
        return {team_id: self.group_of[team_id] for team_id in self.qualified}

    def to_dict(self) -> Dict:
        return {
            'qualified': list(self.qualified),
            'automatic': list(self.automatic),
            'wildcards': list(self.wildcards),
            'wildcard_pool': list(self.wildcard_pool),
            'needs_manual_resolution': self.needs_manual_resolution,
            'tied_team_ids': list(self.tied_team_ids),
            'open_slots': self.open_slots,
            'group_boundary_ties': {k: list(v) for k, v in self.group_boundary_ties.items()},
        }

    def __repr__(self):
        return (f"QualificationResult(qualified={self.qualified}, "
                f"needs_manual_resolution={self.needs_manual_resolution})")


def _tied_block(ranked, index: int, ranking_pass: RankingPass) -> range:
    """Index range of the run of exactly-equal teams containing ranked[index]."""
    start = index
    while start > 0 and compare(ranked[start - 1], ranked[index], WILDCARD_CRITERIA, ranking_pass) == 0:
        start -= 1
    end = index + 1
    while end < len(ranked) and compare(ranked[index], ranked[end], WILDCARD_CRITERIA, ranking_pass) == 0:
        end += 1
    return range(start, end)


def select_qualifiers(tournament: Tournament, total_qualifiers: int = 8, automatic_per_group: int = 2,
                      resolution: Optional[Sequence] = None) -> QualificationResult:
    """
    Pick the knockout field from the current group standings.

    Args:
        tournament: snapshot holding groups and group matches
        total_qualifiers: size of the knockout field
        automatic_per_group: direct qualifiers per group
        resolution: team ids chosen by an operator to break a wildcard tie

    Returns:
        QualificationResult. When `needs_manual_resolution` is set the
        qualified list is short by `open_slots` teams.

    Raises:
        InputInvariantError if the groups cannot supply the requested field
        or the resolution does not match the reported tie.
    """
    if not tournament.groups:
        raise InputInvariantError("No groups defined")

    standings = {}
    automatic = []
    pool = []
    group_of = {}
    group_boundary_ties = {}

    for group_id, group in tournament.groups.items():
        table = rank_group(group, tournament.group_matches(group_id))
        standings[group_id] = table
        if len(table.rows) < automatic_per_group:
            raise InputInvariantError(
                f"Group '{group_id}' has {len(table.rows)} teams, "
                f"{automatic_per_group} are needed to qualify directly",
                {'group_id': group_id, 'teams': len(table.rows)},
            )
        for row in table.rows:
            group_of[row.team_id] = group_id
        automatic.extend(table.team_ids()[:automatic_per_group])

        candidate = table.at(automatic_per_group + 1)
        if candidate is not None:
            pool.append(candidate.aggregate)
            for tie in table.unresolved_ties:
                last_direct = table.at(automatic_per_group).team_id
                if last_direct in tie and candidate.team_id in tie:
                    group_boundary_ties[group_id] = list(tie)
                    logger.warning(
                        "Group %s: teams %s are level on every criterion across the direct "
                        "qualification line", group_id, tie,
                    )

    slots = total_qualifiers - len(automatic)
    if slots < 0:
        raise InputInvariantError(
            f"{len(automatic)} automatic qualifiers exceed the field of {total_qualifiers}",
            {'automatic': len(automatic), 'total_qualifiers': total_qualifiers},
        )
    if slots > len(pool):
        raise InputInvariantError(
            f"{slots} wildcard slots but only {len(pool)} wildcard candidates",
            {'slots': slots, 'candidates': len(pool)},
        )

    ranked = rank_wildcards(pool)
    ranked_ids = [agg.team_id for agg in ranked]
    ranking_pass = RankingPass({agg.team_id: agg for agg in ranked})

    wildcards = ranked_ids[:slots]
    tied = []
    open_slots = 0
    if 0 < slots < len(ranked):
        last_in = slots - 1
        if compare(ranked[last_in], ranked[slots], WILDCARD_CRITERIA, ranking_pass) == 0:
            block = _tied_block(ranked, last_in, ranking_pass)
            tied = [ranked_ids[i] for i in block]
            wildcards = ranked_ids[:block.start]
            open_slots = slots - block.start

    if resolution is not None:
        resolution = list(resolution)
        if not tied:
            raise InputInvariantError(
                "There is no wildcard tie to resolve",
                {'selected_team_ids': resolution},
            )
        if len(resolution) != open_slots or len(set(resolution)) != len(resolution):
            raise InputInvariantError(
                f"Exactly {open_slots} distinct team(s) must be selected from the tie",
                {'selected_team_ids': resolution, 'tied_team_ids': tied, 'slots': open_slots},
            )
        outsiders = [team_id for team_id in resolution if team_id not in tied]
        if outsiders:
            raise InputInvariantError(
                f"Selected teams {outsiders} are not part of the wildcard tie",
                {'selected_team_ids': resolution, 'tied_team_ids': tied},
            )
        logger.info("Wildcard tie %s resolved manually in favour of %s", tied, resolution)
        wildcards = wildcards + [team_id for team_id in tied if team_id in resolution]
        tied = []
        open_slots = 0
    elif tied:
        logger.warning("Wildcard tie between %s for %d slot(s) needs manual resolution", tied, open_slots)

    return QualificationResult(
        standings=standings,
        automatic=automatic,
        wildcard_pool=ranked_ids,
        wildcards=wildcards,
        tied_team_ids=tied,
        open_slots=open_slots,
        group_of=group_of,
        group_boundary_ties=group_boundary_ties,
    )
