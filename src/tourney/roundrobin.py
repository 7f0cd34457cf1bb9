"""
Group-stage setup: groups from a pools mapping and round-robin fixtures.
"""
import logging
from itertools import combinations
from typing import Dict, List

from .errors import InputInvariantError
from .models import Group, Match, Team, Tournament, required_wins

logger = logging.getLogger(__name__)


def build_groups(pools_data: Dict[str, List[str]]):
    """
    Turn a {group name: [team names]} mapping into Group and Team records.

    Team names double as team ids, so they must be unique across groups.
    """
    if not pools_data:
        raise InputInvariantError("No groups defined")

    groups = []
    teams = []
    seen = {}
    for group_name, team_names in pools_data.items():
        team_names = list(team_names or [])
        if not team_names:
            raise InputInvariantError(f"Group '{group_name}' has no teams", {'group_id': group_name})
        for team_name in team_names:
            if team_name in seen:
                raise InputInvariantError(
                    f"Team '{team_name}' appears in groups '{seen[team_name]}' and '{group_name}'",
                    {'team_id': team_name, 'group_ids': [seen[team_name], group_name]},
                )
            seen[team_name] = group_name
            teams.append(Team(team_name, team_name, group_name))
        groups.append(Group(group_name, group_name, team_names))
    return groups, teams


def generate_group_matches(groups: List[Group], match_format: str = 'BO3') -> List[Match]:
    """Every pair within a group meets once. Ids are '<group>-<n>'."""
    required_wins(match_format)
    matches = []
    for group in groups:
        if len(group.team_ids) < 2:
            logger.warning("Group %s has fewer than 2 teams, no fixtures generated", group.id)
            continue
        for number, (home, away) in enumerate(combinations(group.team_ids, 2), start=1):
            matches.append(Match(f"{group.id}-{number}", home, away, group_id=group.id, format=match_format))
    return matches


def create_tournament(pools_data: Dict[str, List[str]], match_format: str = 'BO3') -> Tournament:
    """Fresh tournament in the group stage with all group fixtures scheduled."""
    groups, teams = build_groups(pools_data)
    matches = generate_group_matches(groups, match_format)
    tournament = Tournament(groups, teams, matches).validate()
    logger.info("Created tournament: %d groups, %d teams, %d group matches",
                len(groups), len(teams), len(matches))
    return tournament
