"""
Score aggregation for group play.

Aggregates are always rebuilt from the completed matches of a group, never
patched incrementally, so replaying or correcting a result cannot leave
stale totals behind.
"""
import logging
from typing import Dict, Iterable, List

from .errors import InputInvariantError
from .models import Group, Match, Tournament

logger = logging.getLogger(__name__)


class TeamAggregate:
    """Group-scoped totals for one team."""

    def __init__(self, team_id, group_id=None):
        self.team_id = team_id
        self.group_id = group_id
        self.matches_played = 0
        self.wins = 0
        self.losses = 0
        self.games_won = 0
        self.games_lost = 0
        self.points_for = 0
        self.points_against = 0

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost

    @property
    def point_differential(self) -> int:
        return self.points_for - self.points_against

    def to_dict(self) -> Dict:
        return {
            'team_id': self.team_id,
            'group_id': self.group_id,
            'matches_played': self.matches_played,
            'wins': self.wins,
            'losses': self.losses,
            'games_won': self.games_won,
            'games_lost': self.games_lost,
            'game_difference': self.game_difference,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'point_differential': self.point_differential,
        }

    def __eq__(self, other):
        return isinstance(other, TeamAggregate) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"TeamAggregate(team_id={self.team_id}, W-L={self.wins}-{self.losses}, "
                f"GD={self.game_difference}, PD={self.point_differential}, PF={self.points_for})")


def compute_group_aggregates(group: Group, matches: Iterable[Match]) -> Dict[str, TeamAggregate]:
    """
    Compute per-team aggregates for a group from its completed matches.

    Matches that are not COMPLETED are ignored. Every member of the group
    gets an entry, even with nothing played yet.

    Raises InputInvariantError for an empty group, a match belonging to a
    different group, a match referencing a team outside the group, or a
    completed match without a winner.
    """
    if not group.team_ids:
        raise InputInvariantError(f"Group '{group.id}' has no teams", {'group_id': group.id})

    aggregates = {team_id: TeamAggregate(team_id, group.id) for team_id in group.team_ids}

    for match in matches:
        if match.group_id != group.id:
            raise InputInvariantError(
                f"Match '{match.id}' does not belong to group '{group.id}'",
                {'match_id': match.id, 'group_id': group.id},
            )
        for team_id in match.team_ids():
            if team_id not in aggregates:
                raise InputInvariantError(
                    f"Match '{match.id}' references team '{team_id}' outside group '{group.id}'",
                    {'match_id': match.id, 'group_id': group.id, 'team_id': team_id},
                )
        if not match.is_completed:
            continue
        if match.winner_id() is None:
            raise InputInvariantError(
                f"Completed match '{match.id}' has no winner "
                f"({match.home_games_won}-{match.away_games_won} in games)",
                {'match_id': match.id},
            )

        home = aggregates[match.home_team_id]
        away = aggregates[match.away_team_id]

        home.matches_played += 1
        away.matches_played += 1
        home.games_won += match.home_games_won
        home.games_lost += match.away_games_won
        away.games_won += match.away_games_won
        away.games_lost += match.home_games_won
        home.points_for += match.home_score
        home.points_against += match.away_score
        away.points_for += match.away_score
        away.points_against += match.home_score

        if match.winner_id() == match.home_team_id:
            home.wins += 1
            away.losses += 1
        else:
            away.wins += 1
            home.losses += 1

    return aggregates


def compute_all_aggregates(tournament: Tournament) -> Dict[str, Dict[str, TeamAggregate]]:
    """Aggregates for every group, keyed by group id then team id."""
    result = {}
    for group_id, group in tournament.groups.items():
        result[group_id] = compute_group_aggregates(group, tournament.group_matches(group_id))
    return result


def recalculate_team_stats(tournament: Tournament) -> List[str]:
    """
    Recompute the cached aggregates of every team from scratch.

    Returns the ids of the teams that were updated.
    """
    updated = []
    for group_aggregates in compute_all_aggregates(tournament).values():
        for team_id, aggregate in group_aggregates.items():
            tournament.teams[team_id].update_aggregates(aggregate)
            updated.append(team_id)
    logger.info("Recalculated stats for %d teams", len(updated))
    return updated
