"""
Plain records for a group + knockout cup.

Matches are the source of truth. The aggregates cached on Team are derived
from completed matches and are only ever replaced wholesale.
"""
import copy
from datetime import datetime
from typing import Dict, List, Optional

from .errors import InputInvariantError


# Match formats and the number of games a side must win to take the match
FORMAT_REQUIRED_WINS = {
    'BO3': 2,
    'BO5': 3,
}

SCHEDULED = 'SCHEDULED'
IN_PROGRESS = 'IN_PROGRESS'
COMPLETED = 'COMPLETED'
CANCELLED = 'CANCELLED'
MATCH_STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED)

ROUND_OF_16 = 'ROUND_OF_16'
QUARTER_FINAL = 'QUARTER_FINAL'
SEMI_FINAL = 'SEMI_FINAL'
FINAL = 'FINAL'
THIRD_PLACE = 'THIRD_PLACE'

GROUP_STAGE = 'GROUP_STAGE'
KNOCKOUT_STAGE = 'KNOCKOUT_STAGE'
COMPLETE = 'COMPLETE'
STAGE_ORDER = (GROUP_STAGE, KNOCKOUT_STAGE, COMPLETE)


def get_round_tag(teams_in_round: int) -> str:
    """Get the round tag for a knockout round with the given number of teams."""
    if teams_in_round == 2:
        return FINAL
    elif teams_in_round == 4:
        return SEMI_FINAL
    elif teams_in_round == 8:
        return QUARTER_FINAL
    return f"ROUND_OF_{teams_in_round}"


def round_size(round_tag: str) -> int:
    """Inverse of get_round_tag: number of teams playing in the round."""
    if round_tag in (FINAL, THIRD_PLACE):
        return 2
    if round_tag == SEMI_FINAL:
        return 4
    if round_tag == QUARTER_FINAL:
        return 8
    if round_tag.startswith('ROUND_OF_'):
        return int(round_tag[len('ROUND_OF_'):])
    raise InputInvariantError(f"Unknown knockout round '{round_tag}'", {'round': round_tag})


def required_wins(match_format: str) -> int:
    """Games a side needs to win a match of the given format."""
    if match_format not in FORMAT_REQUIRED_WINS:
        raise InputInvariantError(
            f"Unknown match format '{match_format}'",
            {'format': match_format, 'allowed': sorted(FORMAT_REQUIRED_WINS)},
        )
    return FORMAT_REQUIRED_WINS[match_format]


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class Team:
    def __init__(self, id, name, group_id=None):
        self.id = id
        self.name = name
        self.group_id = group_id
        self.reset_aggregates()

    def reset_aggregates(self):
        self.matches_played = 0
        self.wins = 0
        self.losses = 0
        self.points_for = 0
        self.points_against = 0
        self.games_won = 0
        self.games_lost = 0

    def update_aggregates(self, aggregate):
        """Replace the cached aggregates with a freshly computed TeamAggregate."""
        self.matches_played = aggregate.matches_played
        self.wins = aggregate.wins
        self.losses = aggregate.losses
        self.points_for = aggregate.points_for
        self.points_against = aggregate.points_against
        self.games_won = aggregate.games_won
        self.games_lost = aggregate.games_lost

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'group_id': self.group_id,
            'matches_played': self.matches_played,
            'wins': self.wins,
            'losses': self.losses,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'games_won': self.games_won,
            'games_lost': self.games_lost,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Team':
        team = cls(data['id'], data.get('name', data['id']), data.get('group_id'))
        team.matches_played = data.get('matches_played', 0)
        team.wins = data.get('wins', 0)
        team.losses = data.get('losses', 0)
        team.points_for = data.get('points_for', 0)
        team.points_against = data.get('points_against', 0)
        team.games_won = data.get('games_won', 0)
        team.games_lost = data.get('games_lost', 0)
        return team

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, group_id={self.group_id})"


class Group:
    def __init__(self, id, name=None, team_ids=None):
        self.id = id
        self.name = name or id
        self.team_ids = list(team_ids or [])
        if len(set(self.team_ids)) != len(self.team_ids):
            duplicates = sorted({t for t in self.team_ids if self.team_ids.count(t) > 1})
            raise InputInvariantError(
                f"Group '{id}' lists a team more than once",
                {'group_id': id, 'team_ids': duplicates},
            )

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'team_ids': list(self.team_ids)}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Group':
        return cls(data['id'], data.get('name'), data.get('team_ids', []))

    def __repr__(self):
        return f"Group(id={self.id}, name={self.name}, team_ids={self.team_ids})"


class Game:
    def __init__(self, number, home_score, away_score, status=COMPLETED):
        self.number = number
        self.home_score = home_score
        self.away_score = away_score
        self.status = status

    @property
    def winner_side(self) -> Optional[str]:
        """'home', 'away' or None for an unfinished or level game."""
        if self.status != COMPLETED:
            return None
        if self.home_score > self.away_score:
            return 'home'
        if self.away_score > self.home_score:
            return 'away'
        return None

    def to_dict(self) -> Dict:
        return {
            'number': self.number,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Game':
        return cls(
            data['number'],
            data.get('home_score', 0),
            data.get('away_score', 0),
            data.get('status', COMPLETED),
        )

    def __repr__(self):
        return f"Game(number={self.number}, score={self.home_score}-{self.away_score}, status={self.status})"


class Match:
    def __init__(self, id, home_team_id, away_team_id, group_id=None, format='BO3',
                 status=SCHEDULED, home_games_won=0, away_games_won=0,
                 home_score=0, away_score=0, scheduled_at=None, round=None,
                 round_order=None, advances_to=None, loser_advances_to=None, games=None):
        self.id = id
        self.home_team_id = home_team_id
        self.away_team_id = away_team_id
        self.group_id = group_id
        self.format = format
        self.status = status
        self.home_games_won = home_games_won
        self.away_games_won = away_games_won
        self.home_score = home_score
        self.away_score = away_score
        self.scheduled_at = scheduled_at
        self.round = round
        self.round_order = round_order
        self.advances_to = advances_to
        self.loser_advances_to = loser_advances_to
        self.games = list(games or [])
        required_wins(format)
        if status not in MATCH_STATUSES:
            raise InputInvariantError(
                f"Match '{id}' has unknown status '{status}'",
                {'match_id': id, 'status': status},
            )

    @property
    def is_knockout(self) -> bool:
        return self.group_id is None

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED

    @property
    def is_placeholder(self) -> bool:
        """True while either participant is still waiting on an earlier round."""
        return self.home_team_id is None or self.away_team_id is None

    @property
    def required_wins(self) -> int:
        return required_wins(self.format)

    def team_ids(self) -> List:
        return [self.home_team_id, self.away_team_id]

    def winner_id(self):
        """Winning team id of a completed match, otherwise None."""
        if not self.is_completed:
            return None
        if self.home_games_won > self.away_games_won:
            return self.home_team_id
        if self.away_games_won > self.home_games_won:
            return self.away_team_id
        return None

    def loser_id(self):
        winner = self.winner_id()
        if winner is None:
            return None
        return self.away_team_id if winner == self.home_team_id else self.home_team_id

    def apply_games(self, games: List[Game]):
        """
        Replace this match's games and recompute the derived result.

        Games-won counts and point totals come from completed games only.
        The match becomes COMPLETED exactly when one side reaches the
        format's required wins.
        """
        if self.is_placeholder:
            raise InputInvariantError(
                f"Match '{self.id}' is still waiting for its participants",
                {'match_id': self.id},
            )
        if self.status == CANCELLED:
            raise InputInvariantError(
                f"Match '{self.id}' is cancelled",
                {'match_id': self.id},
            )

        numbers = [g.number for g in games]
        if len(set(numbers)) != len(numbers) or any(
                not isinstance(n, int) or n < 1 for n in numbers):
            raise InputInvariantError(
                f"Match '{self.id}' game numbers must be unique and start at 1",
                {'match_id': self.id, 'game_numbers': numbers},
            )

        home_won = 0
        away_won = 0
        home_points = 0
        away_points = 0
        for game in sorted(games, key=lambda g: g.number):
            if game.status not in MATCH_STATUSES:
                raise InputInvariantError(
                    f"Game {game.number} of match '{self.id}' has unknown status '{game.status}'",
                    {'match_id': self.id, 'game_number': game.number},
                )
            if game.status != COMPLETED:
                continue
            if game.home_score < 0 or game.away_score < 0:
                raise InputInvariantError(
                    f"Game {game.number} of match '{self.id}' has a negative score",
                    {'match_id': self.id, 'game_number': game.number},
                )
            side = game.winner_side
            if side == 'home':
                home_won += 1
            elif side == 'away':
                away_won += 1
            home_points += game.home_score
            away_points += game.away_score

        needed = self.required_wins
        if home_won > needed or away_won > needed or (home_won == needed and away_won == needed):
            raise InputInvariantError(
                f"Match '{self.id}' ({self.format}) cannot end {home_won}-{away_won}",
                {'match_id': self.id, 'home_games_won': home_won, 'away_games_won': away_won},
            )

        self.games = sorted(games, key=lambda g: g.number)
        self.home_games_won = home_won
        self.away_games_won = away_won
        self.home_score = home_points
        self.away_score = away_points
        if home_won == needed or away_won == needed:
            self.status = COMPLETED
        elif games:
            self.status = IN_PROGRESS
        else:
            self.status = SCHEDULED
        return self

    def clear_result(self):
        self.games = []
        self.home_games_won = 0
        self.away_games_won = 0
        self.home_score = 0
        self.away_score = 0
        self.status = SCHEDULED

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'group_id': self.group_id,
            'home_team_id': self.home_team_id,
            'away_team_id': self.away_team_id,
            'format': self.format,
            'status': self.status,
            'home_games_won': self.home_games_won,
            'away_games_won': self.away_games_won,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'round': self.round,
            'round_order': self.round_order,
            'advances_to': self.advances_to,
            'loser_advances_to': self.loser_advances_to,
            'games': [g.to_dict() for g in self.games],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            data['id'],
            data.get('home_team_id'),
            data.get('away_team_id'),
            group_id=data.get('group_id'),
            format=data.get('format', 'BO3'),
            status=data.get('status', SCHEDULED),
            home_games_won=data.get('home_games_won', 0),
            away_games_won=data.get('away_games_won', 0),
            home_score=data.get('home_score', 0),
            away_score=data.get('away_score', 0),
            scheduled_at=_parse_datetime(data.get('scheduled_at')),
            round=data.get('round'),
            round_order=data.get('round_order'),
            advances_to=data.get('advances_to'),
            loser_advances_to=data.get('loser_advances_to'),
            games=[Game.from_dict(g) for g in data.get('games', [])],
        )

    def __repr__(self):
        where = self.group_id if self.group_id else f"{self.round}#{self.round_order}"
        return (f"Match(id={self.id}, {where}, {self.home_team_id} vs {self.away_team_id}, "
                f"{self.home_games_won}-{self.away_games_won}, status={self.status})")


class TournamentStage:
    """
    Progress record for the whole cup.

    Only the stage progression functions produce new values of this record;
    it never moves backwards except through a full reset.
    """

    def __init__(self, current_stage=GROUP_STAGE, group_stage_completed=False,
                 knockout_generated=False, knockout_round=None, champion_id=None):
        if current_stage not in STAGE_ORDER:
            raise InputInvariantError(
                f"Unknown stage '{current_stage}'",
                {'current_stage': current_stage},
            )
        self.current_stage = current_stage
        self.group_stage_completed = group_stage_completed
        self.knockout_generated = knockout_generated
        self.knockout_round = knockout_round
        self.champion_id = champion_id

    def progress_key(self):
        """Sortable position of this record in the cup lifecycle."""
        stage_index = STAGE_ORDER.index(self.current_stage)
        round_index = 0
        if self.knockout_round is not None:
            # Larger rounds are played earlier
            round_index = 1000 - round_size(self.knockout_round)
        return (stage_index, round_index, self.group_stage_completed, self.knockout_generated)

    def copy(self) -> 'TournamentStage':
        return copy.copy(self)

    def to_dict(self) -> Dict:
        return {
            'current_stage': self.current_stage,
            'group_stage_completed': self.group_stage_completed,
            'knockout_generated': self.knockout_generated,
            'knockout_round': self.knockout_round,
            'champion_id': self.champion_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'TournamentStage':
        data = data or {}
        return cls(
            data.get('current_stage', GROUP_STAGE),
            data.get('group_stage_completed', False),
            data.get('knockout_generated', False),
            data.get('knockout_round'),
            data.get('champion_id'),
        )

    def __eq__(self, other):
        return isinstance(other, TournamentStage) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"TournamentStage(current_stage={self.current_stage}, "
                f"knockout_round={self.knockout_round}, "
                f"group_stage_completed={self.group_stage_completed}, "
                f"knockout_generated={self.knockout_generated})")


class Tournament:
    """In-memory snapshot of every team, group, match and the stage record."""

    def __init__(self, groups=None, teams=None, matches=None, stage=None):
        self.groups = {g.id: g for g in (groups or [])}
        self.teams = {t.id: t for t in (teams or [])}
        self.matches = {m.id: m for m in (matches or [])}
        self.stage = stage or TournamentStage()

    def validate(self):
        """Check membership and match references; raises InputInvariantError."""
        owner = {}
        for group in self.groups.values():
            if not group.team_ids:
                raise InputInvariantError(
                    f"Group '{group.id}' has no teams",
                    {'group_id': group.id},
                )
            for team_id in group.team_ids:
                if team_id not in self.teams:
                    raise InputInvariantError(
                        f"Group '{group.id}' references unknown team '{team_id}'",
                        {'group_id': group.id, 'team_id': team_id},
                    )
                if team_id in owner:
                    raise InputInvariantError(
                        f"Team '{team_id}' belongs to groups '{owner[team_id]}' and '{group.id}'",
                        {'team_id': team_id, 'group_ids': [owner[team_id], group.id]},
                    )
                owner[team_id] = group.id

        for team in self.teams.values():
            if owner.get(team.id) != team.group_id:
                raise InputInvariantError(
                    f"Team '{team.id}' claims group '{team.group_id}' but is listed in "
                    f"'{owner.get(team.id)}'",
                    {'team_id': team.id, 'group_id': team.group_id},
                )

        for match in self.matches.values():
            if match.is_completed and match.winner_id() is None:
                raise InputInvariantError(
                    f"Completed match '{match.id}' has no winner",
                    {'match_id': match.id, 'games': [match.home_games_won, match.away_games_won]},
                )
            if match.is_knockout:
                if match.round is None:
                    raise InputInvariantError(
                        f"Knockout match '{match.id}' has no round",
                        {'match_id': match.id},
                    )
                for team_id in match.team_ids():
                    if team_id is not None and team_id not in self.teams:
                        raise InputInvariantError(
                            f"Match '{match.id}' references unknown team '{team_id}'",
                            {'match_id': match.id, 'team_id': team_id},
                        )
                continue
            group = self.groups.get(match.group_id)
            if group is None:
                raise InputInvariantError(
                    f"Match '{match.id}' references unknown group '{match.group_id}'",
                    {'match_id': match.id, 'group_id': match.group_id},
                )
            for team_id in match.team_ids():
                if team_id not in group.team_ids:
                    raise InputInvariantError(
                        f"Match '{match.id}' references team '{team_id}' outside group '{group.id}'",
                        {'match_id': match.id, 'group_id': group.id, 'team_id': team_id},
                    )
            if match.home_team_id == match.away_team_id:
                raise InputInvariantError(
                    f"Match '{match.id}' pits team '{match.home_team_id}' against itself",
                    {'match_id': match.id},
                )
        return self

    def get_match(self, match_id) -> Match:
        if match_id not in self.matches:
            raise InputInvariantError(f"Unknown match '{match_id}'", {'match_id': match_id})
        return self.matches[match_id]

    def group_matches(self, group_id=None) -> List[Match]:
        return [
            m for m in self.matches.values()
            if not m.is_knockout and (group_id is None or m.group_id == group_id)
        ]

    def knockout_matches(self, round_tag=None) -> List[Match]:
        matches = [
            m for m in self.matches.values()
            if m.is_knockout and (round_tag is None or m.round == round_tag)
        ]
        return sorted(matches, key=lambda m: (m.round_order or 0, m.id))

    def copy(self) -> 'Tournament':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict:
        return {
            'groups': [g.to_dict() for g in self.groups.values()],
            'teams': [t.to_dict() for t in self.teams.values()],
            'matches': [m.to_dict() for m in self.matches.values()],
            'stage': self.stage.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'Tournament':
        data = data or {}
        return cls(
            groups=[Group.from_dict(g) for g in data.get('groups', [])],
            teams=[Team.from_dict(t) for t in data.get('teams', [])],
            matches=[Match.from_dict(m) for m in data.get('matches', [])],
            stage=TournamentStage.from_dict(data.get('stage')),
        )

    def __repr__(self):
        return (f"Tournament(groups={len(self.groups)}, teams={len(self.teams)}, "
                f"matches={len(self.matches)}, stage={self.stage.current_stage})")
