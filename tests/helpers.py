"""
Helpers for building tournaments with known results.
"""
from itertools import combinations

from tourney.models import Game
from tourney.progression import record_result

# Third-placed teams: C3 +8, B3 -2, A3 -12 point differential
DISTINCT_THIRDS = {
    'B': {('B3', 'B4'): [(21, 10), (21, 10)]},
    'C': {('C3', 'C4'): [(21, 5), (21, 5)]},
}


def find_match(tournament, team_a, team_b):
    for match in tournament.matches.values():
        if set(match.team_ids()) == {team_a, team_b}:
            return match
    raise KeyError(f"No match between {team_a} and {team_b}")


def play(tournament, team_a, team_b, *games):
    """Record games between two teams. Scores are written from team_a's side."""
    match = find_match(tournament, team_a, team_b)
    swapped = match.home_team_id != team_a
    game_objs = [
        Game(number, b, a) if swapped else Game(number, a, b)
        for number, (a, b) in enumerate(games, start=1)
    ]
    return record_result(tournament, match.id, game_objs)


def play_ladder(tournament, group_id, scores=None):
    """Each team beats every team listed after it in its group.

    Matches default to 2-0 at 21-15; `scores` overrides per (winner, loser).
    """
    scores = scores or {}
    team_ids = tournament.groups[group_id].team_ids
    for winner, loser in combinations(team_ids, 2):
        play(tournament, winner, loser, *scores.get((winner, loser), [(21, 15), (21, 15)]))


def win_knockout(tournament, match_id, home=True):
    """Complete a BO5 knockout match 3-0 for one side."""
    games = [Game(n, 11, 5) if home else Game(n, 5, 11) for n in (1, 2, 3)]
    return record_result(tournament, match_id, games)
