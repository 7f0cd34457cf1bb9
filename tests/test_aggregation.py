"""
Tests for score aggregation.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.aggregation import compute_all_aggregates, compute_group_aggregates, recalculate_team_stats
from tourney.errors import InputInvariantError
from tourney.models import Game, Group, Match

from helpers import play


class TestComputeGroupAggregates:
    """Tests for per-group totals."""

    def test_ladder_totals(self, finished_cup):
        """Test totals of a fully played group."""
        group = finished_cup.groups['A']
        aggregates = compute_group_aggregates(group, finished_cup.group_matches('A'))
        top = aggregates['A1']
        assert top.matches_played == 3
        assert top.wins == 3
        assert top.losses == 0
        assert top.games_won == 6
        assert top.games_lost == 0
        assert top.points_for == 126
        assert top.points_against == 90
        assert aggregates['A3'].point_differential == -12

    def test_played_equals_wins_plus_losses(self, finished_cup):
        """Test every completed match gives exactly one win and one loss."""
        for group_aggregates in compute_all_aggregates(finished_cup).values():
            for aggregate in group_aggregates.values():
                assert aggregate.matches_played == aggregate.wins + aggregate.losses

    def test_idempotent(self, finished_cup):
        """Test recomputing from the same matches gives identical aggregates."""
        group = finished_cup.groups['B']
        first = compute_group_aggregates(group, finished_cup.group_matches('B'))
        second = compute_group_aggregates(group, finished_cup.group_matches('B'))
        assert first == second

    def test_incomplete_matches_ignored(self, cup):
        """Test matches that are not completed contribute nothing."""
        match = cup.group_matches('A')[0]
        match.apply_games([Game(1, 21, 15)])
        aggregates = compute_group_aggregates(cup.groups['A'], cup.group_matches('A'))
        assert all(a.matches_played == 0 for a in aggregates.values())

    def test_every_member_listed(self, cup):
        """Test teams with no completed match still get an entry."""
        aggregates = compute_group_aggregates(cup.groups['C'], cup.group_matches('C'))
        assert sorted(aggregates) == ['C1', 'C2', 'C3', 'C4']

    def test_empty_group(self):
        """Test an empty group is rejected."""
        with pytest.raises(InputInvariantError):
            compute_group_aggregates(Group('Z'), [])

    def test_foreign_match(self, cup):
        """Test a match from another group is rejected."""
        with pytest.raises(InputInvariantError):
            compute_group_aggregates(cup.groups['A'], cup.group_matches('B'))

    def test_unknown_team(self):
        """Test a match naming a team outside the group is rejected."""
        group = Group('A', team_ids=['X', 'Y'])
        with pytest.raises(InputInvariantError):
            compute_group_aggregates(group, [Match('m1', 'X', 'Q', group_id='A')])

    def test_completed_match_without_winner(self):
        """Test a completed match level on games is rejected, not credited to either side."""
        group = Group('G', team_ids=['H', 'A'])
        match = Match('m1', 'H', 'A', group_id='G', status='COMPLETED',
                      home_games_won=1, away_games_won=1, home_score=36, away_score=36)
        with pytest.raises(InputInvariantError) as exc:
            compute_group_aggregates(group, [match])
        assert exc.value.details['match_id'] == 'm1'


class TestRecalculateTeamStats:
    """Tests for writing aggregates back to teams."""

    def test_cached_totals_follow_results(self, cup):
        """Test recording a result refreshes the cached team totals."""
        play(cup, 'A1', 'A2', (21, 10), (21, 12))
        assert cup.teams['A1'].wins == 1
        assert cup.teams['A2'].losses == 1
        assert cup.teams['A1'].points_for == 42

    def test_full_replace(self, finished_cup):
        """Test stale cached totals are overwritten, not added to."""
        finished_cup.teams['A1'].wins = 99
        updated = recalculate_team_stats(finished_cup)
        assert len(updated) == 12
        assert finished_cup.teams['A1'].wins == 3
