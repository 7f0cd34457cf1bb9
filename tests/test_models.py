"""
Unit tests for the cup data model.
"""
import pytest
import sys
import os
from datetime import datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.errors import InputInvariantError
from tourney.models import (
    COMPLETED,
    FINAL,
    IN_PROGRESS,
    QUARTER_FINAL,
    SCHEDULED,
    SEMI_FINAL,
    Game,
    Group,
    Match,
    Team,
    Tournament,
    TournamentStage,
    get_round_tag,
    round_size,
)


class TestRoundTags:
    """Tests for knockout round naming."""

    def test_named_rounds(self):
        """Test the common round tags."""
        assert get_round_tag(2) == FINAL
        assert get_round_tag(4) == SEMI_FINAL
        assert get_round_tag(8) == QUARTER_FINAL
        assert get_round_tag(16) == 'ROUND_OF_16'

    def test_round_size_inverse(self):
        """Test round_size undoes get_round_tag."""
        for n in (2, 4, 8, 16, 32):
            assert round_size(get_round_tag(n)) == n

    def test_unknown_round(self):
        """Test an unknown round tag is rejected."""
        with pytest.raises(InputInvariantError):
            round_size('PLAYOFF')


class TestMatchGames:
    """Tests for recording games on a match."""

    def test_bo3_completes_at_two_wins(self):
        """Test a BO3 match is completed once a side has two games."""
        match = Match('m1', 'X', 'Y', group_id='A', format='BO3')
        match.apply_games([Game(1, 21, 15), Game(2, 18, 21), Game(3, 21, 19)])
        assert match.status == COMPLETED
        assert match.home_games_won == 2
        assert match.away_games_won == 1
        assert match.winner_id() == 'X'
        assert match.loser_id() == 'Y'

    def test_points_are_summed(self):
        """Test points for and against come from completed games."""
        match = Match('m1', 'X', 'Y', group_id='A')
        match.apply_games([Game(1, 21, 15), Game(2, 21, 19)])
        assert match.home_score == 42
        assert match.away_score == 34

    def test_partial_result_in_progress(self):
        """Test a match short of the threshold stays in progress."""
        match = Match('m1', 'X', 'Y', group_id='A', format='BO5')
        match.apply_games([Game(1, 11, 5), Game(2, 11, 7)])
        assert match.status == IN_PROGRESS
        assert match.winner_id() is None

    def test_unfinished_games_ignored(self):
        """Test games not marked completed do not count."""
        match = Match('m1', 'X', 'Y', group_id='A')
        match.apply_games([Game(1, 21, 15), Game(2, 10, 3, status=IN_PROGRESS)])
        assert match.home_games_won == 1
        assert match.home_score == 21

    def test_impossible_result_rejected(self):
        """Test a side cannot win more games than the format allows."""
        match = Match('m1', 'X', 'Y', group_id='A', format='BO3')
        with pytest.raises(InputInvariantError):
            match.apply_games([Game(1, 21, 15), Game(2, 21, 15), Game(3, 21, 15)])

    def test_duplicate_game_numbers_rejected(self):
        """Test game numbers must be unique."""
        match = Match('m1', 'X', 'Y', group_id='A')
        with pytest.raises(InputInvariantError):
            match.apply_games([Game(1, 21, 15), Game(1, 21, 15)])

    def test_placeholder_rejects_games(self):
        """Test games cannot be recorded before participants are known."""
        match = Match('ko-final', None, None, format='BO5', round=FINAL, round_order=1)
        assert match.is_placeholder
        with pytest.raises(InputInvariantError):
            match.apply_games([Game(1, 11, 5)])

    def test_clear_result(self):
        """Test clearing a result returns the match to scheduled."""
        match = Match('m1', 'X', 'Y', group_id='A')
        match.apply_games([Game(1, 21, 15), Game(2, 21, 15)])
        match.clear_result()
        assert match.status == SCHEDULED
        assert match.games == []
        assert match.home_score == 0

    def test_unknown_format(self):
        """Test only BO3 and BO5 are accepted."""
        with pytest.raises(InputInvariantError):
            Match('m1', 'X', 'Y', group_id='A', format='BO7')


class TestSerialisation:
    """Tests for dict round trips used by the store."""

    def test_match_with_schedule(self):
        """Test a scheduled knockout match keeps its links and kick-off."""
        match = Match('ko-sf-1', None, None, format='BO5', round=SEMI_FINAL, round_order=1,
                      advances_to='ko-final', loser_advances_to='ko-third',
                      scheduled_at=datetime(2026, 5, 2, 15, 0))
        restored = Match.from_dict(match.to_dict())
        assert restored.scheduled_at == datetime(2026, 5, 2, 15, 0)
        assert restored.advances_to == 'ko-final'
        assert restored.loser_advances_to == 'ko-third'
        assert restored.is_knockout

    def test_tournament_from_dict(self, finished_cup):
        """Test a whole tournament survives to_dict/from_dict."""
        restored = Tournament.from_dict(finished_cup.to_dict())
        assert restored.to_dict() == finished_cup.to_dict()


class TestTournamentValidation:
    """Tests for snapshot consistency checks."""

    def test_duplicate_team_in_group(self):
        """Test a group cannot list a team twice."""
        with pytest.raises(InputInvariantError):
            Group('A', team_ids=['X', 'X'])

    def test_team_in_two_groups(self):
        """Test a team may belong to one group only."""
        tournament = Tournament(
            groups=[Group('A', team_ids=['X', 'Y']), Group('B', team_ids=['X', 'Z'])],
            teams=[Team('X', 'X', 'A'), Team('Y', 'Y', 'A'), Team('Z', 'Z', 'B')],
        )
        with pytest.raises(InputInvariantError):
            tournament.validate()

    def test_match_outside_group(self):
        """Test a group match may only involve that group's teams."""
        tournament = Tournament(
            groups=[Group('A', team_ids=['X', 'Y']), Group('B', team_ids=['Z'])],
            teams=[Team('X', 'X', 'A'), Team('Y', 'Y', 'A'), Team('Z', 'Z', 'B')],
            matches=[Match('m1', 'X', 'Z', group_id='A')],
        )
        with pytest.raises(InputInvariantError):
            tournament.validate()

    def test_completed_match_without_winner(self):
        """Test a completed match with equal games won is rejected."""
        tournament = Tournament(
            groups=[Group('A', team_ids=['X', 'Y'])],
            teams=[Team('X', 'X', 'A'), Team('Y', 'Y', 'A')],
            matches=[Match('m1', 'X', 'Y', group_id='A', status=COMPLETED,
                           home_games_won=1, away_games_won=1)],
        )
        with pytest.raises(InputInvariantError):
            tournament.validate()


class TestTournamentStage:
    """Tests for the stage record."""

    def test_progress_key_orders_rounds(self):
        """Test later knockout rounds sort after earlier ones."""
        group = TournamentStage()
        qf = TournamentStage('KNOCKOUT_STAGE', True, True, QUARTER_FINAL)
        sf = TournamentStage('KNOCKOUT_STAGE', True, True, SEMI_FINAL)
        done = TournamentStage('COMPLETE', True, True, FINAL, 'X')
        assert group.progress_key() < qf.progress_key() < sf.progress_key() < done.progress_key()

    def test_unknown_stage(self):
        """Test the stage must be a known value."""
        with pytest.raises(InputInvariantError):
            TournamentStage('PLAYOFFS')
