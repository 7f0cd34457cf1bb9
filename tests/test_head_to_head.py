"""
Tests for the head-to-head index and circular tie detection.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.head_to_head import HeadToHeadIndex, detect_circular_ties, find_cycles
from tourney.models import Game, Match


def result(match_id, winner, loser, group_id='G'):
    match = Match(match_id, winner, loser, group_id=group_id)
    match.apply_games([Game(1, 21, 15), Game(2, 21, 15)])
    return match


class TestHeadToHeadIndex:
    """Tests for pairwise outcome lookup."""

    def test_outcome_both_directions(self):
        """Test a win is visible from both sides."""
        index = HeadToHeadIndex([result('m1', 'A', 'B')])
        assert index.outcome('A', 'B') == 1
        assert index.outcome('B', 'A') == -1
        assert index.beat('A', 'B')

    def test_unplayed_pair(self):
        """Test teams that have not met have no outcome."""
        index = HeadToHeadIndex([result('m1', 'A', 'B')])
        assert index.outcome('A', 'C') is None

    def test_incomplete_match_ignored(self):
        """Test an unfinished match does not create an outcome."""
        match = Match('m1', 'A', 'B', group_id='G')
        match.apply_games([Game(1, 21, 15)])
        assert len(HeadToHeadIndex([match])) == 0

    def test_split_meetings_cancel(self):
        """Test two meetings won one each leave the pair unresolved."""
        index = HeadToHeadIndex([result('m1', 'A', 'B'), result('m2', 'B', 'A')])
        assert index.outcome('A', 'B') is None


class TestCircularTies:
    """Tests for 3-cycle detection."""

    def test_cycle_found(self):
        """Test A>B, B>C, C>A is a cycle."""
        index = HeadToHeadIndex([result('m1', 'A', 'B'), result('m2', 'B', 'C'), result('m3', 'C', 'A')])
        assert find_cycles(index, ['A', 'B', 'C']) == [('A', 'B', 'C')]

    def test_reverse_cycle_found(self):
        """Test the cycle is found whichever direction it runs."""
        index = HeadToHeadIndex([result('m1', 'B', 'A'), result('m2', 'C', 'B'), result('m3', 'A', 'C')])
        assert find_cycles(index, ['A', 'B', 'C'])

    def test_transitive_results_no_cycle(self):
        """Test A>B, B>C, A>C is not a cycle."""
        index = HeadToHeadIndex([result('m1', 'A', 'B'), result('m2', 'B', 'C'), result('m3', 'A', 'C')])
        assert find_cycles(index, ['A', 'B', 'C']) == []

    def test_missing_edge_no_cycle(self):
        """Test all three pairs must have met."""
        index = HeadToHeadIndex([result('m1', 'A', 'B'), result('m2', 'B', 'C')])
        assert find_cycles(index, ['A', 'B', 'C']) == []

    def test_only_equal_wins_inspected(self):
        """Test teams on different win counts are never marked."""
        index = HeadToHeadIndex([result('m1', 'A', 'B'), result('m2', 'B', 'C'), result('m3', 'C', 'A')])
        assert detect_circular_ties(index, {'A': 2, 'B': 1, 'C': 1}) == set()

    def test_pairs_cannot_cycle(self):
        """Test a bucket of two tied teams is skipped."""
        index = HeadToHeadIndex([result('m1', 'A', 'B')])
        assert detect_circular_ties(index, {'A': 1, 'B': 1}) == set()

    def test_cycle_members_invalidated(self):
        """Test all members of a cycle are invalidated, others are not."""
        matches = [
            result('m1', 'A', 'B'), result('m2', 'B', 'C'), result('m3', 'C', 'A'),
            result('m4', 'A', 'D'), result('m5', 'B', 'D'), result('m6', 'C', 'D'),
        ]
        index = HeadToHeadIndex(matches)
        assert detect_circular_ties(index, {'A': 2, 'B': 2, 'C': 2, 'D': 0}) == {'A', 'B', 'C'}
