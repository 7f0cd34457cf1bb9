"""
Tests for YAML persistence and settings.
"""
import pytest
import sys
import os
import yaml
from datetime import date

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from settings import get_default_settings, knockout_options, load_settings, save_settings
from store import TournamentStore
from tourney.bracket import rotation_pairing
from tourney.errors import InputInvariantError
from tourney.progression import advance, apply_transition


class TestTournamentStore:
    """Tests for loading and saving snapshots."""

    def test_round_trip(self, tmp_path, finished_cup):
        """Test a saved tournament loads back unchanged."""
        store = TournamentStore(str(tmp_path))
        store.initialise(finished_cup)
        assert store.load().to_dict() == finished_cup.to_dict()

    def test_load_missing(self, tmp_path):
        """Test loading before set-up is an error."""
        with pytest.raises(InputInvariantError):
            TournamentStore(str(tmp_path)).load()

    def test_load_rejects_inconsistent_snapshot(self, tmp_path, cup):
        """Test a stored completed match without a winner is refused on load."""
        store = TournamentStore(str(tmp_path))
        data = cup.to_dict()
        for match in data['matches']:
            if match['id'] == 'A-1':
                match.update(status='COMPLETED', home_games_won=1, away_games_won=1)
        (tmp_path / 'tournament.yaml').write_text(yaml.safe_dump(data))
        with pytest.raises(InputInvariantError) as exc:
            store.load()
        assert exc.value.details['match_id'] == 'A-1'

    def test_initialise_twice(self, tmp_path, cup):
        """Test an existing tournament is not overwritten by accident."""
        store = TournamentStore(str(tmp_path))
        store.initialise(cup)
        with pytest.raises(InputInvariantError):
            store.initialise(cup)
        store.initialise(cup, overwrite=True)

    def test_transaction_commits_transition(self, tmp_path, finished_cup):
        """Test a stage change and its matches are saved together."""
        store = TournamentStore(str(tmp_path))
        store.initialise(finished_cup)
        with store.transaction() as tournament:
            apply_transition(tournament, advance(tournament))
        loaded = store.load()
        assert loaded.stage.knockout_generated
        assert len(loaded.knockout_matches()) == 8

    def test_transaction_rolls_back(self, tmp_path, cup):
        """Test nothing is written when the block raises."""
        store = TournamentStore(str(tmp_path))
        store.initialise(cup)
        with pytest.raises(InputInvariantError):
            with store.transaction() as tournament:
                del tournament.matches['A-1']
                raise InputInvariantError("abort")
        assert 'A-1' in store.load().matches

    def test_no_temp_files_left(self, tmp_path, cup):
        """Test the atomic write leaves only the tournament file."""
        store = TournamentStore(str(tmp_path))
        store.save(cup)
        names = [n for n in os.listdir(tmp_path) if not n.startswith('.lock')]
        assert names == ['tournament.yaml']


class TestSettings:
    """Tests for settings.yaml handling."""

    def test_defaults_when_missing(self, tmp_path):
        """Test defaults are used without a settings file."""
        assert load_settings(str(tmp_path)) == get_default_settings()

    def test_merge_with_defaults(self, tmp_path):
        """Test missing keys are filled in from the defaults."""
        (tmp_path / 'settings.yaml').write_text(yaml.dump({'total_qualifiers': 4}))
        settings = load_settings(str(tmp_path))
        assert settings['total_qualifiers'] == 4
        assert settings['knockout_match_format'] == 'BO5'

    def test_save_and_load(self, tmp_path):
        """Test saved settings load back."""
        settings = get_default_settings()
        settings['seeding_strategy'] = 'shuffle'
        save_settings(settings, str(tmp_path))
        assert load_settings(str(tmp_path))['seeding_strategy'] == 'shuffle'

    def test_knockout_options(self):
        """Test settings become progression keyword arguments."""
        settings = get_default_settings()
        settings['knockout_start_date'] = '2026-06-01'
        options = knockout_options(settings)
        assert options['strategy'] is rotation_pairing
        assert options['start_date'] == date(2026, 6, 1)
        assert options['total_qualifiers'] == 8

    def test_unknown_strategy(self):
        """Test an unknown seeding strategy is rejected."""
        settings = get_default_settings()
        settings['seeding_strategy'] = 'random'
        with pytest.raises(InputInvariantError):
            knockout_options(settings)
