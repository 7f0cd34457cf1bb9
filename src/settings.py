"""
Cup settings stored as settings.yaml in the data directory.
"""
import os
from datetime import date

import yaml

from tourney.bracket import rotation_pairing, shuffled_pairing
from tourney.errors import InputInvariantError

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.environ.get('TOURNEY_DATA_DIR', os.path.join(BASE_DIR, 'data'))

SETTINGS_FILENAME = 'settings.yaml'
SEEDING_STRATEGIES = ('rotation', 'shuffle')


def get_default_settings():
    """Return default settings."""
    return {
        'total_qualifiers': 8,
        'automatic_per_group': 2,
        'group_match_format': 'BO3',
        'knockout_match_format': 'BO5',
        'seeding_strategy': 'rotation',
        'seeding_seed': None,
        'shuffle_attempts': 1000,
        'knockout_start_date': None,
        'log_level': 'INFO',
    }


def load_settings(data_dir=None):
    """Load settings from YAML file, merging with defaults."""
    defaults = get_default_settings()
    path = os.path.join(data_dir or DATA_DIR, SETTINGS_FILENAME)
    if not os.path.exists(path):
        return defaults
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
        if not data:
            return defaults
        # Merge with defaults to ensure all keys exist
        for key, value in defaults.items():
            if key not in data:
                data[key] = value
        return data


def save_settings(settings, data_dir=None):
    """Save settings to YAML file."""
    data_dir = data_dir or DATA_DIR
    os.makedirs(data_dir, exist_ok=True)
    with open(os.path.join(data_dir, SETTINGS_FILENAME), 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)


def _start_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def knockout_options(settings):
    """Keyword arguments for tourney.progression.advance built from settings."""
    strategy_name = settings.get('seeding_strategy', 'rotation')
    if strategy_name not in SEEDING_STRATEGIES:
        raise InputInvariantError(
            f"Unknown seeding strategy '{strategy_name}'",
            {'seeding_strategy': strategy_name, 'allowed': list(SEEDING_STRATEGIES)},
        )
    if strategy_name == 'shuffle':
        strategy = shuffled_pairing(settings.get('seeding_seed'), int(settings.get('shuffle_attempts', 1000)))
    else:
        strategy = rotation_pairing

    return {
        'total_qualifiers': int(settings['total_qualifiers']),
        'automatic_per_group': int(settings['automatic_per_group']),
        'match_format': settings['knockout_match_format'],
        'strategy': strategy,
        'start_date': _start_date(settings.get('knockout_start_date')),
    }
