"""
Shared pytest fixtures for the cup manager tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.roundrobin import create_tournament
from helpers import DISTINCT_THIRDS, play_ladder

POOLS = {
    'A': ['A1', 'A2', 'A3', 'A4'],
    'B': ['B1', 'B2', 'B3', 'B4'],
    'C': ['C1', 'C2', 'C3', 'C4'],
}


@pytest.fixture
def pools():
    return {name: list(teams) for name, teams in POOLS.items()}


@pytest.fixture
def cup(pools):
    """Three groups of four, nothing played yet."""
    return create_tournament(pools)


@pytest.fixture
def finished_cup(cup):
    """Group stage complete; wildcards C3 and B3 are clear of A3."""
    for group_id in cup.groups:
        play_ladder(cup, group_id, DISTINCT_THIRDS.get(group_id))
    return cup


@pytest.fixture
def tied_cup(cup):
    """Group stage complete; A3 and B3 are level on everything for the last wildcard."""
    play_ladder(cup, 'A')
    play_ladder(cup, 'B')
    play_ladder(cup, 'C', DISTINCT_THIRDS['C'])
    return cup


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "settings.yaml").write_text(yaml.dump({'log_level': 'DEBUG'}, default_flow_style=False))
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    return str(data_dir)


@pytest.fixture
def client(temp_data_dir):
    """Create a test client bound to the temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client
