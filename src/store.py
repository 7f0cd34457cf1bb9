"""
YAML persistence for the cup.

One tournament.yaml per data directory. A FileLock on <data_dir>/.lock
serialises writers; every write replaces the file in one rename so a stage
change and the matches it creates land together.
"""
import logging
import os
import tempfile
from contextlib import contextmanager

import yaml
from filelock import FileLock

from tourney.errors import InputInvariantError
from tourney.models import Tournament

logger = logging.getLogger(__name__)

TOURNAMENT_FILENAME = 'tournament.yaml'


class TournamentStore:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, TOURNAMENT_FILENAME)
        self.lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Tournament:
        """Read the current snapshot; raises InputInvariantError if it is inconsistent."""
        if not self.exists():
            raise InputInvariantError(
                "No tournament has been set up yet",
                {'path': self.path},
            )
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return Tournament.from_dict(data).validate()

    def save(self, tournament: Tournament):
        """Replace the stored snapshot atomically."""
        os.makedirs(self.data_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.tournament-', suffix='.yaml', dir=self.data_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(tournament.to_dict(), f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("Saved %s to %s", tournament, self.path)

    @contextmanager
    def transaction(self):
        """
        Lock, load, hand the snapshot to the caller and save it afterwards.

        Nothing is written if the block raises.
        """
        os.makedirs(self.data_dir, exist_ok=True)
        with self.lock:
            tournament = self.load()
            yield tournament
            self.save(tournament)

    def initialise(self, tournament: Tournament, overwrite: bool = False):
        """Store a brand-new tournament."""
        os.makedirs(self.data_dir, exist_ok=True)
        with self.lock:
            if self.exists() and not overwrite:
                raise InputInvariantError(
                    "A tournament already exists in this data directory",
                    {'path': self.path},
                )
            self.save(tournament)
        logger.info("Initialised %s in %s", tournament, self.data_dir)
