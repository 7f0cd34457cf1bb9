"""
Error taxonomy for the cup engine.

Every failure the engine reports is one of four kinds:

- InputInvariantError: the snapshot handed to an operation is malformed
  (empty group, match referencing a team outside its group, ...).
- AmbiguousRankingError: a qualification boundary cannot be decided by the
  tie-break criteria and needs an operator to pick.
- InfeasibleSeedingError: the same-group avoidance constraint cannot be met
  for the qualified set.
- StalePreconditionError: a stage transition was attempted while its guard
  does not hold.

All of them carry enough structured detail for the caller to act on.
"""
from typing import Dict, List, Optional


class TournamentError(Exception):
    """Base class for all engine errors."""

    kind = 'tournament_error'
    recoverable = False

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict:
        return {
            'error': self.message,
            'kind': self.kind,
            'recoverable': self.recoverable,
            **self.details,
        }


class InputInvariantError(TournamentError):
    kind = 'input_invariant'


class AmbiguousRankingError(TournamentError):
    """Raised when the wildcard cutoff falls inside an exact tie."""

    kind = 'ambiguous_ranking'
    recoverable = True

    def __init__(self, tied_team_ids: List[str], slots: int, qualification=None):
        super().__init__(
            f"{len(tied_team_ids)} teams are tied for {slots} wildcard slot(s); "
            "manual resolution required",
            {
                'needs_manual_resolution': True,
                'tied_team_ids': list(tied_team_ids),
                'slots': slots,
            },
        )
        self.tied_team_ids = list(tied_team_ids)
        self.slots = slots
        self.qualification = qualification


class InfeasibleSeedingError(TournamentError):
    """Raised when no first round can keep group mates apart."""

    kind = 'infeasible_seeding'
    recoverable = True

    def __init__(self, message: str, group_distribution: Dict[str, int]):
        super().__init__(message, {'group_distribution': dict(group_distribution)})
        self.group_distribution = dict(group_distribution)


class StalePreconditionError(TournamentError):
    """Raised when a stage transition guard is not satisfied."""

    kind = 'stale_precondition'
    recoverable = True

    def __init__(self, message: str, precondition: str, remaining: int = 0,
                 match_ids: Optional[List[str]] = None):
        super().__init__(message, {
            'precondition': precondition,
            'remaining': remaining,
            'match_ids': list(match_ids or []),
        })
        self.precondition = precondition
        self.remaining = remaining
        self.match_ids = list(match_ids or [])
