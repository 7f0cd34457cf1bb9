"""
Stage progression for the cup.

GROUP_STAGE -> KNOCKOUT_STAGE(first round) -> ... -> KNOCKOUT_STAGE(FINAL) -> COMPLETE

Transitions are pure: they read a Tournament snapshot and return a
Transition describing the new stage record plus the matches to create or
replace. Nothing is written until the caller hands the Transition to
apply_transition, which it must do under a single writer (see store.py).

A transition whose guard does not hold raises StalePreconditionError with
the exact precondition and the number of matches still outstanding.
"""
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from .aggregation import compute_group_aggregates, recalculate_team_stats
from .bracket import generate_bracket
from .errors import AmbiguousRankingError, InputInvariantError, StalePreconditionError
from .models import (
    COMPLETE,
    FINAL,
    GROUP_STAGE,
    KNOCKOUT_STAGE,
    THIRD_PLACE,
    Game,
    Match,
    Tournament,
    TournamentStage,
    get_round_tag,
    round_size,
)
from .qualification import QualificationResult, select_qualifiers

logger = logging.getLogger(__name__)


class Transition:
    """Result of a successful stage transition, not yet applied."""

    def __init__(self, name: str, previous: TournamentStage, state: TournamentStage,
                 created: Optional[List[Match]] = None, updated: Optional[List[Match]] = None,
                 qualification: Optional[QualificationResult] = None):
        self.name = name
        self.previous = previous
        self.state = state
        self.created = created or []
        self.updated = updated or []
        self.qualification = qualification

    def to_dict(self) -> Dict:
        data = {
            'transition': self.name,
            'stage': self.state.to_dict(),
            'created': [m.to_dict() for m in self.created],
            'updated': [m.to_dict() for m in self.updated],
        }
        if self.qualification is not None:
            data['qualification'] = self.qualification.to_dict()
        return data

    def __repr__(self):
        return f"Transition({self.name}: {self.previous.current_stage} -> {self.state.current_stage})"


def incomplete_group_matches(tournament: Tournament) -> List[Match]:
    """Group matches not yet COMPLETED, cancelled ones included."""
    return [m for m in tournament.group_matches() if not m.is_completed]


def generate_knockout(tournament: Tournament, total_qualifiers: int = 8, automatic_per_group: int = 2,
                      match_format: str = 'BO5', resolution: Optional[Sequence] = None,
                      strategy: Optional[Callable] = None, pairings: Optional[Sequence] = None,
                      start_date: Optional[date] = None) -> Transition:
    """
    GROUP_STAGE -> KNOCKOUT_STAGE.

    Guards: the knockout has not been generated and every group match is
    completed. Runs qualification and builds the bracket.

    Raises:
        StalePreconditionError: guard not met
        AmbiguousRankingError: wildcard tie with no resolution supplied
        InfeasibleSeedingError: qualified field cannot be paired
    """
    stage = tournament.stage
    if stage.knockout_generated or stage.current_stage != GROUP_STAGE:
        raise StalePreconditionError(
            "Knockout stage already generated",
            'knockout_not_generated',
        )

    pending = incomplete_group_matches(tournament)
    if pending:
        raise StalePreconditionError(
            f"{len(pending)} group stage matches are still incomplete",
            'group_matches_completed',
            remaining=len(pending),
            match_ids=[m.id for m in pending],
        )

    qualification = select_qualifiers(
        tournament,
        total_qualifiers=total_qualifiers,
        automatic_per_group=automatic_per_group,
        resolution=resolution,
    )
    if qualification.needs_manual_resolution:
        raise AmbiguousRankingError(qualification.tied_team_ids, qualification.open_slots, qualification)

    matches = generate_bracket(
        qualification.qualified,
        qualification.origin_groups(),
        match_format=match_format,
        strategy=strategy,
        pairings=pairings,
        start_date=start_date,
    )
    clashes = [m.id for m in matches if m.id in tournament.matches]
    if clashes:
        raise InputInvariantError(
            f"Knockout match ids {clashes} already exist",
            {'match_ids': clashes},
        )

    new_state = stage.copy()
    new_state.current_stage = KNOCKOUT_STAGE
    new_state.group_stage_completed = True
    new_state.knockout_generated = True
    new_state.knockout_round = matches[0].round
    logger.info("Group stage complete, %d teams qualified", len(qualification.qualified))
    return Transition('generate_knockout', stage, new_state, created=matches, qualification=qualification)


def _fill_slot(target: Match, team_id, home: bool, source: Match):
    current = target.home_team_id if home else target.away_team_id
    if current is not None and current != team_id:
        raise InputInvariantError(
            f"Slot in match '{target.id}' fed by '{source.id}' already holds '{current}'",
            {'match_id': target.id, 'source_match_id': source.id, 'team_id': current},
        )
    if home:
        target.home_team_id = team_id
    else:
        target.away_team_id = team_id


def advance_knockout(tournament: Tournament) -> Transition:
    """
    Move the knockout on by one round once the current round is finished.

    Winners fill the slots their forward links point at; semi-final losers
    fill the third-place match. After the final (and third-place match)
    the cup is COMPLETE.
    """
    stage = tournament.stage
    if stage.current_stage != KNOCKOUT_STAGE:
        raise StalePreconditionError(
            f"Tournament is in {stage.current_stage}, not the knockout stage",
            'knockout_stage',
        )

    current_round = stage.knockout_round
    rounds_in_play = [current_round]
    if current_round == FINAL:
        rounds_in_play.append(THIRD_PLACE)

    in_play = [m for r in rounds_in_play for m in tournament.knockout_matches(r)]
    if not in_play:
        raise InputInvariantError(
            f"No matches found for round {current_round}",
            {'round': current_round},
        )
    pending = [m for m in in_play if not m.is_completed or m.winner_id() is None]
    if pending:
        raise StalePreconditionError(
            f"{len(pending)} {current_round.lower().replace('_', '-')} matches are still incomplete",
            'round_completed',
            remaining=len(pending),
            match_ids=[m.id for m in pending],
        )

    new_state = stage.copy()
    if current_round == FINAL:
        final = tournament.knockout_matches(FINAL)[0]
        new_state.current_stage = COMPLETE
        new_state.champion_id = final.winner_id()
        logger.info("Final complete, champion %s", new_state.champion_id)
        return Transition('complete', stage, new_state)

    updated = {}
    for match in in_play:
        if match.advances_to is None:
            raise InputInvariantError(
                f"Match '{match.id}' has no forward link",
                {'match_id': match.id},
            )
        target_id = match.advances_to
        if target_id not in updated:
            updated[target_id] = Match.from_dict(tournament.get_match(target_id).to_dict())
        home_slot = match.round_order % 2 == 1
        _fill_slot(updated[target_id], match.winner_id(), home_slot, match)

        if match.loser_advances_to is not None:
            loser_target = match.loser_advances_to
            if loser_target not in updated:
                updated[loser_target] = Match.from_dict(tournament.get_match(loser_target).to_dict())
            _fill_slot(updated[loser_target], match.loser_id(), home_slot, match)

    new_state.knockout_round = get_round_tag(round_size(current_round) // 2)
    logger.info("%s complete, advancing to %s", current_round, new_state.knockout_round)
    return Transition(
        f"advance_to_{new_state.knockout_round.lower()}",
        stage,
        new_state,
        updated=list(updated.values()),
    )


def advance(tournament: Tournament, **options) -> Transition:
    """
    Attempt the next transition for the current stage.

    Options are passed to generate_knockout while the group stage is open.
    """
    stage = tournament.stage
    if stage.current_stage == GROUP_STAGE:
        return generate_knockout(tournament, **options)
    if stage.current_stage == KNOCKOUT_STAGE:
        return advance_knockout(tournament)
    raise StalePreconditionError(
        "Tournament is already complete",
        'tournament_in_progress',
    )


def apply_transition(tournament: Tournament, transition: Transition) -> Tournament:
    """
    Write a transition into the snapshot.

    The transition must have been computed from the stage the snapshot
    currently holds, and the stage must move forward.
    """
    if tournament.stage != transition.previous:
        raise StalePreconditionError(
            "Tournament stage changed since the transition was computed",
            'stage_unchanged',
        )
    if transition.state.progress_key() <= tournament.stage.progress_key():
        raise InputInvariantError(
            f"Transition {transition.name} does not move the tournament forward",
            {'from': tournament.stage.to_dict(), 'to': transition.state.to_dict()},
        )
    if tournament.stage.knockout_generated and not transition.state.knockout_generated:
        raise InputInvariantError(
            "knockout_generated cannot be cleared except by a full reset",
            {'transition': transition.name},
        )

    for match in transition.created:
        tournament.matches[match.id] = match
    for match in transition.updated:
        tournament.matches[match.id] = match
    tournament.stage = transition.state
    return tournament


def try_advance(tournament: Tournament, **options) -> Optional[Transition]:
    """
    Trigger hook for "a match just completed".

    Applies the next transition if its guard holds and returns it; returns
    None when the guard is not met yet. Ambiguous qualification and
    infeasible seeding still propagate, since they need an operator.
    """
    try:
        transition = advance(tournament, **options)
    except StalePreconditionError as e:
        logger.debug("No transition: %s", e.message)
        return None
    apply_transition(tournament, transition)
    return transition


def record_result(tournament: Tournament, match_id, games: List[Game]) -> Match:
    """
    Store game scores for a match and refresh the affected group aggregates.

    Group results are frozen once the knockout exists, and knockout results
    may only be entered for the round currently in play.
    """
    match = tournament.get_match(match_id)
    stage = tournament.stage

    if not match.is_knockout and stage.knockout_generated:
        raise StalePreconditionError(
            "Group results are frozen once the knockout has been generated",
            'group_stage_open',
        )
    if match.is_knockout:
        allowed = {stage.knockout_round}
        if stage.knockout_round == FINAL:
            allowed.add(THIRD_PLACE)
        if stage.current_stage != KNOCKOUT_STAGE or match.round not in allowed:
            raise StalePreconditionError(
                f"Round {match.round} is not in play (current round: {stage.knockout_round})",
                'round_in_play',
            )

    match.apply_games(games)

    if not match.is_knockout:
        group = tournament.groups[match.group_id]
        aggregates = compute_group_aggregates(group, tournament.group_matches(group.id))
        for team_id, aggregate in aggregates.items():
            tournament.teams[team_id].update_aggregates(aggregate)

    logger.info("Recorded %s", match)
    return match


def reset_tournament(tournament: Tournament) -> Tournament:
    """
    Full reset: every result cleared, knockout matches removed, cached
    aggregates zeroed and the stage record back to the group stage.
    """
    knockout_ids = [m.id for m in tournament.knockout_matches()]
    for match_id in knockout_ids:
        del tournament.matches[match_id]
    for match in tournament.matches.values():
        match.clear_result()
    recalculate_team_stats(tournament)
    tournament.stage = TournamentStage()
    logger.info("Tournament reset, %d knockout matches removed", len(knockout_ids))
    return tournament
