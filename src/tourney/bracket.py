"""
Knockout bracket generation.

The first round never pairs two teams from the same group. Later rounds
are created up front as placeholder matches (participants None) and every
match carries a forward link to the slot its winner fills next; the
semi-finals also link their losers into the third-place match.

Seeding is deterministic by default (group rotation). A seeded shuffle
with retry is available as an alternative strategy.
"""
import logging
import math
import random
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

from .errors import InfeasibleSeedingError, InputInvariantError
from .models import FINAL, SEMI_FINAL, THIRD_PLACE, Match, get_round_tag

logger = logging.getLogger(__name__)

FIRST_KICK_OFF = time(14, 0)

ROUND_CODES = {
    'QUARTER_FINAL': 'qf',
    'SEMI_FINAL': 'sf',
    'FINAL': 'final',
    'THIRD_PLACE': 'third',
}


def validate_bracket_size(team_count: int) -> bool:
    """Check if team count is a valid power of 2 for a knockout bracket."""
    return team_count > 1 and (team_count & (team_count - 1)) == 0


def calculate_rounds_needed(team_count: int) -> int:
    if not validate_bracket_size(team_count):
        raise InputInvariantError(
            f"Team count {team_count} is not a power of 2",
            {'team_count': team_count},
        )
    return int(math.log2(team_count))


def round_code(round_tag: str) -> str:
    if round_tag in ROUND_CODES:
        return ROUND_CODES[round_tag]
    # ROUND_OF_16 -> r16
    return 'r' + round_tag.rsplit('_', 1)[-1]


def make_match_id(prefix: str, round_tag: str, order: int) -> str:
    if round_tag in (FINAL, THIRD_PLACE):
        return f"{prefix}-{round_code(round_tag)}"
    return f"{prefix}-{round_code(round_tag)}-{order}"


def group_distribution(origins: Dict, team_ids: Sequence) -> Dict:
    distribution = {}
    for team_id in team_ids:
        group_id = origins[team_id]
        distribution[group_id] = distribution.get(group_id, 0) + 1
    return distribution


def check_seeding_feasible(team_ids: Sequence, origins: Dict):
    """
    Raise InfeasibleSeedingError if no first round can keep group mates apart.

    A valid pairing exists exactly when no group supplies more than half of
    the field.
    """
    distribution = group_distribution(origins, team_ids)
    half = len(team_ids) // 2
    crowded = {g: n for g, n in distribution.items() if n > half}
    if crowded:
        raise InfeasibleSeedingError(
            f"Group(s) {sorted(crowded)} supply more than half of the {len(team_ids)} qualifiers",
            distribution,
        )


def find_same_group_pairs(pairings: Sequence[Tuple], origins: Dict) -> List[Tuple]:
    return [(a, b) for a, b in pairings if origins[a] == origins[b]]


def rotation_pairing(team_ids: Sequence, origins: Dict) -> List[Tuple]:
    """
    Deterministic pairing that never matches group mates.

    Teams are laid out group by group (largest group first, qualification
    order inside a group) and team i meets team i + n/2. Two group mates
    can only meet if their group covers more than half the field, which
    check_seeding_feasible rules out.
    """
    first_seen = {}
    members = {}
    for team_id in team_ids:
        group_id = origins[team_id]
        first_seen.setdefault(group_id, len(first_seen))
        members.setdefault(group_id, []).append(team_id)

    ordered_groups = sorted(members, key=lambda g: (-len(members[g]), first_seen[g]))
    layout = [team_id for g in ordered_groups for team_id in members[g]]

    half = len(layout) // 2
    return [(layout[i], layout[i + half]) for i in range(half)]


def shuffled_pairing(seed=None, attempts: int = 1000) -> Callable:
    """
    Strategy that shuffles the field and retries until group mates are apart.

    The same seed always gives the same bracket.
    """
    def strategy(team_ids: Sequence, origins: Dict) -> List[Tuple]:
        rng = random.Random(seed)
        shuffled = list(team_ids)
        for attempt in range(1, attempts + 1):
            rng.shuffle(shuffled)
            pairings = [(shuffled[i], shuffled[i + 1]) for i in range(0, len(shuffled), 2)]
            if not find_same_group_pairs(pairings, origins):
                logger.debug("Shuffled pairing found after %d attempt(s)", attempt)
                return pairings
        raise InfeasibleSeedingError(
            f"No valid shuffled pairing found in {attempts} attempts",
            group_distribution(origins, team_ids),
        )

    return strategy


def normalise_pairings(pairings) -> List[Tuple]:
    """Turn operator input into (home, away) tuples, rejecting malformed entries."""
    if isinstance(pairings, (str, bytes)) or not isinstance(pairings, Sequence):
        raise InputInvariantError(
            "Pairings must be a list of [home, away] pairs",
            {'pairings': repr(pairings)},
        )
    normalised = []
    for pair in pairings:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise InputInvariantError(
                f"Pairing {pair!r} is not a [home, away] pair",
                {'pairing': repr(pair)},
            )
        if not all(isinstance(team_id, Hashable) for team_id in pair):
            raise InputInvariantError(
                f"Pairing {pair!r} holds a value that cannot be a team id",
                {'pairing': repr(pair)},
            )
        normalised.append(tuple(pair))
    return normalised


def validate_pairings(pairings: Sequence[Tuple], team_ids: Sequence, origins: Dict):
    """Check operator-supplied first-round pairings against the qualified field."""
    used = [team_id for pair in pairings for team_id in pair]
    if len(pairings) * 2 != len(team_ids) or any(len(pair) != 2 for pair in pairings):
        raise InputInvariantError(
            f"Exactly {len(team_ids) // 2} first-round pairings of two teams are required",
            {'pairings': [list(p) for p in pairings]},
        )
    unknown = [team_id for team_id in used if team_id not in origins]
    if unknown or sorted(map(str, used)) != sorted(map(str, team_ids)):
        raise InputInvariantError(
            "Pairings must use every qualified team exactly once",
            {'pairings': [list(p) for p in pairings], 'qualified': list(team_ids)},
        )
    clashes = find_same_group_pairs(pairings, origins)
    if clashes:
        raise InputInvariantError(
            "Pairings put teams from the same group against each other",
            {'same_group_pairs': [list(p) for p in clashes]},
        )


def generate_bracket(team_ids: Sequence, origins: Dict, match_format: str = 'BO5',
                     strategy: Optional[Callable] = None, pairings: Optional[Sequence[Tuple]] = None,
                     id_prefix: str = 'ko', start_date: Optional[date] = None) -> List[Match]:
    """
    Build every knockout match for the qualified field.

    Args:
        team_ids: qualified teams, a power of two
        origins: team id -> originating group id
        match_format: format of every knockout match
        strategy: pairing function (team_ids, origins) -> pairs; rotation by default
        pairings: explicit first-round pairings, used instead of the strategy
        id_prefix: prefix for generated match ids
        start_date: when given, matches are scheduled from this day

    Returns:
        Matches in round order. First-round matches have real participants,
        the rest are placeholders linked through advances_to.
    """
    team_ids = list(team_ids)
    rounds_needed = calculate_rounds_needed(len(team_ids))
    if len(set(team_ids)) != len(team_ids):
        raise InputInvariantError("Qualified teams must be distinct", {'team_ids': team_ids})
    missing = [team_id for team_id in team_ids if team_id not in origins]
    if missing:
        raise InputInvariantError(
            f"No originating group known for {missing}",
            {'team_ids': missing},
        )

    if pairings is not None:
        pairings = normalise_pairings(pairings)
        validate_pairings(pairings, team_ids, origins)
    else:
        check_seeding_feasible(team_ids, origins)
        pairings = (strategy or rotation_pairing)(team_ids, origins)
        clashes = find_same_group_pairs(pairings, origins)
        if clashes:
            raise InfeasibleSeedingError(
                f"Pairing strategy produced same-group pairs {clashes}",
                group_distribution(origins, team_ids),
            )

    rounds = []
    teams_in_round = len(team_ids)
    for _ in range(rounds_needed):
        rounds.append(get_round_tag(teams_in_round))
        teams_in_round //= 2

    matches = []
    for round_index, round_tag in enumerate(rounds):
        count = len(team_ids) // (2 ** (round_index + 1))
        next_tag = rounds[round_index + 1] if round_index + 1 < len(rounds) else None
        for order in range(1, count + 1):
            if round_index == 0:
                home, away = pairings[order - 1]
            else:
                home, away = None, None
            match = Match(
                make_match_id(id_prefix, round_tag, order),
                home,
                away,
                format=match_format,
                round=round_tag,
                round_order=order,
            )
            if next_tag is not None:
                match.advances_to = make_match_id(id_prefix, next_tag, (order + 1) // 2)
            if round_tag == SEMI_FINAL:
                match.loser_advances_to = make_match_id(id_prefix, THIRD_PLACE, 1)
            matches.append(match)

    if SEMI_FINAL in rounds:
        matches.append(Match(
            make_match_id(id_prefix, THIRD_PLACE, 1),
            None,
            None,
            format=match_format,
            round=THIRD_PLACE,
            round_order=2,
        ))

    if start_date is not None:
        schedule_knockout(matches, start_date)

    logger.info(
        "Generated knockout bracket: %d matches, first round %s",
        len(matches), ', '.join(f"{a} vs {b}" for a, b in pairings),
    )
    return matches


def schedule_knockout(matches: List[Match], start_date: date) -> List[Match]:
    """
    Assign kick-off times: one day per round, first round from 14:00 hourly,
    later rounds from 15:00, third place at 14:00 and the final at 16:00.

    A round with more matches than hours left in its day runs on past
    midnight.
    """
    round_days = []
    for match in matches:
        if match.round not in round_days and match.round != THIRD_PLACE:
            round_days.append(match.round)

    for match in matches:
        if match.round in (FINAL, THIRD_PLACE):
            day = round_days.index(FINAL)
            offset = 2 if match.round == FINAL else 0
        else:
            day = round_days.index(match.round)
            offset = (0 if day == 0 else 1) + (match.round_order - 1)
        kick_off = datetime.combine(start_date + timedelta(days=day), FIRST_KICK_OFF)
        match.scheduled_at = kick_off + timedelta(hours=offset)
    return matches
