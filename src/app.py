"""
Flask JSON API for the cup.

Every write goes through TournamentStore.transaction(), which holds the
data directory lock for the whole load / change / save cycle.
"""
import os

from flask import Flask, jsonify, request

import settings as settings_module
from settings import knockout_options, load_settings
from store import TournamentStore
from tourney.aggregation import recalculate_team_stats
from tourney.errors import InputInvariantError, TournamentError
from tourney.models import COMPLETED, Game, Tournament
from tourney.progression import (
    advance,
    apply_transition,
    generate_knockout,
    incomplete_group_matches,
    record_result,
    reset_tournament,
    try_advance,
)
from tourney.qualification import select_qualifiers
from tourney.ranking import rank_group
from tourney.roundrobin import create_tournament

app = Flask(__name__)

DATA_DIR = settings_module.DATA_DIR

# Qualification markers shown next to each row of the standings
ADVANCED = 'advanced'
WILDCARD = 'wildcard'
TIED = 'tied'
ELIMINATED = 'eliminated'
PENDING = 'pending'


def get_store() -> TournamentStore:
    return TournamentStore(DATA_DIR)


def get_settings():
    return load_settings(DATA_DIR)


def _request_json():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InputInvariantError("Request body must be a JSON object")
    return data


def _selected_team_ids(data):
    selected = data.get('selected_team_ids')
    if selected is None:
        return None
    if not isinstance(selected, list):
        raise InputInvariantError("selected_team_ids must be a list", {'selected_team_ids': selected})
    return selected


def parse_games(data):
    """
    Read games from a request body.

    Accepts either 'games': [{number, home_score, away_score[, status]}] or
    the short form 'sets': [[home, away], ...] numbered from 1.
    """
    if 'sets' in data:
        sets = data['sets']
        if not isinstance(sets, list):
            raise InputInvariantError("Sets must be a list")
        games = []
        for number, s in enumerate(sets, start=1):
            if not isinstance(s, list) or len(s) != 2:
                raise InputInvariantError("Each set must be [home_score, away_score]", {'set': s})
            games.append({'number': number, 'home_score': s[0], 'away_score': s[1]})
    else:
        games = data.get('games')
    if not isinstance(games, list):
        raise InputInvariantError("Games must be a list", {'games': games})

    parsed = []
    for game in games:
        if not isinstance(game, dict) or 'number' not in game:
            raise InputInvariantError("Each game needs a number and both scores", {'game': game})
        for key in ('home_score', 'away_score'):
            if not isinstance(game.get(key), int) or isinstance(game.get(key), bool):
                raise InputInvariantError("Scores must be integers", {'game': game})
        parsed.append(Game.from_dict(game))
    return parsed


def qualification_markers(tournament: Tournament, settings):
    """
    team id -> marker for the standings table.

    Until the group stage is finished every team is pending. Once the
    knockout exists every team appearing in it qualified.
    """
    if incomplete_group_matches(tournament):
        return {team_id: PENDING for team_id in tournament.teams}

    qualification = select_qualifiers(
        tournament,
        total_qualifiers=int(settings['total_qualifiers']),
        automatic_per_group=int(settings['automatic_per_group']),
    )
    markers = {team_id: ELIMINATED for team_id in tournament.teams}
    if tournament.stage.knockout_generated:
        for match in tournament.knockout_matches():
            for team_id in match.team_ids():
                if team_id is not None:
                    markers[team_id] = WILDCARD
    else:
        for team_id in qualification.wildcards:
            markers[team_id] = WILDCARD
        for team_id in qualification.tied_team_ids:
            markers[team_id] = TIED
    for team_id in qualification.automatic:
        markers[team_id] = ADVANCED
    return markers


def build_standings(tournament: Tournament, settings):
    markers = qualification_markers(tournament, settings)
    groups = []
    for group_id, table in _group_tables(tournament).items():
        data = table.to_dict()
        for row in data['teams']:
            row['status'] = markers[row['team_id']]
        groups.append(data)
    return {'stage': tournament.stage.to_dict(), 'groups': groups}


def _group_tables(tournament: Tournament):
    return {
        group_id: rank_group(group, tournament.group_matches(group_id))
        for group_id, group in tournament.groups.items()
    }


def build_bracket(tournament: Tournament):
    rounds = {}
    for match in tournament.knockout_matches():
        rounds.setdefault(match.round, []).append(match.to_dict())
    return rounds


@app.errorhandler(TournamentError)
def handle_tournament_error(error):
    status = 400 if isinstance(error, InputInvariantError) else 409
    app.logger.warning(f'{error.kind}: {error.message}')
    return jsonify({'success': False, **error.to_dict()}), status


@app.route('/api/tournament', methods=['GET'])
def api_get_tournament():
    """Stage record, groups, teams and the knockout bracket by round."""
    tournament = get_store().load()
    data = tournament.to_dict()
    data['bracket'] = build_bracket(tournament)
    return jsonify(data)


@app.route('/api/tournament', methods=['POST'])
def api_create_tournament():
    """Set up groups and round-robin fixtures from {'groups': {name: [teams]}}."""
    data = _request_json()
    pools = data.get('groups')
    if not isinstance(pools, dict):
        raise InputInvariantError("groups must map group names to team lists")
    settings = get_settings()
    tournament = create_tournament(pools, settings['group_match_format'])
    get_store().initialise(tournament, overwrite=bool(data.get('overwrite', False)))
    app.logger.info(f'Tournament created with {len(tournament.groups)} groups')
    return jsonify({'success': True, 'tournament': tournament.to_dict()}), 201


@app.route('/api/standings', methods=['GET'])
def api_standings():
    tournament = get_store().load()
    return jsonify(build_standings(tournament, get_settings()))


@app.route('/api/tournament/qualified-teams', methods=['GET'])
def api_qualified_teams():
    """Current qualification picture (provisional while group matches remain)."""
    tournament = get_store().load()
    settings = get_settings()
    qualification = select_qualifiers(
        tournament,
        total_qualifiers=int(settings['total_qualifiers']),
        automatic_per_group=int(settings['automatic_per_group']),
    )
    data = qualification.to_dict()
    data['group_stage_completed'] = not incomplete_group_matches(tournament)
    return jsonify(data)


@app.route('/api/matches/<match_id>/games', methods=['POST'])
def api_record_games(match_id):
    """
    Record the games of a match. When this completes the match, the next
    stage transition is attempted in the same write.
    """
    data = _request_json()
    games = parse_games(data)
    options = knockout_options(get_settings())

    with get_store().transaction() as tournament:
        match = record_result(tournament, match_id, games)
        transition = None
        needs_attention = None
        if match.status == COMPLETED:
            try:
                transition = try_advance(tournament, **options)
            except TournamentError as e:
                # The result stands; the operator resolves the transition separately
                app.logger.warning(f'Automatic progression halted: {e.message}')
                needs_attention = e.to_dict()
        response = {
            'success': True,
            'match': match.to_dict(),
            'transition': transition.to_dict() if transition else None,
            'stage': tournament.stage.to_dict(),
        }
        if needs_attention:
            response['needs_attention'] = needs_attention

    if transition:
        app.logger.info(f'Match {match_id} triggered {transition.name}')
    return jsonify(response)


@app.route('/api/tournament/advance', methods=['POST'])
def api_advance():
    """Explicitly attempt the next stage transition."""
    data = _request_json()
    options = knockout_options(get_settings())
    resolution = _selected_team_ids(data)

    with get_store().transaction() as tournament:
        if resolution is not None:
            options['resolution'] = resolution
        transition = advance(tournament, **options)
        apply_transition(tournament, transition)

    app.logger.info(f'Transition {transition.name} applied')
    return jsonify({'success': True, **transition.to_dict()})


@app.route('/api/tournament/tiebreak', methods=['POST'])
def api_tiebreak():
    """Resolve a wildcard tie and generate the knockout with the chosen teams."""
    data = _request_json()
    resolution = _selected_team_ids(data)
    if not resolution:
        raise InputInvariantError("selected_team_ids is required")
    options = knockout_options(get_settings())

    with get_store().transaction() as tournament:
        transition = generate_knockout(tournament, resolution=resolution, **options)
        apply_transition(tournament, transition)

    app.logger.info(f'Wildcard tie resolved in favour of {resolution}')
    return jsonify({'success': True, **transition.to_dict()})


@app.route('/api/tournament/knockout/manual', methods=['POST'])
def api_manual_knockout():
    """Generate the knockout from operator-supplied first-round pairings."""
    data = _request_json()
    pairings = data.get('pairings')
    if not isinstance(pairings, list) or not pairings:
        raise InputInvariantError("pairings must be a non-empty list of [home, away]")
    options = knockout_options(get_settings())
    options.pop('strategy')

    with get_store().transaction() as tournament:
        transition = generate_knockout(
            tournament,
            resolution=_selected_team_ids(data),
            pairings=pairings,
            **options
        )
        apply_transition(tournament, transition)

    app.logger.info('Knockout generated from manual pairings')
    return jsonify({'success': True, **transition.to_dict()})


@app.route('/api/tournament/recalculate-stats', methods=['POST'])
def api_recalculate_stats():
    with get_store().transaction() as tournament:
        updated = recalculate_team_stats(tournament)
        teams = [tournament.teams[team_id].to_dict() for team_id in updated]
    return jsonify({'success': True, 'updated': len(updated), 'teams': teams})


@app.route('/api/tournament/reset', methods=['POST'])
def api_reset():
    """Clear every result, remove the knockout and return to the group stage."""
    with get_store().transaction() as tournament:
        reset_tournament(tournament)
        stage = tournament.stage.to_dict()
    app.logger.info('Tournament reset')
    return jsonify({'success': True, 'stage': stage})


if __name__ == '__main__':
    app.logger.setLevel(get_settings().get('log_level', 'INFO'))
    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', port=5000)
