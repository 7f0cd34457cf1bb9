"""
Command line entry point for the cup.

Usage:
    python src/main.py init data/teams.yaml
    python src/main.py standings
    python src/main.py qualify
    python src/main.py advance [--select TEAM ...]
    python src/main.py reset

The data directory defaults to TOURNEY_DATA_DIR or <repo>/data.
"""
import argparse
import logging
import sys

import yaml

import settings as settings_module
from settings import knockout_options, load_settings
from store import TournamentStore
from tourney.errors import TournamentError
from tourney.progression import advance, apply_transition, reset_tournament
from tourney.qualification import select_qualifiers
from tourney.ranking import rank_group
from tourney.roundrobin import create_tournament

logger = logging.getLogger('tourney.cli')


def load_pools(file_path):
    with open(file_path, mode='r', encoding='utf-8') as file:
        return yaml.safe_load(file) or {}


def cmd_init(args, store, settings):
    pools = load_pools(args.teams_file)
    tournament = create_tournament(pools, settings['group_match_format'])
    store.initialise(tournament, overwrite=args.force)
    print(f"Created {len(tournament.groups)} groups with {len(tournament.matches)} group matches")


def cmd_standings(args, store, settings):
    tournament = store.load()
    first = True
    for group_id, group in tournament.groups.items():
        if not first:
            print()
        print(f"# Group {group_id}")
        table = rank_group(group, tournament.group_matches(group_id))
        for row in table.rows:
            agg = row.aggregate
            flag = ' *' if row.head_to_head_invalidated else ''
            print(f"{row.position}. {row.team_id:<20} W{agg.wins} L{agg.losses} "
                  f"GD{agg.game_difference:+d} PD{agg.point_differential:+d}{flag}")
        first = False


def cmd_qualify(args, store, settings):
    tournament = store.load()
    result = select_qualifiers(
        tournament,
        total_qualifiers=int(settings['total_qualifiers']),
        automatic_per_group=int(settings['automatic_per_group']),
    )
    print("Automatic: " + ', '.join(result.automatic))
    print("Wildcards: " + ', '.join(result.wildcards))
    if result.needs_manual_resolution:
        print(f"Tied for {result.open_slots} slot(s): " + ', '.join(result.tied_team_ids))


def cmd_advance(args, store, settings):
    options = knockout_options(settings)
    if args.select:
        options['resolution'] = args.select
    with store.transaction() as tournament:
        transition = advance(tournament, **options)
        apply_transition(tournament, transition)
    print(f"{transition.name}: now in {transition.state.current_stage}"
          + (f" ({transition.state.knockout_round})" if transition.state.knockout_round else ''))
    for match in transition.created:
        if not match.is_placeholder:
            print(f"  {match.id}: {match.home_team_id} vs {match.away_team_id}")
    if transition.state.champion_id:
        print(f"Champion: {transition.state.champion_id}")


def cmd_reset(args, store, settings):
    with store.transaction() as tournament:
        reset_tournament(tournament)
    print("Tournament reset to the group stage")


def build_parser():
    parser = argparse.ArgumentParser(description='Group stage and knockout cup manager')
    parser.add_argument('--data-dir', default=None, help='Data directory (default: TOURNEY_DATA_DIR or ./data)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    init = subparsers.add_parser('init', help='Create groups and fixtures from a teams YAML file')
    init.add_argument('teams_file')
    init.add_argument('--force', action='store_true', help='Overwrite an existing tournament')
    init.set_defaults(func=cmd_init)

    subparsers.add_parser('standings', help='Print group standings').set_defaults(func=cmd_standings)
    subparsers.add_parser('qualify', help='Show the qualification picture').set_defaults(func=cmd_qualify)

    adv = subparsers.add_parser('advance', help='Attempt the next stage transition')
    adv.add_argument('--select', nargs='+', metavar='TEAM', help='Teams chosen to break a wildcard tie')
    adv.set_defaults(func=cmd_advance)

    subparsers.add_parser('reset', help='Clear all results and the knockout').set_defaults(func=cmd_reset)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    data_dir = args.data_dir or settings_module.DATA_DIR
    settings = load_settings(data_dir)
    logging.basicConfig(
        level=getattr(logging, str(settings.get('log_level', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        args.func(args, TournamentStore(data_dir), settings)
    except TournamentError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for key, value in e.details.items():
            print(f"  {key}: {value}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
