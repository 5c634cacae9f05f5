#!/usr/bin/env python3
"""
Command-line runner for IPD simulations
Runs single matches, tournaments and evolutionary experiments from the terminal
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .agents import default_registry
from .analysis import analyze_game_results, results_to_dataframe
from .core import DEFAULT_PAYOFF_MATRIX, InvalidArgumentError, PayoffMatrix
from .evolution import EvolutionConfig, EvolutionEngine
from .match import run_match
from .tournament import TieBreak, TournamentEngine
from .utils import Timer, load_env_vars, setup_logging


def parse_payoff_matrix(text: Optional[str]) -> PayoffMatrix:
    if not text:
        return DEFAULT_PAYOFF_MATRIX
    try:
        nested = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidArgumentError(f"Payoff matrix is not valid JSON: {e}")
    return PayoffMatrix.from_nested(nested)


def cmd_strategies(args, registry):
    print(f"Strategy catalog v{registry.version}")
    for strategy in registry:
        tags = [tag[3:] for tag, value in strategy.tags.items() if value]
        print(f"  {strategy.id:24} {strategy.name:24} [{', '.join(tags)}]")
    return 0


def cmd_match(args, registry):
    strategy1, strategy2 = registry.create(args.strategy1, args.strategy2)
    result = run_match(strategy1, strategy2, parse_payoff_matrix(args.payoff_matrix),
                       args.rounds, args.noise, seed=args.seed)
    print(results_to_dataframe(result.results).to_string(index=False))
    summary = analyze_game_results(result.results)
    print(f"\n{strategy1.id}: {result.strategy1_score}  {strategy2.id}: {result.strategy2_score}")
    print(f"Mutual cooperation: {summary['mutual_cooperation_rate']:.1%}  "
          f"Mutual defection: {summary['mutual_defection_rate']:.1%}")
    return 0


def cmd_tournament(args, registry):
    strategies = registry.create(*args.strategies) if args.strategies else list(registry)
    engine = TournamentEngine(
        parse_payoff_matrix(args.payoff_matrix),
        rounds_per_match=args.rounds,
        noise_level=args.noise,
        seed=args.seed,
        tie_break=TieBreak(args.tie_break),
        verbose=args.verbose,
    )

    with Timer("Tournament"):
        if args.elimination:
            tournament = engine.run_elimination_tournament(strategies)
        elif args.max_concurrent:
            tournament = asyncio.run(engine.run_tournament_async(strategies, args.max_concurrent))
        else:
            tournament = engine.run_tournament(strategies)

    if args.elimination:
        for rnd in tournament.rounds:
            pairs = ", ".join(f"{m.strategy1.id} {m.strategy1_score}-{m.strategy2_score} {m.strategy2.id}"
                              for m in rnd.matches)
            print(f"Round {rnd.round_number}: {pairs}")
    else:
        print(tournament.get_summary_stats().to_string(index=False))
    print(f"\nWinner: {tournament.winner.name if tournament.winner else 'none'}")
    return 0


def cmd_evolve(args, registry):
    strategies = registry.create(*args.strategies) if args.strategies else list(registry)
    config = EvolutionConfig(
        population_size=args.population,
        mutation_rate=args.mutation,
        selection_pressure=args.pressure,
        rounds_per_generation=args.rounds,
        max_generations=args.generations,
        noise_level=args.noise,
    )
    engine = EvolutionEngine(strategies, config, parse_payoff_matrix(args.payoff_matrix),
                             seed=args.seed, verbose=args.verbose)

    with Timer("Evolution"):
        engine.run_evolution()

    print(engine.to_dataframe().to_string(index=False))
    final = engine.get_current_generation()
    print(f"\nStopped after generation {final.generation}: {engine.termination_reason.value}")
    print(f"Dominant strategy: {final.dominant_strategy}")
    return 0


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run Iterated Prisoner's Dilemma simulations")
    parser.add_argument("--env-file", type=str, default=None,
                        help="Read IPD_* defaults from this .env file")
    parser.add_argument("--log-level", type=str, default=settings['log_level'],
                        help="Logging level (default: %(default)s)")
    parser.add_argument("--verbose", action="store_true",
                        help="Show progress bars")
    parser.add_argument("--payoff-matrix", type=str, default=None,
                        help='Nested JSON payoff matrix, e.g. \'{"cooperate": {"cooperate": [3, 3], '
                             '"defect": [0, 5]}, "defect": {"cooperate": [5, 0], "defect": [1, 1]}}\'')
    parser.add_argument("--seed", type=int, default=settings['seed'],
                        help="Seed for reproducible runs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("strategies", help="List the built-in strategies")

    match = subparsers.add_parser("match", help="Play a single match")
    match.add_argument("strategy1")
    match.add_argument("strategy2")
    match.add_argument("--rounds", type=int, default=settings['rounds_per_match'])
    match.add_argument("--noise", type=float, default=settings['noise_level'])

    tournament = subparsers.add_parser("tournament", help="Run a round-robin or elimination tournament")
    tournament.add_argument("--strategies", nargs="+", default=None,
                            help="Strategy ids (default: the whole catalog)")
    tournament.add_argument("--rounds", type=int, default=settings['rounds_per_match'])
    tournament.add_argument("--noise", type=float, default=settings['noise_level'])
    tournament.add_argument("--elimination", action="store_true",
                            help="Single elimination bracket instead of round-robin")
    tournament.add_argument("--tie-break", choices=[t.value for t in TieBreak],
                            default=TieBreak.STRATEGY_ID.value)
    tournament.add_argument("--max-concurrent", type=int, default=0,
                            help="Run round-robin matches concurrently (0 = sequential)")

    evolve = subparsers.add_parser("evolve", help="Run an evolutionary simulation")
    evolve.add_argument("--strategies", nargs="+", default=None,
                        help="Strategy ids (default: the whole catalog)")
    evolve.add_argument("--population", type=int, default=settings['population_size'])
    evolve.add_argument("--mutation", type=float, default=settings['mutation_rate'])
    evolve.add_argument("--pressure", type=float, default=settings['selection_pressure'])
    evolve.add_argument("--rounds", type=int, default=settings['rounds_per_generation'])
    evolve.add_argument("--generations", type=int, default=settings['max_generations'])
    evolve.add_argument("--noise", type=float, default=settings['noise_level'])

    return parser


COMMANDS = {
    'strategies': cmd_strategies,
    'match': cmd_match,
    'tournament': cmd_tournament,
    'evolve': cmd_evolve,
}


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    # --env-file has to be honoured before the other defaults are computed
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--env-file", type=str, default=None)
    known, _ = pre.parse_known_args(argv)

    try:
        settings = load_env_vars(known.env_file)
    except InvalidArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    args = build_parser(settings).parse_args(argv)
    setup_logging(args.log_level)

    try:
        return COMMANDS[args.command](args, default_registry())
    except InvalidArgumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
