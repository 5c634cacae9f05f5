"""
IPD Engine: simulation engine for the Iterated Prisoner's Dilemma
Strategies, match simulation with noise, tournaments and evolutionary dynamics
"""

from .core import (
    Move, PayoffMatrix, RoundResult, InvalidArgumentError,
    DEFAULT_PAYOFF_MATRIX, AXELROD_PAYOFF_MATRIX,
    validate_payoff_matrix, calculate_payoff
)

from .agents import (
    # Strategy contract
    Strategy, FunctionStrategy, StrategyRegistry, CATALOG_VERSION,

    # Built-in catalog
    AlwaysCooperate, AlwaysDefect, TitForTat, TitForTwoTats, Grudger, Pavlov,
    Random, GenerousTitForTat, SuspiciousTitForTat, Prober, Simpleton,
    Alternator, Detective,

    # Helpers
    default_registry, get_strategy_by_id, create_custom_strategy,
    nice_strategies, mean_strategies, forgiving_strategies, unforgiving_strategies
)

from .match import MatchSimulator, MatchResult, run_match, add_noise
from .tournament import (
    TournamentEngine, Tournament, TournamentRound, TournamentStanding,
    HeadToHeadStats, TieBreak, calculate_standings
)
from .evolution import (
    EvolutionEngine, EvolutionConfig, Generation, Population, TerminationReason
)
from .analysis import (
    analyze_game_results,
    calculate_cooperation_rate,
    calculate_mutual_cooperation_rate,
    calculate_mutual_defection_rate,
    calculate_exploitation_rate,
    calculate_strategy_effectiveness,
    calculate_evolutionary_stability,
    calculate_noise_impact,
    results_to_dataframe
)
from .utils import load_env_vars, setup_logging, format_history, Timer

__version__ = "1.0.0"
__all__ = [
    # Core
    "Move", "PayoffMatrix", "RoundResult", "InvalidArgumentError",
    "DEFAULT_PAYOFF_MATRIX", "AXELROD_PAYOFF_MATRIX",
    "validate_payoff_matrix", "calculate_payoff",

    # Strategies
    "Strategy", "FunctionStrategy", "StrategyRegistry", "CATALOG_VERSION",
    "AlwaysCooperate", "AlwaysDefect", "TitForTat", "TitForTwoTats", "Grudger", "Pavlov",
    "Random", "GenerousTitForTat", "SuspiciousTitForTat", "Prober", "Simpleton",
    "Alternator", "Detective",
    "default_registry", "get_strategy_by_id", "create_custom_strategy",
    "nice_strategies", "mean_strategies", "forgiving_strategies", "unforgiving_strategies",

    # Engines
    "MatchSimulator", "MatchResult", "run_match", "add_noise",
    "TournamentEngine", "Tournament", "TournamentRound", "TournamentStanding",
    "HeadToHeadStats", "TieBreak", "calculate_standings",
    "EvolutionEngine", "EvolutionConfig", "Generation", "Population", "TerminationReason",

    # Analysis
    "analyze_game_results", "calculate_cooperation_rate",
    "calculate_mutual_cooperation_rate", "calculate_mutual_defection_rate",
    "calculate_exploitation_rate", "calculate_strategy_effectiveness",
    "calculate_evolutionary_stability", "calculate_noise_impact",
    "results_to_dataframe",

    # Utils
    "load_env_vars", "setup_logging", "format_history", "Timer"
]
