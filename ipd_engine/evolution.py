"""
Evolutionary dynamics for IPD strategy populations
Fitness-proportional reproduction with selection pressure, mutation and
convergence / extinction detection
"""

import dataclasses
import logging
import math
import numbers
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from tqdm import tqdm

from .agents import Strategy, check_strategy_set
from .core import (
    DEFAULT_PAYOFF_MATRIX, InvalidArgumentError, PayoffMatrix,
    check_probability, check_rounds,
)
from .match import run_match

logger = logging.getLogger(__name__)

Population = Dict[str, int]


@dataclass(frozen=True)
class EvolutionConfig:
    """
    Parameters of an evolutionary run.

    population_size: total number of individuals, conserved across generations
    mutation_rate: fraction of the population moved to a random strategy each generation
    selection_pressure: exponent applied to fitness before proportional selection
    rounds_per_generation: rounds in each fitness match
    max_generations: hard cap on generations after generation 0
    noise_level: per-move flip probability inside fitness matches
    convergence_threshold: population share above which one strategy has converged
    """
    population_size: int = 100
    mutation_rate: float = 0.01
    selection_pressure: float = 1.0
    rounds_per_generation: int = 50
    max_generations: int = 100
    noise_level: float = 0.0
    convergence_threshold: float = 0.95

    def __post_init__(self):
        check_rounds(self.population_size, "population_size", allow_zero=False)
        check_rounds(self.rounds_per_generation, "rounds_per_generation", allow_zero=False)
        check_rounds(self.max_generations, "max_generations", allow_zero=False)
        check_probability(self.mutation_rate, "mutation_rate")
        check_probability(self.noise_level, "noise_level")

        pressure = self.selection_pressure
        if isinstance(pressure, bool) or not isinstance(pressure, numbers.Real) \
                or not math.isfinite(pressure) or pressure < 0:
            raise InvalidArgumentError(f"selection_pressure must be a finite number >= 0, got {pressure!r}")

        threshold = check_probability(self.convergence_threshold, "convergence_threshold")
        if threshold == 0:
            raise InvalidArgumentError("convergence_threshold must be > 0")


class TerminationReason(Enum):
    MAX_GENERATIONS = "max_generations"
    CONVERGENCE = "convergence"
    EXTINCTION = "extinction"


@dataclass(frozen=True)
class Generation:
    """Read-only snapshot of the population at one generation"""
    generation: int
    population: Mapping[str, int]
    average_fitness: float
    cooperation_rate: float
    dominant_strategy: Optional[str]

    @property
    def total_population(self) -> int:
        return sum(self.population.values())

    def share(self, strategy_id: str) -> float:
        total = self.total_population
        return self.population.get(strategy_id, 0) / total if total else 0.0

    def to_dict(self) -> Dict:
        return {
            'generation': self.generation,
            'population': dict(self.population),
            'average_fitness': self.average_fitness,
            'cooperation_rate': self.cooperation_rate,
            'dominant_strategy': self.dominant_strategy,
        }


def dominant_strategy(population: Mapping[str, int]) -> Optional[str]:
    """Highest count wins; equal counts go to the lexicographically smallest id"""
    candidates = [(count, strategy_id) for strategy_id, count in population.items() if count > 0]
    if not candidates:
        return None
    best = max(count for count, _ in candidates)
    return min(strategy_id for count, strategy_id in candidates if count == best)


class EvolutionEngine:
    """
    Simulates how a finite population split across strategies changes over
    discrete generations.

    Fitness is the population-frequency-weighted payoff of each strategy
    against the population as it currently exists, self-play included. It is
    computed from Match Simulator outcomes directly rather than from a
    round-robin tournament.
    """

    def __init__(self, strategies: Sequence[Strategy], config: Optional[EvolutionConfig] = None,
                 payoff_matrix: PayoffMatrix = DEFAULT_PAYOFF_MATRIX, seed=None, verbose: bool = False):
        self.strategies: List[Strategy] = check_strategy_set(strategies, 1, "evolution")
        self.config = config if config is not None else EvolutionConfig()
        self.payoff_matrix = payoff_matrix
        self.verbose = verbose
        self._seed_sequence = np.random.SeedSequence(seed)
        self.rng = np.random.default_rng(self._seed_sequence.spawn(1)[0])
        self.generations: List[Generation] = []
        self.termination_reason: Optional[TerminationReason] = None
        self._running = False

    def _ids(self) -> List[str]:
        return [s.id for s in self.strategies]

    def initialize_population(self) -> Population:
        """Equal split; the integer remainder goes to the first strategies"""
        check_strategy_set(self.strategies, 1, "evolution")
        base, remainder = divmod(self.config.population_size, len(self.strategies))
        return {s.id: base + (1 if index < remainder else 0)
                for index, s in enumerate(self.strategies)}

    def _check_population(self, population: Mapping[str, int]) -> Population:
        known = set(self._ids())
        unknown = sorted(set(population) - known)
        if unknown:
            raise InvalidArgumentError(f"Population references unknown strategies: {unknown}")

        checked = {}
        for strategy_id in self._ids():
            count = population.get(strategy_id, 0)
            if isinstance(count, bool) or not isinstance(count, numbers.Integral) or count < 0:
                raise InvalidArgumentError(f"Count for {strategy_id} must be a non-negative integer, got {count!r}")
            checked[strategy_id] = int(count)

        total = sum(checked.values())
        if total != self.config.population_size:
            raise InvalidArgumentError(
                f"Initial population totals {total}, expected population_size {self.config.population_size}")
        return checked

    def run_evolution(self, initial_population: Optional[Mapping[str, int]] = None) -> List[Generation]:
        """Run generations until max_generations, convergence or extinction"""
        check_strategy_set(self.strategies, 1, "evolution")
        if initial_population is not None:
            population = self._check_population(initial_population)
        else:
            population = self.initialize_population()

        self._running = True
        try:
            self.generations = []
            fitness = self.calculate_fitness(population)
            self.generations.append(self._create_generation(0, population, fitness))
            reason = None

            logger.info("Evolution started: %d strategies, population %d, max %d generations",
                        len(self.strategies), self.config.population_size, self.config.max_generations)

            # Generation 1 is always played; termination is checked from there on
            pbar = tqdm(total=self.config.max_generations, desc="Evolving", disable=not self.verbose)
            for gen in range(1, self.config.max_generations + 1):
                population = self._create_next_generation(population, fitness)
                population = self._apply_mutations(population)
                fitness = self.calculate_fitness(population)

                generation = self._create_generation(gen, population, fitness)
                self.generations.append(generation)
                pbar.update(1)
                logger.debug("Generation %d: %s (avg fitness %.3f, dominant %s)",
                             gen, population, generation.average_fitness, generation.dominant_strategy)

                reason = self._check_termination(population)
                if reason is not None:
                    break
            pbar.close()

            self.termination_reason = reason if reason is not None else TerminationReason.MAX_GENERATIONS
        finally:
            self._running = False

        logger.info("Evolution finished after %d generations (%s), dominant %s",
                    len(self.generations) - 1, self.termination_reason.value,
                    self.generations[-1].dominant_strategy)
        return list(self.generations)

    def calculate_fitness(self, population: Mapping[str, int]) -> Dict[str, float]:
        """
        Frequency-weighted expected payoff of each strategy.

        Every ordered pair of strategies with non-zero count (a strategy
        against itself included) plays one match; both sides accumulate
        score * count_i * count_j / N^2.
        """
        fitness = {s.id: 0.0 for s in self.strategies}
        total = sum(population.values())
        if total == 0:
            return fitness

        active = [s for s in self.strategies if population.get(s.id, 0) > 0]
        seeds = iter(self._seed_sequence.spawn(len(active) * len(active)))
        for strategy1 in active:
            for strategy2 in active:
                match = run_match(strategy1, strategy2, self.payoff_matrix,
                                  self.config.rounds_per_generation, self.config.noise_level,
                                  seed=next(seeds))
                weight = (population[strategy1.id] * population[strategy2.id]) / (total * total)
                fitness[strategy1.id] += match.strategy1_score * weight
                fitness[strategy2.id] += match.strategy2_score * weight
        return fitness

    def _create_next_generation(self, population: Population, fitness: Mapping[str, float]) -> Population:
        """Fitness-proportional selection of population_size individuals"""
        total_fitness = sum(fitness.values())
        if total_fitness == 0:
            logger.warning("Total fitness is zero; keeping the current population")
            return dict(population)

        ids = self._ids()
        pressure = self.config.selection_pressure
        # Absent strategies cannot reproduce; negative fitness gives no offspring
        adjusted = np.array([
            max(fitness[strategy_id], 0.0) ** pressure if population.get(strategy_id, 0) > 0 else 0.0
            for strategy_id in ids
        ], dtype=float)

        adjusted_total = adjusted.sum()
        if not np.isfinite(adjusted_total) or adjusted_total <= 0:
            logger.warning("Adjusted fitness is degenerate (%s); keeping the current population", adjusted_total)
            return dict(population)

        counts = self.rng.multinomial(self.config.population_size, adjusted / adjusted_total)
        return {strategy_id: int(count) for strategy_id, count in zip(ids, counts)}

    def _apply_mutations(self, population: Population) -> Population:
        """Move single individuals from a random non-empty strategy to a random strategy"""
        mutated = dict(population)
        ids = self._ids()
        mutations_to_apply = math.floor(self.config.population_size * self.config.mutation_rate)

        for _ in range(mutations_to_apply):
            donors = [strategy_id for strategy_id in ids if mutated[strategy_id] > 0]
            if not donors:
                break
            from_strategy = donors[self.rng.integers(len(donors))]
            to_strategy = ids[self.rng.integers(len(ids))]
            mutated[from_strategy] -= 1
            mutated[to_strategy] += 1
        return mutated

    def _create_generation(self, generation: int, population: Population,
                           fitness: Mapping[str, float]) -> Generation:
        total = sum(population.values())
        average_fitness = sum(fitness.values()) / len(fitness) if fitness else 0.0

        nice_individuals = sum(population.get(s.id, 0) for s in self.strategies if s.is_nice)
        cooperation_rate = nice_individuals / total if total else 0.0

        return Generation(
            generation=generation,
            population=MappingProxyType(dict(population)),
            average_fitness=average_fitness,
            cooperation_rate=cooperation_rate,
            dominant_strategy=dominant_strategy(population),
        )

    def _check_termination(self, population: Mapping[str, int]) -> Optional[TerminationReason]:
        if self.has_converged(population):
            return TerminationReason.CONVERGENCE
        if self.has_extinction(population):
            return TerminationReason.EXTINCTION
        return None

    def has_converged(self, population: Mapping[str, int]) -> bool:
        total = sum(population.values())
        if total == 0:
            return False
        return max(population.values()) / total > self.config.convergence_threshold

    @staticmethod
    def has_extinction(population: Mapping[str, int]) -> bool:
        return sum(1 for count in population.values() if count > 0) < 2

    def get_generations(self) -> List[Generation]:
        return list(self.generations)

    def get_current_generation(self) -> Optional[Generation]:
        return self.generations[-1] if self.generations else None

    def to_dataframe(self) -> pd.DataFrame:
        """One row per generation with summary columns and a count column per strategy"""
        rows = []
        for gen in self.generations:
            row = {
                'generation': gen.generation,
                'average_fitness': gen.average_fitness,
                'cooperation_rate': gen.cooperation_rate,
                'dominant_strategy': gen.dominant_strategy,
            }
            for strategy_id in self._ids():
                row[strategy_id] = gen.population.get(strategy_id, 0)
            rows.append(row)
        columns = ['generation', 'average_fitness', 'cooperation_rate', 'dominant_strategy'] + self._ids()
        return pd.DataFrame(rows, columns=columns)

    def reset(self):
        self._ensure_idle("reset")
        self.generations = []
        self.termination_reason = None

    def update_config(self, **changes):
        """Replace selected EvolutionConfig fields; the result is validated as a whole"""
        self._ensure_idle("update the configuration")
        try:
            self.config = dataclasses.replace(self.config, **changes)
        except TypeError as e:
            raise InvalidArgumentError(f"Unknown evolution setting: {e}")

    def add_strategy(self, strategy: Strategy):
        """Add a strategy; an id that is already present is ignored"""
        self._ensure_idle("add a strategy")
        check_strategy_set([strategy], 1, "evolution")
        if strategy.id not in self._ids():
            self.strategies.append(strategy)

    def remove_strategy(self, strategy_id: str):
        self._ensure_idle("remove a strategy")
        self.strategies = [s for s in self.strategies if s.id != strategy_id]

    def _ensure_idle(self, action: str):
        if self._running:
            raise RuntimeError(f"Cannot {action} while an evolution run is in progress")
