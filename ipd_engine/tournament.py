"""
Tournament engine for IPD strategy competitions
Handles round-robin and elimination formats, standings and head-to-head diagnostics
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .agents import Strategy, check_strategy_set
from .core import (
    DEFAULT_PAYOFF_MATRIX, InvalidArgumentError, PayoffMatrix,
    check_probability, check_rounds,
)
from .match import MatchResult, run_match

logger = logging.getLogger(__name__)


class TieBreak(Enum):
    """How standings with equal total score are ordered"""
    STRATEGY_ID = "strategy_id"    # lexicographic by strategy id
    INPUT_ORDER = "input_order"    # order in which strategies were supplied


@dataclass(frozen=True)
class TournamentStanding:
    """Aggregated per-strategy results over every match it played"""
    strategy_id: str
    total_score: float = 0
    matches_played: int = 0
    total_rounds: int = 0
    cooperation_rate: float = 0.0
    wins: int = 0
    losses: int = 0
    ties: int = 0

    @property
    def average_score(self) -> float:
        return self.total_score / self.matches_played if self.matches_played else 0.0

    def to_dict(self) -> Dict:
        return {
            'strategy_id': self.strategy_id,
            'total_score': self.total_score,
            'average_score': self.average_score,
            'matches_played': self.matches_played,
            'total_rounds': self.total_rounds,
            'cooperation_rate': self.cooperation_rate,
            'wins': self.wins,
            'losses': self.losses,
            'ties': self.ties,
        }


@dataclass(frozen=True)
class TournamentRound:
    round_number: int
    matches: Tuple[MatchResult, ...]
    standings: Tuple[TournamentStanding, ...]


@dataclass(frozen=True)
class Tournament:
    """Complete tournament record"""
    id: str
    name: str
    strategies: Tuple[Strategy, ...]
    rounds: Tuple[TournamentRound, ...]
    current_round: int
    is_complete: bool
    winner: Optional[Strategy] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def standings(self) -> Tuple[TournamentStanding, ...]:
        return self.rounds[-1].standings if self.rounds else ()

    @property
    def matches(self) -> List[MatchResult]:
        return [match for rnd in self.rounds for match in rnd.matches]

    def get_summary_stats(self) -> pd.DataFrame:
        """Standings of the final round as a DataFrame, best first"""
        rows = []
        for rank, standing in enumerate(self.standings, 1):
            row = {'rank': rank}
            row.update(standing.to_dict())
            rows.append(row)
        columns = ['rank', 'strategy_id', 'total_score', 'average_score', 'matches_played',
                   'total_rounds', 'cooperation_rate', 'wins', 'losses', 'ties']
        return pd.DataFrame(rows, columns=columns)


@dataclass(frozen=True)
class HeadToHeadStats:
    strategy1_wins: int
    strategy2_wins: int
    ties: int
    average_scores: Tuple[float, float]
    cooperation_rates: Tuple[float, float]
    matches: int


def calculate_standings(strategies: Sequence[Strategy], matches: Sequence[MatchResult],
                        tie_break: TieBreak = TieBreak.STRATEGY_ID) -> Tuple[TournamentStanding, ...]:
    """Recompute standings from scratch for the given strategies and matches"""
    totals = {s.id: {'total_score': 0, 'matches_played': 0, 'total_rounds': 0,
                     'cooperations': 0, 'wins': 0, 'losses': 0, 'ties': 0}
              for s in strategies}

    for match in matches:
        first = totals[match.strategy1.id]
        second = totals[match.strategy2.id]

        first['total_score'] += match.strategy1_score
        second['total_score'] += match.strategy2_score
        first['matches_played'] += 1
        second['matches_played'] += 1
        first['total_rounds'] += len(match.results)
        second['total_rounds'] += len(match.results)
        first['cooperations'] += match.strategy1_cooperations
        second['cooperations'] += match.strategy2_cooperations

        if match.strategy1_score > match.strategy2_score:
            first['wins'] += 1
            second['losses'] += 1
        elif match.strategy2_score > match.strategy1_score:
            second['wins'] += 1
            first['losses'] += 1
        else:
            first['ties'] += 1
            second['ties'] += 1

    standings = []
    for strategy_id, t in totals.items():
        rounds = t['total_rounds']
        standings.append(TournamentStanding(
            strategy_id=strategy_id,
            total_score=t['total_score'],
            matches_played=t['matches_played'],
            total_rounds=rounds,
            cooperation_rate=t['cooperations'] / rounds if rounds else 0.0,
            wins=t['wins'],
            losses=t['losses'],
            ties=t['ties'],
        ))

    if tie_break is TieBreak.STRATEGY_ID:
        return tuple(sorted(standings, key=lambda s: (-s.total_score, s.strategy_id)))
    # sorted() is stable, so equal scores keep input order
    return tuple(sorted(standings, key=lambda s: -s.total_score))


class TournamentEngine:
    """
    Runs strategy competitions under one payoff matrix.

    Every match is played on its own MatchSimulator with a seed spawned from
    the engine's SeedSequence in pair order, so two engines built with the
    same seed produce identical results, whether matches run sequentially or
    concurrently.
    """

    def __init__(self, payoff_matrix: PayoffMatrix = DEFAULT_PAYOFF_MATRIX,
                 rounds_per_match: int = 200, noise_level: float = 0.0, seed=None,
                 tie_break: TieBreak = TieBreak.STRATEGY_ID, verbose: bool = False,
                 max_concurrent: int = 20):
        self.payoff_matrix = payoff_matrix
        self.rounds_per_match = check_rounds(rounds_per_match, "rounds_per_match")
        self.noise_level = check_probability(noise_level, "noise_level")
        self.tie_break = TieBreak(tie_break)
        self.verbose = verbose
        self.max_concurrent = max_concurrent
        self._seed_sequence = np.random.SeedSequence(seed)

    def _run_match(self, strategy1: Strategy, strategy2: Strategy, seed) -> MatchResult:
        return run_match(strategy1, strategy2, self.payoff_matrix,
                         self.rounds_per_match, self.noise_level, seed=seed)

    @staticmethod
    def _round_robin_pairs(strategies: Sequence[Strategy]) -> List[Tuple[Strategy, Strategy]]:
        pairs = []
        for i, strategy1 in enumerate(strategies):
            for strategy2 in strategies[i + 1:]:
                pairs.append((strategy1, strategy2))
        return pairs

    def _build_round_robin(self, strategies: List[Strategy], matches: List[MatchResult]) -> Tournament:
        standings = calculate_standings(strategies, matches, self.tie_break)
        winner = next(s for s in strategies if s.id == standings[0].strategy_id)
        now = datetime.now()
        logger.info("Round-robin complete: %d strategies, %d matches, winner %s",
                    len(strategies), len(matches), winner.id)
        return Tournament(
            id=f"tournament_{now.strftime('%Y%m%d%H%M%S%f')}",
            name=f"Tournament {now.strftime('%Y-%m-%d')}",
            strategies=tuple(strategies),
            rounds=(TournamentRound(round_number=1, matches=tuple(matches), standings=standings),),
            current_round=1,
            is_complete=True,
            winner=winner,
        )

    def run_tournament(self, strategies: Sequence[Strategy]) -> Tournament:
        """Run full round-robin tournament: every unordered pair plays once, no self-play"""
        strategies = check_strategy_set(strategies, 2, "a tournament")
        pairs = self._round_robin_pairs(strategies)
        seeds = self._seed_sequence.spawn(len(pairs))

        matches = []
        pbar = tqdm(total=len(pairs), desc="Running matches", disable=not self.verbose)
        for (strategy1, strategy2), seed in zip(pairs, seeds):
            matches.append(self._run_match(strategy1, strategy2, seed))
            pbar.update(1)
        pbar.close()

        return self._build_round_robin(strategies, matches)

    async def run_tournament_async(self, strategies: Sequence[Strategy],
                                   max_concurrent: Optional[int] = None) -> Tournament:
        """Run the round-robin with matches executed concurrently in a thread pool"""
        strategies = check_strategy_set(strategies, 2, "a tournament")
        if max_concurrent is None:
            max_concurrent = self.max_concurrent
        if max_concurrent is None or max_concurrent <= 0:
            max_concurrent = 20

        pairs = self._round_robin_pairs(strategies)
        seeds = self._seed_sequence.spawn(len(pairs))
        semaphore = asyncio.Semaphore(max_concurrent)
        loop = asyncio.get_running_loop()
        pbar = tqdm(total=len(pairs), desc="Running matches concurrently", disable=not self.verbose)

        logger.debug("Running %d matches with max %d concurrent", len(pairs), max_concurrent)

        async def run_single_match(strategy1, strategy2, seed):
            async with semaphore:
                result = await loop.run_in_executor(None, self._run_match, strategy1, strategy2, seed)
                pbar.update(1)
                return result

        # gather() keeps task order, so the reduction below is in fixed pair order
        tasks = [run_single_match(s1, s2, seed) for (s1, s2), seed in zip(pairs, seeds)]
        matches = await asyncio.gather(*tasks)
        pbar.close()

        return self._build_round_robin(strategies, list(matches))

    def run_elimination_tournament(self, strategies: Sequence[Strategy]) -> Tournament:
        """
        Single elimination bracket.

        Adjacent strategies are paired each round and the higher scorer
        advances; a tied match advances the first of the pair. With an odd
        field the last strategy gets a bye. Standings for every bracket round
        are kept for audit.
        """
        strategies = check_strategy_set(strategies, 2, "an elimination tournament")

        current = list(strategies)
        rounds = []
        round_number = 1
        while len(current) > 1:
            pairs = [(current[i], current[i + 1]) for i in range(0, len(current) - 1, 2)]
            seeds = self._seed_sequence.spawn(len(pairs))

            matches = []
            advancing = []
            for (strategy1, strategy2), seed in zip(pairs, seeds):
                match = self._run_match(strategy1, strategy2, seed)
                matches.append(match)
                advancing.append(strategy1 if match.strategy1_score >= match.strategy2_score else strategy2)
            if len(current) % 2 == 1:
                advancing.append(current[-1])

            standings = calculate_standings(current, matches, self.tie_break)
            rounds.append(TournamentRound(round_number=round_number, matches=tuple(matches),
                                          standings=standings))
            logger.debug("Elimination round %d: %s advance", round_number,
                         ", ".join(s.id for s in advancing))
            current = advancing
            round_number += 1

        now = datetime.now()
        logger.info("Elimination complete after %d rounds, winner %s", len(rounds), current[0].id)
        return Tournament(
            id=f"elimination_{now.strftime('%Y%m%d%H%M%S%f')}",
            name=f"Elimination Tournament {now.strftime('%Y-%m-%d')}",
            strategies=tuple(strategies),
            rounds=tuple(rounds),
            current_round=len(rounds),
            is_complete=True,
            winner=current[0],
        )

    def get_head_to_head_stats(self, strategy1: Strategy, strategy2: Strategy,
                               num_matches: int = 10) -> HeadToHeadStats:
        """Play num_matches independent matches between two strategies"""
        num_matches = check_rounds(num_matches, "num_matches", allow_zero=False)
        if strategy1.id == strategy2.id:
            raise InvalidArgumentError("Head-to-head needs two different strategies")

        strategy1_wins = strategy2_wins = ties = 0
        total_scores = [0, 0]
        total_cooperations = [0, 0]
        total_rounds = 0

        for seed in self._seed_sequence.spawn(num_matches):
            match = self._run_match(strategy1, strategy2, seed)
            if match.strategy1_score > match.strategy2_score:
                strategy1_wins += 1
            elif match.strategy2_score > match.strategy1_score:
                strategy2_wins += 1
            else:
                ties += 1

            total_scores[0] += match.strategy1_score
            total_scores[1] += match.strategy2_score
            total_cooperations[0] += match.strategy1_cooperations
            total_cooperations[1] += match.strategy2_cooperations
            total_rounds += len(match.results)

        if total_rounds:
            cooperation_rates = (total_cooperations[0] / total_rounds, total_cooperations[1] / total_rounds)
        else:
            cooperation_rates = (0.0, 0.0)

        return HeadToHeadStats(
            strategy1_wins=strategy1_wins,
            strategy2_wins=strategy2_wins,
            ties=ties,
            average_scores=(total_scores[0] / num_matches, total_scores[1] / num_matches),
            cooperation_rates=cooperation_rates,
            matches=num_matches,
        )

    def update_settings(self, rounds_per_match: Optional[int] = None, noise_level: Optional[float] = None):
        if rounds_per_match is not None:
            rounds_per_match = check_rounds(rounds_per_match, "rounds_per_match")
        if noise_level is not None:
            noise_level = check_probability(noise_level, "noise_level")

        if rounds_per_match is not None:
            self.rounds_per_match = rounds_per_match
        if noise_level is not None:
            self.noise_level = noise_level
