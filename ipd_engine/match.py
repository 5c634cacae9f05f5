"""
Match simulation between two strategies
Plays rounds under a payoff matrix with an optional symmetric noise channel
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .agents import Strategy
from .core import (
    DEFAULT_PAYOFF_MATRIX, Move, PayoffMatrix, RoundResult,
    check_probability, check_rounds,
)

logger = logging.getLogger(__name__)


def add_noise(intended_move: Move, noise_level: float, rng: np.random.Generator) -> Move:
    """Flip the intended move with probability noise_level"""
    if noise_level > 0 and rng.random() < noise_level:
        return intended_move.flip()
    return intended_move


class MatchSimulator:
    """
    Plays one match at a time between two strategies.

    The simulator owns the running history of the current match, so a single
    instance must not be shared between concurrently running matches. Engines
    create one simulator per match.
    """

    def __init__(self, payoff_matrix: PayoffMatrix = DEFAULT_PAYOFF_MATRIX,
                 seed=None, rng: Optional[np.random.Generator] = None):
        self.payoff_matrix = payoff_matrix
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.history: List[RoundResult] = []
        self.round_number = 0

    def play_round(self, strategy1: Strategy, strategy2: Strategy, noise_level: float = 0.0) -> RoundResult:
        """Play one round and append it to the running history"""
        noise_level = check_probability(noise_level, "noise_level")
        player1_moves = tuple(r.player1_move for r in self.history)
        player2_moves = tuple(r.player2_move for r in self.history)

        move1 = Move.coerce(strategy1.decide(player1_moves, player2_moves, self.rng))
        move2 = Move.coerce(strategy2.decide(player2_moves, player1_moves, self.rng))

        # Noise corrupts the realized move; strategies only ever see the realized one
        if noise_level > 0:
            move1 = add_noise(move1, noise_level, self.rng)
            move2 = add_noise(move2, noise_level, self.rng)

        score1, score2 = self.payoff_matrix.payoff(move1, move2)
        self.round_number += 1
        result = RoundResult(
            player1_move=move1,
            player2_move=move2,
            player1_score=score1,
            player2_score=score2,
            round=self.round_number,
        )
        self.history.append(result)
        return result

    def play_match(self, strategy1: Strategy, strategy2: Strategy, rounds: int,
                   noise_level: float = 0.0) -> List[RoundResult]:
        """Reset, then play exactly `rounds` rounds"""
        rounds = check_rounds(rounds, "rounds")
        noise_level = check_probability(noise_level, "noise_level")

        self.reset()
        for _ in range(rounds):
            self.play_round(strategy1, strategy2, noise_level)
        return list(self.history)

    def get_history(self) -> Tuple[RoundResult, ...]:
        return tuple(self.history)

    def get_total_scores(self) -> Tuple[float, float]:
        score1 = sum(r.player1_score for r in self.history)
        score2 = sum(r.player2_score for r in self.history)
        return score1, score2

    def get_cooperation_rates(self) -> Tuple[float, float]:
        if not self.history:
            return 0.0, 0.0
        total = len(self.history)
        coop1 = sum(1 for r in self.history if r.player1_move == Move.COOPERATE)
        coop2 = sum(1 for r in self.history if r.player2_move == Move.COOPERATE)
        return coop1 / total, coop2 / total

    def reset(self):
        """Clear history and round counter; the payoff matrix is kept"""
        self.history = []
        self.round_number = 0

    def get_payoff_matrix(self) -> PayoffMatrix:
        return self.payoff_matrix

    def set_payoff_matrix(self, matrix: PayoffMatrix):
        self.payoff_matrix = matrix


@dataclass(frozen=True)
class MatchResult:
    """Result of a single match between two strategies"""
    strategy1: Strategy
    strategy2: Strategy
    results: Tuple[RoundResult, ...]
    strategy1_score: float
    strategy2_score: float
    rounds: int
    cooperation_rates: Tuple[float, float] = field(default=(0.0, 0.0))

    @property
    def strategy1_cooperations(self) -> int:
        return sum(1 for r in self.results if r.player1_move == Move.COOPERATE)

    @property
    def strategy2_cooperations(self) -> int:
        return sum(1 for r in self.results if r.player2_move == Move.COOPERATE)

    def to_dict(self) -> Dict:
        return {
            'strategy1': self.strategy1.id,
            'strategy2': self.strategy2.id,
            'moves': [(r.player1_move.value, r.player2_move.value) for r in self.results],
            'scores': (self.strategy1_score, self.strategy2_score),
            'rounds': self.rounds,
            'cooperation_rates': self.cooperation_rates,
        }


def run_match(strategy1: Strategy, strategy2: Strategy, payoff_matrix: PayoffMatrix,
              rounds: int, noise_level: float = 0.0, seed=None) -> MatchResult:
    """Play one match on a fresh simulator and package the outcome"""
    simulator = MatchSimulator(payoff_matrix, seed=seed)
    results = simulator.play_match(strategy1, strategy2, rounds, noise_level)
    score1, score2 = simulator.get_total_scores()
    logger.debug("Match %s vs %s: %s-%s over %d rounds",
                 strategy1.id, strategy2.id, score1, score2, len(results))
    return MatchResult(
        strategy1=strategy1,
        strategy2=strategy2,
        results=tuple(results),
        strategy1_score=score1,
        strategy2_score=score2,
        rounds=len(results),
        cooperation_rates=simulator.get_cooperation_rates(),
    )
