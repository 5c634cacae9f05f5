"""
Analysis helpers for match histories, tournaments and evolutionary runs
"""

from typing import Dict, Sequence

import numpy as np
import pandas as pd

from .agents import Strategy
from .core import Move, RoundResult
from .evolution import Generation

C = Move.COOPERATE
D = Move.DEFECT


def calculate_cooperation_rate(results: Sequence[RoundResult]) -> float:
    """Share of all individual moves (both players) that were cooperation"""
    if not results:
        return 0.0
    cooperations = sum((r.player1_move == C) + (r.player2_move == C) for r in results)
    return cooperations / (len(results) * 2)


def calculate_mutual_cooperation_rate(results: Sequence[RoundResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for r in results if r.player1_move == C and r.player2_move == C) / len(results)


def calculate_mutual_defection_rate(results: Sequence[RoundResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for r in results if r.player1_move == D and r.player2_move == D) / len(results)


def calculate_exploitation_rate(results: Sequence[RoundResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for r in results if r.player1_move != r.player2_move) / len(results)


def analyze_game_results(results: Sequence[RoundResult]) -> Dict:
    """Summary statistics for one match history"""
    if not results:
        return {
            'total_rounds': 0,
            'cooperation_rate': 0.0,
            'mutual_cooperation_rate': 0.0,
            'mutual_defection_rate': 0.0,
            'exploitation_rate': 0.0,
            'average_score': (0.0, 0.0),
        }

    total_rounds = len(results)
    score1 = sum(r.player1_score for r in results)
    score2 = sum(r.player2_score for r in results)
    return {
        'total_rounds': total_rounds,
        'cooperation_rate': calculate_cooperation_rate(results),
        'mutual_cooperation_rate': calculate_mutual_cooperation_rate(results),
        'mutual_defection_rate': calculate_mutual_defection_rate(results),
        'exploitation_rate': calculate_exploitation_rate(results),
        'average_score': (score1 / total_rounds, score2 / total_rounds),
    }


def results_to_dataframe(results: Sequence[RoundResult]) -> pd.DataFrame:
    columns = ['round', 'player1_move', 'player2_move', 'player1_score', 'player2_score']
    return pd.DataFrame([r.to_dict() for r in results], columns=columns)


def calculate_strategy_effectiveness(generations: Sequence[Generation],
                                     strategies: Sequence[Strategy]) -> Dict[str, float]:
    """Average per-generation growth rate of each strategy's count"""
    if len(generations) < 2:
        return {s.id: 0.0 for s in strategies}

    effectiveness = {}
    for strategy in strategies:
        growth_rates = []
        for previous, current in zip(generations, generations[1:]):
            prev_count = previous.population.get(strategy.id, 0)
            if prev_count > 0:
                growth_rates.append((current.population.get(strategy.id, 0) - prev_count) / prev_count)
        effectiveness[strategy.id] = float(np.mean(growth_rates)) if growth_rates else 0.0
    return effectiveness


def calculate_evolutionary_stability(generations: Sequence[Generation],
                                     strategies: Sequence[Strategy]) -> Dict[str, float]:
    """
    Inverse coefficient of variation of each strategy's count over the run.

    Higher values mean a steadier population. Runs shorter than five
    generations, and strategies whose count never varies or is always zero,
    score 0.
    """
    if len(generations) < 5:
        return {s.id: 0.0 for s in strategies}

    stability = {}
    for strategy in strategies:
        counts = np.array([gen.population.get(strategy.id, 0) for gen in generations], dtype=float)
        mean = counts.mean()
        normalized_std = counts.std() / mean if mean > 0 else 0.0
        stability[strategy.id] = float(1 / normalized_std) if normalized_std > 0 else 0.0
    return stability


def calculate_noise_impact(noisy_results: Sequence[RoundResult], clean_results: Sequence[RoundResult],
                           strategies: Sequence[Strategy]) -> Dict[str, float]:
    """
    Relative change of the mean per-move score caused by noise.

    The histories carry no strategy attribution, so every strategy is
    assigned the same overall impact.
    """
    if not noisy_results or not clean_results:
        return {s.id: 0.0 for s in strategies}

    def mean_score(results):
        return sum(r.player1_score + r.player2_score for r in results) / (len(results) * 2)

    clean = mean_score(clean_results)
    noisy = mean_score(noisy_results)
    relative_impact = (noisy - clean) / clean if clean > 0 else 0.0
    return {s.id: relative_impact for s in strategies}
