"""
Strategy implementations for IPD simulations
Includes the strategy base class, the built-in catalog and the strategy registry
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import numpy as np

from .core import InvalidArgumentError, Move

logger = logging.getLogger(__name__)

C = Move.COOPERATE
D = Move.DEFECT

CATALOG_VERSION = "1.0"

_TAG_NAMES = ("is_nice", "is_forgiving", "is_provokable", "is_clear")


class Strategy(ABC):
    """
    Base class for all IPD strategies.

    A strategy is a decision function over the realized play history plus
    static descriptive metadata. decide() receives the moves that actually
    happened (after any noise), never the moves that were intended, so a
    strategy cannot tell a noisy move from a deliberate one.

    The tag attributes are for categorization only; engines never change
    their behaviour based on them.
    """
    id: str = ""
    name: str = ""
    description: str = ""
    color: str = "#6b7280"
    is_nice: bool = False
    is_forgiving: bool = False
    is_provokable: bool = False
    is_clear: bool = False

    @abstractmethod
    def decide(self, own_history: Sequence[Move], opponent_history: Sequence[Move],
               rng: Optional[np.random.Generator] = None) -> Move:
        """Return Move.COOPERATE or Move.DEFECT for the next round"""

    @property
    def tags(self) -> Dict[str, bool]:
        return {tag: bool(getattr(self, tag)) for tag in _TAG_NAMES}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


def _generator(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


# Classical Strategies
class AlwaysCooperate(Strategy):
    """Always cooperates"""
    id = "always_cooperate"
    name = "Always Cooperate"
    description = "Always chooses to cooperate, no matter what"
    color = "#22c55e"
    is_nice = True
    is_forgiving = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        return C


class AlwaysDefect(Strategy):
    """Always defects"""
    id = "always_defect"
    name = "Always Defect"
    description = "Always chooses to defect, no matter what"
    color = "#ef4444"
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        return D


class TitForTat(Strategy):
    """Cooperates first, then copies opponent's last move"""
    id = "tit_for_tat"
    name = "Tit for Tat"
    description = "Cooperates first, then copies opponent's last move"
    color = "#3b82f6"
    is_nice = True
    is_forgiving = True
    is_provokable = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        if not opponent_history:
            return C
        return opponent_history[-1]


class TitForTwoTats(Strategy):
    """Only retaliates after two consecutive defections"""
    id = "tit_for_two_tats"
    name = "Tit for Two Tats"
    description = "Only retaliates after opponent defects twice in a row"
    color = "#8b5cf6"
    is_nice = True
    is_forgiving = True
    is_provokable = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        if len(opponent_history) < 2:
            return C
        return D if opponent_history[-1] == D and opponent_history[-2] == D else C


class Grudger(Strategy):
    """Cooperates until opponent defects, then always defects (Grim Trigger)"""
    id = "grudger"
    name = "Grudger"
    description = "Cooperates until opponent defects once, then always defects"
    color = "#dc2626"
    is_nice = True
    is_provokable = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        return D if D in opponent_history else C


class Pavlov(Strategy):
    """Win-Stay-Lose-Shift: repeat after CC or DD, switch after CD or DC"""
    id = "pavlov"
    name = "Pavlov"
    description = "Repeats last move if it worked well, switches if it didn't"
    color = "#f59e0b"
    is_nice = True
    is_forgiving = True
    is_provokable = True

    def decide(self, own_history, opponent_history, rng=None):
        if not own_history:
            return C
        last_own = own_history[-1]
        if last_own == opponent_history[-1]:
            return last_own
        return last_own.flip()


class Random(Strategy):
    """Randomly cooperates or defects"""
    id = "random"
    name = "Random"
    description = "Randomly chooses to cooperate or defect with 50% probability"
    color = "#6b7280"

    def __init__(self, p_cooperate: float = 0.5):
        self.p_cooperate = p_cooperate

    def decide(self, own_history, opponent_history, rng=None):
        return C if _generator(rng).random() < self.p_cooperate else D


class GenerousTitForTat(Strategy):
    """Tit-for-Tat with forgiveness probability"""
    id = "generous_tit_for_tat"
    name = "Generous Tit for Tat"
    description = "Like Tit for Tat, but sometimes forgives defections"
    color = "#10b981"
    is_nice = True
    is_forgiving = True
    is_provokable = True

    def __init__(self, forgiveness_prob: float = 0.1):
        self.forgiveness_prob = forgiveness_prob

    def decide(self, own_history, opponent_history, rng=None):
        if not opponent_history or opponent_history[-1] == C:
            return C
        return C if _generator(rng).random() < self.forgiveness_prob else D


class SuspiciousTitForTat(Strategy):
    """Starts with defection, then plays Tit-for-Tat"""
    id = "suspicious_tit_for_tat"
    name = "Suspicious Tit for Tat"
    description = "Like Tit for Tat, but starts by defecting"
    color = "#7c3aed"
    is_forgiving = True
    is_provokable = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        if not opponent_history:
            return D
        return opponent_history[-1]


class Prober(Strategy):
    """Opens D-C-C, then plays Tit-for-Tat if the opponent retaliated, otherwise exploits"""
    id = "prober"
    name = "Prober"
    description = "Starts with D-C-C, then plays Tit for Tat if opponent retaliated"
    color = "#ec4899"
    is_forgiving = True
    is_provokable = True

    opening = (D, C, C)

    def decide(self, own_history, opponent_history, rng=None):
        if len(own_history) < len(self.opening):
            return self.opening[len(own_history)]
        if D in opponent_history[:len(self.opening)]:
            return opponent_history[-1]
        return D


class Simpleton(Strategy):
    """Cooperates if both players made the same move last round"""
    id = "simpleton"
    name = "Simpleton"
    description = "Cooperates if both players made the same move last round"
    color = "#84cc16"
    is_nice = True
    is_forgiving = True

    def decide(self, own_history, opponent_history, rng=None):
        if not own_history:
            return C
        return C if own_history[-1] == opponent_history[-1] else D


class Alternator(Strategy):
    """Simple alternating pattern (C-D-C-D...)"""
    id = "alternator"
    name = "Alternator"
    description = "Alternates between cooperation and defection, starting with cooperation"
    color = "#0ea5e9"
    is_nice = True
    is_clear = True

    def decide(self, own_history, opponent_history, rng=None):
        return C if len(own_history) % 2 == 0 else D


class Detective(Strategy):
    """Tests opponent with C-D-C-C, then copies a retaliator or exploits a pushover"""
    id = "detective"
    name = "Detective"
    description = ("Opens C-D-C-C; plays Tit for Tat if opponent ever defected back, "
                   "otherwise always defects")
    color = "#a16207"
    is_nice = True
    is_forgiving = True
    is_provokable = True

    test_sequence = (C, D, C, C)

    def decide(self, own_history, opponent_history, rng=None):
        round_num = len(own_history)
        if round_num < len(self.test_sequence):
            return self.test_sequence[round_num]
        if D in opponent_history:
            return opponent_history[-1]
        return D


class FunctionStrategy(Strategy):
    """Strategy backed by a plain decision callable"""

    def __init__(self, id: str, name: str, description: str,
                 decide: Callable[[Sequence[Move], Sequence[Move]], object],
                 color: str = "#6b7280", is_nice: bool = False, is_forgiving: bool = False,
                 is_provokable: bool = False, is_clear: bool = False,
                 uses_rng: bool = False):
        if not id:
            raise InvalidArgumentError("Custom strategy needs a non-empty id")
        if not callable(decide):
            raise InvalidArgumentError(f"decide for {id!r} must be callable")
        self.id = id
        self.name = name
        self.description = description
        self.color = color
        self.is_nice = is_nice
        self.is_forgiving = is_forgiving
        self.is_provokable = is_provokable
        self.is_clear = is_clear
        self._decide = decide
        self._uses_rng = uses_rng

    def decide(self, own_history, opponent_history, rng=None):
        if self._uses_rng:
            move = self._decide(own_history, opponent_history, _generator(rng))
        else:
            move = self._decide(own_history, opponent_history)
        return Move.coerce(move)


def create_custom_strategy(id: str, name: str, description: str, decide: Callable,
                           color: str = "#6b7280", **properties) -> FunctionStrategy:
    """
    Wrap a decision callable as a Strategy.

    decide(own_history, opponent_history) may return a Move or 'C'/'D'.
    Pass uses_rng=True to receive the simulator's random generator as a
    third argument. Tag keyword arguments are is_nice, is_forgiving,
    is_provokable and is_clear.
    """
    unknown = set(properties) - set(_TAG_NAMES) - {"uses_rng"}
    if unknown:
        raise InvalidArgumentError(f"Unknown strategy properties: {sorted(unknown)}")
    return FunctionStrategy(id, name, description, decide, color=color, **properties)


class StrategyRegistry:
    """Ordered id -> strategy mapping; iteration follows registration order"""

    def __init__(self, strategies: Optional[Sequence[Strategy]] = None, version: str = CATALOG_VERSION):
        self.version = version
        self._strategies: Dict[str, Strategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: Strategy, replace: bool = False) -> Strategy:
        if not isinstance(strategy, Strategy):
            raise InvalidArgumentError(f"Expected a Strategy, got {type(strategy).__name__}")
        if not strategy.id:
            raise InvalidArgumentError(f"{type(strategy).__name__} has no id")
        if strategy.id in self._strategies and not replace:
            raise InvalidArgumentError(f"Strategy id already registered: {strategy.id}")
        self._strategies[strategy.id] = strategy
        return strategy

    def unregister(self, strategy_id: str) -> Strategy:
        try:
            return self._strategies.pop(strategy_id)
        except KeyError:
            raise InvalidArgumentError(f"Unknown strategy id: {strategy_id}")

    def get(self, strategy_id: str) -> Strategy:
        try:
            return self._strategies[strategy_id]
        except KeyError:
            raise InvalidArgumentError(f"Unknown strategy id: {strategy_id}")

    def find(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def create(self, *strategy_ids: str) -> List[Strategy]:
        """Look up several ids at once, preserving the requested order"""
        return [self.get(strategy_id) for strategy_id in strategy_ids]

    def ids(self) -> List[str]:
        return list(self._strategies)

    def filter(self, **tags: bool) -> List[Strategy]:
        """filter(is_nice=True, is_forgiving=False) -> matching strategies"""
        unknown = set(tags) - set(_TAG_NAMES)
        if unknown:
            raise InvalidArgumentError(f"Unknown strategy tags: {sorted(unknown)}")
        return [s for s in self._strategies.values()
                if all(bool(getattr(s, tag)) == wanted for tag, wanted in tags.items())]

    def __contains__(self, strategy_id) -> bool:
        return strategy_id in self._strategies

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)


BUILTIN_STRATEGIES = (
    AlwaysCooperate,
    AlwaysDefect,
    TitForTat,
    TitForTwoTats,
    Grudger,
    Pavlov,
    Random,
    GenerousTitForTat,
    SuspiciousTitForTat,
    Prober,
    Simpleton,
    Alternator,
    Detective,
)


def default_registry() -> StrategyRegistry:
    """Build a fresh registry holding the built-in catalog"""
    return StrategyRegistry([cls() for cls in BUILTIN_STRATEGIES])


def get_strategy_by_id(strategy_id: str, registry: Optional[StrategyRegistry] = None) -> Optional[Strategy]:
    registry = registry if registry is not None else default_registry()
    return registry.find(strategy_id)


# Strategy categories
def nice_strategies(registry: StrategyRegistry) -> List[Strategy]:
    return registry.filter(is_nice=True)


def mean_strategies(registry: StrategyRegistry) -> List[Strategy]:
    return registry.filter(is_nice=False)


def forgiving_strategies(registry: StrategyRegistry) -> List[Strategy]:
    return registry.filter(is_forgiving=True)


def unforgiving_strategies(registry: StrategyRegistry) -> List[Strategy]:
    return registry.filter(is_forgiving=False)


def check_strategy_set(strategies: Sequence[Strategy], minimum: int, purpose: str) -> List[Strategy]:
    """Validate an engine's strategy list: enough members and unique ids"""
    strategies = list(strategies)
    if len(strategies) < minimum:
        noun = "strategy" if minimum == 1 else "strategies"
        raise InvalidArgumentError(f"Need at least {minimum} {noun} for {purpose}, got {len(strategies)}")
    seen = set()
    for strategy in strategies:
        if not isinstance(strategy, Strategy):
            raise InvalidArgumentError(f"Expected a Strategy, got {type(strategy).__name__}")
        if strategy.id in seen:
            raise InvalidArgumentError(f"Duplicate strategy id: {strategy.id}")
        seen.add(strategy.id)
    return strategies
