"""
Core game primitives for the Iterated Prisoner's Dilemma
Moves, payoff matrices, round records and argument validation
"""

import numbers
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Tuple, Union


class InvalidArgumentError(ValueError):
    """Raised when a caller supplies an argument the engine cannot accept"""


class Move(str, Enum):
    """A single move in the Prisoner's Dilemma"""
    COOPERATE = "C"
    DEFECT = "D"

    def flip(self) -> "Move":
        return Move.DEFECT if self is Move.COOPERATE else Move.COOPERATE

    @classmethod
    def coerce(cls, value: Union["Move", str]) -> "Move":
        """Accept a Move, 'C'/'D' or 'cooperate'/'defect' (any case)"""
        if isinstance(value, Move):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("c", "cooperate"):
                return cls.COOPERATE
            if text in ("d", "defect"):
                return cls.DEFECT
        raise InvalidArgumentError(f"Not a valid move: {value!r}")

    def __str__(self) -> str:
        return self.value


MovePair = Tuple[Move, Move]
Payoff = Tuple[float, float]


class PayoffMatrix:
    """
    Immutable 2x2 payoff table keyed by (own move, opponent move).

    The matrix is only checked for shape at construction time. Whether it is a
    proper Prisoner's Dilemma (T > R > P > S and 2R > T + S) is answered by
    is_prisoners_dilemma(), so callers can still explore other 2x2 games.
    """

    def __init__(self, payoffs: Mapping):
        table: Dict[MovePair, Payoff] = {}
        for key, value in payoffs.items():
            if not isinstance(key, tuple) or len(key) != 2:
                raise InvalidArgumentError(f"Payoff key must be a pair of moves, got {key!r}")
            pair = (Move.coerce(key[0]), Move.coerce(key[1]))
            table[pair] = self._check_payoff(pair, value)

        missing = [pair for pair in _ALL_PAIRS if pair not in table]
        if missing:
            labels = ", ".join(f"{a.value}{b.value}" for a, b in missing)
            raise InvalidArgumentError(f"Payoff matrix is missing outcomes: {labels}")

        self._table = MappingProxyType(table)

    @staticmethod
    def _check_payoff(pair: MovePair, value) -> Payoff:
        if isinstance(value, (str, bytes)):
            raise InvalidArgumentError(f"Payoff for {pair} must be a pair of numbers, got {value!r}")
        try:
            own, opponent = value
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"Payoff for {pair} must be a pair of numbers, got {value!r}")
        for score in (own, opponent):
            if isinstance(score, bool) or not isinstance(score, numbers.Real):
                raise InvalidArgumentError(f"Payoff for {pair} must be numeric, got {score!r}")
        return (own, opponent)

    @classmethod
    def from_nested(cls, nested: Mapping) -> "PayoffMatrix":
        """Build from {'cooperate': {'cooperate': [3, 3], 'defect': [0, 5]}, 'defect': {...}}"""
        flat = {}
        try:
            for own, row in nested.items():
                for opponent, value in row.items():
                    flat[(own, opponent)] = value
        except AttributeError:
            raise InvalidArgumentError("Nested payoff matrix must be a mapping of mappings")
        return cls(flat)

    def payoff(self, move1: Union[Move, str], move2: Union[Move, str]) -> Payoff:
        return self._table[(Move.coerce(move1), Move.coerce(move2))]

    def __getitem__(self, pair) -> Payoff:
        return self.payoff(*pair)

    def items(self):
        return self._table.items()

    @property
    def temptation(self) -> float:
        return self._table[(Move.DEFECT, Move.COOPERATE)][0]

    @property
    def reward(self) -> float:
        return self._table[(Move.COOPERATE, Move.COOPERATE)][0]

    @property
    def punishment(self) -> float:
        return self._table[(Move.DEFECT, Move.DEFECT)][0]

    @property
    def sucker(self) -> float:
        return self._table[(Move.COOPERATE, Move.DEFECT)][0]

    def is_prisoners_dilemma(self) -> bool:
        t, r, p, s = self.temptation, self.reward, self.punishment, self.sucker
        return t > r > p > s and 2 * r > t + s

    def to_dict(self) -> Dict[str, Dict[str, list]]:
        names = {Move.COOPERATE: "cooperate", Move.DEFECT: "defect"}
        nested: Dict[str, Dict[str, list]] = {"cooperate": {}, "defect": {}}
        for (own, opponent), value in self._table.items():
            nested[names[own]][names[opponent]] = list(value)
        return nested

    def __eq__(self, other) -> bool:
        if not isinstance(other, PayoffMatrix):
            return NotImplemented
        return dict(self._table) == dict(other._table)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._table.items())))

    def __repr__(self) -> str:
        cells = ", ".join(f"{a.value}{b.value}={list(v)}" for (a, b), v in self._table.items())
        return f"PayoffMatrix({cells})"


_ALL_PAIRS = [
    (Move.COOPERATE, Move.COOPERATE),
    (Move.COOPERATE, Move.DEFECT),
    (Move.DEFECT, Move.COOPERATE),
    (Move.DEFECT, Move.DEFECT),
]


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one played round (moves are the realized, post-noise moves)"""
    player1_move: Move
    player2_move: Move
    player1_score: float
    player2_score: float
    round: int

    def to_dict(self) -> Dict:
        return {
            'round': self.round,
            'player1_move': self.player1_move.value,
            'player2_move': self.player2_move.value,
            'player1_score': self.player1_score,
            'player2_score': self.player2_score,
        }


# Standard Prisoner's Dilemma values
DEFAULT_PAYOFF_MATRIX = PayoffMatrix({
    ('C', 'C'): (3, 3),
    ('C', 'D'): (0, 5),
    ('D', 'C'): (5, 0),
    ('D', 'D'): (1, 1),
})

AXELROD_PAYOFF_MATRIX = PayoffMatrix({
    ('C', 'C'): (3, 3),
    ('C', 'D'): (0, 5),
    ('D', 'C'): (5, 0),
    ('D', 'D'): (1, 1),
})


def validate_payoff_matrix(matrix: PayoffMatrix) -> bool:
    """Check the Prisoner's Dilemma conditions T > R > P > S and 2R > T + S"""
    return matrix.is_prisoners_dilemma()


def calculate_payoff(move1, move2, matrix: PayoffMatrix = DEFAULT_PAYOFF_MATRIX) -> Payoff:
    return matrix.payoff(move1, move2)


def check_rounds(rounds, name: str = "rounds", allow_zero: bool = True) -> int:
    """Reject non-integer or out-of-range round/generation counts"""
    if isinstance(rounds, bool) or not isinstance(rounds, numbers.Integral):
        raise InvalidArgumentError(f"{name} must be an integer, got {rounds!r}")
    if rounds < 0 or (rounds == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise InvalidArgumentError(f"{name} must be {bound}, got {rounds}")
    return int(rounds)


def check_probability(value, name: str) -> float:
    """Reject rates outside [0, 1]; never clamps"""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}")
    if not 0 <= value <= 1:
        raise InvalidArgumentError(f"{name} must be within [0, 1], got {value}")
    return float(value)
