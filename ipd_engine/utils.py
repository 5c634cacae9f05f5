"""
Utility functions: environment configuration, logging setup, history formatting and timing
"""

import logging
import os
import time
from typing import Dict, Optional, Sequence

from dotenv import load_dotenv

from .core import InvalidArgumentError, Move, RoundResult

logger = logging.getLogger(__name__)

# env var -> (settings key, type, default)
ENV_SETTINGS = {
    'IPD_ROUNDS_PER_MATCH': ('rounds_per_match', int, 200),
    'IPD_NOISE_LEVEL': ('noise_level', float, 0.0),
    'IPD_SEED': ('seed', int, None),
    'IPD_POPULATION_SIZE': ('population_size', int, 100),
    'IPD_MUTATION_RATE': ('mutation_rate', float, 0.01),
    'IPD_SELECTION_PRESSURE': ('selection_pressure', float, 1.0),
    'IPD_ROUNDS_PER_GENERATION': ('rounds_per_generation', int, 50),
    'IPD_MAX_GENERATIONS': ('max_generations', int, 100),
    'IPD_LOG_LEVEL': ('log_level', str, 'WARNING'),
}


def load_env_vars(env_file: Optional[str] = None) -> Dict:
    """
    Load engine defaults from the environment.

    Values from env_file (or a .env file found by python-dotenv) are loaded
    first without overriding variables that are already set.
    """
    if env_file is not None:
        if not os.path.exists(env_file):
            raise InvalidArgumentError(f"Environment file not found: {env_file}")
        load_dotenv(env_file)
    else:
        load_dotenv()

    settings = {}
    for var, (key, cast, default) in ENV_SETTINGS.items():
        raw = os.getenv(var)
        if raw is None or raw.strip() == "":
            settings[key] = default
            continue
        try:
            settings[key] = cast(raw.strip())
        except ValueError:
            raise InvalidArgumentError(f"{var} must be {cast.__name__}, got {raw!r}")
    return settings


def setup_logging(level="INFO", log_file: Optional[str] = None) -> Optional[str]:
    """Configure logging to console and, optionally, to a file; returns the log file path"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level.upper() if isinstance(level, str) else level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    return log_file


def format_history(results: Sequence[RoundResult]) -> str:
    """Compact 'CC CD DD' style rendering of a match history"""
    return " ".join(f"{r.player1_move.value}{r.player2_move.value}" for r in results)


def format_moves(moves: Sequence[Move]) -> str:
    return "".join(Move.coerce(m).value for m in moves)


class Timer:
    """Context manager measuring wall-clock time"""

    def __init__(self, label: str = "operation"):
        self.label = label
        self.elapsed = 0.0
        self._start = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed = time.perf_counter() - self._start
        logger.info("%s took %.2fs", self.label, self.elapsed)
        return False
