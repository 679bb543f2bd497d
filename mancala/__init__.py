"""Continuous MCTS evaluation engine for Kalah-style Mancala."""

from mancala.errors import (
    ConfigurationError,
    IllegalMoveError,
    InvalidStateError,
    MancalaError,
    SearchLifecycleError,
    SearchWorkerError,
)
from mancala.game_engine import GameEngine
from mancala.models import (
    HOLES_PER_SIDE,
    INITIAL_STONES_PER_HOLE,
    TOTAL_STONES,
    EvaluationSnapshot,
    GameResult,
    GameState,
    MoveEvaluation,
    Player,
    SearchConfig,
    SearchStatus,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "EvaluationSnapshot",
    "GameEngine",
    "GameResult",
    "GameState",
    "HOLES_PER_SIDE",
    "INITIAL_STONES_PER_HOLE",
    "IllegalMoveError",
    "InvalidStateError",
    "MancalaError",
    "MoveEvaluation",
    "Player",
    "SearchConfig",
    "SearchLifecycleError",
    "SearchStatus",
    "SearchWorkerError",
    "TOTAL_STONES",
]
