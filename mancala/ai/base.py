"""
Base AI Player class for the Mancala engine
Abstract base class that move-choosing policies inherit from
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional
import random

from ..game_engine import GameEngine
from ..models import GameState, SearchConfig


class BaseAI(ABC):
    """Abstract base class for all move-choosing policies"""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the policy

        Args:
            config: Search configuration settings
            rng: Random source to draw from. When omitted a private
                ``random.Random`` is seeded from ``config.rng_seed`` (or from
                OS entropy when no seed is configured).
        """
        self.config = config or SearchConfig()
        self.move_count = 0

        # Per-instance RNG used for all stochastic behaviour (rollout moves,
        # temperature sampling). Never the module-level `random` functions,
        # so a fixed seed reproduces a whole search.
        if rng is not None:
            self.rng: random.Random = rng
        else:
            self.rng = random.Random(self.config.rng_seed)

    @abstractmethod
    def select_move(self, game_state: GameState) -> Optional[int]:
        """
        Select a move for the current game state

        Args:
            game_state: Current game state

        Returns:
            Selected hole index or None if no valid moves
        """
        pass

    def get_valid_moves(self, game_state: GameState) -> List[int]:
        """
        Get all valid moves for the current position using the rules engine.

        Args:
            game_state: Current game state

        Returns:
            List of legal hole indices
        """
        return GameEngine.get_valid_moves(game_state)

    def get_random_element(self, items: List[Any]) -> Optional[Any]:
        """
        Get random element from list using the per-instance RNG.

        Args:
            items: List of items

        Returns:
            Random item or None if list is empty
        """
        if not items:
            return None
        return self.rng.choice(items)

    def __repr__(self) -> str:
        """String representation of AI"""
        return (
            f"{self.__class__.__name__}"
            f"(exploration_constant={self.config.exploration_constant}, "
            f"rng_seed={self.config.rng_seed})"
        )
