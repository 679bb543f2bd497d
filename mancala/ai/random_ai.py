"""Uniform random policy for the Mancala engine.

Moves are drawn from the per-instance RNG on :class:`BaseAI`, so a seeded
policy replays the same games. The search driver uses :meth:`RandomAI.play_out`
for its rollouts.
"""

from __future__ import annotations

from ..game_engine import GameEngine
from ..models import GameState
from .base import BaseAI


class RandomAI(BaseAI):
    """AI that selects random valid moves."""

    def select_move(self, game_state: GameState) -> int | None:
        """Pick a legal hole uniformly at random, or None at a terminal state."""
        move = self.get_random_element(self.get_valid_moves(game_state))
        if move is not None:
            self.move_count += 1
        return move

    def play_out(self, game_state: GameState) -> GameState:
        """Play random moves from ``game_state`` until the game is over.

        Returns the terminal state. ``move_count`` is left untouched.
        """
        state = game_state
        moves = GameEngine.get_valid_moves(state)
        while moves:
            state = GameEngine.apply_move(state, self.rng.choice(moves))
            moves = GameEngine.get_valid_moves(state)
        return state
