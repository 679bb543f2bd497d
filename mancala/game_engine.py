"""Core game engine for the Mancala search service.

This module is the rules layer: a pure algebra over immutable
:class:`~mancala.models.GameState` values. Nothing here keeps mutable state
between calls, so the same functions are safe to call from the background
search worker and from consumer threads without locking.

Variant rules (Kalah-style, six holes and one store per side):

- A move picks a non-empty hole on the mover's side. Its stones are sown one
  per hole toward the mover's store, into the store, then along the
  opponent's holes and into the opponent's store, and around again.
- If the last stone lands in the mover's store the mover plays again.
- If the last stone lands in an empty hole on the mover's side, the stones of
  the directly opposite hole are banked in the mover's store.
- The game ends as soon as either side has no stones left in its holes; each
  side then banks its own remaining stones.
"""

from __future__ import annotations

import numbers
from typing import Dict, List, Optional

from .errors import IllegalMoveError, InvalidStateError
from .models import HOLES_PER_SIDE, GameResult, GameState, Player


class GameEngine:
    """Python GameEngine used by the search driver.

    Exposes `get_valid_moves` and `apply_move` as the primary APIs for the
    search tree and rollouts, plus terminal detection and scoring.
    """

    @staticmethod
    def initial_state(
        stones_per_hole: Optional[int] = None,
        first_player: Player = Player.PLAYER_1,
    ) -> GameState:
        """Return the standard starting position."""
        if stones_per_hole is None:
            return GameState.initial(first_player=first_player)
        return GameState.initial(
            stones_per_hole=stones_per_hole,
            first_player=first_player,
        )

    @staticmethod
    def get_valid_moves(game_state: GameState) -> List[int]:
        """Return the legal hole indices for the side to move.

        The order is ascending hole index, which is also the enumeration
        order used for expansion and tie-breaking in the search tree. An
        empty list is returned exactly when the position is terminal.
        """
        if GameEngine.is_terminal(game_state):
            return []
        holes = game_state.holes(game_state.current_player)
        return [i for i, stones in enumerate(holes) if stones > 0]

    @staticmethod
    def apply_move(game_state: GameState, move: int) -> GameState:
        """
        Apply a move to a game state and return the new state.

        Args:
            game_state: The current game state.
            move: Hole index on the side to move.

        Raises:
            IllegalMoveError: if ``move`` is not a legal move in
                ``game_state``. The input state is never modified.
        """
        valid_moves = GameEngine.get_valid_moves(game_state)
        if (
            not isinstance(move, numbers.Integral)
            or isinstance(move, bool)
            or move not in valid_moves
        ):
            raise IllegalMoveError(
                f"Hole {move!r} is not a legal move for player "
                f"{int(game_state.current_player)}",
                move=move,
                legal_moves=valid_moves,
                context={"player": int(game_state.current_player)},
            )

        mover = game_state.current_player
        holes: Dict[Player, List[int]] = {
            Player.PLAYER_1: list(game_state.p1_holes),
            Player.PLAYER_2: list(game_state.p2_holes),
        }
        stores: Dict[Player, int] = {
            Player.PLAYER_1: game_state.p1_store,
            Player.PLAYER_2: game_state.p2_store,
        }

        # take the stones out of the selected hole
        stones = holes[mover][move]
        holes[mover][move] = 0

        side = mover
        # None means "in the store of `side`"
        hole: Optional[int] = move
        while stones > 0:
            if hole is None:
                side = side.other()
                hole = HOLES_PER_SIDE - 1
                holes[side][hole] += 1
            elif hole == 0:
                hole = None
                stores[side] += 1
            else:
                hole -= 1
                holes[side][hole] += 1
            stones -= 1

        next_player = mover.other()
        if side == mover:
            if hole is None:
                # last stone in the mover's own store: extra turn
                next_player = mover
            elif holes[mover][hole] == 1:
                opposite = (HOLES_PER_SIDE - 1) - hole
                stores[mover] += holes[mover.other()][opposite]
                holes[mover.other()][opposite] = 0

        # model_copy skips re-validation; sowing only ever adds stones.
        return game_state.model_copy(
            update={
                "current_player": next_player,
                "p1_holes": tuple(holes[Player.PLAYER_1]),
                "p2_holes": tuple(holes[Player.PLAYER_2]),
                "p1_store": stores[Player.PLAYER_1],
                "p2_store": stores[Player.PLAYER_2],
            }
        )

    @staticmethod
    def is_terminal(game_state: GameState) -> bool:
        """True once either side's holes are all empty."""
        return (
            game_state.stones_in_holes(Player.PLAYER_1) == 0
            or game_state.stones_in_holes(Player.PLAYER_2) == 0
        )

    @staticmethod
    def terminal_score(game_state: GameState) -> GameResult:
        """Score a terminal position.

        Each side banks the stones still in its own holes before scoring.

        Raises:
            InvalidStateError: if the position is not terminal.
        """
        if not GameEngine.is_terminal(game_state):
            raise InvalidStateError(
                "terminal_score called on a non-terminal state",
                context={"state": game_state.to_key()},
            )
        return GameResult(
            p1_score=game_state.p1_store + game_state.stones_in_holes(Player.PLAYER_1),
            p2_score=game_state.p2_store + game_state.stones_in_holes(Player.PLAYER_2),
        )

    @staticmethod
    def result_margin(game_state: GameState, player: Player) -> int:
        """Final score difference of a terminal state for ``player``."""
        return GameEngine.terminal_score(game_state).margin(player)

    @staticmethod
    def assert_invariants(
        game_state: GameState, expected_total: Optional[int] = None
    ) -> None:
        """Fail fast on a corrupted state.

        Checks hole counts, non-negative stone counts and, when
        ``expected_total`` is given, stone conservation.
        """
        for player in (Player.PLAYER_1, Player.PLAYER_2):
            holes = game_state.holes(player)
            if len(holes) != HOLES_PER_SIDE:
                raise InvalidStateError(
                    "Wrong number of holes",
                    context={"player": int(player), "holes": len(holes)},
                )
            if any(stones < 0 for stones in holes) or game_state.store(player) < 0:
                raise InvalidStateError(
                    "Negative stone count",
                    context={"state": game_state.to_key()},
                )
        if expected_total is not None and game_state.total_stones() != expected_total:
            raise InvalidStateError(
                "Stone conservation violated",
                context={
                    "expected": expected_total,
                    "actual": game_state.total_stones(),
                },
            )
