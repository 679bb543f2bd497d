"""
Shared pytest fixtures for the Mancala engine tests.

Game state fixtures are function-scoped factories so each test builds
exactly the position it needs.
"""

import random
from typing import Callable, Sequence

import pytest

from mancala.models import GameState, Player, SearchConfig


# =============================================================================
# GAME STATE FIXTURES
# =============================================================================


@pytest.fixture
def state_factory() -> Callable[..., GameState]:
    """Factory for arbitrary board positions.

    Usage:
        def test_capture(state_factory):
            state = state_factory(p1_holes=(0, 0, 1, 0, 0, 3))
    """
    def _make(
        p1_holes: Sequence[int] = (4, 4, 4, 4, 4, 4),
        p2_holes: Sequence[int] = (4, 4, 4, 4, 4, 4),
        p1_store: int = 0,
        p2_store: int = 0,
        current_player: Player = Player.PLAYER_1,
    ) -> GameState:
        return GameState(
            current_player=current_player,
            p1_holes=tuple(p1_holes),
            p2_holes=tuple(p2_holes),
            p1_store=p1_store,
            p2_store=p2_store,
        )

    return _make


@pytest.fixture
def initial_state() -> GameState:
    """Standard starting position, player 1 to move."""
    return GameState.initial()


# =============================================================================
# SEARCH FIXTURES
# =============================================================================


@pytest.fixture
def search_config() -> SearchConfig:
    """Small, fast batches so controller tests see frequent snapshots."""
    return SearchConfig(
        exploration_constant=10.0,
        iterations_per_snapshot=16,
        snapshot_interval=0.0,
        idle_poll_interval=0.01,
        rng_seed=1234,
    )


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)
