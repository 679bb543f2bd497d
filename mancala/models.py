"""
Pydantic Models for Mancala Game State and Search Results
Value types shared by the rules engine, the search tree and the consumers
of the evaluation interface.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .errors import ConfigurationError


# Number of holes on each player's side, not including their store.
HOLES_PER_SIDE = 6

# Number of stones in each hole of the standard starting position.
INITIAL_STONES_PER_HOLE = 4

TOTAL_STONES = 2 * HOLES_PER_SIDE * INITIAL_STONES_PER_HOLE


class Player(int, Enum):
    """Player enumeration"""
    PLAYER_1 = 1
    PLAYER_2 = 2

    def other(self) -> "Player":
        """Return the opponent of this player."""
        return Player.PLAYER_2 if self is Player.PLAYER_1 else Player.PLAYER_1


class SearchStatus(str, Enum):
    """Search controller lifecycle status"""
    IDLE = "idle"
    SEARCHING = "searching"
    STOPPED = "stopped"


class GameState(BaseModel):
    """Immutable board position.

    Hole index 0 is the hole closest to its owner's store; sowing walks
    from higher indices toward index 0 and then into the store.
    """
    current_player: Player = Field(Player.PLAYER_1, alias="currentPlayer")
    p1_holes: Tuple[int, ...] = Field(alias="p1Holes")
    p2_holes: Tuple[int, ...] = Field(alias="p2Holes")
    p1_store: int = Field(0, ge=0, alias="p1Store")
    p2_store: int = Field(0, ge=0, alias="p2Store")

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("p1_holes", "p2_holes")
    @classmethod
    def _check_holes(cls, holes: Tuple[int, ...]) -> Tuple[int, ...]:
        if len(holes) != HOLES_PER_SIDE:
            raise ValueError(
                f"expected {HOLES_PER_SIDE} holes per side, got {len(holes)}"
            )
        if any(stones < 0 for stones in holes):
            raise ValueError("hole stone counts must be non-negative")
        return holes

    @classmethod
    def initial(
        cls,
        stones_per_hole: int = INITIAL_STONES_PER_HOLE,
        first_player: Player = Player.PLAYER_1,
    ) -> "GameState":
        """Standard starting position."""
        holes = (stones_per_hole,) * HOLES_PER_SIDE
        return cls(
            current_player=first_player,
            p1_holes=holes,
            p2_holes=holes,
        )

    def holes(self, player: Player) -> Tuple[int, ...]:
        return self.p1_holes if player == Player.PLAYER_1 else self.p2_holes

    def store(self, player: Player) -> int:
        return self.p1_store if player == Player.PLAYER_1 else self.p2_store

    def stones_in_holes(self, player: Player) -> int:
        return sum(self.holes(player))

    def total_stones(self) -> int:
        """Stones in play plus banked stones; constant along a game."""
        return (
            sum(self.p1_holes) + sum(self.p2_holes)
            + self.p1_store + self.p2_store
        )

    def to_key(self) -> str:
        """Compact string key, handy for logs and debugging"""
        p1 = ",".join(str(s) for s in self.p1_holes)
        p2 = ",".join(str(s) for s in self.p2_holes)
        return (
            f"P{int(self.current_player)}|{p1}|{self.p1_store}"
            f"|{p2}|{self.p2_store}"
        )


class GameResult(BaseModel):
    """Final scores after the terminal sweep"""
    p1_score: int = Field(alias="p1Score")
    p2_score: int = Field(alias="p2Score")

    class Config:
        populate_by_name = True
        frozen = True

    def score(self, player: Player) -> int:
        return self.p1_score if player == Player.PLAYER_1 else self.p2_score

    def margin(self, player: Player) -> int:
        """Score difference from ``player``'s perspective."""
        return self.score(player) - self.score(player.other())

    @property
    def winner(self) -> Optional[Player]:
        if self.p1_score == self.p2_score:
            return None
        return Player.PLAYER_1 if self.p1_score > self.p2_score else Player.PLAYER_2


def _env_value(name: str) -> Optional[str]:
    raw = os.environ.get(name, "").strip()
    return raw or None


class SearchConfig(BaseModel):
    """Search configuration"""
    exploration_constant: float = Field(10.0, gt=0, alias="explorationConstant")
    iterations_per_snapshot: int = Field(256, ge=1, alias="iterationsPerSnapshot")
    snapshot_interval: float = Field(1.0 / 60.0, ge=0, alias="snapshotInterval")
    idle_poll_interval: float = Field(0.05, gt=0, alias="idlePollInterval")
    rng_seed: Optional[int] = Field(None, alias="rngSeed")
    max_nodes: int = Field(200_000, ge=2, alias="maxNodes")

    class Config:
        populate_by_name = True
        frozen = True

    @classmethod
    def from_env(cls, **overrides) -> "SearchConfig":
        """Build a config from ``MANCALA_*`` environment variables.

        Explicit keyword overrides win over the environment. Unparseable or
        out-of-range values raise :class:`ConfigurationError`.
        """
        env_fields = {
            "exploration_constant": "MANCALA_EXPLORATION_CONSTANT",
            "iterations_per_snapshot": "MANCALA_ITERATIONS_PER_SNAPSHOT",
            "snapshot_interval": "MANCALA_SNAPSHOT_INTERVAL",
            "rng_seed": "MANCALA_RNG_SEED",
            "max_nodes": "MANCALA_MAX_NODES",
        }
        values = {}
        for field_name, env_name in env_fields.items():
            raw = _env_value(env_name)
            if raw is not None:
                values[field_name] = raw
        values.update(overrides)
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(
                "Invalid search configuration",
                context={"errors": e.error_count(), "detail": str(e)},
            ) from e


class MoveEvaluation(BaseModel):
    """Root statistics for a single legal move"""
    move: int
    visits: int = Field(0, ge=0)
    # Mean rollout margin for the side to move; None while unevaluated.
    score: Optional[float] = None

    class Config:
        frozen = True

    @property
    def is_evaluated(self) -> bool:
        return self.visits > 0


class EvaluationSnapshot(BaseModel):
    """
    Immutable, point-in-time copy of the root's per-move statistics.
    Safe to hand to any thread; never references the live tree.
    """
    state: GameState
    moves: Tuple[MoveEvaluation, ...] = ()
    total_visits: int = Field(0, ge=0, alias="totalVisits")
    iterations: int = Field(0, ge=0)
    node_count: int = Field(0, ge=0, alias="nodeCount")
    terminal_result: Optional[GameResult] = Field(None, alias="terminalResult")
    sequence: int = Field(0, ge=0)

    class Config:
        populate_by_name = True
        frozen = True

    @classmethod
    def empty(cls, state: GameState, legal_moves: Tuple[int, ...] = (), sequence: int = 0) -> "EvaluationSnapshot":
        """Snapshot with every legal move unevaluated."""
        return cls(
            state=state,
            moves=tuple(MoveEvaluation(move=m) for m in legal_moves),
            sequence=sequence,
        )

    @property
    def is_terminal(self) -> bool:
        return self.terminal_result is not None

    @property
    def legal_moves(self) -> Tuple[int, ...]:
        return tuple(m.move for m in self.moves)

    def evaluation_for(self, move: int) -> Optional[MoveEvaluation]:
        for evaluation in self.moves:
            if evaluation.move == move:
                return evaluation
        return None

    def visit_proportion(self, move: int) -> float:
        """Visit share of ``move``; 0 before any simulation has run."""
        evaluation = self.evaluation_for(move)
        if evaluation is None or self.total_visits == 0:
            return 0.0
        return evaluation.visits / self.total_visits

    def visit_distribution(self) -> np.ndarray:
        """Visit shares in move order as a float64 array."""
        visits = np.array([m.visits for m in self.moves], dtype=np.float64)
        if self.total_visits == 0:
            return np.zeros_like(visits)
        return visits / float(self.total_visits)

    def best_moves(self) -> Tuple[int, ...]:
        """All moves sharing the highest visit count."""
        if not self.moves:
            return ()
        max_visits = max(m.visits for m in self.moves)
        return tuple(m.move for m in self.moves if m.visits == max_visits)
