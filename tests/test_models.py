"""Tests for the pydantic value types and search configuration."""

import numpy as np
import pytest
from pydantic import ValidationError as PydanticValidationError

from mancala.errors import ConfigurationError
from mancala.models import (
    EvaluationSnapshot,
    GameResult,
    GameState,
    MoveEvaluation,
    Player,
    SearchConfig,
)


class TestGameState:
    """Tests for GameState construction and helpers."""

    def test_initial_position(self):
        state = GameState.initial()
        assert state.p1_holes == (4,) * 6
        assert state.p2_holes == (4,) * 6
        assert state.p1_store == 0 and state.p2_store == 0
        assert state.current_player == Player.PLAYER_1
        assert state.total_stones() == 48

    def test_camel_case_aliases(self):
        state = GameState(
            currentPlayer=2,
            p1Holes=[1, 2, 3, 4, 5, 6],
            p2Holes=[0, 0, 0, 0, 0, 1],
            p1Store=3,
            p2Store=4,
        )
        assert state.current_player is Player.PLAYER_2
        assert state.p1_holes == (1, 2, 3, 4, 5, 6)
        assert state.store(Player.PLAYER_2) == 4
        assert state.stones_in_holes(Player.PLAYER_1) == 21

    def test_wrong_hole_count_rejected(self):
        with pytest.raises(PydanticValidationError):
            GameState(p1_holes=(4,) * 5, p2_holes=(4,) * 6)

    def test_negative_stones_rejected(self):
        with pytest.raises(PydanticValidationError):
            GameState(p1_holes=(4, 4, 4, 4, 4, -1), p2_holes=(4,) * 6)
        with pytest.raises(PydanticValidationError):
            GameState(p1_holes=(4,) * 6, p2_holes=(4,) * 6, p1_store=-2)

    def test_frozen(self):
        state = GameState.initial()
        with pytest.raises(PydanticValidationError):
            state.p1_store = 5

    def test_equal_positions_compare_and_hash_equal(self):
        a = GameState.initial()
        b = GameState.initial()
        assert a == b
        assert hash(a) == hash(b)

    def test_to_key(self):
        assert GameState.initial().to_key() == "P1|4,4,4,4,4,4|0|4,4,4,4,4,4|0"


class TestPlayerAndResult:

    def test_other(self):
        assert Player.PLAYER_1.other() is Player.PLAYER_2
        assert Player.PLAYER_2.other() is Player.PLAYER_1

    def test_margin_is_antisymmetric(self):
        result = GameResult(p1Score=30, p2Score=18)
        assert result.margin(Player.PLAYER_1) == 12
        assert result.margin(Player.PLAYER_2) == -12
        assert result.winner is Player.PLAYER_1


class TestEvaluationSnapshot:
    """Tests for snapshot accessors."""

    def _snapshot(self):
        return EvaluationSnapshot(
            state=GameState.initial(),
            moves=(
                MoveEvaluation(move=0, visits=2, score=1.5),
                MoveEvaluation(move=1, visits=6, score=-2.0),
                MoveEvaluation(move=2, visits=6, score=0.5),
                MoveEvaluation(move=3, visits=0),
            ),
            total_visits=14,
            iterations=14,
            node_count=15,
        )

    def test_visit_proportion(self):
        snapshot = self._snapshot()
        assert snapshot.visit_proportion(1) == pytest.approx(6 / 14)
        assert snapshot.visit_proportion(3) == 0.0
        # Not a legal move at all.
        assert snapshot.visit_proportion(5) == 0.0

    def test_visit_distribution_sums_to_one(self):
        dist = self._snapshot().visit_distribution()
        assert dist.dtype == np.float64
        assert dist.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(dist, [2 / 14, 6 / 14, 6 / 14, 0.0])

    def test_best_moves_reports_ties(self):
        assert self._snapshot().best_moves() == (1, 2)

    def test_unevaluated_move(self):
        evaluation = self._snapshot().evaluation_for(3)
        assert evaluation is not None
        assert not evaluation.is_evaluated
        assert evaluation.score is None

    def test_empty_snapshot(self):
        snapshot = EvaluationSnapshot.empty(GameState.initial(), legal_moves=(0, 1, 2))
        assert snapshot.legal_moves == (0, 1, 2)
        assert snapshot.total_visits == 0
        assert snapshot.visit_proportion(0) == 0.0
        np.testing.assert_array_equal(snapshot.visit_distribution(), np.zeros(3))
        assert not snapshot.is_terminal

    def test_terminal_snapshot(self):
        state = GameState(p1_holes=(0,) * 6, p2_holes=(1,) * 6, p1_store=30, p2_store=12)
        snapshot = EvaluationSnapshot(
            state=state,
            terminal_result=GameResult(p1_score=30, p2_score=18),
        )
        assert snapshot.is_terminal
        assert snapshot.legal_moves == ()
        assert snapshot.best_moves() == ()


class TestSearchConfig:
    """Tests for configuration validation and environment overrides."""

    def test_defaults(self):
        config = SearchConfig()
        assert config.exploration_constant == 10.0
        assert config.iterations_per_snapshot == 256
        assert config.snapshot_interval == pytest.approx(1 / 60)
        assert config.rng_seed is None
        assert config.max_nodes == 200_000

    def test_invalid_values_rejected(self):
        with pytest.raises(PydanticValidationError):
            SearchConfig(exploration_constant=0)
        with pytest.raises(PydanticValidationError):
            SearchConfig(iterations_per_snapshot=0)
        with pytest.raises(PydanticValidationError):
            SearchConfig(max_nodes=1)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MANCALA_EXPLORATION_CONSTANT", "2.5")
        monkeypatch.setenv("MANCALA_ITERATIONS_PER_SNAPSHOT", "64")
        monkeypatch.setenv("MANCALA_SNAPSHOT_INTERVAL", "0")
        monkeypatch.setenv("MANCALA_RNG_SEED", "99")
        monkeypatch.setenv("MANCALA_MAX_NODES", "5000")

        config = SearchConfig.from_env()
        assert config.exploration_constant == 2.5
        assert config.iterations_per_snapshot == 64
        assert config.snapshot_interval == 0.0
        assert config.rng_seed == 99
        assert config.max_nodes == 5000

    def test_from_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("MANCALA_RNG_SEED", "99")
        assert SearchConfig.from_env(rng_seed=5).rng_seed == 5

    def test_blank_env_values_ignored(self, monkeypatch):
        monkeypatch.setenv("MANCALA_EXPLORATION_CONSTANT", "   ")
        assert SearchConfig.from_env().exploration_constant == 10.0

    def test_from_env_bad_value(self, monkeypatch):
        monkeypatch.setenv("MANCALA_ITERATIONS_PER_SNAPSHOT", "lots")
        with pytest.raises(ConfigurationError) as exc_info:
            SearchConfig.from_env()
        assert exc_info.value.code == "CONFIGURATION_ERROR"
        assert exc_info.value.context["errors"] == 1
