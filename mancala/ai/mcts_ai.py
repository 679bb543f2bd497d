"""MCTS search driver for the Mancala engine.

This module implements plain UCT Monte Carlo Tree Search over the
arena-backed :class:`~mancala.ai.mcts_tree.SearchTree`:

1. Selection: descend through fully expanded, non-terminal nodes via the
   edge maximising ``W/N + C * sqrt(ln(N_parent) / N)``. Unvisited edges
   score +inf and ties go to the earliest move in enumeration order.
2. Expansion: the first unexpanded move (enumeration order) of the reached
   node gets a child node, which becomes the evaluation point.
3. Rollout: uniformly random playout to a terminal position; no nodes are
   created.
4. Backpropagation: each traversed edge is credited with the final margin
   seen by the player to move at the edge's owning node. Because a move that
   ends in the mover's store grants an extra turn, the perspective is taken
   from each node's side to move rather than flipped per level.

:class:`MCTSDriver` owns a tree and runs iterations on it; it is not
thread-safe and is meant to be driven by exactly one thread (the
:class:`~mancala.ai.search_controller.SearchController` worker, or a test).
:class:`MCTSAI` wraps a driver as a fixed-budget move-choosing policy.
"""

from __future__ import annotations

import logging
import math
import random
import time
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..game_engine import GameEngine
from ..metrics import SEARCH_ITERATIONS, TREE_NODES_PRUNED
from ..models import (
    EvaluationSnapshot,
    GameResult,
    GameState,
    MoveEvaluation,
    SearchConfig,
)
from .base import BaseAI
from .mcts_tree import Node, SearchTree
from .random_ai import RandomAI

logger = logging.getLogger(__name__)


def uct_score(
    total_score: float,
    visits: int,
    parent_visits: int,
    exploration_constant: float,
) -> float:
    """UCT value of an edge; +inf for an edge that was never visited."""
    if visits == 0:
        return math.inf
    exploitation = total_score / visits
    exploration = exploration_constant * math.sqrt(
        math.log(parent_visits) / visits
    )
    return exploitation + exploration


class MCTSDriver:
    """Runs MCTS iterations against a single :class:`SearchTree`."""

    PRUNE_TARGET_RATIO = 0.85

    def __init__(
        self,
        tree: SearchTree,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.rng = rng if rng is not None else random.Random(self.config.rng_seed)
        self.rollout_policy = RandomAI(self.config, rng=self.rng)
        self.tree = tree
        # Completed iterations on the current tree (reset on reroot/reset).
        self.iterations = 0

    @classmethod
    def for_state(
        cls,
        game_state: GameState,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> "MCTSDriver":
        return cls(SearchTree(game_state), config=config, rng=rng)

    # ------------------------------------------------------------------
    # Tree management
    # ------------------------------------------------------------------

    def reset_tree(self, tree: SearchTree) -> None:
        """Replace the tree, discarding all previous statistics."""
        self.tree = tree
        self.iterations = 0

    def reroot(self, move: int) -> bool:
        """Advance the root by ``move``, reusing its subtree when expanded.

        Returns True when an existing subtree was reused. Raises
        IllegalMoveError (leaving the tree untouched) for an illegal move.
        """
        # Validate first so a bad move never half-replaces the tree.
        GameEngine.apply_move(self.tree.root_state, move)
        new_tree, reused = self.tree.reroot(move)
        self.tree = new_tree
        self.iterations = 0
        return reused

    def enforce_node_limit(self) -> int:
        """Prune the tree when it holds more than ``config.max_nodes`` nodes.

        The tree is cut back to ``PRUNE_TARGET_RATIO`` of the limit. Returns
        the number of dropped nodes.
        """
        limit = self.config.max_nodes
        if len(self.tree) <= limit:
            return 0
        before = len(self.tree)
        dropped = self.tree.prune(max(1, int(limit * self.PRUNE_TARGET_RATIO)))
        TREE_NODES_PRUNED.inc(dropped)
        logger.info(
            "Pruned search tree from %d to %d nodes (limit %d)",
            before,
            len(self.tree),
            limit,
        )
        return dropped

    # ------------------------------------------------------------------
    # One iteration
    # ------------------------------------------------------------------

    def run_iteration(self) -> bool:
        """Run one select/expand/rollout/backpropagate cycle.

        Returns False, without touching the tree, when the root is terminal.
        """
        tree = self.tree
        if tree.root.terminal:
            return False

        index = SearchTree.ROOT_INDEX
        node = tree.root
        path: List[Tuple[Node, int]] = []

        # Selection
        while not node.terminal and node.is_fully_expanded():
            position = self._select_edge(node)
            path.append((node, position))
            index = node.edges[position].child
            node = tree.node(index)

        # Expansion
        if not node.terminal:
            position = node.first_unexpanded()
            move = node.edges[position].move
            child_state = GameEngine.apply_move(node.state, move)
            child_index = tree.add_child(index, position, child_state)
            path.append((node, position))
            node = tree.node(child_index)

        # Rollout
        result = self.rollout(node.state)

        # Backpropagation
        node.visits += 1
        for owner, position in reversed(path):
            edge = owner.edges[position]
            edge.visits += 1
            edge.total_score += result.margin(owner.to_move)
            owner.visits += 1

        self.iterations += 1
        return True

    def _select_edge(self, node: Node) -> int:
        """Position of the UCT-maximising edge; earliest move wins ties."""
        best_position = 0
        best_value = -math.inf
        c = self.config.exploration_constant
        for position, edge in enumerate(node.edges):
            value = uct_score(edge.total_score, edge.visits, node.visits, c)
            if value == math.inf:
                return position
            if value > best_value:
                best_value = value
                best_position = position
        return best_position

    def rollout(self, game_state: GameState) -> GameResult:
        """Play uniformly random moves from ``game_state`` to the end."""
        return GameEngine.terminal_score(self.rollout_policy.play_out(game_state))

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def run(self, iterations: int) -> int:
        """Run up to ``iterations`` iterations; return how many completed."""
        completed = 0
        for _ in range(iterations):
            if not self.run_iteration():
                break
            completed += 1
        if completed:
            SEARCH_ITERATIONS.inc(completed)
        return completed

    def ponder(
        self,
        duration: float,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Run iterations for ``duration`` seconds.

        ``should_stop`` is polled at every iteration boundary. Returns the
        number of completed iterations.
        """
        end_time = time.monotonic() + duration
        completed = 0
        while time.monotonic() < end_time:
            if should_stop is not None and should_stop():
                break
            if not self.run_iteration():
                break
            completed += 1
        if completed:
            SEARCH_ITERATIONS.inc(completed)
        return completed

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def snapshot(self, sequence: int = 0) -> EvaluationSnapshot:
        """Copy the root statistics into an immutable snapshot."""
        root = self.tree.root
        if root.terminal:
            return EvaluationSnapshot(
                state=root.state,
                iterations=self.iterations,
                node_count=len(self.tree),
                terminal_result=GameEngine.terminal_score(root.state),
                sequence=sequence,
            )

        moves = tuple(
            MoveEvaluation(
                move=edge.move,
                visits=edge.visits,
                score=edge.mean_score,
            )
            for edge in root.edges
        )
        return EvaluationSnapshot(
            state=root.state,
            moves=moves,
            total_visits=sum(m.visits for m in moves),
            iterations=self.iterations,
            node_count=len(self.tree),
            sequence=sequence,
        )

    def log_stats(self) -> None:
        """Log tree statistics at DEBUG level."""
        if logger.isEnabledFor(logging.DEBUG):
            root = self.tree.root
            logger.debug(
                "MCTS tree stats: nodes=%d, root_visits=%d, iterations=%d, "
                "root=%s",
                len(self.tree),
                root.visits,
                self.iterations,
                root.state.to_key(),
            )


class MCTSAI(BaseAI):
    """Fixed-budget MCTS player.

    Each :meth:`select_move` runs ``think_iterations`` iterations and plays
    the most visited root move (or samples by visit count when a positive
    ``temperature`` is set). The tree is kept between calls and reused when
    the new position is found within two plies of the previous root.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
        think_iterations: int = 400,
        temperature: float = 0.0,
    ):
        super().__init__(config, rng)
        self.think_iterations = think_iterations
        self.temperature = temperature
        self.driver: Optional[MCTSDriver] = None
        self.last_snapshot: Optional[EvaluationSnapshot] = None

    def select_move(self, game_state: GameState) -> Optional[int]:
        """Select the best move using MCTS."""
        valid_moves = self.get_valid_moves(game_state)
        if not valid_moves:
            return None
        if len(valid_moves) == 1:
            self.move_count += 1
            return valid_moves[0]

        driver = self._driver_for(game_state)
        driver.run(self.think_iterations)
        driver.enforce_node_limit()
        driver.log_stats()

        snapshot = driver.snapshot()
        self.last_snapshot = snapshot
        move = self._pick(snapshot)
        self.move_count += 1
        return move

    def clear_search_tree(self) -> None:
        """Drop the retained tree so the next search starts fresh."""
        self.driver = None

    def _driver_for(self, game_state: GameState) -> MCTSDriver:
        if self.driver is not None:
            index = self.driver.tree.find_descendant(game_state)
            if index is not None:
                self.driver.reset_tree(self.driver.tree.subtree(index))
                return self.driver
        self.driver = MCTSDriver.for_state(game_state, self.config, rng=self.rng)
        return self.driver

    def _pick(self, snapshot: EvaluationSnapshot) -> int:
        """Most visited move, or a sample proportional to visits^(1/T)."""
        if self.temperature <= 0:
            return snapshot.best_moves()[0]

        probs = snapshot.visit_distribution()
        if probs.sum() <= 0:
            probs = np.full(len(probs), 1.0 / len(probs))
        if self.temperature != 1.0:
            probs = probs ** (1.0 / float(self.temperature))
            probs /= probs.sum()

        (idx,) = self.rng.choices(range(len(probs)), weights=probs.tolist())
        return snapshot.moves[idx].move
