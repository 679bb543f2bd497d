"""Search and move-choosing policies for the Mancala engine.

    from mancala.ai import SearchController

    controller = SearchController()
    controller.start(GameEngine.initial_state())
    snapshot = controller.latest_evaluation()

Layout:
- base.py: BaseAI abstract base class
- random_ai.py: uniform random policy, also the rollout policy
- mcts_tree.py: arena-backed search tree and node statistics
- mcts_ai.py: MCTSDriver (iterations, snapshots) and the MCTSAI player
- search_controller.py: background search worker and lifecycle API
"""

from mancala.ai.base import BaseAI
from mancala.ai.mcts_ai import MCTSAI, MCTSDriver, uct_score
from mancala.ai.mcts_tree import ChildEdge, Node, SearchTree
from mancala.ai.random_ai import RandomAI
from mancala.ai.search_controller import SearchController

__all__ = [
    "BaseAI",
    "ChildEdge",
    "MCTSAI",
    "MCTSDriver",
    "Node",
    "RandomAI",
    "SearchController",
    "SearchTree",
    "uct_score",
]
