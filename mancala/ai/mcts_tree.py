"""Arena-backed MCTS search tree.

Nodes live in a flat list and refer to each other by integer index: each
:class:`ChildEdge` points forward to its child's index once expanded, and
each :class:`Node` keeps the index of its parent for backpropagation. The
list is the sole owner of every node, so there is no cyclic ownership and a
whole tree is released by dropping the :class:`SearchTree`.

Visit accounting: the root is created with one visit that no edge accounts
for. Every iteration adds one visit to each node on its path (including the
newly expanded node) and ``(1, result)`` to each traversed edge. For every
non-terminal node this keeps ``sum(edge.visits) == node.visits - 1``.

Pruning detaches whole subtrees but leaves the parent edge statistics in
place, so the relation above survives it.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple

from ..errors import InvalidStateError
from ..game_engine import GameEngine
from ..models import GameState, Player


class ChildEdge:
    """Per-move statistics of a node.

    ``total_score`` is the sum of rollout margins seen from the perspective
    of the player to move at the edge's owning node.
    """
    __slots__ = ["move", "visits", "total_score", "child"]

    def __init__(self, move: int) -> None:
        self.move = move
        self.visits = 0
        self.total_score = 0.0
        self.child: Optional[int] = None

    @property
    def mean_score(self) -> Optional[float]:
        if self.visits == 0:
            return None
        return self.total_score / self.visits

    def __repr__(self) -> str:
        return (
            f"ChildEdge(move={self.move}, visits={self.visits}, "
            f"total_score={self.total_score}, child={self.child})"
        )


class Node:
    """One reached game state.

    Edges are created eagerly, one per legal move in enumeration order, but
    child nodes only on expansion. Terminal nodes have no edges.
    """
    __slots__ = [
        "state", "parent", "parent_move", "edges", "visits", "terminal",
        "expanded",
    ]

    def __init__(
        self,
        state: GameState,
        parent: Optional[int] = None,
        parent_move: Optional[int] = None,
    ) -> None:
        self.state = state
        self.parent = parent
        self.parent_move = parent_move
        self.terminal = GameEngine.is_terminal(state)
        self.edges: List[ChildEdge] = (
            [] if self.terminal
            else [ChildEdge(m) for m in GameEngine.get_valid_moves(state)]
        )
        self.visits = 0
        self.expanded = 0

    @property
    def to_move(self) -> Player:
        return self.state.current_player

    def is_fully_expanded(self) -> bool:
        """Check if every legal move has a child node."""
        return self.expanded == len(self.edges)

    def first_unexpanded(self) -> Optional[int]:
        """Position of the first edge without a child, in move order."""
        for position, edge in enumerate(self.edges):
            if edge.child is None:
                return position
        return None

    def edge_for(self, move: int) -> Optional[ChildEdge]:
        for edge in self.edges:
            if edge.move == move:
                return edge
        return None


class SearchTree:
    """Flat arena of :class:`Node` objects rooted at index 0."""

    ROOT_INDEX = 0

    def __init__(self, root_state: GameState) -> None:
        root = Node(root_state)
        # The root's creating visit; never attributed to an edge.
        root.visits = 1
        self._nodes: List[Node] = [root]

    @classmethod
    def _from_nodes(cls, nodes: List[Node]) -> "SearchTree":
        tree = cls.__new__(cls)
        tree._nodes = nodes
        return tree

    @property
    def root(self) -> Node:
        return self._nodes[self.ROOT_INDEX]

    @property
    def root_state(self) -> GameState:
        return self._nodes[self.ROOT_INDEX].state

    def node(self, index: int) -> Node:
        return self._nodes[index]

    def __len__(self) -> int:
        return len(self._nodes)

    def is_fully_expanded(self, index: int) -> bool:
        return self._nodes[index].is_fully_expanded()

    def add_child(
        self, parent_index: int, edge_position: int, state: GameState
    ) -> int:
        """Create the child node behind an unexpanded edge.

        Returns the new node's index. The node starts with zero visits; the
        iteration that created it adds the first one on backpropagation.
        """
        parent = self._nodes[parent_index]
        edge = parent.edges[edge_position]
        if edge.child is not None:
            raise InvalidStateError(
                "Edge already expanded",
                context={"parent": parent_index, "move": edge.move},
            )
        child_index = len(self._nodes)
        self._nodes.append(Node(state, parent=parent_index, parent_move=edge.move))
        edge.child = child_index
        parent.expanded += 1
        return child_index

    def path_to_root(self, index: int) -> List[int]:
        """Node indices from ``index`` up to and including the root."""
        path = [index]
        parent = self._nodes[index].parent
        while parent is not None:
            path.append(parent)
            parent = self._nodes[parent].parent
        return path

    def find_descendant(
        self, state: GameState, max_depth: int = 2
    ) -> Optional[int]:
        """Breadth-first search for a node holding ``state``."""
        frontier: Deque[Tuple[int, int]] = deque([(self.ROOT_INDEX, 0)])
        while frontier:
            index, depth = frontier.popleft()
            node = self._nodes[index]
            if node.state == state:
                return index
            if depth >= max_depth:
                continue
            for edge in node.edges:
                if edge.child is not None:
                    frontier.append((edge.child, depth + 1))
        return None

    def subtree(self, index: int) -> "SearchTree":
        """Copy the subtree under ``index`` into a new, compacted arena.

        Statistics are preserved; indices are renumbered breadth-first so the
        new root sits at index 0 with no parent.
        """
        return self._compact(index)

    def prune(self, max_nodes: int) -> int:
        """Shrink the tree in place to at most ``max_nodes`` nodes.

        The kept nodes are a connected set grown from the root, most visited
        first. Each dropped subtree is detached from its parent edge, which
        keeps its ``(N, W)`` so the accounting relation still holds and root
        statistics never move backwards. Returns the number of dropped nodes.
        """
        if max_nodes < 1:
            raise ValueError(f"max_nodes must be positive, got {max_nodes}")
        if len(self._nodes) <= max_nodes:
            return 0

        keep: Set[int] = {self.ROOT_INDEX}
        # Ties go to the older (lower index) node.
        frontier: List[Tuple[int, int]] = []
        for edge in self.root.edges:
            if edge.child is not None:
                heapq.heappush(frontier, (-self._nodes[edge.child].visits, edge.child))
        while frontier and len(keep) < max_nodes:
            _, index = heapq.heappop(frontier)
            keep.add(index)
            for edge in self._nodes[index].edges:
                if edge.child is not None:
                    heapq.heappush(
                        frontier, (-self._nodes[edge.child].visits, edge.child)
                    )

        dropped = len(self._nodes) - len(keep)
        self._nodes = self._compact(self.ROOT_INDEX, keep)._nodes
        return dropped

    def _compact(
        self, index: int, keep: Optional[Set[int]] = None
    ) -> "SearchTree":
        remap: Dict[int, int] = {index: 0}
        order: List[int] = [index]
        queue: Deque[int] = deque([index])
        while queue:
            old = queue.popleft()
            for edge in self._nodes[old].edges:
                if edge.child is None:
                    continue
                if keep is not None and edge.child not in keep:
                    continue
                remap[edge.child] = len(order)
                order.append(edge.child)
                queue.append(edge.child)

        nodes: List[Node] = []
        for old in order:
            source = self._nodes[old]
            copy = Node.__new__(Node)
            copy.state = source.state
            copy.parent = None if old == index else remap[source.parent]
            copy.parent_move = None if old == index else source.parent_move
            copy.terminal = source.terminal
            copy.visits = source.visits
            copy.edges = []
            for edge in source.edges:
                new_edge = ChildEdge(edge.move)
                new_edge.visits = edge.visits
                new_edge.total_score = edge.total_score
                # None for unexpanded and for dropped children.
                new_edge.child = remap.get(edge.child)
                copy.edges.append(new_edge)
            copy.expanded = sum(1 for e in copy.edges if e.child is not None)
            nodes.append(copy)

        return SearchTree._from_nodes(nodes)

    def reroot(self, move: int) -> Tuple["SearchTree", bool]:
        """Return the tree rooted at the position reached by ``move``.

        When the root's child for ``move`` was already expanded its subtree
        (and statistics) are reused; otherwise a fresh single-node tree is
        built. The second element of the result reports which happened.
        The caller is responsible for validating ``move``.
        """
        edge = self.root.edge_for(move)
        if edge is not None and edge.child is not None:
            return self.subtree(edge.child), True
        return SearchTree(GameEngine.apply_move(self.root_state, move)), False

    def check_accounting(self) -> None:
        """Verify the visit relation on every node; raise on mismatch."""
        for index, node in enumerate(self._nodes):
            if node.terminal:
                if node.edges:
                    raise InvalidStateError(
                        "Terminal node has edges", context={"node": index}
                    )
                continue
            edge_visits = sum(edge.visits for edge in node.edges)
            if edge_visits != node.visits - 1:
                raise InvalidStateError(
                    "Visit accounting mismatch",
                    context={
                        "node": index,
                        "node_visits": node.visits,
                        "edge_visits": edge_visits,
                    },
                )
            expanded = sum(1 for edge in node.edges if edge.child is not None)
            if expanded != node.expanded:
                raise InvalidStateError(
                    "Expanded-edge count mismatch",
                    context={"node": index},
                )
