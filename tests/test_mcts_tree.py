"""Tests for the arena-backed search tree: accounting, subtrees and rerooting."""

import random

import pytest

from mancala.ai.mcts_ai import MCTSDriver
from mancala.ai.mcts_tree import SearchTree
from mancala.errors import InvalidStateError
from mancala.game_engine import GameEngine


def _searched_tree(state, iterations=200, seed=3):
    driver = MCTSDriver(SearchTree(state), rng=random.Random(seed))
    driver.run(iterations)
    return driver.tree


class TestTreeConstruction:

    def test_fresh_tree(self, initial_state):
        tree = SearchTree(initial_state)

        assert len(tree) == 1
        assert tree.root.visits == 1
        assert tree.root.parent is None
        assert [edge.move for edge in tree.root.edges] == [0, 1, 2, 3, 4, 5]
        assert all(edge.child is None for edge in tree.root.edges)
        assert all(edge.mean_score is None for edge in tree.root.edges)
        assert not tree.is_fully_expanded(SearchTree.ROOT_INDEX)
        tree.check_accounting()

    def test_terminal_root_has_no_edges(self, state_factory):
        tree = SearchTree(state_factory(p1_holes=(0,) * 6, p1_store=24))
        assert tree.root.terminal
        assert tree.root.edges == []
        assert tree.is_fully_expanded(SearchTree.ROOT_INDEX)

    def test_add_child(self, initial_state):
        tree = SearchTree(initial_state)
        child_state = GameEngine.apply_move(initial_state, 2)

        index = tree.add_child(SearchTree.ROOT_INDEX, 2, child_state)

        assert index == 1
        assert len(tree) == 2
        assert tree.root.edges[2].child == 1
        assert tree.root.expanded == 1
        child = tree.node(index)
        assert child.parent == SearchTree.ROOT_INDEX
        assert child.parent_move == 2
        assert child.visits == 0
        assert tree.path_to_root(index) == [1, 0]

    def test_add_child_twice_raises(self, initial_state):
        tree = SearchTree(initial_state)
        child_state = GameEngine.apply_move(initial_state, 0)
        tree.add_child(SearchTree.ROOT_INDEX, 0, child_state)

        with pytest.raises(InvalidStateError):
            tree.add_child(SearchTree.ROOT_INDEX, 0, child_state)


class TestAccounting:

    def test_root_edges_sum_to_visits_minus_one(self, initial_state):
        tree = _searched_tree(initial_state, iterations=150)

        assert tree.root.visits == 151
        assert sum(edge.visits for edge in tree.root.edges) == 150
        tree.check_accounting()

    def test_check_accounting_detects_mismatch(self, initial_state):
        tree = _searched_tree(initial_state, iterations=20)
        tree.root.edges[0].visits += 1

        with pytest.raises(InvalidStateError) as exc_info:
            tree.check_accounting()
        assert exc_info.value.context["node"] == 0


class TestSubtreeAndReroot:

    def test_reroot_reuses_expanded_child(self, initial_state):
        tree = _searched_tree(initial_state, iterations=200)
        old_child = tree.node(tree.root.edge_for(0).child)
        old_edges = [(e.move, e.visits, e.total_score) for e in old_child.edges]

        new_tree, reused = tree.reroot(0)

        assert reused
        assert new_tree.root_state == GameEngine.apply_move(initial_state, 0)
        assert new_tree.root.parent is None
        assert new_tree.root.parent_move is None
        assert new_tree.root.visits == old_child.visits
        assert [(e.move, e.visits, e.total_score) for e in new_tree.root.edges] == old_edges
        assert len(new_tree) < len(tree)
        new_tree.check_accounting()

    def test_reroot_compacts_indices(self, initial_state):
        tree = _searched_tree(initial_state, iterations=200)
        new_tree, _ = tree.reroot(3)

        for index in range(len(new_tree)):
            node = new_tree.node(index)
            for edge in node.edges:
                if edge.child is not None:
                    assert 0 < edge.child < len(new_tree)
                    assert new_tree.node(edge.child).parent == index

    def test_reroot_on_unexpanded_child_starts_fresh(self, initial_state):
        tree = SearchTree(initial_state)
        new_tree, reused = tree.reroot(4)

        assert not reused
        assert len(new_tree) == 1
        assert new_tree.root.visits == 1
        assert new_tree.root_state == GameEngine.apply_move(initial_state, 4)

    def test_subtree_does_not_share_statistics(self, initial_state):
        tree = _searched_tree(initial_state, iterations=60)
        copy = tree.subtree(SearchTree.ROOT_INDEX)

        copy.root.edges[0].visits += 100
        assert tree.root.edges[0].visits != copy.root.edges[0].visits

    def test_find_descendant(self, initial_state):
        tree = _searched_tree(initial_state, iterations=100)
        after_one = GameEngine.apply_move(initial_state, 1)
        index = tree.find_descendant(after_one)

        assert index is not None
        assert tree.node(index).state == after_one
        assert tree.find_descendant(initial_state) == SearchTree.ROOT_INDEX

    def test_find_descendant_misses_unknown_state(self, initial_state, state_factory):
        tree = SearchTree(initial_state)
        assert tree.find_descendant(state_factory(p1_holes=(1, 2, 3, 4, 5, 6))) is None


class TestPrune:

    def test_tree_under_limit_is_untouched(self, initial_state):
        tree = _searched_tree(initial_state, iterations=50)
        size = len(tree)

        assert tree.prune(size) == 0
        assert len(tree) == size

    def test_prune_keeps_root_statistics_and_accounting(self, initial_state):
        tree = _searched_tree(initial_state, iterations=300)
        before = len(tree)
        root_edges = [(e.move, e.visits, e.total_score) for e in tree.root.edges]
        root_visits = tree.root.visits

        dropped = tree.prune(30)

        assert len(tree) == 30
        assert dropped == before - 30
        assert tree.root.visits == root_visits
        assert [(e.move, e.visits, e.total_score) for e in tree.root.edges] == root_edges
        tree.check_accounting()
        for index in range(len(tree)):
            for edge in tree.node(index).edges:
                if edge.child is not None:
                    assert 0 < edge.child < len(tree)
                    assert tree.node(edge.child).parent == index

    def test_prune_to_root_detaches_every_child(self, initial_state):
        tree = _searched_tree(initial_state, iterations=100)

        tree.prune(1)

        assert len(tree) == 1
        assert tree.root.expanded == 0
        assert all(edge.child is None for edge in tree.root.edges)
        assert sum(edge.visits for edge in tree.root.edges) == 100
        tree.check_accounting()

    def test_most_visited_child_survives(self, initial_state):
        tree = _searched_tree(initial_state, iterations=200)
        best = max(tree.root.edges, key=lambda e: e.visits)

        tree.prune(2)

        kept = [edge for edge in tree.root.edges if edge.child is not None]
        assert len(kept) == 1
        assert kept[0].move == best.move
        assert tree.node(kept[0].child).visits == best.visits

    def test_search_continues_after_prune(self, initial_state):
        driver = MCTSDriver(SearchTree(initial_state), rng=random.Random(3))
        driver.run(300)
        driver.tree.prune(20)

        driver.run(100)

        assert sum(edge.visits for edge in driver.tree.root.edges) == 400
        assert driver.tree.root.visits == 401
        driver.tree.check_accounting()

    def test_non_positive_limit_rejected(self, initial_state):
        with pytest.raises(ValueError):
            SearchTree(initial_state).prune(0)
