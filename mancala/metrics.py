"""Prometheus metrics for the Mancala search engine.

This module centralises counters, gauges and histograms so that the search
driver and the controller can record lightweight telemetry without each
component managing its own metric instances. Nothing here starts an HTTP
exporter; a host process that wants scraping calls
``prometheus_client.start_http_server`` itself.
"""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram


SEARCH_ITERATIONS: Final[Counter] = Counter(
    "mancala_search_iterations_total",
    "Total number of completed MCTS iterations across all search trees.",
)

SNAPSHOTS_PUBLISHED: Final[Counter] = Counter(
    "mancala_snapshots_published_total",
    (
        "Total number of evaluation snapshots published by the search "
        "worker, labeled by kind (start, progress, terminal, reroot, reset)."
    ),
    labelnames=("kind",),
)

REROOTS: Final[Counter] = Counter(
    "mancala_reroots_total",
    (
        "Total committed moves, labeled by whether an existing subtree was "
        "reused or a fresh root had to be created."
    ),
    labelnames=("outcome",),
)

RESETS: Final[Counter] = Counter(
    "mancala_resets_total",
    "Total number of search resets that discarded the whole tree.",
)

ILLEGAL_MOVES: Final[Counter] = Counter(
    "mancala_illegal_moves_total",
    "Total number of commit_move calls rejected with IllegalMoveError.",
)

WORKER_ERRORS: Final[Counter] = Counter(
    "mancala_worker_errors_total",
    "Total unexpected exceptions raised inside the search worker.",
    labelnames=("error_type",),
)

TREE_NODES: Final[Gauge] = Gauge(
    "mancala_tree_nodes",
    "Number of nodes in the live search tree at the last snapshot.",
)

TREE_NODES_PRUNED: Final[Counter] = Counter(
    "mancala_tree_nodes_pruned_total",
    "Total nodes dropped from search trees to stay under the node limit.",
)

ROOT_VISITS: Final[Gauge] = Gauge(
    "mancala_root_visits",
    "Visit count of the live root at the last snapshot.",
)

SNAPSHOT_BATCH_SECONDS: Final[Histogram] = Histogram(
    "mancala_snapshot_batch_seconds",
    "Wall time spent on the iteration batch between two snapshots.",
    # Batches target one display frame; the tail buckets catch stalls.
    buckets=(
        0.005,
        0.01,
        0.02,
        0.05,
        0.1,
        0.25,
        1.0,
    ),
)


def report_snapshot(
    kind: str,
    node_count: int,
    root_visits: int,
    batch_seconds: float | None = None,
) -> None:
    """Record the metrics attached to a snapshot publication.

    Args:
        kind: Snapshot kind label (start, progress, terminal, reroot, reset)
        node_count: Nodes in the tree the snapshot was taken from
        root_visits: Root visit count at publication time
        batch_seconds: Duration of the iteration batch, if one ran
    """
    SNAPSHOTS_PUBLISHED.labels(kind).inc()
    TREE_NODES.set(node_count)
    ROOT_VISITS.set(root_visits)
    if batch_seconds is not None:
        SNAPSHOT_BATCH_SECONDS.observe(batch_seconds)
