"""
Continuous background search with snapshot publication.

The controller owns one daemon worker thread that runs MCTS iterations
against the live tree for as long as the search is in the ``SEARCHING``
status. Only the worker touches the tree. Consumers interact through:

- immutable :class:`~mancala.models.EvaluationSnapshot` values, swapped in
  under a short lock after every batch of iterations, and
- lifecycle calls (``commit_move``, ``reset``, ``stop``), which are
  validated on the caller's thread and then handed to the worker through a
  queue. The worker applies them at an iteration boundary and resolves a
  ``concurrent.futures.Future`` the caller blocks on.

Usage:
    with SearchController(SearchConfig(rng_seed=7)) as controller:
        controller.start(GameEngine.initial_state())
        controller.wait_for_iterations(500, timeout=5.0)
        snapshot = controller.latest_evaluation()
        controller.commit_move(snapshot.best_moves()[0])
"""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..errors import (
    IllegalMoveError,
    SearchLifecycleError,
    SearchWorkerError,
)
from ..game_engine import GameEngine
from ..metrics import (
    ILLEGAL_MOVES,
    REROOTS,
    RESETS,
    SEARCH_ITERATIONS,
    WORKER_ERRORS,
    report_snapshot,
)
from ..models import (
    EvaluationSnapshot,
    GameResult,
    GameState,
    SearchConfig,
    SearchStatus,
)
from .mcts_ai import MCTSDriver
from .mcts_tree import SearchTree

logger = logging.getLogger(__name__)

_REROOT = "reroot"
_RESET = "reset"
_STOP = "stop"


@dataclass(frozen=True)
class _ControlMessage:
    kind: str
    move: Optional[int] = None
    state: Optional[GameState] = None
    future: Future = field(default_factory=Future)


class SearchController:
    """Lifecycle manager for a continuously running search.

    Status transitions: ``IDLE -> SEARCHING`` via :meth:`start`,
    ``SEARCHING -> STOPPED`` via :meth:`stop`, and back to ``SEARCHING``
    via :meth:`start` or :meth:`reset`. Anything else raises
    :class:`SearchLifecycleError`.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or SearchConfig()
        self._rng = rng if rng is not None else random.Random(self.config.rng_seed)

        # Serialises lifecycle calls from any number of consumer threads.
        self._lock = threading.RLock()
        # Guards the published snapshot reference.
        self._snapshot_lock = threading.Lock()
        self._published = threading.Condition(self._snapshot_lock)

        self._status = SearchStatus.IDLE
        self._current_state: Optional[GameState] = None
        self._snapshot: Optional[EvaluationSnapshot] = None
        self._sequence = 0
        self._driver: Optional[MCTSDriver] = None

        self._queue: "queue.Queue[_ControlMessage]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._worker_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, initial_state: GameState) -> None:
        """Begin searching from ``initial_state`` with a fresh tree."""
        with self._lock:
            self._check_worker()
            self._require((SearchStatus.IDLE, SearchStatus.STOPPED), "start")
            GameEngine.assert_invariants(initial_state)
            self._install(initial_state, "start")
            self._spawn_worker()
            self._status = SearchStatus.SEARCHING
            logger.info("Search started at %s", initial_state.to_key())

    def commit_move(self, move: int) -> GameState:
        """Play ``move`` on the root and keep searching from its successor.

        Returns once the worker has rerooted the tree, so afterwards
        :meth:`current_state` and :meth:`latest_evaluation` both reflect the
        new position.

        Raises:
            IllegalMoveError: ``move`` is not legal at the current root.
                Nothing changes.
            SearchLifecycleError: the controller is not searching.
        """
        with self._lock:
            self._check_worker()
            self._require((SearchStatus.SEARCHING,), "commit_move")
            try:
                new_state = GameEngine.apply_move(self._current_state, move)
            except IllegalMoveError:
                ILLEGAL_MOVES.inc()
                logger.info(
                    "Rejected illegal move %r at %s",
                    move,
                    self._current_state.to_key(),
                )
                raise
            self._send(_ControlMessage(_REROOT, move=int(move)))
            self._current_state = new_state
            return new_state

    def reset(self, new_state: GameState) -> None:
        """Discard the whole tree and search from ``new_state``.

        Allowed while searching or stopped; a stopped controller resumes.
        """
        with self._lock:
            self._check_worker()
            self._require((SearchStatus.SEARCHING, SearchStatus.STOPPED), "reset")
            GameEngine.assert_invariants(new_state)
            if self._status is SearchStatus.SEARCHING:
                self._send(_ControlMessage(_RESET, state=new_state))
                self._current_state = new_state
            else:
                RESETS.inc()
                self._install(new_state, "reset")
                self._spawn_worker()
                self._status = SearchStatus.SEARCHING
            logger.info("Search reset to %s", new_state.to_key())

    def stop(self) -> None:
        """Halt the worker at the next iteration boundary and join it.

        The last published snapshot stays readable.
        """
        with self._lock:
            self._check_worker()
            self._require((SearchStatus.SEARCHING,), "stop")
            self._send(_ControlMessage(_STOP))
            self._join_worker()
            self._status = SearchStatus.STOPPED
            with self._published:
                self._published.notify_all()
            logger.info("Search stopped")

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def status(self) -> SearchStatus:
        if self._status is SearchStatus.SEARCHING and self._worker_error is not None:
            return SearchStatus.STOPPED
        return self._status

    def current_state(self) -> GameState:
        """Authoritative root position."""
        if self._current_state is None:
            raise SearchLifecycleError(
                "No position before start()",
                current_status=self.status.value,
                requested="current_state",
            )
        return self._current_state

    def latest_evaluation(self) -> Optional[EvaluationSnapshot]:
        """Most recently published snapshot, or None before start()."""
        with self._snapshot_lock:
            return self._snapshot

    def is_terminal(self) -> bool:
        return GameEngine.is_terminal(self.current_state())

    def terminal_result(self) -> Optional[GameResult]:
        state = self.current_state()
        if not GameEngine.is_terminal(state):
            return None
        return GameEngine.terminal_score(state)

    def wait_for_iterations(
        self, count: int, timeout: Optional[float] = None
    ) -> bool:
        """Block until a snapshot with at least ``count`` root visits exists.

        Also returns early when the root is terminal, the worker stopped or
        the worker failed. Returns whether the visit threshold (or a
        terminal root) was reached.
        """
        def reached() -> bool:
            snapshot = self._snapshot
            return snapshot is not None and (
                snapshot.is_terminal or snapshot.total_visits >= count
            )

        with self._published:
            self._published.wait_for(
                lambda: reached() or self.status is not SearchStatus.SEARCHING,
                timeout=timeout,
            )
            return reached()

    def __enter__(self) -> "SearchController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.status is SearchStatus.SEARCHING:
            self.stop()

    def __repr__(self) -> str:
        return f"SearchController(status={self.status.value})"

    # ------------------------------------------------------------------
    # Caller-side helpers
    # ------------------------------------------------------------------

    def _require(self, allowed: Iterable[SearchStatus], requested: str) -> None:
        if self._status not in allowed:
            raise SearchLifecycleError(
                f"{requested}() not allowed while {self._status.value}",
                current_status=self._status.value,
                requested=requested,
            )

    def _check_worker(self) -> None:
        if self._worker_error is not None:
            self._raise_worker_failure()

    def _raise_worker_failure(self) -> None:
        # The worker records its error on the way out; join before reading.
        self._join_worker()
        error = self._worker_error
        self._worker_error = None
        self._status = SearchStatus.STOPPED
        raise SearchWorkerError(
            "Search worker terminated unexpectedly", original_error=error
        ) from error

    def _send(self, message: _ControlMessage) -> Any:
        """Queue ``message`` for the worker and wait for its result."""
        self._queue.put(message)
        while True:
            try:
                return message.future.result(
                    timeout=self.config.idle_poll_interval
                )
            except FutureTimeoutError:
                if self._thread is not None and self._thread.is_alive():
                    continue
                if message.future.done():
                    continue
                self._raise_worker_failure()
            except Exception:
                self._raise_worker_failure()

    def _install(self, state: GameState, kind: str) -> None:
        # Only called while no worker thread is running.
        tree = SearchTree(state)
        if self._driver is None:
            self._driver = MCTSDriver(tree, self.config, rng=self._rng)
        else:
            self._driver.reset_tree(tree)
        self._current_state = state
        self._publish(kind)

    def _spawn_worker(self) -> None:
        self._queue = queue.Queue()
        self._thread = threading.Thread(
            target=self._run,
            name="mancala-search-worker",
            daemon=True,
        )
        self._thread.start()

    def _join_worker(self) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        try:
            self._loop()
        except Exception as e:
            logger.exception("Search worker failed")
            WORKER_ERRORS.labels(type(e).__name__).inc()
            self._worker_error = e
            self._fail_pending(e)
            with self._published:
                self._published.notify_all()

    def _loop(self) -> None:
        while True:
            terminal = self._driver.tree.root.terminal
            try:
                if terminal:
                    # Nothing left to search; idle until told otherwise.
                    message = self._queue.get(
                        timeout=self.config.idle_poll_interval
                    )
                else:
                    message = self._queue.get_nowait()
            except queue.Empty:
                message = None

            if message is not None:
                if not self._handle(message):
                    return
            elif not terminal:
                self._run_batch()

    def _handle(self, message: _ControlMessage) -> bool:
        """Apply a control message; return False when the worker must exit."""
        try:
            if message.kind == _STOP:
                message.future.set_result(None)
                return False

            driver = self._driver
            if message.kind == _REROOT:
                reused = driver.reroot(message.move)
                REROOTS.labels("reused" if reused else "fresh").inc()
                logger.info(
                    "Rerooted on move %d (%s subtree, %d nodes)",
                    message.move,
                    "reused" if reused else "fresh",
                    len(driver.tree),
                )
                self._publish(_REROOT)
            elif message.kind == _RESET:
                driver.reset_tree(SearchTree(message.state))
                RESETS.inc()
                self._publish(_RESET)
            else:
                raise ValueError(f"Unknown control message {message.kind!r}")

            message.future.set_result(driver.tree.root_state)
            return True
        except Exception as e:
            message.future.set_exception(e)
            raise

    def _run_batch(self) -> None:
        driver = self._driver
        started = time.monotonic()
        deadline = None
        if self.config.snapshot_interval > 0:
            deadline = started + self.config.snapshot_interval

        completed = 0
        while completed < self.config.iterations_per_snapshot:
            if not self._queue.empty():
                break
            if deadline is not None and time.monotonic() >= deadline:
                break
            if not driver.run_iteration():
                break
            completed += 1

        if completed:
            SEARCH_ITERATIONS.inc(completed)
        driver.enforce_node_limit()
        self._publish("progress", time.monotonic() - started)

    def _fail_pending(self, error: BaseException) -> None:
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return
            if not message.future.done():
                message.future.set_exception(
                    SearchWorkerError(
                        "Search worker terminated unexpectedly",
                        original_error=error,
                    )
                )

    def _publish(self, kind: str, batch_seconds: Optional[float] = None) -> None:
        driver = self._driver
        if logger.isEnabledFor(logging.DEBUG):
            driver.tree.check_accounting()
        if driver.tree.root.terminal:
            kind = "terminal"
        with self._published:
            self._sequence += 1
            snapshot = driver.snapshot(self._sequence)
            self._snapshot = snapshot
            self._published.notify_all()

        report_snapshot(kind, snapshot.node_count, driver.tree.root.visits, batch_seconds)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Published %s snapshot #%d: visits=%d, nodes=%d, iterations=%d",
                kind,
                snapshot.sequence,
                snapshot.total_visits,
                snapshot.node_count,
                snapshot.iterations,
            )
