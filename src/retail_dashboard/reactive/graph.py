"""
reactive/graph.py

Memoizing dependency graph behind a dashboard session.

- Input nodes hold externally provided values (file, cluster count, thresholds).
- Computed nodes are pure functions of their declared dependencies; the
  dependency values are passed positionally, in declaration order.
- read() evaluates the upstream closure of a node in topological order and only
  recomputes dirty nodes, so repeated reads with no input change hit the cache.
- Setting an input invalidates exactly its transitive dependents.
- Optional background evaluation on a concurrent.futures.Executor: results are
  installed only if the node's invalidation epoch did not move while computing.

One graph per session; nothing is shared between instances.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from retail_dashboard.domain.errors import (
    ComputationFailure,
    ComputationPending,
    DashboardError,
    PreconditionMissing,
)
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)


class _Absent:
    def __repr__(self) -> str:
        return "<absent>"


ABSENT: Any = _Absent()

ComputeFn = Callable[..., Any]


class ReactiveNode:
    """
    A single memoized computation (or an input when compute_fn is None).

    State:
      - value: cached result, ABSENT when missing or stale
      - version: number of successful computations (or input sets)
      - epoch: invalidation counter, captured at compute start
      - dirty: the cached value must be recomputed before being read
    """

    __slots__ = (
        "node_id",
        "dependencies",
        "compute_fn",
        "value",
        "version",
        "epoch",
        "dirty",
        "compute_count",
        "pending",
        "computing",
    )

    def __init__(self, node_id: str, dependencies: Sequence[str], compute_fn: Optional[ComputeFn]) -> None:
        self.node_id = node_id
        self.dependencies: Tuple[str, ...] = tuple(dependencies)
        self.compute_fn = compute_fn
        self.value: Any = ABSENT
        self.version = 0
        self.epoch = 0
        self.dirty = compute_fn is not None
        self.compute_count = 0
        self.pending: Optional[Tuple[Future, int]] = None
        # set while some thread runs compute_fn; other threads wait on it
        self.computing: Optional[threading.Event] = None

    @property
    def is_input(self) -> bool:
        return self.compute_fn is None

    @property
    def has_value(self) -> bool:
        return self.value is not ABSENT

    def __repr__(self) -> str:
        kind = "input" if self.is_input else "node"
        return (
            f"ReactiveNode({kind} {self.node_id!r}, deps={list(self.dependencies)}, "
            f"version={self.version}, dirty={self.dirty})"
        )


def _same_value(old: Any, new: Any) -> bool:
    if old is new:
        return True
    scalar = (int, float, str, bool, bytes)
    if isinstance(old, scalar) and isinstance(new, scalar) and type(old) is type(new):
        return old == new
    return False


class ReactiveGraph:
    def __init__(self, name: str = "graph", *, executor: Optional[Executor] = None) -> None:
        self.name = name
        self._nodes: Dict[str, ReactiveNode] = {}
        self._dependents: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
        self._executor = executor

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------
    def input(self, node_id: str, value: Any = ABSENT) -> ReactiveNode:
        """Declare an input node, optionally with an initial value."""
        node = self._register(ReactiveNode(node_id, (), None))
        if value is not ABSENT:
            self.set(node_id, value)
        return node

    def declare(self, node_id: str, dependency_ids: Iterable[str], compute_fn: ComputeFn) -> ReactiveNode:
        """
        Register a computed node. Dependencies must already be declared,
        which keeps the graph acyclic.
        """
        if compute_fn is None:
            raise ValueError(f"Node '{node_id}' needs a compute function (use input() for inputs).")
        return self._register(ReactiveNode(node_id, tuple(dependency_ids), compute_fn))

    def _register(self, node: ReactiveNode) -> ReactiveNode:
        with self._lock:
            if node.node_id in self._nodes:
                raise ValueError(f"Node '{node.node_id}' is already declared in graph '{self.name}'.")
            for dep in node.dependencies:
                if dep not in self._nodes:
                    raise KeyError(f"Node '{node.node_id}' depends on undeclared node '{dep}'.")

            self._nodes[node.node_id] = node
            self._dependents[node.node_id] = []
            for dep in node.dependencies:
                self._dependents[dep].append(node.node_id)

        log.debug("[%s] declared %r", self.name, node)
        return node

    # ------------------------------------------------------------------
    # Inputs and invalidation
    # ------------------------------------------------------------------
    def set(self, node_id: str, value: Any, *, force: bool = False) -> bool:
        """
        Set an input value. Returns False (and invalidates nothing) when the
        input already holds the same value, unless force=True.
        """
        with self._lock:
            node = self._get(node_id)
            if not node.is_input:
                raise ValueError(f"Node '{node_id}' is computed; only inputs can be set.")
            if not force and node.has_value and _same_value(node.value, value):
                log.debug("[%s] input %s unchanged", self.name, node_id)
                return False

            node.value = value
            node.version += 1
            node.dirty = False
            invalidated = self._invalidate_dependents(node_id)

        log.info("[%s] input %s set (v%d), invalidated %s", self.name, node_id, node.version, invalidated)
        return True

    def clear(self, node_id: str) -> None:
        """Remove an input value; dependents become dirty and reads fail with PreconditionMissing."""
        with self._lock:
            node = self._get(node_id)
            if not node.is_input:
                raise ValueError(f"Node '{node_id}' is computed; only inputs can be cleared.")
            node.value = ABSENT
            node.epoch += 1
            invalidated = self._invalidate_dependents(node_id)
        log.info("[%s] input %s cleared, invalidated %s", self.name, node_id, invalidated)

    def invalidate(self, node_id: str) -> List[str]:
        """Mark a node and every transitive dependent dirty. Returns the ids marked."""
        with self._lock:
            node = self._get(node_id)
            marked: List[str] = []
            if not node.is_input:
                self._mark_dirty(node)
                marked.append(node_id)
            marked.extend(self._invalidate_dependents(node_id))
        log.info("[%s] invalidated %s", self.name, marked)
        return marked

    def _invalidate_dependents(self, node_id: str) -> List[str]:
        marked: List[str] = []
        for dep_id in self._transitive_dependents(node_id):
            self._mark_dirty(self._nodes[dep_id])
            marked.append(dep_id)
        return marked

    @staticmethod
    def _mark_dirty(node: ReactiveNode) -> None:
        node.epoch += 1
        node.dirty = True
        node.value = ABSENT

    def _transitive_dependents(self, node_id: str) -> List[str]:
        seen: Set[str] = set()
        stack = list(self._dependents[node_id])
        while stack:
            nid = stack.pop()
            if nid in seen:
                continue
            seen.add(nid)
            stack.extend(self._dependents[nid])
        # declaration order is a valid topological order
        return [nid for nid in self._nodes if nid in seen]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def read(self, node_id: str) -> Any:
        """
        Return the node value, recomputing dirty upstream nodes first.
        Blocks on an in-flight background computation of the same node.
        """
        node = self._get(node_id)
        self._await_pending(node)

        while True:
            self._evaluate(node_id)
            with self._lock:
                if not node.dirty and node.has_value:
                    return node.value
            # invalidated by another thread between install and return
            log.debug("[%s] %s invalidated while reading, retrying", self.name, node_id)

    def peek(self, node_id: str) -> Any:
        """
        Non-blocking read. Raises ComputationPending if the node is being
        computed on a worker (a dirty node is scheduled first). Without an
        executor this is the same as read().
        """
        node = self._get(node_id)
        if node.is_input or self._executor is None:
            return self.read(node_id)

        with self._lock:
            if not node.dirty and node.has_value:
                return node.value
        fut = self.submit(node_id)
        if fut.done():
            return self.read(node_id)
        raise ComputationPending(f"Node '{node_id}' is being recomputed.")

    def submit(self, node_id: str) -> Future:
        """Schedule recomputation of a node (and its stale upstream) on the executor."""
        if self._executor is None:
            raise RuntimeError(f"Graph '{self.name}' has no executor; use read().")

        with self._lock:
            node = self._get(node_id)
            if node.pending is not None and not node.pending[0].done():
                return node.pending[0]
            fut = self._executor.submit(self._evaluate, node_id, False)
            node.pending = (fut, node.epoch)

        fut.add_done_callback(lambda f, n=node: self._clear_pending(n, f))
        log.debug("[%s] %s submitted to worker", self.name, node_id)
        return fut

    def _clear_pending(self, node: ReactiveNode, fut: Future) -> None:
        with self._lock:
            if node.pending is not None and node.pending[0] is fut:
                node.pending = None

    def _await_pending(self, node: ReactiveNode) -> None:
        with self._lock:
            pending = node.pending
        if pending is None:
            return

        fut, started = pending
        try:
            fut.result()
        except DashboardError:
            with self._lock:
                stale = node.epoch != started
            if not stale:
                raise

    def _evaluate(self, node_id: str, retry: bool = True) -> bool:
        """
        Bring node_id up to date. Dependencies are resolved before dependents;
        a failing dependency stops the walk so dependents are never computed.
        Returns False when a result was discarded (only possible with retry=False).
        """
        while True:
            if self._walk(node_id):
                return True
            if not retry:
                return False

    def _walk(self, node_id: str) -> bool:
        for nid in self._upstream_order(node_id):
            node = self._nodes[nid]

            if node.is_input:
                if not node.has_value:
                    raise PreconditionMissing(f"Input '{nid}' has not been provided yet.")
                continue

            if self._compute(node) is False:
                return False
        return True

    def _compute(self, node: ReactiveNode) -> Optional[bool]:
        """
        None = already fresh, True = installed, False = discarded as stale.

        At most one thread runs a node's compute_fn at a time: a thread that
        finds the node being computed elsewhere waits for that run and then
        re-checks, so a fresh result is shared instead of recomputed.
        """
        while True:
            with self._lock:
                if not node.dirty:
                    return None
                running = node.computing
                if running is None:
                    args = []
                    for dep in node.dependencies:
                        dep_node = self._nodes[dep]
                        if not dep_node.has_value:
                            # a dependency was invalidated concurrently
                            return False
                        args.append(dep_node.value)
                    epoch = node.epoch
                    node.compute_count += 1
                    done = node.computing = threading.Event()
                    break
            log.debug("[%s] %s is being computed by another thread, waiting", self.name, node.node_id)
            running.wait()

        log.debug("[%s] computing %s (epoch %d)", self.name, node.node_id, epoch)
        try:
            value = node.compute_fn(*args)  # type: ignore[misc]
        except DashboardError as exc:
            log.error("[%s] %s failed: %s: %s", self.name, node.node_id, type(exc).__name__, exc)
            self._release(node, done)
            raise
        except Exception as exc:
            log.error("[%s] %s failed unexpectedly: %r", self.name, node.node_id, exc)
            self._release(node, done)
            raise ComputationFailure(f"Node '{node.node_id}' failed: {exc}") from exc

        with self._lock:
            stale = node.epoch != epoch
            if not stale:
                node.value = value
                node.version += 1
                node.dirty = False
        self._release(node, done)

        if stale:
            log.warning(
                "[%s] discarding result of %s: invalidated while computing (epoch %d -> %d)",
                self.name,
                node.node_id,
                epoch,
                node.epoch,
            )
            return False
        return True

    def _release(self, node: ReactiveNode, done: threading.Event) -> None:
        with self._lock:
            node.computing = None
        done.set()

    def _upstream_order(self, node_id: str) -> List[str]:
        order: List[str] = []
        seen: Set[str] = set()

        def visit(nid: str) -> None:
            if nid in seen:
                return
            seen.add(nid)
            for dep in self._nodes[nid].dependencies:
                visit(dep)
            order.append(nid)

        visit(node_id)
        return order

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def _get(self, node_id: str) -> ReactiveNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown node '{node_id}' in graph '{self.name}'.") from None

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def nodes(self) -> List[str]:
        return list(self._nodes)

    def node(self, node_id: str) -> ReactiveNode:
        return self._get(node_id)

    def is_dirty(self, node_id: str) -> bool:
        return self._get(node_id).dirty

    def is_pending(self, node_id: str) -> bool:
        pending = self._get(node_id).pending
        return pending is not None and not pending[0].done()

    def version(self, node_id: str) -> int:
        return self._get(node_id).version

    def compute_count(self, node_id: str) -> int:
        return self._get(node_id).compute_count

    def dependents(self, node_id: str) -> List[str]:
        self._get(node_id)
        with self._lock:
            return self._transitive_dependents(node_id)
