from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from retail_dashboard.domain.errors import (
    ComputationFailure,
    ComputationPending,
    InvalidParameter,
    PreconditionMissing,
)
from retail_dashboard.reactive.graph import ReactiveGraph


class Recorder:
    """Wraps compute functions and records the order they run in."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def wrap(self, name, fn):
        def compute(*args):
            self.calls.append(name)
            return fn(*args)

        return compute


@pytest.fixture
def rec() -> Recorder:
    return Recorder()


@pytest.fixture
def diamond(rec: Recorder) -> ReactiveGraph:
    #      x      y
    #     / \     |
    #    a   b    |
    #     \ /     |
    #      c      d
    g = ReactiveGraph("diamond")
    g.input("x", 1)
    g.input("y", 10)
    g.declare("a", ["x"], rec.wrap("a", lambda x: x + 1))
    g.declare("b", ["x"], rec.wrap("b", lambda x: x * 2))
    g.declare("c", ["a", "b"], rec.wrap("c", lambda a, b: a + b))
    g.declare("d", ["y"], rec.wrap("d", lambda y: -y))
    return g


def test_read_computes_dependencies_before_dependents(diamond, rec):
    assert diamond.read("c") == (1 + 1) + (1 * 2)
    assert rec.calls.index("c") > rec.calls.index("a")
    assert rec.calls.index("c") > rec.calls.index("b")
    assert "d" not in rec.calls


def test_repeated_reads_hit_the_cache(diamond, rec):
    first = diamond.read("c")
    second = diamond.read("c")

    assert first == second
    assert rec.calls.count("c") == 1
    assert diamond.compute_count("a") == 1
    assert diamond.version("c") == 1


def test_setting_an_input_invalidates_exactly_its_dependents(diamond, rec):
    diamond.read("c")
    diamond.read("d")

    assert diamond.set("y", 20) is True
    assert diamond.is_dirty("d")
    assert not diamond.is_dirty("a")
    assert not diamond.is_dirty("b")
    assert not diamond.is_dirty("c")

    assert diamond.read("d") == -20
    diamond.read("c")
    assert rec.calls.count("c") == 1
    assert rec.calls.count("d") == 2


def test_shared_dependency_recomputed_once(diamond, rec):
    diamond.read("c")
    diamond.set("x", 5)
    assert diamond.dependents("x") == ["a", "b", "c"]

    assert diamond.read("c") == 6 + 10
    assert rec.calls.count("a") == 2
    assert rec.calls.count("b") == 2
    assert rec.calls.count("c") == 2


def test_setting_same_value_does_not_invalidate(diamond, rec):
    diamond.read("c")
    assert diamond.set("x", 1) is False
    assert not diamond.is_dirty("c")
    diamond.read("c")
    assert rec.calls.count("c") == 1


def test_force_set_invalidates_even_with_same_value(diamond):
    diamond.read("c")
    assert diamond.set("x", 1, force=True) is True
    assert diamond.is_dirty("c")


def test_invalidate_marks_node_and_transitive_dependents(diamond):
    diamond.read("c")
    assert diamond.invalidate("a") == ["a", "c"]
    assert diamond.is_dirty("a")
    assert diamond.is_dirty("c")
    assert not diamond.is_dirty("b")


def test_missing_input_is_a_precondition_error(rec):
    g = ReactiveGraph()
    g.input("file")
    g.declare("table", ["file"], rec.wrap("table", lambda f: f.upper()))

    with pytest.raises(PreconditionMissing):
        g.read("table")
    assert rec.calls == []

    g.set("file", "abc")
    assert g.read("table") == "ABC"

    g.clear("file")
    with pytest.raises(PreconditionMissing):
        g.read("table")


def test_failure_propagates_and_dependents_are_not_computed(rec):
    g = ReactiveGraph()
    g.input("k", 0)

    def check(k):
        if k <= 0:
            raise InvalidParameter("k must be positive")
        return k

    g.declare("valid_k", ["k"], rec.wrap("valid_k", check))
    g.declare("double", ["valid_k"], rec.wrap("double", lambda k: 2 * k))

    with pytest.raises(InvalidParameter):
        g.read("double")
    assert "double" not in rec.calls
    assert g.is_dirty("valid_k")
    assert not g.node("valid_k").has_value

    # the node stays dirty: the next read tries again
    with pytest.raises(InvalidParameter):
        g.read("valid_k")
    assert rec.calls.count("valid_k") == 2

    g.set("k", 4)
    assert g.read("double") == 8


def test_unexpected_errors_are_wrapped(rec):
    g = ReactiveGraph()
    g.input("x", 0)
    g.declare("boom", ["x"], lambda x: 1 / x)

    with pytest.raises(ComputationFailure) as info:
        g.read("boom")
    assert isinstance(info.value.__cause__, ZeroDivisionError)


def test_declaration_errors():
    g = ReactiveGraph()
    g.input("x", 1)
    g.declare("a", ["x"], lambda x: x)

    with pytest.raises(ValueError):
        g.declare("a", ["x"], lambda x: x)
    with pytest.raises(KeyError):
        g.declare("b", ["missing"], lambda m: m)
    with pytest.raises(KeyError):
        g.read("nope")
    with pytest.raises(ValueError):
        g.set("a", 3)


def test_result_invalidated_during_compute_is_discarded():
    g = ReactiveGraph()
    g.input("x", 1)
    seen = []

    def compute(x):
        seen.append(x)
        if len(seen) == 1:
            # input changes while this computation is in flight
            g.set("x", 2)
        return x * 100

    g.declare("slow", ["x"], compute)

    assert g.read("slow") == 200
    assert seen == [1, 2]
    assert g.version("slow") == 1


def test_background_computation_reports_pending_then_value():
    release = threading.Event()
    started = threading.Event()

    def slow(x):
        started.set()
        assert release.wait(timeout=5)
        return x + 1

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 1)
        g.declare("slow", ["x"], slow)

        fut = g.submit("slow")
        assert started.wait(timeout=5)
        assert g.is_pending("slow")
        with pytest.raises(ComputationPending):
            g.peek("slow")

        release.set()
        assert fut.result(timeout=5) is True
        assert g.read("slow") == 2
        assert g.peek("slow") == 2
        assert g.compute_count("slow") == 1


def test_background_result_is_discarded_when_input_changes():
    release = threading.Event()
    started = threading.Event()

    def slow(x):
        started.set()
        assert release.wait(timeout=5)
        return x * 10

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 1)
        g.declare("slow", ["x"], slow)

        fut = g.submit("slow")
        assert started.wait(timeout=5)
        g.set("x", 3)
        release.set()

        assert fut.result(timeout=5) is False
        assert g.is_dirty("slow")
        assert g.read("slow") == 30
        assert g.compute_count("slow") == 2


def test_read_blocks_on_in_flight_computation():
    release = threading.Event()
    started = threading.Event()

    def slow(x):
        started.set()
        assert release.wait(timeout=5)
        return x

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 7)
        g.declare("slow", ["x"], slow)

        g.submit("slow")
        assert started.wait(timeout=5)
        threading.Timer(0.05, release.set).start()

        assert g.read("slow") == 7
        assert g.compute_count("slow") == 1


def test_read_of_dependent_waits_for_upstream_computed_in_background():
    release = threading.Event()
    started = threading.Event()

    def slow(x):
        started.set()
        assert release.wait(timeout=5)
        return x * 10

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 3)
        g.declare("slow", ["x"], slow)
        g.declare("dep", ["slow"], lambda s: s + 1)

        g.submit("slow")
        assert started.wait(timeout=5)
        threading.Timer(0.05, release.set).start()

        assert g.read("dep") == 31
        assert g.compute_count("slow") == 1
        assert g.compute_count("dep") == 1


def test_read_of_upstream_shares_the_worker_result():
    release = threading.Event()
    started = threading.Event()

    def slow(x):
        started.set()
        assert release.wait(timeout=5)
        return x * 10

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 3)
        g.declare("slow", ["x"], slow)
        g.declare("dep", ["slow"], lambda s: s + 1)

        fut = g.submit("dep")
        assert started.wait(timeout=5)
        threading.Timer(0.05, release.set).start()

        assert g.read("slow") == 30
        assert fut.result(timeout=5) is True
        assert g.read("dep") == 31
        assert g.compute_count("slow") == 1
        assert g.compute_count("dep") == 1


def test_waiting_reader_recomputes_after_worker_failure():
    release = threading.Event()
    started = threading.Event()
    calls = []

    def flaky(x):
        calls.append(x)
        if len(calls) == 1:
            started.set()
            assert release.wait(timeout=5)
            raise InvalidParameter("first run fails")
        return x

    with ThreadPoolExecutor(max_workers=1) as pool:
        g = ReactiveGraph(executor=pool)
        g.input("x", 4)
        g.declare("flaky", ["x"], flaky)
        g.declare("dep", ["flaky"], lambda v: v * 2)

        g.submit("flaky")
        assert started.wait(timeout=5)
        threading.Timer(0.05, release.set).start()

        assert g.read("dep") == 8
        assert g.compute_count("flaky") == 2
