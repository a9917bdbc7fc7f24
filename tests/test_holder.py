"""
Tests for LazyInstanceHolder: once-only materialization, failure policies,
re-entrancy and thread contention.
"""

import threading
import time

import pytest

from lazyproxy.di.diagnostics import DIEventType
from lazyproxy.di.errors import DependencyCycleError
from lazyproxy.proxy.holder import FailurePolicy, HolderState, LazyInstanceHolder


class Target:
    pass


class CountingFactory:
    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return Target()


# ============================================================================
# Basic state machine
# ============================================================================


class TestHolderStates:

    def test_starts_uninitialized(self):
        holder = LazyInstanceHolder(CountingFactory())

        assert holder.state is HolderState.UNINITIALIZED
        assert not holder.is_materialized
        assert holder.target_if_materialized() is None
        assert holder.failure is None

    def test_materializes_once(self):
        factory = CountingFactory()
        holder = LazyInstanceHolder(factory)

        first = holder.get_or_materialize()
        second = holder.get_or_materialize()

        assert first is second
        assert factory.calls == 1
        assert holder.state is HolderState.READY
        assert holder.target_if_materialized() is first

    def test_factory_is_released_after_success(self):
        holder = LazyInstanceHolder(CountingFactory())
        holder.get_or_materialize()

        assert holder._factory is None

    def test_none_factory_is_rejected(self):
        with pytest.raises(ValueError):
            LazyInstanceHolder(None)

    def test_repr_shows_state(self):
        holder = LazyInstanceHolder(CountingFactory(), name="reports")
        assert repr(holder) == "<LazyInstanceHolder 'reports' state=uninitialized>"


# ============================================================================
# Failure policies
# ============================================================================


class TestFailurePolicies:

    def test_error_propagates_unwrapped(self):
        error = KeyError("boom")

        def factory():
            raise error

        holder = LazyInstanceHolder(factory)

        with pytest.raises(KeyError) as excinfo:
            holder.get_or_materialize()
        assert excinfo.value is error
        assert holder.failure is error

    def test_retry_runs_the_factory_again(self):
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("first attempt")
            return Target()

        holder = LazyInstanceHolder(factory, policy=FailurePolicy.RETRY)

        with pytest.raises(RuntimeError):
            holder.get_or_materialize()
        assert holder.state is HolderState.UNINITIALIZED

        target = holder.get_or_materialize()
        assert isinstance(target, Target)
        assert len(attempts) == 2
        assert holder.failure is None

    def test_poison_reraises_the_same_error(self):
        attempts = []

        def factory():
            attempts.append(1)
            raise RuntimeError("broken")

        holder = LazyInstanceHolder(factory, policy=FailurePolicy.POISON)

        with pytest.raises(RuntimeError) as first:
            holder.get_or_materialize()
        with pytest.raises(RuntimeError) as second:
            holder.get_or_materialize()

        assert first.value is second.value
        assert len(attempts) == 1
        assert holder.state is HolderState.FAILED

    def test_policy_accepts_string_values(self):
        holder = LazyInstanceHolder(CountingFactory(), policy="poison")
        assert holder.policy is FailurePolicy.POISON


# ============================================================================
# Re-entrancy
# ============================================================================


def test_reentrant_materialization_raises_cycle_error():
    holder = None

    def factory():
        return holder.get_or_materialize()

    holder = LazyInstanceHolder(factory, name="self-referencing")

    with pytest.raises(DependencyCycleError) as excinfo:
        holder.get_or_materialize()

    assert "self-referencing" in str(excinfo.value)
    assert holder.state is HolderState.UNINITIALIZED


# ============================================================================
# Concurrency
# ============================================================================


class TestConcurrency:

    def test_contending_threads_share_one_target(self):
        factory = CountingFactory(delay=0.05)
        holder = LazyInstanceHolder(factory)
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(holder.get_or_materialize())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert factory.calls == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)

    def test_waiters_observe_the_same_failure(self):
        release = threading.Event()
        started = threading.Event()

        def factory():
            started.set()
            release.wait(5)
            raise RuntimeError("shared failure")

        holder = LazyInstanceHolder(factory, policy=FailurePolicy.POISON)
        errors = []

        def worker():
            try:
                holder.get_or_materialize()
            except RuntimeError as exc:
                errors.append(exc)

        owner = threading.Thread(target=worker)
        owner.start()
        assert started.wait(5)

        waiters = [threading.Thread(target=worker) for _ in range(4)]
        for t in waiters:
            t.start()
        time.sleep(0.05)
        release.set()

        owner.join()
        for t in waiters:
            t.join()

        assert len(errors) == 5
        assert all(e is errors[0] for e in errors)

    def test_waiters_of_a_failed_retry_attempt_get_its_error(self):
        release = threading.Event()
        started = threading.Event()
        calls = []

        def factory():
            calls.append(1)
            started.set()
            release.wait(5)
            raise RuntimeError(f"attempt {len(calls)}")

        holder = LazyInstanceHolder(factory, policy=FailurePolicy.RETRY)
        errors = []

        def worker():
            try:
                holder.get_or_materialize()
            except RuntimeError as exc:
                errors.append(exc)

        owner = threading.Thread(target=worker)
        owner.start()
        assert started.wait(5)

        waiter = threading.Thread(target=worker)
        waiter.start()
        # Let the waiter block on the in-flight attempt
        time.sleep(0.1)
        release.set()

        owner.join()
        waiter.join()

        assert len(calls) == 1
        assert len(errors) == 2
        assert errors[0] is errors[1]
        assert holder.state is HolderState.UNINITIALIZED


# ============================================================================
# Diagnostics
# ============================================================================


class TestHolderDiagnostics:

    def test_success_emits_start_and_success(self, diagnostics, recorder):
        holder = LazyInstanceHolder(CountingFactory(), name="svc", diagnostics=diagnostics)
        holder.get_or_materialize()

        assert recorder.types() == [
            DIEventType.MATERIALIZATION_START,
            DIEventType.MATERIALIZATION_SUCCESS,
        ]
        assert recorder.events[1].token == "svc"
        assert recorder.events[1].duration >= 0

    def test_failure_emits_failure_event(self, diagnostics, recorder):
        def factory():
            raise LookupError("nope")

        holder = LazyInstanceHolder(factory, diagnostics=diagnostics)
        with pytest.raises(LookupError):
            holder.get_or_materialize()

        assert recorder.types()[-1] is DIEventType.MATERIALIZATION_FAILURE
        assert isinstance(recorder.events[-1].error, LookupError)
