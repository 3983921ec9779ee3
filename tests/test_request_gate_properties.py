"""
Property-based tests for the request gate.

**Feature: web-novel-importer, Property 1: Concurrent fetches never exceed the gate bound**
"""

import threading
import time

import pytest
from hypothesis import given, strategies as st

from novel_importer.concurrent.request_gate import RequestGate
from novel_importer.utils.errors import ValidationError


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.001)
    return predicate()


class TestRequestGateBound:
    """Active count stays within [0, max_concurrent]."""

    @given(
        max_concurrent=st.integers(min_value=1, max_value=5),
        task_count=st.integers(min_value=1, max_value=20)
    )
    def test_active_count_never_exceeds_bound(self, max_concurrent, task_count):
        gate = RequestGate(max_concurrent)
        lock = threading.Lock()
        running = [0]
        peak = [0]

        def operation():
            with lock:
                running[0] += 1
                peak[0] = max(peak[0], running[0])
                assert 0 <= gate.active_count <= max_concurrent
            time.sleep(0.001)
            with lock:
                running[0] -= 1

        threads = [threading.Thread(target=gate.enqueue, args=(operation,)) for _ in range(task_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert peak[0] <= max_concurrent
        assert gate.active_count == 0
        assert gate.available_permits == max_concurrent

        stats = gate.get_statistics()
        assert stats["total_acquired"] == task_count
        assert stats["total_released"] == task_count
        assert stats["waiting_count"] == 0

    @given(releases=st.integers(min_value=1, max_value=50))
    def test_releases_without_acquire_are_refused(self, releases):
        gate = RequestGate(3)

        results = [gate.release() for _ in range(releases)]

        assert results == [False] * releases
        assert gate.active_count == 0
        assert gate.available_permits == 3
        assert gate.get_statistics()["rejected_releases"] == releases

    @given(
        max_concurrent=st.integers(min_value=1, max_value=5),
        extra_releases=st.integers(min_value=0, max_value=10)
    )
    def test_release_accounting_balances(self, max_concurrent, extra_releases):
        gate = RequestGate(max_concurrent)

        acquired = sum(1 for _ in range(max_concurrent) if gate.try_acquire())
        assert acquired == max_concurrent
        assert gate.try_acquire() is False

        released = sum(1 for _ in range(max_concurrent + extra_releases) if gate.release())

        assert released == max_concurrent
        assert gate.active_count + gate.available_permits == max_concurrent
        assert gate.active_count == 0


class TestRequestGateBehaviour:
    """Slot hand-off, errors and validation."""

    def test_rejects_non_positive_bound(self):
        with pytest.raises(ValidationError) as exc_info:
            RequestGate(0)
        assert exc_info.value.field == "max_concurrent"

    def test_slot_released_when_operation_raises(self):
        gate = RequestGate(1)

        def failing():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            gate.enqueue(failing)

        assert gate.active_count == 0
        assert gate.can_execute_immediately()

    def test_slot_released_on_keyboard_interrupt(self):
        gate = RequestGate(2)

        def interrupted():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            gate.enqueue(interrupted)

        assert gate.active_count == 0
        assert gate.get_statistics()["total_released"] == 1

    def test_enqueue_passes_arguments_and_returns_result(self):
        gate = RequestGate(1)
        assert gate.enqueue(lambda a, b=0: a + b, 2, b=3) == 5

    def test_acquire_times_out_when_full(self):
        gate = RequestGate(1)
        assert gate.acquire()

        assert gate.acquire(timeout=0.05) is False
        assert gate.waiting_count == 0
        assert gate.active_count == 1

    def test_waiters_admitted_in_arrival_order(self):
        gate = RequestGate(1)
        assert gate.acquire()

        order = []
        order_lock = threading.Lock()

        def waiter(position):
            gate.acquire()
            with order_lock:
                order.append(position)
            gate.release()

        threads = []
        for position in range(5):
            thread = threading.Thread(target=waiter, args=(position,))
            thread.start()
            threads.append(thread)
            assert _wait_until(lambda: gate.waiting_count == position + 1)

        assert not gate.can_execute_immediately()
        gate.release()

        for thread in threads:
            thread.join(timeout=5)

        assert order == [0, 1, 2, 3, 4]
        assert gate.active_count == 0

    def test_released_slot_goes_to_waiter_not_newcomer(self):
        gate = RequestGate(1)
        assert gate.acquire()

        admitted = threading.Event()

        def waiter():
            gate.acquire()
            admitted.set()

        thread = threading.Thread(target=waiter)
        thread.start()
        assert _wait_until(lambda: gate.waiting_count == 1)

        gate.release()
        # The slot now belongs to the waiter even if it has not run yet
        assert gate.try_acquire() is False

        thread.join(timeout=5)
        assert admitted.is_set()
        assert gate.active_count == 1
        assert gate.release() is True
