"""
Request gate bounding the number of concurrent outbound fetches.

One gate instance is shared process-wide by every component that talks to the
network, so a chapter fetch and an unrelated request draw from the same pool
of slots.
"""

import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, TypeVar

from novel_importer.utils.logging import get_logger
from novel_importer.utils.errors import ValidationError
from .thread_safe import ThreadSafeCounter


logger = get_logger(__name__)

T = TypeVar("T")


class RequestGate:
    """
    FIFO-fair counting gate for outbound requests.

    Waiters are admitted strictly in arrival order: a released slot is handed
    directly to the oldest waiter instead of being returned to the pool, so a
    late arrival can never overtake a thread that is already waiting.
    Invariant: ``active_count + available_permits == max_concurrent``.
    """

    DEFAULT_MAX_CONCURRENT = 5

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        """
        Initialize the gate.

        Args:
            max_concurrent: Maximum number of operations admitted at once

        Raises:
            ValidationError: If max_concurrent is smaller than 1
        """
        if max_concurrent < 1:
            raise ValidationError(
                "max_concurrent must be at least 1",
                field="max_concurrent",
                details={"max_concurrent": max_concurrent}
            )

        self._max_concurrent = max_concurrent
        self._lock = threading.Lock()
        self._available = max_concurrent
        self._active = 0
        self._waiters: Deque[threading.Event] = deque()

        self._total_acquired = ThreadSafeCounter()
        self._total_released = ThreadSafeCounter()
        self._rejected_releases = ThreadSafeCounter()

        logger.debug("Request gate initialized", max_concurrent=max_concurrent)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """Number of slots currently held."""
        with self._lock:
            return self._active

    @property
    def available_permits(self) -> int:
        with self._lock:
            return self._available

    @property
    def waiting_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def can_execute_immediately(self) -> bool:
        """Non-blocking check whether an acquire would succeed right now."""
        with self._lock:
            return self._available > 0 and not self._waiters

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Acquire one slot, waiting in FIFO order if none is free.

        Args:
            timeout: Seconds to wait; None waits forever, 0 never waits

        Returns:
            True if a slot was acquired, False on timeout
        """
        with self._lock:
            if self._available > 0 and not self._waiters:
                self._take_slot()
                return True
            if timeout is not None and timeout <= 0:
                return False
            waiter = threading.Event()
            self._waiters.append(waiter)

        try:
            if waiter.wait(timeout):
                return True
        except BaseException:
            # Interrupted while waiting: give back a slot handed to us meanwhile
            with self._lock:
                if waiter.is_set():
                    self._release_locked()
                else:
                    self._waiters.remove(waiter)
            raise

        with self._lock:
            # The hand-off may have happened between the timeout and the lock
            if waiter.is_set():
                return True
            self._waiters.remove(waiter)
            return False

    def try_acquire(self) -> bool:
        """Acquire a slot only if one is free right now."""
        return self.acquire(timeout=0)

    def release(self) -> bool:
        """
        Release one slot.

        Returns:
            True if a slot was released, False if no slot was held
        """
        with self._lock:
            if self._active == 0:
                self._rejected_releases.increment()
                logger.warning("Release called without an active slot",
                               max_concurrent=self._max_concurrent)
                return False
            self._release_locked()
            return True

    def enqueue(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run an operation inside a slot.

        Blocks until a slot is free, runs the operation, and releases the slot
        exactly once whether the operation returns, raises or is interrupted.

        Args:
            operation: Callable to run
            *args: Positional arguments for the operation
            **kwargs: Keyword arguments for the operation

        Returns:
            Whatever the operation returns
        """
        self.acquire()
        try:
            return operation(*args, **kwargs)
        finally:
            self.release()

    def get_statistics(self) -> Dict[str, Any]:
        """Snapshot of the gate counters."""
        with self._lock:
            active = self._active
            available = self._available
            waiting = len(self._waiters)

        return {
            "max_concurrent": self._max_concurrent,
            "active_count": active,
            "available_permits": available,
            "waiting_count": waiting,
            "total_acquired": self._total_acquired.get_value(),
            "total_released": self._total_released.get_value(),
            "rejected_releases": self._rejected_releases.get_value()
        }

    def _take_slot(self) -> None:
        self._available -= 1
        self._active += 1
        self._total_acquired.increment()

    def _release_locked(self) -> None:
        self._total_released.increment()
        if self._waiters:
            # Hand the slot straight to the oldest waiter; active count is unchanged
            waiter = self._waiters.popleft()
            self._total_acquired.increment()
            waiter.set()
        else:
            self._active -= 1
            self._available += 1

    def __repr__(self) -> str:
        return (f"RequestGate(max_concurrent={self._max_concurrent}, "
                f"active={self.active_count})")
