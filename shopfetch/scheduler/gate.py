"""Bounded-concurrency admission gate with FIFO waiters."""

import threading
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import structlog


logger = structlog.get_logger()

T = TypeVar("T")

# Default concurrency limit for detail fetches
DEFAULT_CONCURRENCY_LIMIT = 5


class ConcurrencyGate:
    """Runs at most ``limit`` tasks at once; excess callers queue in order.

    A caller arriving while a slot is free and nobody is queued starts
    immediately. Otherwise it blocks on its own event at the tail of the
    queue. When a task finishes, its slot is handed straight to the head
    waiter, so exactly one waiter is admitted per release and a slot is
    never idle while someone waits.

    Acquire and release are paired by ``slot()``, so the slot is returned
    on every exit path of the task body, including exceptions.

    Thread-safe; one instance is shared by every request in the process.
    """

    def __init__(self, limit: int = DEFAULT_CONCURRENCY_LIMIT) -> None:
        """Initialize the gate.

        Args:
            limit: Maximum number of simultaneously running tasks.

        Raises:
            ValueError: If limit is less than 1.
        """
        if limit < 1:
            msg = f"limit must be at least 1, got {limit}"
            raise ValueError(msg)
        self._limit = limit
        self._running = 0
        self._peak_running = 0
        self._waiters: deque[threading.Event] = deque()
        self._lock = threading.Lock()
        self._log = logger.bind(component="scheduler", limit=limit)

    @property
    def limit(self) -> int:
        """Get the maximum number of concurrent tasks."""
        return self._limit

    @property
    def running(self) -> int:
        """Get the number of tasks currently holding a slot."""
        with self._lock:
            return self._running

    @property
    def waiting(self) -> int:
        """Get the number of callers queued for a slot."""
        with self._lock:
            return len(self._waiters)

    @property
    def peak_running(self) -> int:
        """Get the highest number of simultaneously held slots seen."""
        with self._lock:
            return self._peak_running

    def run(self, task: Callable[[], T]) -> T:
        """Run a zero-argument task once a slot is available.

        Args:
            task: Unit of work.

        Returns:
            The task's result. Exceptions from the task propagate.
        """
        with self.slot():
            return task()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one slot for the duration of the block."""
        self._acquire()
        try:
            yield
        finally:
            self._release()

    def _acquire(self) -> None:
        with self._lock:
            if self._running < self._limit and not self._waiters:
                self._running += 1
                self._peak_running = max(self._peak_running, self._running)
                return
            turn = threading.Event()
            self._waiters.append(turn)
            queued = len(self._waiters)

        self._log.debug("slot_wait", queued=queued)
        # The releasing task transfers its slot to us before setting the event
        turn.wait()

    def _release(self) -> None:
        with self._lock:
            if self._waiters:
                # Slot passes to the head waiter; running count is unchanged
                self._waiters.popleft().set()
                return
            self._running -= 1
