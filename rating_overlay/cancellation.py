"""
Cancellation tokens, worker budget and task groups.

A CancelToken is a scoped cancellation handle with an optional deadline.
Child tokens never outlive their parent: a child's deadline is the earlier of
its own and its parent's, and cancelling a parent cancels every descendant.

WorkerBudget is the process-wide weighted semaphore that caps concurrent
item work. TaskGroup runs callables on a thread pool and cancels its token
on the first failure, then reports that failure from wait().
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Set

from .constants import logger
from .errors import Cancelled, DeadlineExceeded, SemaphoreAcquireError

# Upper bound on a single blocking wait so deadlines are noticed promptly
_POLL_INTERVAL = 0.05


class CancelToken:
    """Scoped cancellation handle carrying an optional monotonic deadline."""

    def __init__(self, parent: Optional['CancelToken'] = None, deadline: Optional[float] = None):
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: Set['CancelToken'] = set()
        self._error: Optional[Cancelled] = None

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> 'CancelToken':
        """Root token with no deadline."""
        return cls()

    def with_timeout(self, seconds: float) -> 'CancelToken':
        """Child token whose deadline is min(parent deadline, now + seconds)."""
        return CancelToken(self, time.monotonic() + seconds)

    def child(self) -> 'CancelToken':
        """Child token sharing this token's deadline."""
        return CancelToken(self)

    def _attach(self, child: 'CancelToken') -> None:
        with self._lock:
            error = self._error
            if error is None:
                self._children.add(child)
        if error is not None:
            child.cancel(error)
        elif self._deadline_passed():
            child.cancel(DeadlineExceeded())

    def _detach(self, child: 'CancelToken') -> None:
        with self._lock:
            self._children.discard(child)

    def _deadline_passed(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def cancel(self, error: Optional[Cancelled] = None) -> None:
        """Cancel this token and all descendants. Only the first call counts."""
        with self._lock:
            if self._error is not None:
                return
            self._error = error if error is not None else Cancelled()
            children = list(self._children)
            self._children.clear()
        self._event.set()
        for child in children:
            child.cancel(self._error)

    def release(self) -> None:
        """Cancel the token and detach it from its parent once its scope ends."""
        self.cancel()
        if self._parent is not None:
            self._parent._detach(self)

    @property
    def error(self) -> Optional[Cancelled]:
        if self._error is None and self._deadline_passed():
            self.cancel(DeadlineExceeded())
        return self._error

    @property
    def cancelled(self) -> bool:
        return self.error is not None

    def check(self) -> None:
        """Raise the cancellation cause if the token is done."""
        error = self.error
        if error is not None:
            raise error

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns True if cancelled."""
        end = None if timeout is None else time.monotonic() + timeout
        while not self.cancelled:
            step = _POLL_INTERVAL
            remaining = self.remaining()
            if remaining is not None:
                step = min(step, remaining)
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    return False
                step = min(step, left)
            self._event.wait(step)
        return True

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first, in which case raise."""
        if self.wait(seconds):
            self.check()


class WorkerBudget:
    """Weighted counting semaphore whose acquire honours a CancelToken."""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"worker budget must be at least 1, got {size}")
        self.size = size
        self._in_use = 0
        self._cond = threading.Condition()

    def acquire(self, token: CancelToken, weight: int = 1) -> None:
        if weight > self.size:
            raise SemaphoreAcquireError(f"weight {weight} exceeds budget {self.size}")
        with self._cond:
            while True:
                error = token.error
                if error is not None:
                    raise SemaphoreAcquireError('error acquiring semaphore', error)
                if self._in_use + weight <= self.size:
                    self._in_use += weight
                    return
                step = _POLL_INTERVAL
                remaining = token.remaining()
                if remaining is not None:
                    step = min(step, remaining)
                self._cond.wait(step)

    def release(self, weight: int = 1) -> None:
        with self._cond:
            if weight > self._in_use:
                raise RuntimeError('semaphore released more than held')
            self._in_use -= weight
            self._cond.notify_all()

    @property
    def in_use(self) -> int:
        with self._cond:
            return self._in_use


class TaskGroup:
    """
    Run callables concurrently under a child token.

    The first callable to raise cancels the group token; wait() blocks until
    every submitted callable has returned and gives back that first error.
    """

    def __init__(self, parent: CancelToken, max_workers: int, name: str = 'worker'):
        self.token = parent.child()
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix=name)
        self._futures: List[Future] = []
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    def spawn(self, fn: Callable[..., None], *args) -> None:
        self._futures.append(self._executor.submit(self._run, fn, *args))

    def _run(self, fn: Callable[..., None], *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            with self._lock:
                first = self._error is None
                if first:
                    self._error = e
            if first:
                logger.debug(f"TASK_GROUP_CANCEL error={e}")
                self.token.cancel(Cancelled('task group cancelled', e))

    def wait(self) -> Optional[BaseException]:
        for future in self._futures:
            future.result()
        self._executor.shutdown(wait=True)
        self.token.release()
        return self._error
