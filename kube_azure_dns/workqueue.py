"""
Key queue feeding the reconcile workers.

Keys are de-duplicated while waiting, and a key that is being processed is
never handed to a second worker: adds that arrive meanwhile mark it dirty
and it is queued again once the worker calls done(). Failed keys come back
after an exponential per-key backoff.
"""
import logging
import threading
from collections import deque


class WorkQueue:
    def __init__(self, base_delay=1.0, max_delay=300.0, backoff_factor=2.0):
        """
        Args:
            base_delay (float): Delay in seconds before the first retry of a key.
            max_delay (float): Cap on the delay between retries.
            backoff_factor (float): Multiplier applied to the delay after each failure.
        """
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor

        self._cond = threading.Condition()
        self._queue = deque()
        self._dirty = set()
        self._processing = set()
        self._failures = {}
        self._timers = set()
        self._shutting_down = False

    def add(self, key):
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def get(self, timeout=None):
        """
        Blocks until a key is ready and marks it as being processed.

        Returns None once the queue is shut down, or when timeout expires.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._queue or self._shutting_down, timeout):
                return None
            if self._shutting_down:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key):
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def backoff(self, key):
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * self.backoff_factor ** failures, self.max_delay)

    def add_rate_limited(self, key):
        delay = self.backoff(key)
        logging.debug(f"Requeueing {key} in {delay:.1f}s")
        self.add_after(key, delay)

    def add_after(self, key, delay):
        if delay <= 0:
            self.add(key)
            return

        def fire():
            with self._cond:
                self._timers.discard(timer)
            self.add(key)

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._cond:
            if self._shutting_down:
                return
            self._timers.add(timer)
        timer.start()

    def forget(self, key):
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key):
        with self._cond:
            return self._failures.get(key, 0)

    def shutdown(self):
        with self._cond:
            self._shutting_down = True
            timers = list(self._timers)
            self._timers.clear()
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

    def __len__(self):
        with self._cond:
            return len(self._queue)
