"""Per-(user, investment) throttle for price refreshes. State is process-local."""

import math
import threading
from collections import namedtuple
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable

from models import utc_now

UPDATE_WINDOW = timedelta(minutes=15)

Admission = namedtuple("Admission", ["admitted", "seconds_remaining"])


class InMemoryRateLimitStore:
    """Last successful update instant per key. Lost on restart."""

    def __init__(self):
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._entries.get(key)

    def set(self, key, instant) -> None:
        with self._lock:
            self._entries[key] = instant


class RateLimiter:
    def __init__(self, store=None, window: timedelta = UPDATE_WINDOW, clock: Callable = utc_now):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window = window
        self.clock = clock
        self._key_locks = {}
        self._key_locks_guard = threading.Lock()

    @staticmethod
    def _key(user_id: str, investment_name: str) -> tuple:
        return (str(user_id), investment_name)

    @contextmanager
    def hold(self, user_id: str, investment_name: str):
        """Serialise check/record for one key across concurrent requests."""
        key = self._key(user_id, investment_name)
        with self._key_locks_guard:
            lock = self._key_locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def check_admit(self, user_id: str, investment_name: str) -> Admission:
        last = self.store.get(self._key(user_id, investment_name))
        if last is None:
            return Admission(True, 0)
        elapsed = self.clock() - last
        if elapsed >= self.window:
            return Admission(True, 0)
        remaining = (self.window - elapsed).total_seconds()
        return Admission(False, max(1, math.ceil(remaining)))

    def record_success(self, user_id: str, investment_name: str) -> None:
        self.store.set(self._key(user_id, investment_name), self.clock())
