"""Per-user short-term conversation memory with sliding inactivity expiry.

This is a soft cache: a process restart drops every session.

Clock and timer are injectable so eviction can be driven deterministically:
- `clock()` returns monotonic seconds.
- `timer_factory(interval_s, callback)` returns an object with `start()` and
  `cancel()` (the `threading.Timer` interface).

Each user has a lock that lives exactly as long as the user's session, so the
lock registry never outgrows the set of live sessions.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 60 * 60


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _daemon_timer(interval_s: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(interval_s, callback)
    timer.daemon = True
    return timer


@dataclass(slots=True)
class _Session:
    turns: list[tuple[str, str]] = field(default_factory=list)
    expires_at: float = 0.0
    timer: TimerHandle | None = None
    generation: int = 0


class ConversationStore:
    """In-memory mapping of user id to an append-only turn list."""

    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._timer_factory = timer_factory
        self._sessions: dict[str, _Session] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        # Store-wide, so a timer from an evicted session never matches its successor.
        self._generations = itertools.count(1)

    def _acquire(self, user_id: str, create: bool) -> threading.Lock | None:
        """Acquire the user's lock, creating it only when `create` is set."""
        while True:
            with self._registry_lock:
                lock = self._locks.get(user_id)
                if lock is None:
                    if not create:
                        return None
                    lock = threading.Lock()
                    self._locks[user_id] = lock
            lock.acquire()
            with self._registry_lock:
                current = self._locks.get(user_id)
            if current is lock:
                return lock
            # Dropped by an eviction while we waited; start over.
            lock.release()

    def _drop(self, user_id: str) -> _Session | None:
        """Remove session and lock entry. Caller holds the user's lock."""
        session = self._sessions.pop(user_id, None)
        with self._registry_lock:
            self._locks.pop(user_id, None)
        if session is not None and session.timer is not None:
            session.timer.cancel()
        return session

    def _expired(self, session: _Session) -> bool:
        return self._clock() >= session.expires_at

    def _reschedule(self, user_id: str, session: _Session) -> None:
        if session.timer is not None:
            session.timer.cancel()
        generation = next(self._generations)
        session.generation = generation
        session.expires_at = self._clock() + self.ttl_s
        session.timer = self._timer_factory(self.ttl_s, lambda: self._on_timeout(user_id, generation))
        session.timer.start()

    def _on_timeout(self, user_id: str, generation: int) -> None:
        lock = self._acquire(user_id, create=False)
        if lock is None:
            return
        try:
            session = self._sessions.get(user_id)
            # A stale timer from before the last reset must not evict.
            if session is None or session.generation != generation:
                return
            self._drop(user_id)
        finally:
            lock.release()
        logger.info("History cleared for user %s due to inactivity", user_id)

    def append(self, user_id: str, role: str, text: str) -> None:
        """Append one turn and reset the user's inactivity window."""
        lock = self._acquire(user_id, create=True)
        try:
            session = self._sessions.get(user_id)
            if session is None or self._expired(session):
                if session is not None and session.timer is not None:
                    session.timer.cancel()
                session = _Session()
                self._sessions[user_id] = session
            session.turns.append((role, text))
            self._reschedule(user_id, session)
        finally:
            lock.release()

    def touch(self, user_id: str) -> bool:
        """Reset the inactivity window without adding a turn."""
        lock = self._acquire(user_id, create=False)
        if lock is None:
            return False
        try:
            session = self._sessions.get(user_id)
            if session is None or self._expired(session):
                self._drop(user_id)
                return False
            self._reschedule(user_id, session)
            return True
        finally:
            lock.release()

    def get_history(self, user_id: str) -> list[tuple[str, str]]:
        lock = self._acquire(user_id, create=False)
        if lock is None:
            return []
        try:
            session = self._sessions.get(user_id)
            if session is None or self._expired(session):
                self._drop(user_id)
                return []
            return list(session.turns)
        finally:
            lock.release()

    def evict(self, user_id: str) -> bool:
        lock = self._acquire(user_id, create=False)
        if lock is None:
            return False
        try:
            return self._drop(user_id) is not None
        finally:
            lock.release()

    def clear(self) -> None:
        """Evict every session and cancel its timer."""
        with self._registry_lock:
            users = list(self._locks.keys())
        for user_id in users:
            self.evict(user_id)
        logger.info("Cleared %d conversation sessions", len(users))
