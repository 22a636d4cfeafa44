"""
itinerary.engine.locks — Keyed critical sections
=================================================

Check-then-act sequences (upvote cap check → insert, tally → flag writes)
must not interleave for the same key.  :class:`KeyedLock` hands out one
re-entrant lock per key and drops it once nobody holds or waits on it.

Service functions run on worker threads (``run_db`` / FastAPI threadpool),
so these are thread locks, not asyncio locks.  Never hold one across an
external HTTP call.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """A lock per hashable key, with reference-counted cleanup.

    Usage::

        upvote_locks = KeyedLock()
        with upvote_locks.hold(("winter-jam", "griffpatch")):
            ...  # count, then insert
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key → [lock, refcount]
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Module-level instances shared by the services (tests can build their own)
upvote_locks = KeyedLock()   # key: (jam slug, lowercased user name)
jam_locks = KeyedLock()      # key: jam slug
