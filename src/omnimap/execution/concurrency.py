"""In-flight guard: one full load per tenant at a time.

WHY
───
Two "load all" triggers for the same tenant would both reset and rebuild
the registry and race to replace the cached dataset. The guard
serializes them per key; different keys never block each other.

ARCHITECTURE
────────────
::

    InFlightGuard()
      ├── .hold(key)         ─ context manager, blocks while another holder runs
      ├── .generation(key)   ─ completed runs for the key
      ├── .is_locked(key)    ─ check without acquiring
      └── .list_active()     ─ keys currently held

    A caller reads ``generation(key)`` *before* calling ``hold``. If the
    slot's generation differs once the lock is granted, another run
    finished while it waited and its result can be reused.

Example::

    guard = InFlightGuard()
    seen = guard.generation("00D1")
    with guard.hold("00D1") as slot:
        if slot.generation != seen:
            return cached_result()
        result = run_load()
        slot.complete()
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class GuardSlot:
    """Handle given to the holder of a key."""

    key: str
    generation: int
    _guard: InFlightGuard

    def complete(self) -> int:
        """Record a finished run; returns the new generation."""
        return self._guard._bump(self.key)


class InFlightGuard:
    """Per-key mutual exclusion with a completion counter."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._generations: dict[str, int] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def generation(self, key: str) -> int:
        with self._registry_lock:
            return self._generations.get(key, 0)

    def _bump(self, key: str) -> int:
        with self._registry_lock:
            value = self._generations.get(key, 0) + 1
            self._generations[key] = value
            return value

    @contextmanager
    def hold(self, key: str) -> Iterator[GuardSlot]:
        lock = self._lock_for(key)
        with lock:
            yield GuardSlot(key=key, generation=self.generation(key), _guard=self)

    def is_locked(self, key: str) -> bool:
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def list_active(self) -> list[str]:
        with self._registry_lock:
            return sorted(k for k, lock in self._locks.items() if lock.locked())


__all__ = ["InFlightGuard", "GuardSlot"]
