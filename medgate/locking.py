"""
Per resident/medication administration locks.

Attempts for the same (resident_id, medication_id) pair are serialized so
that two staff members on different devices cannot both be cleared to give
the same scheduled dose.  Attempts for different pairs never contend.

Locks are created on first use and discarded once no attempt holds or waits
for them, so the table does not grow with the number of residents.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LockTimeout(Exception):
    """The per-key lock could not be acquired in time.  Retryable."""

    retryable = True

    def __init__(self, resident_id: str, medication_id: str, timeout: float) -> None:
        super().__init__(
            f"Could not acquire administration lock for resident {resident_id} / "
            f"medication {medication_id} within {timeout:g}s"
        )
        self.resident_id = resident_id
        self.medication_id = medication_id
        self.timeout = timeout


class _KeyLock:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class AdministrationLockManager:
    """Exclusive locks keyed on (resident_id, medication_id)."""

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], _KeyLock] = {}

    @contextmanager
    def hold(
        self,
        resident_id: str,
        medication_id: str,
        timeout: Optional[float] = None,
    ) -> Iterator[None]:
        """Hold the lock for a key for the duration of the ``with`` block.

        Raises:
            LockTimeout: If the lock is not acquired within ``timeout``.
        """
        key = (resident_id, medication_id)
        timeout = self._timeout if timeout is None else timeout

        with self._guard:
            entry = self._locks.setdefault(key, _KeyLock())
            entry.users += 1

        acquired = entry.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                logger.warning(
                    f"Lock timeout after {timeout:g}s for resident {resident_id} / medication {medication_id}"
                )
                raise LockTimeout(resident_id, medication_id, timeout)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0 and self._locks.get(key) is entry:
                    del self._locks[key]

    def with_lock(
        self,
        resident_id: str,
        medication_id: str,
        fn: Callable[[], T],
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``fn`` while holding the lock for the key and return its result."""
        with self.hold(resident_id, medication_id, timeout=timeout):
            return fn()

    def is_locked(self, resident_id: str, medication_id: str) -> bool:
        with self._guard:
            entry = self._locks.get((resident_id, medication_id))
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        """Number of keys currently held or awaited."""
        with self._guard:
            return len(self._locks)
