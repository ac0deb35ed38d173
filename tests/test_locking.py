"""
Tests for medgate.locking -- per resident/medication administration locks.
"""

from __future__ import annotations

import threading
import time

import pytest

from medgate.locking import AdministrationLockManager, LockTimeout


class TestLockBasics:
    def test_with_lock_returns_value(self):
        locks = AdministrationLockManager()
        assert locks.with_lock("res_001", "med_a", lambda: 42) == 42

    def test_lock_released_after_block(self):
        locks = AdministrationLockManager()
        with locks.hold("res_001", "med_a"):
            assert locks.is_locked("res_001", "med_a")
        assert not locks.is_locked("res_001", "med_a")
        assert len(locks) == 0

    def test_lock_released_on_exception(self):
        locks = AdministrationLockManager()
        with pytest.raises(RuntimeError):
            with locks.hold("res_001", "med_a"):
                raise RuntimeError("stage failed")
        assert not locks.is_locked("res_001", "med_a")
        assert len(locks) == 0

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            AdministrationLockManager(timeout_seconds=0)


class TestContention:
    def test_same_key_times_out(self):
        locks = AdministrationLockManager(timeout_seconds=5)
        with locks.hold("res_001", "med_a"):
            errors = []

            def contender():
                try:
                    with locks.hold("res_001", "med_a", timeout=0.05):
                        pass
                except LockTimeout as e:
                    errors.append(e)

            t = threading.Thread(target=contender)
            t.start()
            t.join(timeout=5)

        assert len(errors) == 1
        assert errors[0].retryable is True
        assert errors[0].resident_id == "res_001"
        assert errors[0].medication_id == "med_a"
        assert len(locks) == 0

    def test_different_keys_do_not_contend(self):
        locks = AdministrationLockManager()
        with locks.hold("res_001", "med_a"):
            # Would time out if the keys shared a lock
            with locks.hold("res_001", "med_b", timeout=0.05):
                pass
            with locks.hold("res_002", "med_a", timeout=0.05):
                pass

    def test_same_key_is_serialized(self):
        locks = AdministrationLockManager()
        active = []
        overlaps = []
        guard = threading.Lock()

        def critical_section():
            with guard:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
            time.sleep(0.01)
            with guard:
                active.pop()

        threads = [
            threading.Thread(target=locks.with_lock, args=("res_001", "med_a", critical_section))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert overlaps == []
        assert len(locks) == 0
