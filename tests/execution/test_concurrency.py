"""Tests for the per-tenant in-flight guard."""

from __future__ import annotations

import threading
import time

from omnimap.execution.concurrency import InFlightGuard


class TestInFlightGuard:
    def test_generation_starts_at_zero(self):
        assert InFlightGuard().generation("00D1") == 0

    def test_complete_bumps_generation(self):
        guard = InFlightGuard()
        with guard.hold("00D1") as slot:
            assert slot.generation == 0
            assert slot.complete() == 1
        assert guard.generation("00D1") == 1

    def test_is_locked_while_held(self):
        guard = InFlightGuard()
        with guard.hold("00D1"):
            assert guard.is_locked("00D1")
            assert guard.list_active() == ["00D1"]
        assert not guard.is_locked("00D1")
        assert guard.list_active() == []

    def test_released_on_exception(self):
        guard = InFlightGuard()
        try:
            with guard.hold("00D1"):
                raise RuntimeError("load failed")
        except RuntimeError:
            pass
        assert not guard.is_locked("00D1")
        assert guard.generation("00D1") == 0

    def test_waiter_sees_new_generation(self):
        """A caller that waited behind a finished run can detect it."""
        guard = InFlightGuard()
        entered = threading.Event()
        observed = {}

        def first():
            with guard.hold("00D1") as slot:
                entered.set()
                time.sleep(0.05)
                slot.complete()

        def second():
            entered.wait()
            seen = guard.generation("00D1")
            with guard.hold("00D1") as slot:
                observed["changed"] = slot.generation != seen

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        t1.join()
        t2.join()
        assert observed["changed"] is True

    def test_keys_are_independent(self):
        guard = InFlightGuard()
        with guard.hold("A"):
            acquired = threading.Event()

            def other():
                with guard.hold("B"):
                    acquired.set()

            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=1.0)
            t.join()
