"""
Name: Expiry Watchdog / Activity Monitor Unit Tests

Responsibilities:
  - Validate the tick forces Expired once the window lapses
  - Validate the watchdog stops itself on terminal transitions and can be
    started again for a new login
  - Validate activity signals renew the window and stop after the session ends

Notes:
  - Ticks run on a real thread with a tiny interval; the clock is manual
"""

import threading
from datetime import timedelta

import pytest

from trustgate.application.expiry_watchdog import ActivityMonitor, ExpiryWatchdog
from trustgate.domain.entities import VerificationPhase

pytestmark = pytest.mark.unit

GUEST = "gus@corp.test"


def _wait_for_phase(machine, phase: VerificationPhase) -> threading.Event:
    reached = threading.Event()

    def listener(previous, current):
        if current.phase is phase:
            reached.set()

    machine.add_listener(listener)
    return reached


class TestExpiryWatchdog:
    def test_tick_expires_lapsed_session(self, machine, drive, clock):
        """R: Should force Expired without any caller transition."""
        drive.credentials(machine, GUEST)
        watchdog = ExpiryWatchdog(machine, interval=0.01)
        watchdog.start()
        expired = _wait_for_phase(machine, VerificationPhase.EXPIRED)

        clock.advance(minutes=16)

        assert expired.wait(timeout=5.0)
        assert watchdog.running is False
        watchdog.stop()

    def test_stops_on_logout(self, machine, drive):
        """R: Should detach once the session turns terminal."""
        drive.credentials(machine, GUEST)
        watchdog = ExpiryWatchdog(machine, interval=0.01)
        watchdog.start()
        assert watchdog.running is True

        machine.logout()

        assert watchdog.running is False
        watchdog.stop()

    def test_start_is_idempotent(self, machine, drive):
        """R: Should keep a single tick thread."""
        drive.credentials(machine, GUEST)
        watchdog = ExpiryWatchdog(machine, interval=0.05)
        watchdog.start()
        watchdog.start()
        assert watchdog.running is True
        watchdog.stop()
        assert watchdog.running is False

    def test_restarts_for_a_new_login(self, machine, drive, clock):
        """R: Should tick again after logout followed by a new login."""
        drive.credentials(machine, GUEST)
        watchdog = ExpiryWatchdog(machine, interval=0.01)
        watchdog.start()
        machine.logout()
        assert watchdog.running is False

        drive.credentials(machine, GUEST)
        watchdog.start()
        assert watchdog.running is True

        expired = _wait_for_phase(machine, VerificationPhase.EXPIRED)
        clock.advance(minutes=16)

        assert expired.wait(timeout=5.0)
        assert watchdog.running is False
        watchdog.stop()

    def test_interval_must_be_positive(self, machine):
        """R: Should refuse a non-positive interval."""
        with pytest.raises(ValueError):
            ExpiryWatchdog(machine, interval=0)


class TestActivityMonitor:
    def test_signal_renews_window(self, machine, drive, clock):
        """R: Should touch the session on each signal."""
        drive.credentials(machine, GUEST)
        monitor = ActivityMonitor(machine)
        monitor.attach()
        clock.advance(minutes=10)

        assert monitor.signal("scroll") is True
        assert machine.state.session_expires_at == clock.now() + timedelta(minutes=15)

    def test_ignored_when_detached(self, machine, drive):
        """R: Should ignore signals when not attached."""
        drive.credentials(machine, GUEST)
        assert ActivityMonitor(machine).signal("pointer") is False

    def test_ignored_before_login(self, machine):
        """R: Should ignore signals while unauthenticated."""
        monitor = ActivityMonitor(machine)
        monitor.attach()
        assert monitor.signal("key") is False
        assert monitor.attached is True

    def test_detaches_on_terminal(self, machine, drive):
        """R: Should detach when the session ends."""
        drive.credentials(machine, GUEST)
        monitor = ActivityMonitor(machine)
        monitor.attach()

        machine.logout()

        assert monitor.attached is False
        assert monitor.signal("touch") is False

    def test_signal_on_lapsed_window_expires(self, machine, drive, clock):
        """R: Should not renew a window that already lapsed."""
        drive.credentials(machine, GUEST)
        monitor = ActivityMonitor(machine)
        monitor.attach()
        clock.advance(minutes=15)

        assert monitor.signal("pointer") is False
        assert machine.phase is VerificationPhase.EXPIRED
        assert monitor.attached is False

    def test_unknown_kind(self, machine):
        """R: Should reject unknown activity kinds."""
        with pytest.raises(ValueError):
            ActivityMonitor(machine).signal("blink")
