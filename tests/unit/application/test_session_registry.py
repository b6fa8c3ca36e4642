"""
Name: Session Registry Unit Tests

Responsibilities:
  - Validate creation, lookup and discard of verification sessions
  - Validate restore from persistence (live and expired)
  - Validate watchdog / activity wiring per session, also across re-login
  - Validate eviction of sessions that never signed in (TTL and cap)
  - Validate one live session per principal
"""

import threading

import pytest

from trustgate.application.session_registry import SessionRegistry
from trustgate.domain.entities import VerificationPhase

pytestmark = pytest.mark.unit

ADMIN = "ana@corp.test"
GUEST = "gus@corp.test"


class _Ticks:
    """Monotonic controlado por el test."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def registry(machine_factory):
    registry = SessionRegistry(machine_factory, watch_expiry=False)
    yield registry
    registry.close()


class TestCreateAndGet:
    def test_create_returns_unauthenticated_session(self, registry):
        """R: Should start every session unauthenticated."""
        handle = registry.create()
        assert handle.machine.phase is VerificationPhase.UNAUTHENTICATED
        assert len(handle.session_id) >= 32
        assert registry.get(handle.session_id) is handle
        assert len(registry) == 1

    def test_sessions_are_independent(self, registry, drive):
        """R: Should not share state between sessions."""
        first = registry.create()
        second = registry.create()
        drive.credentials(first.machine)

        assert first.session_id != second.session_id
        assert second.machine.phase is VerificationPhase.UNAUTHENTICATED

    def test_unknown_session(self, registry):
        """R: Should return None for ids with no live or stored session."""
        assert registry.get("missing") is None

    def test_login_attaches_activity_monitor(self, registry, drive):
        """R: Should attach activity tracking once the window opens."""
        handle = registry.create()
        assert handle.activity.attached is False
        drive.credentials(handle.machine)
        assert handle.activity.attached is True

    def test_terminal_session_is_discarded(self, registry, drive):
        """R: Should forget sessions that logged out."""
        handle = registry.create()
        drive.credentials(handle.machine)
        handle.machine.logout()
        assert len(registry) == 0
        assert registry.get(handle.session_id) is None


class TestRestore:
    def test_restore_after_restart(self, machine_factory, drive):
        """R: Should resume a stored session in a fresh registry."""
        before = SessionRegistry(machine_factory, watch_expiry=False)
        handle = before.create()
        drive.challenge(handle.machine)
        before.close()

        after = SessionRegistry(machine_factory, watch_expiry=False)
        restored = after.get(handle.session_id)

        assert restored.machine.phase is VerificationPhase.CHALLENGE_OK
        assert restored.activity.attached is True
        assert len(after) == 1
        after.close()

    def test_restore_expired_is_not_registered(self, machine_factory, drive, clock):
        """R: Should hand back an Expired session without keeping it."""
        before = SessionRegistry(machine_factory, watch_expiry=False)
        handle = before.create()
        drive.credentials(handle.machine, GUEST)
        before.close()
        clock.advance(minutes=30)

        after = SessionRegistry(machine_factory, watch_expiry=False)
        restored = after.get(handle.session_id)

        assert restored.machine.phase is VerificationPhase.EXPIRED
        assert len(after) == 0


class TestWatchdogWiring:
    def test_expired_session_removed_by_watchdog(self, machine_factory, drive, clock):
        """R: Should expire and discard a lapsed session from the tick thread."""
        registry = SessionRegistry(machine_factory, tick_seconds=0.01)
        handle = registry.create()
        drive.credentials(handle.machine, GUEST)
        assert handle.watchdog.running is True

        expired = threading.Event()
        handle.machine.add_listener(
            lambda prev, cur: expired.set()
            if cur.phase is VerificationPhase.EXPIRED
            else None
        )
        clock.advance(minutes=16)

        assert expired.wait(timeout=5.0)
        assert len(registry) == 0
        assert handle.watchdog.running is False
        registry.close()

    def test_relogin_on_same_handle_is_watched_again(self, machine_factory, drive):
        """R: Should register the handle and restart its tick after a new login."""
        registry = SessionRegistry(machine_factory, tick_seconds=0.05)
        handle = registry.create()
        drive.credentials(handle.machine, GUEST)
        handle.machine.logout()
        assert len(registry) == 0
        assert handle.watchdog.running is False

        drive.credentials(handle.machine, GUEST)

        assert handle.machine.phase is VerificationPhase.CREDENTIALS_OK
        assert handle.watchdog.running is True
        assert handle.activity.attached is True
        assert registry.get(handle.session_id) is handle
        assert len(registry) == 1
        registry.close()


class TestPendingSessions:
    def test_unused_session_expires_after_ttl(self, machine_factory):
        """R: Should forget a session that never signed in once its TTL passed."""
        ticks = _Ticks()
        registry = SessionRegistry(
            machine_factory, watch_expiry=False, pending_ttl_seconds=60, monotonic=ticks
        )
        handle = registry.create()

        ticks.now = 59.0
        assert registry.get(handle.session_id) is handle

        ticks.now = 60.0
        assert registry.get(handle.session_id) is None
        assert len(registry) == 0

    def test_stale_sessions_swept_on_create(self, machine_factory):
        """R: Should not accumulate unauthenticated sessions."""
        ticks = _Ticks()
        registry = SessionRegistry(
            machine_factory, watch_expiry=False, pending_ttl_seconds=60, monotonic=ticks
        )
        for _ in range(50):
            registry.create()
        assert len(registry) == 50

        ticks.now = 61.0
        registry.create()

        assert len(registry) == 1

    def test_pending_sessions_are_capped(self, machine_factory):
        """R: Should evict the oldest unauthenticated sessions over the cap."""
        ticks = _Ticks()
        registry = SessionRegistry(
            machine_factory, watch_expiry=False, max_pending=3, monotonic=ticks
        )
        handles = []
        for second in range(5):
            ticks.now = float(second)
            handles.append(registry.create())

        assert len(registry) == 3
        assert registry.get(handles[0].session_id) is None
        assert registry.get(handles[1].session_id) is None
        assert registry.get(handles[4].session_id) is handles[4]

    def test_failed_sign_in_stays_evictable(self, machine_factory):
        """R: Should treat a session with only failed credentials as unused."""
        ticks = _Ticks()
        registry = SessionRegistry(
            machine_factory, watch_expiry=False, pending_ttl_seconds=60, monotonic=ticks
        )
        handle = registry.create()
        assert not handle.machine.submit_credentials(ADMIN, "wrong").ok

        ticks.now = 60.0
        assert registry.get(handle.session_id) is None

    def test_signed_in_sessions_are_never_evicted(self, machine_factory, drive):
        """R: Should keep sessions with an open window regardless of age."""
        ticks = _Ticks()
        registry = SessionRegistry(
            machine_factory,
            watch_expiry=False,
            pending_ttl_seconds=60,
            max_pending=1,
            monotonic=ticks,
        )
        signed_in = registry.create()
        drive.credentials(signed_in.machine, GUEST)

        ticks.now = 1000.0
        registry.create()

        assert registry.get(signed_in.session_id) is signed_in
        assert len(registry) == 2

    def test_invalid_limits(self, machine_factory):
        """R: Should refuse a non-positive TTL or cap."""
        with pytest.raises(ValueError):
            SessionRegistry(machine_factory, pending_ttl_seconds=0)
        with pytest.raises(ValueError):
            SessionRegistry(machine_factory, max_pending=0)


class TestOneSessionPerPrincipal:
    def test_new_sign_in_closes_previous_session(self, registry, drive):
        """R: Should log out the older session of the same principal."""
        first = registry.create()
        second = registry.create()
        drive.credentials(first.machine)

        drive.credentials(second.machine)

        assert first.machine.phase is VerificationPhase.LOGGED_OUT
        assert second.machine.phase is VerificationPhase.CREDENTIALS_OK
        assert registry.get(first.session_id) is None
        assert len(registry) == 1

    def test_other_principals_are_untouched(self, registry, drive):
        """R: Should only close sessions of the same principal."""
        admin = registry.create()
        guest = registry.create()
        drive.credentials(admin.machine, ADMIN)
        drive.credentials(guest.machine, GUEST)

        assert admin.machine.phase is VerificationPhase.CREDENTIALS_OK
        assert guest.machine.phase is VerificationPhase.CREDENTIALS_OK
        assert len(registry) == 2

    def test_restored_session_yields_to_live_sign_in(self, machine_factory, drive):
        """R: Should not resurrect a stored session the principal replaced."""
        before = SessionRegistry(machine_factory, watch_expiry=False)
        old = before.create()
        drive.credentials(old.machine)
        before.close()

        after = SessionRegistry(machine_factory, watch_expiry=False)
        fresh = after.create()
        drive.credentials(fresh.machine)

        assert after.get(old.session_id) is None
        assert fresh.machine.phase is VerificationPhase.CREDENTIALS_OK
        assert len(after) == 1
        after.close()
