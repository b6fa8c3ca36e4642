"""
Name: Session Expiry Policy Unit Tests

Responsibilities:
  - Validate the role -> max inactivity table
  - Validate remaining / is_expired / progress / countdown math
  - Validate the status snapshot used by the UI header
"""

from datetime import datetime, timedelta, timezone

import pytest

from trustgate.domain import session_policy
from trustgate.domain.roles import Role

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestMaxInactiveDuration:
    @pytest.mark.parametrize(
        "role,minutes",
        [
            (Role.ADMIN, 60),
            (Role.DEPARTMENT_HEAD, 45),
            (Role.EMPLOYEE, 30),
            (Role.GUEST, 15),
        ],
    )
    def test_table(self, role, minutes):
        """R: Should map each role to its inactivity quota."""
        assert session_policy.max_inactive_duration(role) == timedelta(minutes=minutes)

    def test_unknown_role_defaults_to_fifteen_minutes(self):
        """R: Should fall back to 15 minutes for unknown roles."""
        assert session_policy.max_inactive_duration("contractor") == timedelta(minutes=15)
        assert session_policy.max_inactive_duration(None) == timedelta(minutes=15)


class TestRemaining:
    def test_expiry_from_uses_full_quota(self):
        """R: Should compute expiry as now + quota."""
        assert session_policy.expiry_from(NOW, Role.EMPLOYEE) == NOW + timedelta(minutes=30)

    def test_remaining_is_clamped_at_zero(self):
        """R: Should never report negative remaining time."""
        assert session_policy.remaining(NOW - timedelta(seconds=5), NOW) == timedelta(0)

    def test_expired_when_remaining_reaches_zero(self):
        """R: Should treat remaining == 0 as expired."""
        assert session_policy.is_expired(NOW, NOW) is True
        assert session_policy.is_expired(NOW + timedelta(seconds=1), NOW) is False
        assert session_policy.is_expired(None, NOW) is True

    def test_progress_ratio(self):
        """R: Should return the remaining fraction of the quota."""
        expires_at = NOW + timedelta(minutes=15)
        assert session_policy.progress_ratio(expires_at, NOW, Role.EMPLOYEE) == pytest.approx(0.5)
        assert session_policy.progress_ratio(NOW, NOW, Role.EMPLOYEE) == 0.0


class TestCountdown:
    @pytest.mark.parametrize(
        "left,expected",
        [
            (timedelta(minutes=14, seconds=5), "14:05"),
            (timedelta(seconds=59), "0:59"),
            (timedelta(minutes=60), "60:00"),
            (timedelta(0), "0:00"),
        ],
    )
    def test_format(self, left, expected):
        """R: Should format remaining time as M:SS."""
        assert session_policy.countdown(left) == expected


class TestSessionStatus:
    def test_active_session(self):
        """R: Should flag a fresh window as active."""
        status = session_policy.session_status(NOW + timedelta(minutes=60), NOW, Role.ADMIN)
        assert status.label == "active"
        assert status.expiring_soon is False
        assert status.countdown == "60:00"

    def test_expiring_soon_at_quarter_of_quota(self):
        """R: Should flag expiring soon once progress <= 0.25."""
        status = session_policy.session_status(NOW + timedelta(minutes=15), NOW, Role.ADMIN)
        assert status.expiring_soon is True
        assert status.label == "expiring soon"

    def test_expired_label(self):
        """R: Should label a lapsed window as expired."""
        status = session_policy.session_status(NOW - timedelta(minutes=1), NOW, Role.GUEST)
        assert status.label == "expired"
        assert status.remaining == timedelta(0)
