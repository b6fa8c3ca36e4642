"""
Name: Security Event Emission Unit Tests

Responsibilities:
  - Validate event shape (action, risk, principal, metadata)
  - Ensure emission is best-effort (repository failures never propagate)
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from trustgate.audit import emit_security_event
from trustgate.domain.audit import RiskLevel, SecurityAction
from trustgate.infrastructure.repositories.in_memory import (
    InMemorySecurityEventRepository,
)

pytestmark = pytest.mark.unit

AT = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestEmitSecurityEvent:
    def test_event_shape(self, admin_principal):
        """R: Should record principal, role and default risk."""
        repo = InMemorySecurityEventRepository()

        emit_security_event(
            repo,
            action=SecurityAction.CAPTCHA_BLOCKED,
            principal=admin_principal.with_unit("finance"),
            session_id="s-1",
            metadata={"attempts": 5},
            occurred_at=AT,
        )

        event = repo.list_events()[0]
        assert event.action is SecurityAction.CAPTCHA_BLOCKED
        assert event.risk_level is RiskLevel.HIGH
        assert event.principal_id == "u-admin"
        assert event.session_id == "s-1"
        assert event.created_at == AT
        assert event.metadata == {"role": "admin", "unit_ref": "finance", "attempts": 5}

    def test_default_risk_low(self):
        """R: Should default to low risk for routine actions."""
        repo = InMemorySecurityEventRepository()
        emit_security_event(repo, action=SecurityAction.SESSION_ACTIVATED)
        assert repo.list_events()[0].risk_level is RiskLevel.LOW

    def test_address_never_recorded(self, admin_principal):
        """R: Should keep the principal address out of metadata."""
        repo = InMemorySecurityEventRepository()
        emit_security_event(
            repo, action=SecurityAction.CREDENTIALS_VERIFIED, principal=admin_principal
        )
        assert admin_principal.address not in str(repo.list_events()[0].metadata)

    def test_metadata_sanitized(self):
        """R: Should stringify values that are not JSON primitives."""
        repo = InMemorySecurityEventRepository()
        emit_security_event(
            repo, action=SecurityAction.LOGGED_OUT, metadata={"when": AT, "tags": ("a",)}
        )
        assert repo.list_events()[0].metadata == {"when": str(AT), "tags": ["a"]}

    def test_best_effort(self):
        """R: Should swallow repository failures."""
        repo = Mock()
        repo.record_event.side_effect = RuntimeError("disk full")

        emit_security_event(repo, action=SecurityAction.LOGGED_OUT)

        repo.record_event.assert_called_once()

    def test_no_repository(self):
        """R: Should be a no-op without a repository."""
        emit_security_event(None, action=SecurityAction.LOGGED_OUT)
