"""
Name: Domain Entity Unit Tests

Responsibilities:
  - Validate VerificationState flag invariants
  - Validate terminal phases are always empty
  - Validate Challenge / OneTimeCode helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from trustgate.domain.entities import (
    Challenge,
    OneTimeCode,
    Principal,
    VerificationPhase,
    VerificationState,
)
from trustgate.domain.roles import Role

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _principal(**overrides) -> Principal:
    data = dict(principal_id="u-1", display_name="ana", address="ana@corp.test", role=Role.ADMIN)
    data.update(overrides)
    return Principal(**data)


class TestVerificationStateInvariants:
    def test_empty_state_has_no_flags(self):
        """R: Should start unauthenticated with every flag false."""
        state = VerificationState.empty()
        assert state.phase is VerificationPhase.UNAUTHENTICATED
        assert not state.fully_verified
        assert state.principal is None

    def test_second_factor_requires_credentials(self):
        """R: Should reject second_factor_verified without credential_verified."""
        with pytest.raises(ValueError):
            VerificationState(second_factor_verified=True, principal=_principal())

    def test_challenge_requires_second_factor(self):
        """R: Should reject challenge_verified without second factor."""
        with pytest.raises(ValueError):
            VerificationState(
                credential_verified=True,
                challenge_verified=True,
                principal=_principal(),
            )

    def test_challenge_without_second_factor_allowed_when_not_required(self):
        """R: Should allow skipping the second factor flag for exempt principals."""
        state = VerificationState(
            phase=VerificationPhase.CHALLENGE_OK,
            credential_verified=True,
            challenge_verified=True,
            principal=_principal(requires_second_factor=False),
        )
        assert state.challenge_verified

    @pytest.mark.parametrize(
        "phase",
        [VerificationPhase.LOGGED_OUT, VerificationPhase.EXPIRED, VerificationPhase.LOCKED],
    )
    def test_terminal_phases_must_be_empty(self, phase):
        """R: Should refuse a principal in a terminal phase."""
        assert phase.is_terminal
        with pytest.raises(ValueError):
            VerificationState(phase=phase, credential_verified=True, principal=_principal())

    def test_evolve_rechecks_invariants(self):
        """R: Should validate again when evolving a state."""
        state = VerificationState(
            phase=VerificationPhase.CREDENTIALS_OK,
            credential_verified=True,
            principal=_principal(),
        )
        with pytest.raises(ValueError):
            state.evolve(phase=VerificationPhase.LOGGED_OUT)


class TestPrincipal:
    def test_with_unit_returns_copy(self):
        """R: Should set the unit on a copy."""
        principal = _principal()
        updated = principal.with_unit("finance")
        assert updated.unit_ref == "finance"
        assert principal.unit_ref is None


class TestChallengeAndCode:
    def test_remaining_attempts(self):
        """R: Should compute remaining attempts from the budget."""
        assert Challenge(secret="AB23CD", attempts=3, max_attempts=5).remaining_attempts == 2

    def test_challenge_secret_not_in_repr(self):
        """R: Should keep the challenge secret out of repr."""
        assert "AB23CD" not in repr(Challenge(secret="AB23CD"))

    def test_code_expiry(self):
        """R: Should expire at expires_at and never without one."""
        code = OneTimeCode("u-1", "a@b", "123456", NOW, NOW + timedelta(seconds=60))
        assert not code.is_expired(NOW + timedelta(seconds=59))
        assert code.is_expired(NOW + timedelta(seconds=60))
        assert not OneTimeCode("u-1", "a@b", "123456", NOW).is_expired(NOW + timedelta(days=1))
