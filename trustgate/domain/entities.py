"""
Name: Domain Entities

Responsibilities:
  - Define the core business objects of the verification engine: Principal,
    VerificationPhase, VerificationState, Challenge, OneTimeCode
  - Enforce the flag invariants of VerificationState at construction time
  - Stay framework-agnostic (no FastAPI, Redis or httpx imports)

Collaborators:
  - domain.roles: Role carried by Principal
  - application.*: build and replace these objects through transitions
  - infrastructure.repositories: persist VerificationState

Constraints:
  - Pure data classes, immutable (frozen); transitions replace, never mutate
  - Secrets (challenge text, code value) are excluded from repr so they do
    not leak into logs or tracebacks
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from .roles import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated identity subject to verification.

    Built by the credential-check collaborator. Immutable for the lifetime of
    the session except unit_ref, which is set exactly once (select unit).
    """

    principal_id: str
    display_name: str
    address: str
    role: Role
    requires_second_factor: bool = True
    unit_ref: str | None = None

    def with_unit(self, unit_ref: str) -> "Principal":
        return replace(self, unit_ref=unit_ref)


class VerificationPhase(str, Enum):
    """Explicit tag of the verification state."""

    UNAUTHENTICATED = "unauthenticated"
    CREDENTIALS_OK = "credentials_ok"
    SECOND_FACTOR_PENDING = "second_factor_pending"
    SECOND_FACTOR_OK = "second_factor_ok"
    CHALLENGE_PENDING = "challenge_pending"
    CHALLENGE_OK = "challenge_ok"
    UNIT_SELECTED = "unit_selected"
    ACTIVE = "active"
    LOGGED_OUT = "logged_out"
    EXPIRED = "expired"
    LOCKED = "locked"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset(
    {VerificationPhase.LOGGED_OUT, VerificationPhase.EXPIRED, VerificationPhase.LOCKED}
)


@dataclass(frozen=True, slots=True)
class VerificationState:
    """
    Authoritative per-principal record.

    Invariants:
      - second_factor_verified implies credential_verified
      - challenge_verified implies second_factor_verified, unless the principal
        does not require a second factor
      - terminal phases carry no principal and no verified flags

    challenge_attempts is the CAPTCHA failure counter of the current login;
    it is persisted so a restart cannot reset the lockout budget.
    """

    phase: VerificationPhase = VerificationPhase.UNAUTHENTICATED
    credential_verified: bool = False
    second_factor_verified: bool = False
    challenge_verified: bool = False
    principal: Principal | None = None
    session_expires_at: datetime | None = None
    last_activity_at: datetime | None = None
    challenge_attempts: int = 0

    def __post_init__(self) -> None:
        if self.second_factor_verified and not self.credential_verified:
            raise ValueError("second_factor_verified requires credential_verified")
        if self.challenge_verified and not self.second_factor_verified:
            requires = self.principal is None or self.principal.requires_second_factor
            if requires:
                raise ValueError(
                    "challenge_verified requires second_factor_verified"
                )
        if self.credential_verified and self.principal is None:
            raise ValueError("credential_verified requires a principal")
        if self.phase.is_terminal and (
            self.principal is not None or self.credential_verified
        ):
            raise ValueError("terminal phases must be empty")
        if self.challenge_attempts < 0:
            raise ValueError("challenge_attempts must be >= 0")

    @classmethod
    def empty(
        cls, phase: VerificationPhase = VerificationPhase.UNAUTHENTICATED
    ) -> "VerificationState":
        return cls(phase=phase)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def fully_verified(self) -> bool:
        return (
            self.credential_verified
            and self.second_factor_verified
            and self.challenge_verified
        )

    def evolve(self, **changes) -> "VerificationState":
        """Copy with changes; invariants are re-checked."""
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class Challenge:
    """
    CAPTCHA challenge: the secret sequence and its attempt state.

    attempts counts failures already recorded in the current gate session.
    """

    secret: str = field(repr=False)
    attempts: int = 0
    max_attempts: int = 5

    @property
    def remaining_attempts(self) -> int:
        return max(0, self.max_attempts - self.attempts)


@dataclass(frozen=True, slots=True)
class OneTimeCode:
    """6-digit code bound to a principal's address and issuance instant."""

    principal_id: str
    address: str
    value: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at
