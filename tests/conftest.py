"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Provide reusable test fixtures (clock, collaborators, repositories)
  - Build verification state machines wired with in-memory fakes
  - Configure test environment

Collaborators:
  - pytest: Test framework
  - trustgate.domain: Domain entities and protocols
  - trustgate.application: Gates and state machine under test

Notes:
  - Fixtures are auto-discovered by pytest
  - ManualClock replaces wall time: tests advance it explicitly
  - The CAPTCHA engine gets a seeded RNG so secrets are reproducible
"""

import os
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from trustgate.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from trustgate.application.captcha import CaptchaEngine  # noqa: E402
from trustgate.application.one_time_code import OneTimeCodeGate  # noqa: E402
from trustgate.application.session_lifecycle import SessionLifecycleManager  # noqa: E402
from trustgate.application.verification import VerificationStateMachine  # noqa: E402
from trustgate.crosscutting.exceptions import InvalidCredentialsError  # noqa: E402
from trustgate.domain.entities import Principal  # noqa: E402
from trustgate.domain.roles import Role  # noqa: E402
from trustgate.infrastructure.repositories.in_memory import (  # noqa: E402
    InMemorySecurityEventRepository,
    InMemoryVerificationStateRepository,
)
from trustgate.infrastructure.services.fake_code_dispatcher import (  # noqa: E402
    FakeCodeDispatcher,
)

os.environ.setdefault("APP_ENV", "test")


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


# ============================================================================
# Test doubles
# ============================================================================


class ManualClock:
    """Clock controlado por el test (UTC)."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now += timedelta(**kwargs)
        return self._now


class FakeAuthenticator:
    """
    Authenticator en memoria: identifier -> (secret, Principal).

    fail_with: si se setea, authenticate() lanza esa excepción.
    """

    def __init__(self, accounts: dict[str, tuple[str, Principal]]):
        self._accounts = accounts
        self.fail_with: Exception | None = None
        self.calls = 0

    def authenticate(self, identifier: str, secret: str) -> Principal:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        entry = self._accounts.get(identifier)
        if entry is None or entry[0] != secret:
            raise InvalidCredentialsError("Invalid credentials")
        return entry[1]


# ============================================================================
# Principal Fixtures
# ============================================================================

ADMIN_EMAIL = "ana@corp.test"
GUEST_EMAIL = "gus@corp.test"
KIOSK_EMAIL = "kiosk@corp.test"
PASSWORD = "correct horse"


@pytest.fixture
def admin_principal() -> Principal:
    """R: Admin that requires a second factor."""
    return Principal(
        principal_id="u-admin",
        display_name="ana",
        address=ADMIN_EMAIL,
        role=Role.ADMIN,
    )


@pytest.fixture
def guest_principal() -> Principal:
    """R: Guest (15 minute window) that requires a second factor."""
    return Principal(
        principal_id="u-guest",
        display_name="gus",
        address=GUEST_EMAIL,
        role=Role.GUEST,
    )


@pytest.fixture
def kiosk_principal() -> Principal:
    """R: Employee without second factor, already bound to a unit."""
    return Principal(
        principal_id="u-kiosk",
        display_name="kiosk",
        address=KIOSK_EMAIL,
        role=Role.EMPLOYEE,
        requires_second_factor=False,
        unit_ref="dept-ops",
    )


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def authenticator(admin_principal, guest_principal, kiosk_principal) -> FakeAuthenticator:
    return FakeAuthenticator(
        {
            ADMIN_EMAIL: (PASSWORD, admin_principal),
            GUEST_EMAIL: (PASSWORD, guest_principal),
            KIOSK_EMAIL: (PASSWORD, kiosk_principal),
        }
    )


@pytest.fixture
def dispatcher() -> FakeCodeDispatcher:
    return FakeCodeDispatcher()


@pytest.fixture
def state_repository() -> InMemoryVerificationStateRepository:
    return InMemoryVerificationStateRepository()


@pytest.fixture
def event_repository() -> InMemorySecurityEventRepository:
    return InMemorySecurityEventRepository()


@pytest.fixture
def code_gate(clock, dispatcher) -> OneTimeCodeGate:
    return OneTimeCodeGate(clock, dispatcher)


@pytest.fixture
def machine_factory(
    clock, authenticator, code_gate, state_repository, event_repository
):
    """
    R: Factory session_id -> VerificationStateMachine.

    Collaborators, repositories and the code gate are shared between machines
    (as in the container); the CAPTCHA engine is per machine.
    """

    def build(session_id: str = "session-1") -> VerificationStateMachine:
        return VerificationStateMachine(
            session_id,
            authenticator=authenticator,
            code_gate=code_gate,
            captcha=CaptchaEngine(rng=random.Random(1234)),
            lifecycle=SessionLifecycleManager(clock),
            repository=state_repository,
            events=event_repository,
        )

    return build


@pytest.fixture
def machine(machine_factory) -> VerificationStateMachine:
    return machine_factory()


@pytest.fixture
def drive(dispatcher):
    """R: Walk a machine through the gates (happy path) up to a given gate."""

    class Driver:
        def credentials(self, machine, email: str = ADMIN_EMAIL):
            return machine.submit_credentials(email, PASSWORD)

        def second_factor(self, machine, email: str = ADMIN_EMAIL):
            self.credentials(machine, email)
            machine.request_second_factor()
            return machine.submit_second_factor(dispatcher.last_code_for(email))

        def challenge(self, machine, email: str = ADMIN_EMAIL):
            self.second_factor(machine, email)
            pending = machine.enter_challenge()
            return machine.submit_challenge(pending.challenge.secret)

    return Driver()
