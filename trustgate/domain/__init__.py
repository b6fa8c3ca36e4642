"""Domain layer exports"""

from .entities import (
    Challenge,
    OneTimeCode,
    Principal,
    VerificationPhase,
    VerificationState,
)
from .repositories import SecurityEventRepository, VerificationStateRepository
from .roles import Role
from .services import Authenticator, Clock, CodeDispatcher

__all__ = [
    "Challenge",
    "OneTimeCode",
    "Principal",
    "VerificationPhase",
    "VerificationState",
    "SecurityEventRepository",
    "VerificationStateRepository",
    "Role",
    "Authenticator",
    "Clock",
    "CodeDispatcher",
]
