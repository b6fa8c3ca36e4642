"""In-memory repositories (tests / local dev)."""

from .security_events import InMemorySecurityEventRepository
from .verification_state import InMemoryVerificationStateRepository

__all__ = [
    "InMemorySecurityEventRepository",
    "InMemoryVerificationStateRepository",
]
