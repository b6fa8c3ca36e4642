"""
In-Memory Security Event Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import List

from ....domain.audit import SecurityAction, SecurityEvent


class InMemorySecurityEventRepository:
    """
    In-memory implementation of SecurityEventRepository (append-only).

    Useful for:
      - Unit testing
      - Local development without a real audit sink
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: List[SecurityEvent] = []

    def record_event(self, event: SecurityEvent) -> None:
        if event.created_at is None:
            event.created_at = datetime.now(timezone.utc)
        with self._lock:
            self._events.append(event)

    def list_events(
        self,
        *,
        principal_id: str | None = None,
        session_id: str | None = None,
        action: SecurityAction | None = None,
        start_at: datetime | None = None,
        limit: int = 50,
    ) -> list[SecurityEvent]:
        with self._lock:
            events = list(self._events)

        matched = [
            event
            for event in reversed(events)
            if (principal_id is None or event.principal_id == principal_id)
            and (session_id is None or event.session_id == session_id)
            and (action is None or event.action == action)
            and (start_at is None or event.created_at >= start_at)
        ]
        return matched[: max(0, limit)]
