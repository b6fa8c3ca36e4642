"""System clock adapter (UTC, timezone-aware)."""

from __future__ import annotations

from datetime import datetime, timezone


class SystemClock:
    """Implementación de domain.services.Clock sobre el reloj del sistema."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
