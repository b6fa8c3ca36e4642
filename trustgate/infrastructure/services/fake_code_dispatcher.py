"""
Name: Fake Code Dispatcher (outbox en memoria)

Responsibilities:
  - Implementar CodeDispatcher sin red, para dev local y CI (FAKE_DISPATCH=1)
  - Guardar los envíos en un outbox consultable por tests
  - Simular fallos de envío (fail_with) para ejercitar DISPATCH_FAILED / timeout

Notes:
  - Nunca habilitado en producción (Settings lo valida)
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from ...crosscutting.exceptions import TrustGateError
from ...crosscutting.logger import logger


@dataclass(frozen=True)
class SentCode:
    address: str
    code: str


class FakeCodeDispatcher:
    def __init__(self) -> None:
        self._lock = Lock()
        self._outbox: list[SentCode] = []
        self.fail_with: TrustGateError | None = None

    def dispatch_code(self, address: str, code: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self._outbox.append(SentCode(address=address, code=code))
        logger.info("code queued in fake outbox", extra={"address": address})

    @property
    def outbox(self) -> list[SentCode]:
        with self._lock:
            return list(self._outbox)

    def last_code_for(self, address: str) -> str | None:
        with self._lock:
            for sent in reversed(self._outbox):
                if sent.address == address:
                    return sent.code
        return None
