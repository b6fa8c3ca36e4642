"""
Name: API Schemas (pydantic)

Responsibilities:
  - Validar inputs HTTP de las transiciones (longitudes, tipos)
  - Definir la vista serializable de una sesión de verificación

Notes:
  - El secreto de credenciales viaja como SecretStr (no aparece en reprs)
  - `challenge` sólo se incluye mientras el gate de CAPTCHA está pendiente
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..domain.entities import VerificationPhase
from ..domain.roles import Role


class CredentialsIn(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=320)
    secret: SecretStr = Field(..., min_length=1, max_length=1024)


class CodeIn(BaseModel):
    # Sin pattern: el formato lo valida el gate y se reporta como INVALID_CODE_FORMAT.
    code: str = Field(..., max_length=64)


class ChallengeAnswerIn(BaseModel):
    answer: str = Field(..., max_length=64)


class UnitIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    unit_ref: str = Field(..., min_length=1, max_length=128)


class ActivityIn(BaseModel):
    kind: Literal["pointer", "key", "scroll", "touch"] = "pointer"


class SessionCreatedOut(BaseModel):
    session_id: str
    phase: VerificationPhase


class ChallengeOut(BaseModel):
    text: str
    attempts: int
    remaining_attempts: int


class SessionOut(BaseModel):
    phase: VerificationPhase
    credential_verified: bool
    second_factor_verified: bool
    challenge_verified: bool
    principal_id: str | None = None
    display_name: str | None = None
    role: Role | None = None
    unit_ref: str | None = None
    requires_second_factor: bool | None = None
    session_expires_at: datetime | None = None
    remaining_seconds: int | None = None
    progress: float | None = None
    countdown: str | None = None
    status: str | None = None
    challenge: ChallengeOut | None = None
    code_delivered: bool | None = None


class AccessOut(BaseModel):
    role: Role
    allowed: bool
