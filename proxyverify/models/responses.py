"""Common API response models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from proxyverify.models.poll import ConvergenceOutcome, PollResult
from proxyverify.models.proxy import EnvVarMismatch


class HealthResponse(BaseModel):
    status: str
    version: str


class EnvVarsResponse(BaseModel):
    address: str
    scope: str
    env_vars: dict[str, str]


class EnvVerifyResponse(BaseModel):
    address: str
    ok: bool
    mismatches: list[EnvVarMismatch] = []


class ConvergenceResponse(BaseModel):
    resource: str
    outcome: ConvergenceOutcome
    attempts: int
    elapsed: float
    message: str
    error: Optional[str] = None

    @classmethod
    def from_result(cls, resource: str, result: PollResult) -> "ConvergenceResponse":
        return cls(
            resource=resource,
            outcome=result.outcome,
            attempts=result.attempts,
            elapsed=result.elapsed,
            message=result.describe(resource),
            error=str(result.last_error) if result.last_error is not None else None,
        )


class ErrorResponse(BaseModel):
    detail: str
