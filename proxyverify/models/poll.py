"""Poll policy and convergence result models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from proxyverify.errors import ConvergenceTimeout, PredicateFailed


class ConvergenceOutcome(str, Enum):
    converged = "converged"
    timed_out = "timed_out"
    predicate_error = "predicate_error"


class PollPolicy(BaseModel):
    """How often to re-check and how long to keep trying (seconds)."""

    model_config = ConfigDict(frozen=True)

    interval: float = Field(gt=0)
    timeout: float = Field(ge=0)


class PollResult(BaseModel):
    """Outcome of a single ``poll_until`` call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    outcome: ConvergenceOutcome
    attempts: int = 0
    elapsed: float = 0.0
    # Last retryable error on timeout, the fatal cause on predicate_error.
    last_error: Optional[BaseException] = None

    @property
    def converged(self) -> bool:
        return self.outcome is ConvergenceOutcome.converged

    def describe(self, resource: str) -> str:
        if self.outcome is ConvergenceOutcome.converged:
            return (
                f"{resource} converged after {self.attempts} check(s) "
                f"in {self.elapsed:.1f}s"
            )
        if self.outcome is ConvergenceOutcome.timed_out:
            msg = f"timed out after {self.elapsed:.1f}s waiting for {resource}"
            if self.last_error is not None:
                msg += f": {self.last_error}"
            return msg
        return f"error waiting for {resource}: {self.last_error}"

    def raise_for_outcome(self, resource: str) -> None:
        """Raise ``ConvergenceTimeout`` / ``PredicateFailed`` unless converged."""
        if self.outcome is ConvergenceOutcome.timed_out:
            raise ConvergenceTimeout(self.describe(resource), self)
        if self.outcome is ConvergenceOutcome.predicate_error:
            raise PredicateFailed(self.describe(resource), self) from self.last_error
