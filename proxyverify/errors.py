"""Error taxonomy for command execution, API access and convergence waits."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxyverify.models.poll import PollResult


class ProxyVerifyError(Exception):
    """Base class for all proxyverify errors."""


class TransportError(ProxyVerifyError):
    """A remote command or API call failed outright.

    Never retried by the poller; the underlying exception is chained as
    ``__cause__``.
    """


class InvalidArgumentError(ProxyVerifyError, ValueError):
    """A caller-supplied value is not safe to place in a remote command."""


class RetryableError(ProxyVerifyError):
    """Raised by a predicate when the target state is not there *yet*."""

    retryable = True


class NotFoundError(RetryableError):
    """The requested resource does not exist (possibly not re-created yet)."""


class ConvergenceError(ProxyVerifyError):
    def __init__(self, message: str, result: PollResult) -> None:
        super().__init__(message)
        self.result = result


class ConvergenceTimeout(ConvergenceError):
    """The deadline passed before the predicate held."""


class PredicateFailed(ConvergenceError):
    """The predicate raised a non-retryable error."""


def is_retryable(exc: BaseException) -> bool:
    return bool(getattr(exc, "retryable", False))
