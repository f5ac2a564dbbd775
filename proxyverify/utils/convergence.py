"""Poll-until-condition helper used to wait for cluster and node state."""

from __future__ import annotations

import time
from typing import Callable

from proxyverify.errors import is_retryable
from proxyverify.models.poll import ConvergenceOutcome, PollPolicy, PollResult

Predicate = Callable[[], bool]


def poll_until(
    policy: PollPolicy,
    predicate: Predicate,
    *,
    immediate: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """Evaluate *predicate* every ``policy.interval`` seconds until it holds.

    With ``immediate`` the first check happens right away, otherwise after one
    interval.  A predicate that raises a retryable error (``RetryableError``,
    ``NotFoundError``) counts as "not yet"; any other exception stops polling
    with ``predicate_error``.  Once ``policy.timeout`` has elapsed after a
    failed check the result is ``timed_out`` and carries the last retryable
    error, if any.

    Blocks the calling thread; run it through ``asyncio.to_thread`` from
    async code.
    """
    start = clock()
    attempts = 0
    last_error: BaseException | None = None

    if not immediate:
        sleep(policy.interval)

    while True:
        attempts += 1
        try:
            done = predicate()
        except Exception as exc:
            if not is_retryable(exc):
                return PollResult(
                    outcome=ConvergenceOutcome.predicate_error,
                    attempts=attempts,
                    elapsed=clock() - start,
                    last_error=exc,
                )
            last_error = exc
            done = False

        elapsed = clock() - start
        if done:
            return PollResult(
                outcome=ConvergenceOutcome.converged,
                attempts=attempts,
                elapsed=elapsed,
            )
        if elapsed >= policy.timeout:
            return PollResult(
                outcome=ConvergenceOutcome.timed_out,
                attempts=attempts,
                elapsed=elapsed,
                last_error=last_error,
            )
        sleep(min(policy.interval, policy.timeout - elapsed))
