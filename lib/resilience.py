# =============================================================================
# lib/resilience.py - Timeout + Bounded Retry Combinator
# =============================================================================
# One reusable wrapper applied to every external call in the pipeline
# (image fetch, model call, storage write, upload).
#
# - RetryPolicy: immutable {max_attempts, base_delay_ms, backoff_factor}
# - TimeBudget: wall-clock deadline threaded through a multi-step operation
# - ResilientInvoker: runs an async operation under a timeout and retries it
#
# Timeouts ABANDON the underlying call, they never cancel it. The call keeps
# running in the background and whatever it eventually produces is discarded.
#
# Usage:
#   from lib.resilience import ResilientInvoker, RetryPolicy, TimeBudget
#
#   invoker = ResilientInvoker(RetryPolicy(max_attempts=3, base_delay_ms=400))
#   data = await invoker.invoke(lambda: fetch(url), timeout_ms=10_000, label="image fetch")
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, TypeVar

from lib.errors import FATAL_ERRORS, BudgetExhaustedError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Retry Policy
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry configuration.

    The delay slept after a failed attempt number `n` (0-based) is
    `base_delay_ms * backoff_factor ** n`. No delay follows the last attempt.
    """

    max_attempts: int = 3
    base_delay_ms: float = 400
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms cannot be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    def delay_ms(self, attempt: int) -> float:
        """Delay to sleep after the given (0-based) failed attempt."""
        return self.base_delay_ms * (self.backoff_factor ** attempt)

    def total_delay_ms(self) -> float:
        """Sum of every delay slept when all attempts fail."""
        return sum(self.delay_ms(i) for i in range(self.max_attempts - 1))

    def with_overrides(
        self,
        max_attempts: int | None = None,
        base_delay_ms: float | None = None,
        backoff_factor: float | None = None,
    ) -> RetryPolicy:
        """Return a copy with the given fields replaced."""
        changes: dict[str, Any] = {}
        if max_attempts is not None:
            changes["max_attempts"] = max_attempts
        if base_delay_ms is not None:
            changes["base_delay_ms"] = base_delay_ms
        if backoff_factor is not None:
            changes["backoff_factor"] = backoff_factor
        return replace(self, **changes) if changes else self


# =============================================================================
# Time Budget
# =============================================================================

class TimeBudget:
    """
    A wall-clock deadline for a multi-step operation.

    Each step checks `remaining_ms()` before it starts and caps its own
    timeout to what is left.

    Example:
        budget = TimeBudget.start(60_000)
        if budget.expired:
            return
        timeout = budget.cap(20_000)
    """

    def __init__(self, total_ms: float, clock: Callable[[], float] = time.monotonic):
        self.total_ms = total_ms
        self._clock = clock
        self.started_at = clock()
        self.deadline = self.started_at + total_ms / 1000

    @classmethod
    def start(cls, total_ms: float) -> TimeBudget:
        return cls(total_ms)

    def elapsed_ms(self) -> float:
        return (self._clock() - self.started_at) * 1000

    def remaining_ms(self) -> float:
        return max(0.0, (self.deadline - self._clock()) * 1000)

    def remaining_seconds(self) -> float:
        return self.remaining_ms() / 1000

    @property
    def expired(self) -> bool:
        return self.remaining_ms() <= 0

    def cap(self, timeout_ms: float) -> float:
        """Clamp a step timeout to the remaining budget."""
        return min(timeout_ms, self.remaining_ms())

    def __repr__(self) -> str:
        return f"TimeBudget(total_ms={self.total_ms}, remaining_ms={self.remaining_ms():.0f})"


# =============================================================================
# Resilient Invoker
# =============================================================================

def _discard_late_result(task: asyncio.Future) -> None:
    """Consume the outcome of an abandoned call so it never surfaces."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Discarded late failure from abandoned call: {exc}")
    else:
        logger.debug("Discarded late result from abandoned call")


async def run_with_timeout(
    op: Callable[[], Awaitable[T]],
    timeout_ms: float,
    label: str = "operation",
) -> T:
    """
    Await `op()` for at most `timeout_ms`.

    The underlying call is shielded: on timeout it keeps running but its
    outcome is dropped.

    Raises:
        OperationTimeoutError: If the call does not settle in time
    """
    task = asyncio.ensure_future(op())
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=max(timeout_ms, 0) / 1000)
    except asyncio.TimeoutError:
        task.add_done_callback(_discard_late_result)
        raise OperationTimeoutError(label, timeout_ms) from None
    except asyncio.CancelledError:
        task.add_done_callback(_discard_late_result)
        raise


class ResilientInvoker:
    """
    Timeout + bounded-retry wrapper around any fallible async operation.

    - Each attempt runs under `timeout_ms` (capped to the budget, if given)
    - Failed attempts are retried with exponential backoff
    - After the last attempt, the last observed error is raised
    - AuthError / ValidationError are never retried

    The invoker has no side effects beyond logging, so a single instance can
    be shared by every call site.
    """

    def __init__(self, policy: RetryPolicy | None = None):
        self.policy = policy or RetryPolicy()

    async def invoke(
        self,
        op: Callable[[], Awaitable[T]],
        *,
        timeout_ms: float,
        max_attempts: int | None = None,
        base_delay_ms: float | None = None,
        backoff_factor: float | None = None,
        label: str = "operation",
        budget: TimeBudget | None = None,
    ) -> T:
        """
        Run `op` with timeout and retries.

        Args:
            op: Zero-argument callable returning a fresh awaitable per attempt
            timeout_ms: Per-attempt timeout
            max_attempts: Override the policy's attempt count
            base_delay_ms: Override the policy's base delay
            backoff_factor: Override the policy's backoff factor
            label: Name used in logs and timeout errors
            budget: Optional deadline; attempts never outlive it

        Returns:
            Whatever `op()` resolves to

        Raises:
            The last error observed, OperationTimeoutError on timeout, or
            BudgetExhaustedError if the budget was spent before any attempt
        """
        policy = self.policy.with_overrides(max_attempts, base_delay_ms, backoff_factor)
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            attempt_timeout = timeout_ms
            if budget is not None:
                if budget.expired:
                    logger.info(f"{label}: budget exhausted before attempt {attempt + 1}")
                    break
                attempt_timeout = budget.cap(timeout_ms)

            try:
                result = await run_with_timeout(op, attempt_timeout, label)
                if attempt > 0:
                    logger.info(f"{label} succeeded on attempt {attempt + 1}/{policy.max_attempts}")
                return result
            except FATAL_ERRORS:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"{label} attempt {attempt + 1}/{policy.max_attempts} failed: {e}")

            if attempt < policy.max_attempts - 1:
                delay_ms = policy.delay_ms(attempt)
                if budget is not None and budget.remaining_ms() <= delay_ms:
                    logger.info(f"{label}: not enough budget left to retry")
                    break
                await asyncio.sleep(delay_ms / 1000)

        if last_error is None:
            raise BudgetExhaustedError(label)
        raise last_error
