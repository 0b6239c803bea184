from __future__ import annotations

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential


def phase_retrying(max_attempts: int, backoff_base_ms: float) -> AsyncRetrying:
    """Retry controller for one phase.

    Waits ``2^k * backoff_base_ms`` after the k-th failed attempt and re-raises
    the last error once ``max_attempts`` is exhausted.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=2 * backoff_base_ms / 1000.0, exp_base=2),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
