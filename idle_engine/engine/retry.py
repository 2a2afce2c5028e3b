"""
Deterministic retry for step handlers.

Only errors tagged transient are retried. Delays follow exponential backoff
with a cap and bounded jitter; the jitter sequence comes from a random
generator seeded by the step identity, so a re-run of the same plan with the
same failures waits exactly the same way.
"""

import hashlib
import logging
import random
from typing import Any, Callable, List, Optional

from ..config import RetryPolicy
from ..errors import is_transient

logger = logging.getLogger(__name__)


def retry_seed(correlation_id: str, step_type: str, step_name: str, index: int) -> int:
    """Stable integer seed for a step's retry sequence."""
    material = f"{correlation_id}|{step_type}|{step_name}|{index}".encode("utf-8")
    return int.from_bytes(hashlib.sha256(material).digest()[:8], "big")


def backoff_delays(policy: RetryPolicy, seed: int) -> List[int]:
    """
    Delays in milliseconds to wait after each failed attempt but the last.

    delay(n) = min(max_delay, initial * factor**(n-1)) +/- jitter_ratio,
    clamped to [0, max_delay].
    """
    rng = random.Random(seed)
    delays = []
    for attempt in range(1, policy.max_attempts):
        base = min(policy.max_delay_ms, policy.initial_delay_ms * policy.backoff_factor ** (attempt - 1))
        jitter = base * policy.jitter_ratio * (rng.random() * 2 - 1)
        delays.append(int(round(max(0.0, min(policy.max_delay_ms, base + jitter)))))
    return delays


class RetryOutcome:
    """Result of a retried invocation."""

    def __init__(self, value: Any = None, attempts: int = 1, error: Optional[BaseException] = None,
                 delays: Optional[List[int]] = None):
        self.value = value
        self.attempts = attempts
        self.error = error
        self.delays = delays or []

    @property
    def success(self) -> bool:
        return self.error is None


def invoke_with_retry(
    operation: Callable[[], Any],
    policy: RetryPolicy,
    seed: int,
    on_retry: Optional[Callable[[int, int, BaseException], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> RetryOutcome:
    """
    Invoke ``operation`` retrying transient failures.

    Args:
        operation: Zero-argument callable
        policy: Retry policy
        seed: Seed from ``retry_seed``
        on_retry: Called as ``on_retry(attempt, delay_ms, error)`` before sleeping
        sleep: Sleep function taking seconds

    Returns:
        RetryOutcome; ``error`` holds the final exception when all attempts failed
        or the error was not transient
    """
    delays = backoff_delays(policy, seed)
    waited: List[int] = []
    attempt = 0
    while True:
        attempt += 1
        try:
            return RetryOutcome(value=operation(), attempts=attempt, delays=waited)
        except Exception as e:
            if not is_transient(e) or attempt >= policy.max_attempts:
                return RetryOutcome(attempts=attempt, error=e, delays=waited)

            delay_ms = delays[attempt - 1]
            logger.warning(f"Transient failure on attempt {attempt}/{policy.max_attempts}, "
                           f"retrying in {delay_ms} ms: {e}")
            if on_retry:
                on_retry(attempt, delay_ms, e)
            waited.append(delay_ms)
            if sleep:
                sleep(delay_ms / 1000.0)
