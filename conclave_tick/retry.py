"""Bounded exponential backoff for outbound calls."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RANDOM = random.Random()  # nosec B311 - jitter only


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count and delay curve for transient failures."""

    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.25

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` is zero-based)."""

        base = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter <= 0 or base <= 0:
            return max(0.0, base)
        spread = base * self.jitter
        return max(0.0, base + (rng or _RANDOM).uniform(-spread, spread))


class TransientError(RuntimeError):
    """Raised by a wrapped call to request another attempt."""

    def __init__(self, message: str, result: object = None) -> None:
        super().__init__(message)
        self.result = result


def call_with_retry(
    func: Callable[[], T],
    *,
    policy: RetryPolicy,
    is_transient: Callable[[BaseException], bool] = lambda exc: isinstance(exc, TransientError),
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
    label: str = "call",
) -> T:
    """Invoke ``func`` until it succeeds or the policy is exhausted.

    Non-transient exceptions propagate immediately. The final transient
    exception propagates once every attempt has been used.
    """

    attempts = max(1, policy.attempts)
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if not is_transient(exc):
                raise
            if attempt >= attempts - 1:
                logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise
            delay = policy.delay_for(attempt, rng)
            logger.warning(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label,
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["RetryPolicy", "TransientError", "call_with_retry"]
