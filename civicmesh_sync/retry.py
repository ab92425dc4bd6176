from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests

from .config_schema import RetrySettings
from .errors import GatewayError

T = TypeVar("T")

_RETRY_AFTER_CAP_SECONDS = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff for idempotent backend reads.

    - max_attempts counts the initial attempt (max_attempts=3 => 1 try + 2 retries).
    - jitter_ratio adds multiplicative jitter in [1-jitter, 1+jitter].
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("delays must satisfy 0 <= base_delay_seconds <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0 and 1")

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            max_delay_seconds=settings.max_delay_seconds,
            jitter_ratio=settings.jitter_ratio,
        )

    def backoff_seconds(self, failure_attempt: int) -> float:
        # failure_attempt=1 => base delay.
        exponent = max(0, int(failure_attempt) - 1)
        delay = min(self.max_delay_seconds, self.base_delay_seconds * (2**exponent))
        if delay <= 0 or self.jitter_ratio <= 0:
            return max(0.0, delay)
        return max(0.0, delay * random.uniform(1.0 - self.jitter_ratio, 1.0 + self.jitter_ratio))


NO_RETRY = RetryPolicy(max_attempts=1, base_delay_seconds=0.0, max_delay_seconds=0.0)


@dataclass(frozen=True)
class RetryEvent:
    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int
    delay_seconds: float
    reason: str
    error_message: str


OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def classify_http_exception(exc: BaseException) -> tuple[bool, float | None, str]:
    """
    Decide whether a failed backend call may be retried.

    Retries connection errors, timeouts, HTTP 429 and HTTP 5xx. Returns
    (retryable, retry_after_seconds, reason).
    """
    if isinstance(exc, GatewayError):
        code = exc.status_code
        if code is None:
            cause = exc.__cause__
            if isinstance(cause, (requests.ConnectionError, requests.Timeout)):
                return True, None, "network_error"
            return False, None, "request_error"
        retry_after = getattr(exc, "retry_after", None)
        if code == 429 or code >= 500:
            return True, retry_after, f"http_{code}"
        return False, None, f"http_{code}"

    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True, None, "network_error"

    return False, None, type(exc).__name__


def call_with_retries(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> T:
    """
    Call fn() and retry on retryable failures until policy.max_attempts.

    A server-supplied Retry-After (capped) wins over a shorter backoff delay.
    """
    op = (operation or "").strip() or "operation"
    sleeper = sleep_fn or time.sleep

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return fn()
        except Exception as exc:
            retryable, retry_after, reason = classify_http_exception(exc)
            if not retryable or attempt >= policy.max_attempts:
                raise

            delay = policy.backoff_seconds(attempt)
            if retry_after is not None and retry_after >= 0:
                delay = max(delay, min(float(retry_after), _RETRY_AFTER_CAP_SECONDS))

            if on_retry is not None:
                on_retry(
                    RetryEvent(
                        operation=op,
                        failure_attempt=attempt,
                        next_attempt=attempt + 1,
                        max_attempts=policy.max_attempts,
                        delay_seconds=float(delay),
                        reason=reason,
                        error_message=(str(exc) or "").strip(),
                    )
                )

            if delay > 0:
                sleeper(float(delay))

    raise RuntimeError(f"Retry loop exited unexpectedly for operation={op}")
