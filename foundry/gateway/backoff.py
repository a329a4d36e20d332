"""
Backoff / Retry Engine

Decides whether and when an upstream call is retried. Pure logic, no I/O:
the gateway client drives a ``RetryPolicy`` and does the sleeping itself.

Delay rules:
- Retry-After > 0 wins: seconds * 1000 + jitter(0..500ms)
- Otherwise exponential: base * 2^attempt + jitter(0..base)

Retry-After is accepted as integer seconds or an HTTP date and clamped
to [0, 60] seconds.
"""

import enum
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY_MS = 1000
RETRY_AFTER_JITTER_MS = 500
MAX_RETRY_AFTER_SECONDS = 60


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = MAX_RETRIES
    base_delay_ms: int = BASE_DELAY_MS
    retry_after_jitter_ms: int = RETRY_AFTER_JITTER_MS
    max_retry_after_seconds: int = MAX_RETRY_AFTER_SECONDS

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def should_retry(status_code: int) -> bool:
    """429 and any 5xx are retryable; everything else is not."""
    return status_code == 429 or 500 <= status_code < 600


def parse_retry_after(
    header: Optional[str],
    now: Optional[datetime] = None,
    max_seconds: int = MAX_RETRY_AFTER_SECONDS,
) -> Optional[int]:
    """
    Parse a Retry-After header value.

    Args:
        header: Raw header value (``"5"`` or ``"Wed, 21 Oct 2026 07:28:00 GMT"``)
        now: Reference time for HTTP dates (defaults to current UTC time)
        max_seconds: Upper clamp

    Returns:
        Whole seconds in [0, max_seconds], or None if absent/unparseable
    """
    if header is None:
        return None

    value = header.strip()
    if not value:
        return None

    if value.lstrip("-").isdigit():
        seconds = int(value)
    else:
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            logger.debug(f"Unparseable Retry-After header: {value!r}")
            return None
        if retry_at is None:
            return None
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        reference = now or datetime.now(timezone.utc)
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)
        seconds = math.ceil((retry_at - reference).total_seconds())

    return max(0, min(seconds, max_seconds))


def compute_delay(
    attempt: int,
    retry_after_seconds: Optional[int] = None,
    config: Optional[RetryConfig] = None,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Compute the delay in milliseconds before the next attempt.

    Args:
        attempt: Zero-based index of the attempt that just failed
        retry_after_seconds: Parsed Retry-After value, if any
        config: Retry configuration
        rand: Source of uniform [0, 1) values

    Returns:
        Delay in milliseconds
    """
    config = config or RetryConfig()

    if retry_after_seconds is not None and retry_after_seconds > 0:
        return retry_after_seconds * 1000 + rand() * config.retry_after_jitter_ms

    exponential = config.base_delay_ms * (2 ** attempt)
    return exponential + rand() * config.base_delay_ms


class RetryState(enum.Enum):
    """Lifecycle of one logical upstream request."""
    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRY_SCHEDULED = "retry_scheduled"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryAttempt:
    """A scheduled retry. Logged, never persisted."""
    attempt_number: int
    delay_ms: float
    status_code: Optional[int] = None
    retry_after_seconds: Optional[int] = None


class InvalidTransition(RuntimeError):
    pass


class RetryPolicy:
    """
    State machine for a single logical request.

    PENDING -> ATTEMPTING -> SUCCEEDED
                          -> RETRY_SCHEDULED -> ATTEMPTING ...
                          -> FAILED

    Usage:
        policy = RetryPolicy(RetryConfig())
        while True:
            policy.begin_attempt()
            status = send()
            retry = policy.record_status(status, retry_after)
            if retry is None:
                break
            sleep(retry.delay_ms)
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        rand: Callable[[], float] = random.random,
    ):
        self.config = config or RetryConfig()
        self._rand = rand
        self.state = RetryState.PENDING
        self.attempt = -1
        self.history = []

    @property
    def attempts_made(self) -> int:
        return self.attempt + 1

    @property
    def has_budget(self) -> bool:
        return self.attempt < self.config.max_retries

    @property
    def is_terminal(self) -> bool:
        return self.state in (RetryState.SUCCEEDED, RetryState.FAILED)

    def begin_attempt(self) -> int:
        if self.state not in (RetryState.PENDING, RetryState.RETRY_SCHEDULED):
            raise InvalidTransition(f"Cannot start an attempt from {self.state.value}")
        self.attempt += 1
        self.state = RetryState.ATTEMPTING
        return self.attempt

    def record_success(self) -> None:
        self._require_attempting()
        self.state = RetryState.SUCCEEDED

    def record_status(
        self,
        status_code: int,
        retry_after_seconds: Optional[int] = None,
    ) -> Optional[RetryAttempt]:
        """
        Record an HTTP status for the current attempt.

        Returns:
            The scheduled retry, or None when the request reached a terminal
            state (success, 402, non-retryable status, or budget exhausted).
        """
        self._require_attempting()

        if 200 <= status_code < 300:
            self.state = RetryState.SUCCEEDED
            return None

        if status_code == 402 or not should_retry(status_code) or not self.has_budget:
            self.state = RetryState.FAILED
            return None

        return self._schedule(status_code, retry_after_seconds)

    def record_network_error(self) -> Optional[RetryAttempt]:
        """Transport failures retry with plain exponential backoff."""
        self._require_attempting()
        if not self.has_budget:
            self.state = RetryState.FAILED
            return None
        return self._schedule(None, None)

    def fail(self) -> None:
        self.state = RetryState.FAILED

    def _schedule(self, status_code: Optional[int], retry_after_seconds: Optional[int]) -> RetryAttempt:
        delay_ms = compute_delay(self.attempt, retry_after_seconds, self.config, self._rand)
        retry = RetryAttempt(
            attempt_number=self.attempt + 1,
            delay_ms=delay_ms,
            status_code=status_code,
            retry_after_seconds=retry_after_seconds,
        )
        self.history.append(retry)
        self.state = RetryState.RETRY_SCHEDULED
        return retry

    def _require_attempting(self) -> None:
        if self.state is not RetryState.ATTEMPTING:
            raise InvalidTransition(f"No attempt in progress (state={self.state.value})")
