"""
Keyword Foundry - DataForSEO Gateway Package

The single chokepoint for upstream calls:
- backoff: retry decisions and delays (pure logic)
- client: auth, retry loop, error classification, usage metering
- poller: asynchronous task lifecycle (on-page crawls)
- usage: best-effort usage log
"""

from .backoff import RetryConfig, RetryPolicy, RetryState, RetryAttempt, compute_delay, parse_retry_after, should_retry
from .cancellation import CancelToken
from .client import DataForSEOClient, GatewayConfig
from .errors import (
    DataForSEOError,
    CredentialsMissingError,
    CreditsExhaustedError,
    RateLimitedError,
    UpstreamServerError,
    UpstreamClientError,
    NetworkError,
    OperationCancelled,
    TaskCreationError,
)
from .models import GatewayRequest, GatewayResponse, GatewayTask
from .poller import TaskPoller, PollerConfig, PollableTask, PollResult, PollState
from .usage import UsageLogger, UsageLogEntry

__all__ = [
    # Backoff
    "RetryConfig",
    "RetryPolicy",
    "RetryState",
    "RetryAttempt",
    "compute_delay",
    "parse_retry_after",
    "should_retry",

    # Client
    "CancelToken",
    "DataForSEOClient",
    "GatewayConfig",
    "GatewayRequest",
    "GatewayResponse",
    "GatewayTask",

    # Errors
    "DataForSEOError",
    "CredentialsMissingError",
    "CreditsExhaustedError",
    "RateLimitedError",
    "UpstreamServerError",
    "UpstreamClientError",
    "NetworkError",
    "OperationCancelled",
    "TaskCreationError",

    # Poller
    "TaskPoller",
    "PollerConfig",
    "PollableTask",
    "PollResult",
    "PollState",

    # Usage
    "UsageLogger",
    "UsageLogEntry",
]
