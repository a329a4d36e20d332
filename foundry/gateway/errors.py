"""
DataForSEO error taxonomy.

Every failure the gateway can surface is a ``DataForSEOError``. Subclasses
carry the classification the retry loop and the handlers act on:

- CredentialsMissingError: configuration problem, raised before any network call
- CreditsExhaustedError (402): terminal, never retried
- RateLimitedError (429) / UpstreamServerError (5xx): retryable
- UpstreamClientError (other 4xx): non-retryable
- NetworkError: transport failure or per-attempt timeout, retryable
- OperationCancelled: the caller's cancellation token fired
"""

from typing import Any, Optional


class DataForSEOError(Exception):
    """Custom exception for DataForSEO API errors."""

    code = "API_ERROR"

    def __init__(self, message: str, status_code: int = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429

    @property
    def is_credits_exhausted(self) -> bool:
        return self.status_code == 402

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return False
        return self.status_code == 429 or 500 <= self.status_code < 600


class CredentialsMissingError(DataForSEOError):
    code = "CREDENTIALS_MISSING"

    def __init__(self, message: str = "DataForSEO credentials not configured"):
        super().__init__(message, status_code=500)


class CreditsExhaustedError(DataForSEOError):
    code = "CREDITS_EXHAUSTED"


class RateLimitedError(DataForSEOError):
    code = "RATE_LIMIT"


class UpstreamServerError(DataForSEOError):
    pass


class UpstreamClientError(DataForSEOError):
    pass


class NetworkError(DataForSEOError):
    code = "NETWORK_ERROR"

    @property
    def is_retryable(self) -> bool:
        return True


class OperationCancelled(DataForSEOError):
    code = "CANCELLED"


class TaskCreationError(DataForSEOError):
    """Raised when a task_post call succeeds but yields no task id."""


def error_for_status(status_code: int, message: str, response: Optional[Any] = None) -> DataForSEOError:
    """Build the error subclass matching an HTTP status."""
    if status_code == 402:
        return CreditsExhaustedError(message, status_code=status_code, response=response)
    if status_code == 429:
        return RateLimitedError(message, status_code=status_code, response=response)
    if 500 <= status_code < 600:
        return UpstreamServerError(message, status_code=status_code, response=response)
    if 400 <= status_code < 500:
        return UpstreamClientError(message, status_code=status_code, response=response)
    return DataForSEOError(message, status_code=status_code, response=response)
