"""
Sub-operation outcomes.

Independent upstream calls report back as tagged values instead of raising,
so one failing source cannot take the whole response down. Outcomes are
turned into warning strings ("backlinks_your_domain_failed") only when the
response is composed.
"""

import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union


class FailureReason(enum.Enum):
    FAILED = "failed"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Failure:
    reason: FailureReason = FailureReason.FAILED
    code: Optional[str] = None
    message: str = ""


SubOperationOutcome = Union[Success, Failure]


@dataclass
class SubOperation:
    """
    One independent unit of work.

    ``run`` may return a plain value (success), return a ``Failure`` directly
    (expected non-exceptional failure such as a poll timeout), or raise.
    Raised errors become ``Failure(error_reason)``.
    """
    name: str
    run: Callable[[], Awaitable[Any]]
    default: Any = None
    error_reason: FailureReason = FailureReason.FAILED

    def warning_for(self, failure: Failure) -> str:
        return f"{self.name}_{failure.reason.value}"
