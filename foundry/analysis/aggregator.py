"""
Multi-Source Aggregator

Runs independent sub-operations concurrently and composes their results.

- A failing sub-operation gets its neutral default and one warning
- Siblings are never cancelled because one of them failed
- Systemic errors (no credentials, no credits, cancellation) still abort:
  every other call would fail the same way
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple, Type

from foundry.gateway.errors import (
    DataForSEOError,
    CredentialsMissingError,
    CreditsExhaustedError,
    OperationCancelled,
)
from .outcomes import Failure, SubOperation, SubOperationOutcome, Success

logger = logging.getLogger(__name__)

SYSTEMIC_ERRORS: Tuple[Type[BaseException], ...] = (
    CredentialsMissingError,
    CreditsExhaustedError,
    OperationCancelled,
)


@dataclass
class Composition:
    """Values keyed by sub-operation name plus the warnings for failed ones."""
    values: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    outcomes: Dict[str, SubOperationOutcome] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return [name for name, outcome in self.outcomes.items() if isinstance(outcome, Failure)]


class Aggregator:
    def __init__(self, systemic_errors: Tuple[Type[BaseException], ...] = SYSTEMIC_ERRORS):
        self.systemic_errors = systemic_errors

    async def run(self, operations: Sequence[SubOperation]) -> Dict[str, SubOperationOutcome]:
        """
        Run all operations concurrently.

        Returns:
            Outcome per operation name

        Raises:
            The first systemic error, after every operation has settled
        """
        results = await asyncio.gather(
            *(operation.run() for operation in operations),
            return_exceptions=True,
        )

        outcomes: Dict[str, SubOperationOutcome] = {}
        systemic = None

        for operation, result in zip(operations, results):
            if isinstance(result, self.systemic_errors):
                systemic = systemic or result
                continue
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                # asyncio.CancelledError and friends
                raise result
            if isinstance(result, Exception):
                outcomes[operation.name] = self._failure_from(operation, result)
            elif isinstance(result, Failure):
                logger.warning(f"{operation.name} did not complete: {result.reason.value} {result.message}")
                outcomes[operation.name] = result
            else:
                outcomes[operation.name] = Success(result)

        if systemic is not None:
            raise systemic

        return outcomes

    async def compose(self, operations: Sequence[SubOperation]) -> Composition:
        """Run operations and substitute defaults for the failed ones."""
        outcomes = await self.run(operations)
        return compose(operations, outcomes)

    @staticmethod
    def _failure_from(operation: SubOperation, error: Exception) -> Failure:
        code = getattr(error, "code", None) if isinstance(error, DataForSEOError) else type(error).__name__
        logger.warning(f"{operation.name} failed: {error}")
        return Failure(reason=operation.error_reason, code=code, message=str(error))


def compose(operations: Sequence[SubOperation], outcomes: Dict[str, SubOperationOutcome]) -> Composition:
    """Serialize outcomes into values and warnings, in operation order."""
    composition = Composition(outcomes=dict(outcomes))
    for operation in operations:
        outcome = outcomes.get(operation.name)
        if isinstance(outcome, Success):
            composition.values[operation.name] = outcome.value
        else:
            failure = outcome if isinstance(outcome, Failure) else Failure()
            composition.values[operation.name] = copy.deepcopy(operation.default)
            composition.warnings.append(operation.warning_for(failure))
    return composition
