"""
Long-Running Task Poller

DataForSEO on-page crawls are asynchronous: ``task_post`` returns a task id
and the summary endpoint reports ``crawl_progress`` until it reads
"finished". The poller owns that lifecycle with a bounded budget:

    CREATED -> POLLING -> DONE
                       -> TIMED_OUT  (budget exhausted, not an error)
                       -> FAILED     (error on the final poll)

Worst-case wall time is (max_polls - 1) * poll_delay plus the calls themselves.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from .cancellation import CancelToken
from .client import DataForSEOClient
from .errors import DataForSEOError, OperationCancelled, TaskCreationError
from .models import GatewayRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_POLLS = 6
DEFAULT_POLL_DELAY = 10.0
FINISHED = "finished"


class PollState(enum.Enum):
    CREATED = "created"
    POLLING = "polling"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class PollableTask:
    """An upstream job the poller is tracking."""
    task_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    terminal_states: FrozenSet[str] = frozenset({FINISHED})
    state: PollState = PollState.CREATED
    polls: int = 0
    last_progress: Optional[str] = None


@dataclass
class PollResult:
    task: PollableTask
    result: Optional[Dict[str, Any]] = None

    @property
    def done(self) -> bool:
        return self.task.state is PollState.DONE

    @property
    def timed_out(self) -> bool:
        return self.task.state is PollState.TIMED_OUT


@dataclass
class PollerConfig:
    max_polls: int = DEFAULT_MAX_POLLS
    poll_delay: float = DEFAULT_POLL_DELAY

    @classmethod
    def from_settings(cls, settings) -> "PollerConfig":
        return cls(max_polls=settings.ONPAGE_MAX_POLLS, poll_delay=settings.ONPAGE_POLL_DELAY)


class TaskPoller:
    """
    Creates asynchronous upstream tasks and polls them to a terminal state.

    Every create and poll goes through the gateway client, so each is
    retried and metered like any other call.
    """

    def __init__(
        self,
        client: DataForSEOClient,
        config: Optional[PollerConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config or PollerConfig()
        self._sleep = sleep

    async def create(
        self,
        endpoint: str,
        payload: Any,
        module: str,
        caller_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> PollableTask:
        """
        Post a task and return its handle.

        Raises:
            TaskCreationError: If the response carries no task id
        """
        response = await self.client.call(
            GatewayRequest(endpoint=endpoint, payload=payload, module=module, caller_id=caller_id),
            cancel=cancel,
        )
        task = response.first_task
        if task is None or not task.id:
            raise TaskCreationError(f"No task id returned from {endpoint}", response=response.raw)

        logger.info(f"Created upstream task {task.id} via {endpoint}")
        return PollableTask(task_id=task.id)

    async def wait(
        self,
        task: PollableTask,
        summary_endpoint: str,
        module: str,
        caller_id: Optional[str] = None,
        progress_key: str = "crawl_progress",
        cancel: Optional[CancelToken] = None,
    ) -> PollResult:
        """
        Poll ``{summary_endpoint}/{task_id}`` until a terminal progress value.

        Errors on non-final polls are logged and retried after the poll delay;
        an error on the final poll propagates. Running out of polls returns a
        TIMED_OUT result.
        """
        task.state = PollState.POLLING
        endpoint = f"{summary_endpoint.rstrip('/')}/{task.task_id}"
        max_polls = self.config.max_polls

        for index in range(max_polls):
            is_last = index == max_polls - 1
            task.polls += 1

            try:
                response = await self.client.call(
                    GatewayRequest(endpoint=endpoint, payload=[], module=module, caller_id=caller_id, method="GET"),
                    cancel=cancel,
                )
            except OperationCancelled:
                task.state = PollState.FAILED
                raise
            except DataForSEOError as e:
                if is_last:
                    task.state = PollState.FAILED
                    raise
                logger.warning(f"Poll {task.polls}/{max_polls} for task {task.task_id} failed: {e}")
                await self._pause(cancel)
                continue

            result = response.first_task.first_result if response.first_task else None
            if result:
                task.last_progress = result.get(progress_key)
                if task.last_progress in task.terminal_states:
                    task.state = PollState.DONE
                    logger.info(f"Task {task.task_id} finished after {task.polls} poll(s)")
                    return PollResult(task=task, result=result)

            if not is_last:
                await self._pause(cancel)

        task.state = PollState.TIMED_OUT
        logger.warning(
            f"Task {task.task_id} not finished after {max_polls} polls "
            f"(last progress: {task.last_progress})"
        )
        return PollResult(task=task)

    async def run(
        self,
        endpoint: str,
        payload: Any,
        summary_endpoint: str,
        module: str,
        caller_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> PollResult:
        """Create a task and wait for it."""
        task = await self.create(endpoint, payload, module, caller_id=caller_id, cancel=cancel)
        return await self.wait(task, summary_endpoint, module, caller_id=caller_id, cancel=cancel)

    async def _pause(self, cancel: Optional[CancelToken]) -> None:
        if cancel is None:
            await self._sleep(self.config.poll_delay)
        else:
            await cancel.sleep(self.config.poll_delay)
