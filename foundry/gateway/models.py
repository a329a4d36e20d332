"""
Gateway request/response models.

DataForSEO wraps every answer in the same envelope:

    {
        "status_code": 20000, "status_message": "Ok.", "cost": 0.01,
        "tasks_count": 1, "tasks_error": 0,
        "tasks": [{"id": "...", "status_code": 20000, "cost": 0.01, "result": [...]}]
    }

A 2xx HTTP response can still carry a failed task, so consumers check
``task.ok`` before reading results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TASK_OK_CODES = (20000, 20100)


@dataclass(frozen=True)
class GatewayRequest:
    """One logical upstream call. Immutable once built."""
    endpoint: str
    payload: Any
    module: str
    caller_id: Optional[str] = None
    correlation_id: Optional[str] = None
    method: str = "POST"

    @property
    def path(self) -> str:
        return self.endpoint if self.endpoint.startswith("/") else f"/{self.endpoint}"


@dataclass
class GatewayTask:
    """One entry of the upstream ``tasks`` array."""
    id: Optional[str] = None
    status_code: Optional[int] = None
    status_message: str = ""
    cost: float = 0.0
    result: List[Any] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code in TASK_OK_CODES

    @property
    def first_result(self) -> Optional[Dict[str, Any]]:
        if self.result and isinstance(self.result[0], dict):
            return self.result[0]
        return None

    @property
    def items(self) -> List[Dict[str, Any]]:
        first = self.first_result
        if not first:
            return []
        items = first.get("items")
        return items if isinstance(items, list) else []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayTask":
        result = data.get("result")
        return cls(
            id=data.get("id"),
            status_code=data.get("status_code"),
            status_message=data.get("status_message") or "",
            cost=float(data.get("cost") or 0),
            result=result if isinstance(result, list) else [],
            data=data.get("data") or {},
        )


@dataclass
class GatewayResponse:
    """Parsed upstream envelope plus the HTTP status it arrived with."""
    http_status: int
    status_code: Optional[int] = None
    status_message: str = ""
    cost: Optional[float] = None
    tasks_count: int = 0
    tasks_error: int = 0
    tasks: List[GatewayTask] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_task(self) -> Optional[GatewayTask]:
        return self.tasks[0] if self.tasks else None

    @property
    def credits_used(self) -> Optional[float]:
        """Top-level ``cost``, falling back to the first task's cost."""
        if self.cost is not None:
            return self.cost
        task = self.first_task
        return task.cost if task is not None else None

    @property
    def failed_tasks(self) -> List[GatewayTask]:
        return [task for task in self.tasks if not task.ok]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], http_status: int = 200) -> "GatewayResponse":
        data = data if isinstance(data, dict) else {}
        tasks = data.get("tasks")
        cost = data.get("cost")
        return cls(
            http_status=http_status,
            status_code=data.get("status_code"),
            status_message=data.get("status_message") or "",
            cost=float(cost) if cost is not None else None,
            tasks_count=int(data.get("tasks_count") or 0),
            tasks_error=int(data.get("tasks_error") or 0),
            tasks=[GatewayTask.from_dict(t) for t in tasks if isinstance(t, dict)] if isinstance(tasks, list) else [],
            raw=data,
        )
