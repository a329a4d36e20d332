"""
Usage Logging

Best-effort audit trail of every DataForSEO call: which caller, which module
and endpoint, what it cost and how it ended. A failure to record usage must
never fail the request being recorded, so the gateway only ever calls
``try_log``.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from foundry.database.models import UsageLog
from foundry.database.session import session_scope

logger = logging.getLogger(__name__)


@dataclass
class UsageLogEntry:
    """Single usage record, written once per logical request."""
    module: str
    endpoint: str
    request_payload: Any
    response_status: int
    caller_id: Optional[str] = None
    correlation_id: Optional[str] = None
    credits_used: Optional[float] = None
    cost_usd: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return 200 <= self.response_status < 300

    def to_dict(self) -> Dict:
        return asdict(self)


class UsageLogger:
    """
    Persists usage entries to the ``dataforseo_usage`` table.

    Constructed without a session factory it degrades to a warning no-op,
    which is how local runs without a database behave.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self._clock = clock
        self._stats = {
            "written": 0,
            "skipped": 0,
            "failed": 0,
        }

    @property
    def enabled(self) -> bool:
        return self.session_factory is not None

    def log_usage(self, entry: UsageLogEntry) -> None:
        """Insert one usage row. Raises on storage errors."""
        with session_scope(self.session_factory) as db:
            db.add(UsageLog(
                caller_id=entry.caller_id,
                correlation_id=entry.correlation_id,
                module=entry.module,
                endpoint=entry.endpoint,
                request_payload=entry.request_payload,
                response_status=entry.response_status,
                credits_used=entry.credits_used,
                cost_usd=entry.cost_usd,
                error_message=entry.error_message,
                created_at=self._clock(),
            ))

    def try_log(self, entry: UsageLogEntry) -> bool:
        """
        Record usage without ever raising.

        Returns:
            True if the row was written, False if skipped or failed
        """
        if not self.enabled:
            logger.warning(f"Usage logging disabled (no database) - skipping {entry.module} {entry.endpoint}")
            self._stats["skipped"] += 1
            return False

        try:
            self.log_usage(entry)
            self._stats["written"] += 1
            return True
        except Exception as e:
            logger.error(f"Failed to log DataForSEO usage for {entry.endpoint}: {e}")
            self._stats["failed"] += 1
            return False

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
