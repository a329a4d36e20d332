"""
Quota Gate

Per-caller usage counters with a rolling renewal date. Each quota class
(free competitor reports, SERP lookups, ...) has its own limit; -1 means
unlimited.

The gate is split in two so nothing is charged for work that failed:

    decision = gate.check(caller_id, FREE_COMPETITOR_REPORTS)   # read only
    if not decision.allowed:
        return limit_exceeded(decision)
    ... expensive work ...
    gate.commit(caller_id, FREE_COMPETITOR_REPORTS, decision)   # single write

If the renewal date has passed, ``check`` treats the counter as 0 and picks a
new renewal date; ``commit`` persists that reset together with the increment.
A storage error during ``check`` raises ``QuotaUnavailable`` so callers fail
closed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from foundry.database.models import QuotaStateRecord

logger = logging.getLogger(__name__)

FREE_COMPETITOR_REPORTS = "free_competitor_reports"
SERP_LOOKUPS = "serp"
SEARCH_VOLUME_LOOKUPS = "search_volume"

FREE_LIMIT = 3
QUOTA_WINDOW = timedelta(days=30)
UNLIMITED = -1


class QuotaUnavailable(Exception):
    """Quota state could not be read; the request is refused."""


@dataclass
class QuotaState:
    caller_id: str
    quota_class: str
    used: int = 0
    renewal_at: Optional[datetime] = None


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check. ``used`` already reflects any pending reset."""
    allowed: bool
    quota_class: str
    used: int
    limit: int
    renewal_at: datetime
    needs_renewal: bool = False

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> Optional[int]:
        if self.unlimited:
            return None
        return max(self.limit - self.used, 0)

    def to_dict(self) -> Dict:
        return {
            "quota_class": self.quota_class,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "renewal_at": self.renewal_at.isoformat(),
        }


def evaluate_quota(
    state: Optional[QuotaState],
    quota_class: str,
    limit: int,
    now: datetime,
    window: timedelta = QUOTA_WINDOW,
) -> QuotaDecision:
    """Pure quota decision for a (possibly missing) state at ``now``."""
    needs_renewal = state is None or state.renewal_at is None or now > state.renewal_at

    if needs_renewal:
        used = 0
        renewal_at = now + window
    else:
        used = state.used or 0
        renewal_at = state.renewal_at

    allowed = limit == UNLIMITED or used < limit
    return QuotaDecision(
        allowed=allowed,
        quota_class=quota_class,
        used=used,
        limit=limit,
        renewal_at=renewal_at,
        needs_renewal=needs_renewal,
    )


class QuotaGate:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        limits: Optional[Dict[str, int]] = None,
        window: timedelta = QUOTA_WINDOW,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.limits = limits if limits is not None else {FREE_COMPETITOR_REPORTS: FREE_LIMIT}
        self.window = window
        self._clock = clock

    @classmethod
    def from_settings(cls, session_factory: Callable[[], Session], settings) -> "QuotaGate":
        return cls(
            session_factory,
            limits={
                FREE_COMPETITOR_REPORTS: settings.FREE_REPORT_LIMIT,
                SERP_LOOKUPS: settings.SERP_MONTHLY_LIMIT,
                SEARCH_VOLUME_LOOKUPS: settings.SEARCH_VOLUME_MONTHLY_LIMIT,
            },
            window=timedelta(days=settings.QUOTA_WINDOW_DAYS),
        )

    def limit_for(self, quota_class: str) -> int:
        return self.limits.get(quota_class, UNLIMITED)

    def load(self, caller_id: str, quota_class: str) -> Optional[QuotaState]:
        db = self.session_factory()
        try:
            record = self._find(db, caller_id, quota_class)
            if record is None:
                return None
            return QuotaState(
                caller_id=record.caller_id,
                quota_class=record.quota_class,
                used=record.used,
                renewal_at=record.renewal_at,
            )
        finally:
            db.close()

    def check(self, caller_id: str, quota_class: str) -> QuotaDecision:
        """
        Evaluate the caller's quota without writing anything.

        Raises:
            QuotaUnavailable: If the quota state cannot be read
        """
        try:
            state = self.load(caller_id, quota_class)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read quota for caller {caller_id} ({quota_class}): {e}")
            raise QuotaUnavailable(f"Quota state unavailable: {e}") from e

        decision = evaluate_quota(
            state,
            quota_class,
            self.limit_for(quota_class),
            self._clock(),
            self.window,
        )
        if not decision.allowed:
            logger.info(
                f"Quota exceeded for caller {caller_id}: {quota_class} "
                f"{decision.used}/{decision.limit} until {decision.renewal_at.isoformat()}"
            )
        return decision

    def commit(self, caller_id: str, quota_class: str, decision: QuotaDecision) -> bool:
        """
        Persist one unit of usage, resetting the window first if it has lapsed.

        The stored counter is incremented rather than overwritten with the
        value seen by ``check``, so overlapping requests are all charged. The
        reset is applied only if the stored renewal date is still in the past
        at commit time.

        Returns:
            True if written. Failures are logged, not raised: the work the
            caller is being charged for has already been done.
        """
        db = self.session_factory()
        try:
            record = self._find(db, caller_id, quota_class)
            if record is None:
                record = QuotaStateRecord(
                    caller_id=caller_id,
                    quota_class=quota_class,
                    used=0,
                    renewal_at=decision.renewal_at,
                )
                db.add(record)
            elif record.renewal_at is None or self._clock() > record.renewal_at:
                record.used = 0
                record.renewal_at = (
                    decision.renewal_at if decision.needs_renewal else self._clock() + self.window
                )
            record.used = (record.used or 0) + 1
            db.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to record quota usage for caller {caller_id} ({quota_class}): {e}")
            db.rollback()
            return False
        finally:
            db.close()

    @staticmethod
    def _find(db: Session, caller_id: str, quota_class: str) -> Optional[QuotaStateRecord]:
        return db.query(QuotaStateRecord).filter(
            QuotaStateRecord.caller_id == caller_id,
            QuotaStateRecord.quota_class == quota_class,
        ).first()
