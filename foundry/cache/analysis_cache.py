"""
Legacy per-caller analysis cache.

Before the shared checksum cache existed, finished reports were stored per
caller in ``competitor_analysis``. Those rows are still honoured for 24h as
a read-only fallback behind the checksum cache; nothing writes them anymore.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from foundry.database.models import CompetitorAnalysis
from .config import CacheTTL

logger = logging.getLogger(__name__)


class AnalysisCache:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl: timedelta = CacheTTL.LEGACY_ANALYSIS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = ttl
        self._clock = clock

    def lookup_recent(self, caller_id: str, your_domain: str, competitor_domain: str) -> Optional[Dict[str, Any]]:
        """Most recent analysis for this caller and domain pair within the TTL."""
        if not caller_id:
            return None

        cutoff = self._clock() - self.ttl
        db = self.session_factory()
        try:
            record = db.query(CompetitorAnalysis).filter(
                CompetitorAnalysis.caller_id == caller_id,
                CompetitorAnalysis.your_domain == your_domain,
                CompetitorAnalysis.competitor_domain == competitor_domain,
                CompetitorAnalysis.created_at > cutoff,
            ).order_by(desc(CompetitorAnalysis.created_at)).first()

            if record is None:
                return None

            logger.info(f"Legacy analysis hit for {your_domain} vs {competitor_domain}")
            return {
                "keyword_gap_list": record.keyword_gap_list or [],
                "backlink_summary": record.backlink_summary or {},
                "onpage_summary": record.onpage_summary or {},
                "analyzed_at": record.created_at.isoformat(),
            }

        except Exception as e:
            logger.error(f"Legacy analysis lookup failed: {e}")
            return None
        finally:
            db.close()
