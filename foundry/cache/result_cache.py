"""
Shared Result Cache

Content-addressed cache of composed competitor reports, stored in the
``competitor_cache`` table and keyed by request checksum.

Rules:
- Entries older than the TTL are never returned
- Writes upsert by checksum (the newest report replaces the old one)
- Only fully successful compositions are written (see ``is_cacheable``)

Storage errors are logged and treated as a miss / failed write; a broken
cache never fails the request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from foundry.database.models import CompetitorCache
from .config import CacheTTL, CACHE_BYPASS_WARNING

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached composed response."""
    checksum: str
    payload: Dict[str, Any]
    created_at: datetime
    hit_count: int = 0


def is_cacheable(warnings: Iterable[str]) -> bool:
    """A composition may be cached only if no sub-operation failed."""
    return all(warning == CACHE_BYPASS_WARNING for warning in warnings)


class ResultCache:
    """
    PostgreSQL-backed result cache using the competitor_cache table.

    Simple and reliable - same database as the rest of the application.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl: timedelta = CacheTTL.COMPETITOR_REPORT,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = ttl
        self._clock = clock
        self._stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
        }

    def lookup(self, checksum: str) -> Optional[CacheEntry]:
        """
        Return the fresh entry for ``checksum`` or None.

        A hit bumps ``hit_count`` and ``last_hit_at``.
        """
        now = self._clock()
        db = self.session_factory()
        try:
            record = db.query(CompetitorCache).filter(
                CompetitorCache.checksum == checksum,
                CompetitorCache.created_at > now - self.ttl,
            ).first()

            if record is None:
                self._stats["misses"] += 1
                return None

            record.hit_count = (record.hit_count or 0) + 1
            record.last_hit_at = now
            db.commit()

            self._stats["hits"] += 1
            logger.info(f"Cache hit for {checksum[:12]} (hits={record.hit_count})")
            return CacheEntry(
                checksum=record.checksum,
                payload=record.payload,
                created_at=record.created_at,
                hit_count=record.hit_count,
            )

        except Exception as e:
            logger.error(f"Cache get error for {checksum[:12]}: {e}")
            db.rollback()
            self._stats["misses"] += 1
            return None
        finally:
            db.close()

    def store(self, checksum: str, payload: Dict[str, Any], caller_id: Optional[str] = None) -> bool:
        """
        Upsert ``payload`` under ``checksum``.

        Returns:
            True if successful, False otherwise
        """
        db = self.session_factory()
        try:
            existing = db.query(CompetitorCache).filter(CompetitorCache.checksum == checksum).first()

            if existing:
                existing.payload = payload
                existing.caller_id = caller_id
                existing.created_at = self._clock()
                existing.hit_count = 0
                existing.last_hit_at = None
            else:
                db.add(CompetitorCache(
                    checksum=checksum,
                    caller_id=caller_id,
                    payload=payload,
                    created_at=self._clock(),
                ))

            db.commit()
            self._stats["writes"] += 1
            logger.info(f"Cached result {checksum[:12]}")
            return True

        except Exception as e:
            logger.error(f"Cache set error for {checksum[:12]}: {e}")
            db.rollback()
            return False
        finally:
            db.close()

    def invalidate(self, checksum: str) -> bool:
        """Delete one entry. Returns True if something was removed."""
        db = self.session_factory()
        try:
            deleted = db.query(CompetitorCache).filter(CompetitorCache.checksum == checksum).delete()
            db.commit()
            return deleted > 0
        except Exception as e:
            logger.error(f"Cache invalidate error for {checksum[:12]}: {e}")
            db.rollback()
            return False
        finally:
            db.close()

    def invalidate_caller(self, caller_id: str) -> int:
        """Delete every entry written for ``caller_id``."""
        db = self.session_factory()
        try:
            deleted = db.query(CompetitorCache).filter(CompetitorCache.caller_id == caller_id).delete()
            db.commit()
            logger.info(f"Invalidated {deleted} cache entries for caller {caller_id}")
            return deleted
        except Exception as e:
            logger.error(f"Cache invalidation error for caller {caller_id}: {e}")
            db.rollback()
            return 0
        finally:
            db.close()

    def purge_expired(self) -> int:
        """Delete entries older than the TTL."""
        cutoff = self._clock() - self.ttl
        db = self.session_factory()
        try:
            deleted = db.query(CompetitorCache).filter(CompetitorCache.created_at <= cutoff).delete()
            db.commit()
            if deleted:
                logger.info(f"Purged {deleted} expired cache entries")
            return deleted
        except Exception as e:
            logger.error(f"Cache purge error: {e}")
            db.rollback()
            return 0
        finally:
            db.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0

        return {
            "enabled": True,
            "backend": "postgresql",
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "writes": self._stats["writes"],
            "hit_rate_percent": round(hit_rate, 2),
        }

    def health_check(self) -> Dict[str, Any]:
        """Check cache health."""
        db = self.session_factory()
        try:
            count = db.query(CompetitorCache).count()
            return {
                "status": "healthy",
                "backend": "postgresql",
                "cached_entries": count,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "backend": "postgresql",
                "error": str(e),
            }
        finally:
            db.close()
