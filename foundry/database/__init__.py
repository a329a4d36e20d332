"""
Database Package

SQLAlchemy models and session helpers for usage logs, caches and quotas.
"""

from .models import (
    Base,
    UsageLog,
    CompetitorCache,
    CompetitorAnalysis,
    QuotaStateRecord,
)
from .session import (
    SessionFactory,
    get_database_url,
    create_db_engine,
    create_session_factory,
    init_db,
    check_db_connection,
    session_scope,
)

__all__ = [
    # Models
    "Base",
    "UsageLog",
    "CompetitorCache",
    "CompetitorAnalysis",
    "QuotaStateRecord",

    # Session
    "SessionFactory",
    "get_database_url",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "check_db_connection",
    "session_scope",
]
