"""
SQLAlchemy Models for the Keyword Foundry Gateway

Four tables:
1. dataforseo_usage     - append-only audit trail of upstream calls
2. competitor_cache     - shared result cache keyed by request checksum
3. competitor_analysis  - legacy per-caller analysis rows (read-only here)
4. quota_state          - per-caller, per-quota-class usage counters

Timestamps are naive UTC, matching ``datetime.utcnow``.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text,
    Index, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in dev/tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid4())


class UsageLog(Base):
    """One row per logical DataForSEO call - for cost tracking and debugging"""
    __tablename__ = "dataforseo_usage"

    id = Column(String(36), primary_key=True, default=_uuid)
    caller_id = Column(String(64), index=True)
    correlation_id = Column(String(64))

    # Call details
    module = Column(String(100), nullable=False)
    endpoint = Column(String(255), nullable=False)
    request_payload = Column(JSONType)

    # Outcome
    response_status = Column(Integer)
    credits_used = Column(Float)
    cost_usd = Column(Float)
    error_message = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_usage_caller_created", "caller_id", "created_at"),
    )


class CompetitorCache(Base):
    """Shared competitor analysis results keyed by request checksum"""
    __tablename__ = "competitor_cache"

    id = Column(String(36), primary_key=True, default=_uuid)
    checksum = Column(String(64), nullable=False, unique=True)
    caller_id = Column(String(64))

    payload = Column(JSONType, nullable=False)
    hit_count = Column(Integer, default=0, nullable=False)
    last_hit_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_competitor_cache_created", "created_at"),
    )


class CompetitorAnalysis(Base):
    """Per-caller analysis results written by the previous report pipeline"""
    __tablename__ = "competitor_analysis"

    id = Column(String(36), primary_key=True, default=_uuid)
    caller_id = Column(String(64), nullable=False)
    your_domain = Column(String(255), nullable=False)
    competitor_domain = Column(String(255), nullable=False)

    keyword_gap_list = Column(JSONType)
    backlink_summary = Column(JSONType)
    onpage_summary = Column(JSONType)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_competitor_analysis_lookup", "caller_id", "your_domain", "competitor_domain", "created_at"),
    )


class QuotaStateRecord(Base):
    """Usage counter per caller and quota class with a rolling renewal date"""
    __tablename__ = "quota_state"

    id = Column(String(36), primary_key=True, default=_uuid)
    caller_id = Column(String(64), nullable=False)
    quota_class = Column(String(50), nullable=False)

    used = Column(Integer, default=0, nullable=False)
    renewal_at = Column(DateTime)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("caller_id", "quota_class", name="uq_quota_caller_class"),
    )
