"""
Tests for usage logging.
"""

from datetime import datetime

from foundry.database.models import UsageLog
from foundry.gateway.usage import UsageLogger, UsageLogEntry


def make_entry(**overrides) -> UsageLogEntry:
    params = {
        "module": "serp-analysis",
        "endpoint": "/serp/google/organic/live/advanced",
        "request_payload": [{"keyword": "running shoes"}],
        "response_status": 200,
        "caller_id": "user-1",
        "credits_used": 0.002,
        "cost_usd": 0.002,
    }
    params.update(overrides)
    return UsageLogEntry(**params)


class TestUsageLogEntry:

    def test_success_flag(self):
        assert make_entry().success
        assert not make_entry(response_status=429).success

    def test_to_dict(self):
        data = make_entry().to_dict()
        assert data["module"] == "serp-analysis"
        assert data["credits_used"] == 0.002


class TestUsageLogger:
    """Persistence and failure isolation."""

    def test_writes_row(self, session_factory, clock):
        usage_logger = UsageLogger(session_factory, clock=clock)

        assert usage_logger.try_log(make_entry(correlation_id="corr-1")) is True

        db = session_factory()
        try:
            rows = db.query(UsageLog).all()
        finally:
            db.close()

        assert len(rows) == 1
        row = rows[0]
        assert row.caller_id == "user-1"
        assert row.correlation_id == "corr-1"
        assert row.module == "serp-analysis"
        assert row.response_status == 200
        assert row.credits_used == 0.002
        assert row.request_payload == [{"keyword": "running shoes"}]
        assert row.created_at == datetime(2026, 3, 1, 12, 0, 0)
        assert usage_logger.get_stats()["written"] == 1

    def test_error_rows_keep_message(self, session_factory):
        usage_logger = UsageLogger(session_factory)
        usage_logger.try_log(make_entry(response_status=402, credits_used=None, error_message="credits exhausted"))

        db = session_factory()
        try:
            row = db.query(UsageLog).one()
        finally:
            db.close()

        assert row.response_status == 402
        assert row.credits_used is None
        assert row.error_message == "credits exhausted"

    def test_disabled_without_database(self):
        usage_logger = UsageLogger()

        assert not usage_logger.enabled
        assert usage_logger.try_log(make_entry()) is False
        assert usage_logger.get_stats() == {"written": 0, "skipped": 1, "failed": 0}

    def test_storage_failure_is_swallowed(self):
        def broken_factory():
            raise RuntimeError("database is down")

        usage_logger = UsageLogger(broken_factory)

        assert usage_logger.try_log(make_entry()) is False
        assert usage_logger.get_stats()["failed"] == 1
