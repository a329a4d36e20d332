"""
Pytest Configuration and Shared Fixtures

Provides a scripted DataForSEO upstream (httpx.MockTransport), an in-memory
database, a controllable clock and recording fakes for sleep and usage.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from foundry.database.session import create_db_engine, create_session_factory, init_db
from foundry.gateway.client import DataForSEOClient, GatewayConfig
from foundry.gateway.usage import UsageLogger, UsageLogEntry


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Callable clock returning naive UTC datetimes that tests can advance."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class RecordingUsageLogger(UsageLogger):
    """Usage logger that keeps entries in memory."""

    def __init__(self):
        super().__init__(session_factory=None)
        self.entries: List[UsageLogEntry] = []

    def try_log(self, entry: UsageLogEntry) -> bool:
        self.entries.append(entry)
        return True


# ============================================================================
# Upstream payload builders
# ============================================================================

def dfs_body(result: Any = None, task_status: int = 20000, task_id: str = "task-1",
             cost: Optional[float] = 0.01, status_message: str = "Ok.") -> Dict[str, Any]:
    body = {
        "version": "0.1.20260301",
        "status_code": 20000,
        "status_message": "Ok.",
        "tasks_count": 1,
        "tasks_error": 0 if task_status in (20000, 20100) else 1,
        "tasks": [{
            "id": task_id,
            "status_code": task_status,
            "status_message": status_message,
            "cost": cost,
            "result": result,
        }],
    }
    if cost is not None:
        body["cost"] = cost
    return body


def ranked_keywords_result(*keywords) -> List[Dict[str, Any]]:
    """keywords: (keyword, position, search_volume) tuples in Labs nesting."""
    items = []
    for keyword, position, volume in keywords:
        items.append({
            "se_type": "google",
            "keyword_data": {
                "keyword": keyword,
                "keyword_info": {"search_volume": volume, "cpc": 1.25},
            },
            "ranked_serp_element": {
                "serp_item": {
                    "type": "organic",
                    "rank_group": position,
                    "rank_absolute": position,
                    "url": f"https://rival.org/{keyword.replace(' ', '-')}",
                },
            },
        })
    return [{"total_count": len(items), "items_count": len(items), "items": items}]


def backlinks_result(backlinks: int = 1200, referring_domains: int = 85, referring_ips: int = 70) -> List[Dict[str, Any]]:
    return [{
        "target": "example.com",
        "rank": 310,
        "backlinks": backlinks,
        "referring_domains": referring_domains,
        "referring_ips": referring_ips,
    }]


def onpage_result(progress: str = "finished", pages: int = 42) -> List[Dict[str, Any]]:
    return [{
        "crawl_progress": progress,
        "crawl_status": {"max_crawl_pages": 50, "pages_in_queue": 0, "pages_crawled": pages},
        "page_metrics": {
            "links_external": 120,
            "links_internal": 860,
            "onpage_score": 87.5,
        },
    }]


Reply = Callable[[httpx.Request], httpx.Response]


class ScriptedUpstream:
    """
    Fake DataForSEO API.

    Replies are queued per endpoint; the last reply of a queue repeats.
    Unknown endpoints answer 404.
    """

    PREFIX = "/v3"

    def __init__(self):
        self.routes: Dict[str, List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, endpoint: str, *replies: Reply) -> "ScriptedUpstream":
        self.routes.setdefault(endpoint, []).extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(self.PREFIX):
            path = path[len(self.PREFIX):]

        queue = self.routes.get(path)
        if not queue:
            return httpx.Response(404, json={"status_code": 40400, "status_message": "Not Found."})

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return reply(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, endpoint: str) -> int:
        return sum(1 for r in self.requests if r.url.path == f"{self.PREFIX}{endpoint}")

    def payload(self, endpoint: str, index: int = 0) -> Any:
        matching = [r for r in self.requests if r.url.path == f"{self.PREFIX}{endpoint}"]
        return json.loads(matching[index].content)

    # ------------------------------------------------------------------
    # Reply builders
    # ------------------------------------------------------------------

    @staticmethod
    def reply(status: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None) -> Reply:
        def _reply(request: httpx.Request) -> httpx.Response:
            if body is None:
                return httpx.Response(status, headers=headers)
            return httpx.Response(status, json=body, headers=headers)
        return _reply

    @staticmethod
    def ok(result: Any = None, task_status: int = 20000, task_id: str = "task-1",
           cost: Optional[float] = 0.01, status_message: str = "Ok.") -> Reply:
        return ScriptedUpstream.reply(200, dfs_body(result, task_status, task_id, cost, status_message))

    @staticmethod
    def network_error(message: str = "connection refused") -> Reply:
        def _reply(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(message, request=request)
        return _reply

    # Payload builders, reachable from tests through the fixture
    dfs_body = staticmethod(dfs_body)
    ranked_keywords_result = staticmethod(ranked_keywords_result)
    backlinks_result = staticmethod(backlinks_result)
    onpage_result = staticmethod(onpage_result)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def usage() -> RecordingUsageLogger:
    return RecordingUsageLogger()


@pytest.fixture
def upstream() -> ScriptedUpstream:
    return ScriptedUpstream()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(login="api@example.com", password="secret", timeout=5.0)


@pytest.fixture
def make_client(upstream, usage, sleeper, gateway_config):
    """Factory for clients wired to the scripted upstream."""
    def _make(config: Optional[GatewayConfig] = None, rand: Callable[[], float] = lambda: 0.5, **kwargs) -> DataForSEOClient:
        return DataForSEOClient(
            config or gateway_config,
            kwargs.pop("usage_logger", usage),
            transport=upstream.transport,
            sleep=kwargs.pop("sleep", sleeper),
            rand=rand,
        )
    return _make


@pytest.fixture
def session_factory():
    """In-memory SQLite database with all tables."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


class UnreachableSession:
    """Session whose every query fails the way a dropped connection does."""

    def query(self, *args):
        raise OperationalError("SELECT", {}, Exception("server closed the connection unexpectedly"))

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.fixture
def unreachable_session_factory():
    return UnreachableSession


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
