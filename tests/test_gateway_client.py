"""
Tests for the DataForSEO gateway client.

Uses a scripted httpx.MockTransport upstream and a recording sleep so no
test waits on real backoff delays.
"""

import asyncio

import pytest

from foundry.gateway.cancellation import CancelToken
from foundry.gateway.client import GatewayConfig, build_auth_header
from foundry.gateway.errors import (
    CredentialsMissingError,
    CreditsExhaustedError,
    DataForSEOError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
    UpstreamClientError,
    UpstreamServerError,
)
from foundry.gateway.models import GatewayRequest

ENDPOINT = "/backlinks/summary/live"


def make_request(**overrides) -> GatewayRequest:
    params = {
        "endpoint": ENDPOINT,
        "payload": [{"target": "example.com", "include_subdomains": True}],
        "module": "competitor-analyze",
        "caller_id": "user-1",
    }
    params.update(overrides)
    return GatewayRequest(**params)


# =============================================================================
# SUCCESS PATH
# =============================================================================

class TestSuccessfulCalls:
    """2xx responses."""

    @pytest.mark.asyncio
    async def test_returns_parsed_response(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.ok(upstream.backlinks_result(), cost=0.02))
        client = make_client()

        response = await client.call(make_request())

        assert response.http_status == 200
        assert response.first_task.ok
        assert response.first_task.first_result["backlinks"] == 1200
        assert response.credits_used == 0.02
        await client.close()

    @pytest.mark.asyncio
    async def test_sends_basic_auth_and_payload(self, make_client, upstream):
        upstream.on(ENDPOINT, upstream.ok([]))
        client = make_client()

        await client.call(make_request())

        sent = upstream.requests[0]
        assert sent.headers["Authorization"] == build_auth_header("api@example.com", "secret")
        assert sent.url.path == "/v3/backlinks/summary/live"
        assert upstream.payload(ENDPOINT) == [{"target": "example.com", "include_subdomains": True}]
        await client.close()

    @pytest.mark.asyncio
    async def test_logs_usage_once_with_credits(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.ok([], cost=0.05))
        client = make_client()

        await client.call(make_request(correlation_id="corr-9"))

        assert len(usage.entries) == 1
        entry = usage.entries[0]
        assert entry.response_status == 200
        assert entry.credits_used == 0.05
        assert entry.caller_id == "user-1"
        assert entry.correlation_id == "corr-9"
        assert entry.module == "competitor-analyze"
        assert entry.endpoint == ENDPOINT
        assert entry.error_message is None
        await client.close()

    @pytest.mark.asyncio
    async def test_credits_fall_back_to_task_cost(self, make_client, upstream, usage):
        body = upstream.dfs_body([], cost=None)
        body["tasks"][0]["cost"] = 0.003
        upstream.on(ENDPOINT, upstream.reply(200, body))
        client = make_client()

        response = await client.call(make_request())

        assert response.credits_used == 0.003
        assert usage.entries[0].credits_used == 0.003
        await client.close()

    @pytest.mark.asyncio
    async def test_task_error_still_returned(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.ok(None, task_status=40501, status_message="Invalid Field."))
        client = make_client()

        response = await client.call(make_request())

        assert response.http_status == 200
        assert not response.first_task.ok
        assert len(response.failed_tasks) == 1
        assert len(usage.entries) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_get_requests_have_no_body(self, make_client, upstream):
        upstream.on("/on_page/summary/task-7", upstream.ok([]))
        client = make_client()

        await client.call(make_request(endpoint="/on_page/summary/task-7", payload=[], method="GET"))

        assert upstream.requests[0].method == "GET"
        assert upstream.requests[0].content == b""
        await client.close()


# =============================================================================
# RETRIES
# =============================================================================

class TestRetries:
    """Retry behaviour for 429, 5xx and transport failures."""

    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_four_attempts(self, make_client, upstream, usage, sleeper):
        upstream.on(ENDPOINT, upstream.reply(429, {"status_message": "Too Many Requests"}))
        client = make_client()

        with pytest.raises(RateLimitedError) as exc_info:
            await client.call(make_request())

        assert exc_info.value.status_code == 429
        assert exc_info.value.code == "RATE_LIMIT"
        assert upstream.calls(ENDPOINT) == 4
        assert sleeper.calls == [1.5, 2.5, 4.5]
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 429
        assert "429" in usage.entries[0].error_message
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_then_success(self, make_client, upstream, usage, sleeper):
        upstream.on(ENDPOINT, upstream.reply(503), upstream.ok([]))
        client = make_client()

        response = await client.call(make_request())

        assert response.http_status == 200
        assert upstream.calls(ENDPOINT) == 2
        assert len(sleeper.calls) == 1
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 200
        await client.close()

    @pytest.mark.asyncio
    async def test_persistent_server_error_raises(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.reply(500, {"status_message": "Internal Error"}))
        client = make_client()

        with pytest.raises(UpstreamServerError):
            await client.call(make_request())

        assert upstream.calls(ENDPOINT) == 4
        assert len(usage.entries) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_retry_after_header_takes_precedence(self, make_client, upstream, sleeper):
        upstream.on(
            ENDPOINT,
            upstream.reply(429, {"status_message": "slow down"}, headers={"Retry-After": "5"}),
            upstream.ok([]),
        )
        client = make_client()

        await client.call(make_request())

        assert sleeper.calls == [5.25]
        await client.close()

    @pytest.mark.asyncio
    async def test_huge_retry_after_is_clamped(self, make_client, upstream, sleeper):
        upstream.on(
            ENDPOINT,
            upstream.reply(429, headers={"Retry-After": "86400"}),
            upstream.ok([]),
        )
        client = make_client(rand=lambda: 0.0)

        await client.call(make_request())

        assert sleeper.calls == [60.0]
        await client.close()

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self, make_client, upstream, usage, sleeper):
        upstream.on(ENDPOINT, upstream.network_error(), upstream.ok([]))
        client = make_client()

        response = await client.call(make_request())

        assert response.http_status == 200
        assert len(sleeper.calls) == 1
        assert len(usage.entries) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_persistent_network_error_raises(self, make_client, upstream, usage, sleeper):
        upstream.on(ENDPOINT, upstream.network_error())
        client = make_client()

        with pytest.raises(NetworkError) as exc_info:
            await client.call(make_request())

        assert exc_info.value.code == "NETWORK_ERROR"
        assert len(upstream.requests) == 4
        assert len(sleeper.calls) == 3
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 0
        await client.close()

    @pytest.mark.asyncio
    async def test_custom_retry_budget(self, make_client, upstream, gateway_config):
        upstream.on(ENDPOINT, upstream.reply(503))
        gateway_config.retry.max_retries = 1
        client = make_client(gateway_config)

        with pytest.raises(UpstreamServerError):
            await client.call(make_request())

        assert upstream.calls(ENDPOINT) == 2
        await client.close()


# =============================================================================
# TERMINAL FAILURES
# =============================================================================

class TestTerminalFailures:
    """Outcomes that must never be retried."""

    @pytest.mark.asyncio
    async def test_payment_required_fails_immediately(self, make_client, upstream, usage, sleeper):
        upstream.on(ENDPOINT, upstream.reply(402, {"status_message": "Payment Required."}))
        client = make_client()

        with pytest.raises(CreditsExhaustedError) as exc_info:
            await client.call(make_request())

        assert exc_info.value.is_credits_exhausted
        assert exc_info.value.code == "CREDITS_EXHAUSTED"
        assert upstream.calls(ENDPOINT) == 1
        assert sleeper.calls == []
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 402
        await client.close()

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.reply(400, {"status_message": "Bad Request."}))
        client = make_client()

        with pytest.raises(UpstreamClientError) as exc_info:
            await client.call(make_request())

        assert "Bad Request." in str(exc_info.value)
        assert upstream.calls(ENDPOINT) == 1
        assert len(usage.entries) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_network(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.ok([]))
        client = make_client(GatewayConfig())

        with pytest.raises(CredentialsMissingError) as exc_info:
            await client.call(make_request())

        assert exc_info.value.code == "CREDENTIALS_MISSING"
        assert upstream.requests == []
        assert usage.entries == []
        assert not client.has_credentials
        await client.close()

    @pytest.mark.asyncio
    async def test_closed_client_refuses_calls(self, make_client):
        client = make_client()
        await client.close()

        with pytest.raises(DataForSEOError):
            await client.call(make_request())


# =============================================================================
# CANCELLATION
# =============================================================================

class TestCancellation:
    """Cancellation tokens stop calls and backoff sleeps."""

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_sending(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.ok([]))
        client = make_client()
        token = CancelToken()
        token.cancel("user went away")

        with pytest.raises(OperationCancelled) as exc_info:
            await client.call(make_request(), cancel=token)

        assert "user went away" in str(exc_info.value)
        assert upstream.requests == []
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 499
        await client.close()

    @pytest.mark.asyncio
    async def test_deadline_interrupts_backoff(self, make_client, upstream, usage):
        upstream.on(ENDPOINT, upstream.reply(503))
        client = make_client()
        token = CancelToken.with_deadline(0.05)

        with pytest.raises(OperationCancelled):
            await client.call(make_request(), cancel=token)

        assert upstream.calls(ENDPOINT) == 1
        assert len(usage.entries) == 1
        assert usage.entries[0].response_status == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_released_deadline_never_fires(self):
        token = CancelToken.with_deadline(0.01)
        token.release()

        await asyncio.sleep(0.03)

        assert not token.cancelled
