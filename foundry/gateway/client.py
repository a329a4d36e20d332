"""
DataForSEO API Client

Async HTTP client with:
- Basic auth header built once, missing credentials fail fast
- Retry with exponential backoff and Retry-After support
- 402 short-circuit (out of credits is never retried)
- Per-attempt timeout and cooperative cancellation
- Exactly one usage log row per logical call
"""

import asyncio
import base64
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .backoff import RetryConfig, RetryPolicy, RetryAttempt, parse_retry_after
from .cancellation import CancelToken
from .errors import (
    DataForSEOError,
    CredentialsMissingError,
    CreditsExhaustedError,
    NetworkError,
    OperationCancelled,
    error_for_status,
)
from .models import GatewayRequest, GatewayResponse
from .usage import UsageLogger, UsageLogEntry

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class GatewayConfig:
    """Everything the client needs, resolved once from settings."""
    login: Optional[str] = None
    password: Optional[str] = None
    base_url: str = "https://api.dataforseo.com/v3"
    timeout: float = 60.0
    max_connections: int = 50
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def has_credentials(self) -> bool:
        return bool(self.login and self.password)

    @classmethod
    def from_settings(cls, settings) -> "GatewayConfig":
        return cls(
            login=settings.DATAFORSEO_LOGIN,
            password=settings.DATAFORSEO_PASSWORD,
            base_url=settings.DATAFORSEO_BASE_URL,
            timeout=settings.API_TIMEOUT,
            max_connections=settings.MAX_CONNECTIONS,
            retry=RetryConfig(
                max_retries=settings.MAX_RETRIES,
                base_delay_ms=settings.RETRY_BASE_DELAY_MS,
                max_retry_after_seconds=settings.MAX_RETRY_AFTER_SECONDS,
            ),
        )


def build_auth_header(login: str, password: str) -> str:
    credentials = f"{login}:{password}"
    return f"Basic {base64.b64encode(credentials.encode()).decode()}"


class DataForSEOClient:
    """
    Async client for DataForSEO API.

    Usage:
        client = DataForSEOClient(GatewayConfig(login="...", password="..."), usage_logger)

        response = await client.call(GatewayRequest(
            endpoint="/backlinks/summary/live",
            payload=[{"target": "example.com", "include_subdomains": True}],
            module="competitor-analyze",
            caller_id=user_id,
        ))

        await client.close()
    """

    def __init__(
        self,
        config: GatewayConfig,
        usage_logger: Optional[UsageLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleeper = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        """
        Initialize DataForSEO client.

        Args:
            config: Credentials, base URL, timeout and retry budget
            usage_logger: Usage sink (a no-op logger is used if omitted)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            sleep: Awaitable sleep used between attempts
            rand: Jitter source
        """
        self.config = config
        self.usage_logger = usage_logger or UsageLogger()
        self._sleep = sleep
        self._rand = rand

        headers = {"Content-Type": "application/json"}
        self._auth_header = None
        if config.has_credentials:
            self._auth_header = build_auth_header(config.login, config.password)
            headers["Authorization"] = self._auth_header

        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=max(config.max_connections // 2, 1),
            ),
            timeout=httpx.Timeout(config.timeout),
            transport=transport,
        )

        self._closed = False

    @property
    def has_credentials(self) -> bool:
        return self._auth_header is not None

    async def call(self, request: GatewayRequest, cancel: Optional[CancelToken] = None) -> GatewayResponse:
        """
        Execute one logical upstream call with retries.

        Args:
            request: Endpoint, payload and attribution
            cancel: Optional cancellation token

        Returns:
            Parsed response for any 2xx outcome (tasks may still have failed)

        Raises:
            CredentialsMissingError: Before any network call
            CreditsExhaustedError: On 402, without retrying
            DataForSEOError: On any other terminal non-2xx outcome or exhausted retries
        """
        if self._closed:
            raise DataForSEOError("Client is closed")
        if not self.has_credentials:
            raise CredentialsMissingError()

        policy = RetryPolicy(self.config.retry, rand=self._rand)
        last_error: Optional[DataForSEOError] = None
        last_status = 0

        while True:
            if cancel is not None and cancel.cancelled:
                self._record_usage(request, last_status or 499, error=f"cancelled: {cancel.reason}")
                cancel.raise_if_cancelled()

            attempt = policy.begin_attempt()
            logger.debug(
                f"[DataForSEO] Attempt {attempt + 1}/{self.config.retry.max_attempts} "
                f"for {request.module} - {request.endpoint}"
            )

            try:
                response = await self._send(request)
            except httpx.HTTPError as e:
                last_error = NetworkError(f"Network error calling {request.endpoint}: {e}")
                retry = policy.record_network_error()
                if retry is None:
                    break
                await self._pause(request, retry, cancel)
                continue

            last_status = response.status_code
            body = self._parse_body(response)

            if response.status_code == 402:
                policy.fail()
                error = CreditsExhaustedError(
                    "DataForSEO API credits exhausted (402)",
                    status_code=402,
                    response=body,
                )
                logger.error(f"[DataForSEO] 402 - Credits exhausted for {request.module}")
                self._record_usage(request, 402, error=str(error))
                raise error

            if 200 <= response.status_code < 300:
                policy.record_success()
                parsed = GatewayResponse.from_dict(body, http_status=response.status_code)
                self._log_task_errors(request, parsed)
                self._record_usage(request, response.status_code, credits=parsed.credits_used)
                return parsed

            error = error_for_status(
                response.status_code,
                f"DataForSEO API error: {response.status_code} - {self._error_text(body, response)}",
                response=body,
            )
            retry_after = parse_retry_after(
                response.headers.get("Retry-After"),
                max_seconds=self.config.retry.max_retry_after_seconds,
            )
            retry = policy.record_status(response.status_code, retry_after)
            if retry is None:
                self._record_usage(request, response.status_code, error=str(error))
                raise error

            last_error = error
            await self._pause(request, retry, cancel)

        # Only transport failures leave the loop without returning or raising
        final_error = last_error or DataForSEOError("Failed after all retries", status_code=500)
        self._record_usage(request, last_status or 0, error=str(final_error))
        raise final_error

    async def _send(self, request: GatewayRequest) -> httpx.Response:
        if request.method.upper() == "GET":
            return await self._client.get(request.path)
        return await self._client.post(request.path, json=request.payload)

    async def _pause(self, request: GatewayRequest, retry: RetryAttempt, cancel: Optional[CancelToken]) -> None:
        event = {
            "event": "dataforseo_retry",
            "endpoint": request.endpoint,
            "status": retry.status_code,
            "attempt": retry.attempt_number,
            "delay_ms": round(retry.delay_ms),
            "caller_id": request.caller_id,
            "retry_after": retry.retry_after_seconds,
        }
        logger.warning(f"[DataForSEO] Retrying: {json.dumps(event)}")

        seconds = retry.delay_ms / 1000
        if cancel is None:
            await self._sleep(seconds)
            return
        try:
            await cancel.sleep(seconds)
        except OperationCancelled as e:
            self._record_usage(request, retry.status_code or 499, error=str(e))
            raise

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}

    @staticmethod
    def _error_text(body: Dict[str, Any], response: httpx.Response) -> str:
        return body.get("status_message") or response.text[:200] or response.reason_phrase

    def _log_task_errors(self, request: GatewayRequest, parsed: GatewayResponse) -> None:
        for task in parsed.failed_tasks:
            logger.error(
                f"DataForSEO task error in {request.endpoint}: {task.status_message or 'Task error'} "
                f"(status: {task.status_code})"
            )

    def _record_usage(
        self,
        request: GatewayRequest,
        status: int,
        credits: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        self.usage_logger.try_log(UsageLogEntry(
            module=request.module,
            endpoint=request.endpoint,
            request_payload=request.payload,
            response_status=status,
            caller_id=request.caller_id,
            correlation_id=request.correlation_id,
            credits_used=credits,
            cost_usd=credits,
            error_message=error,
        ))

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
