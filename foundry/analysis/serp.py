"""
SERP Analysis

Top organic Google results for one keyword, with an estimate of what the
lookup cost in DataForSEO Live Mode.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from foundry.auth.quota import SERP_LOOKUPS, QuotaGate, QuotaUnavailable
from foundry.gateway.cancellation import CancelToken
from foundry.gateway.client import DataForSEOClient
from foundry.gateway.errors import DataForSEOError
from foundry.gateway.models import GatewayRequest
from .envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

MODULE = "serp-analysis"
SERP_ENDPOINT = "/serp/google/organic/live/advanced"

RESULTS_PER_SERP = 10
FIRST_SERP_COST = 0.002
ADDITIONAL_SERP_COST = 0.0015


class SerpRequest(BaseModel):
    keyword: str = Field(..., min_length=1, max_length=200)
    language_code: str = Field(default="en", pattern=r"^[a-z]{2}$")
    location_code: int = Field(default=2840, ge=1, le=9999999)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("keyword", mode="before")
    @classmethod
    def strip_keyword(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def serp_depth(limit: int) -> int:
    """Results to request: whole SERP pages covering ``limit``."""
    return math.ceil(limit / RESULTS_PER_SERP) * RESULTS_PER_SERP


def estimate_serp_cost(result_count: int) -> float:
    """$0.002 for the first SERP page, $0.0015 for each additional one."""
    serps = math.ceil(result_count / RESULTS_PER_SERP)
    if serps == 0:
        return 0.0
    return FIRST_SERP_COST + (serps - 1) * ADDITIONAL_SERP_COST


def is_plain_organic(item: Dict[str, Any]) -> bool:
    return (
        item.get("type") == "organic"
        and not item.get("is_paid")
        and not item.get("is_featured_snippet")
        and not item.get("is_malicious")
    )


def extract_organic_results(items: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    """Plain organic results, renumbered from 1, at most ``limit``."""
    organic = [item for item in items if isinstance(item, dict) and is_plain_organic(item)][:limit]

    results = []
    for index, item in enumerate(organic):
        extra = item.get("extra") or {}
        results.append({
            "position": index + 1,
            "title": item.get("title") or "",
            "url": item.get("url") or "",
            "domain": item.get("domain") or "",
            "description": item.get("description") or "",
            "breadcrumb": item.get("breadcrumb") or "",
            "highlighted": item.get("highlighted") or [],
            "extra": {
                "ad_aclk": extra.get("ad_aclk"),
                "content_score": extra.get("content_score"),
                "snippet": item.get("snippet") or "",
            },
        })
    return results


class SerpAnalysisService:
    def __init__(self, client: DataForSEOClient, quota: QuotaGate):
        self.client = client
        self.quota = quota

    async def analyze(
        self,
        request: SerpRequest,
        caller_id: str,
        cancel: Optional[CancelToken] = None,
    ) -> ResponseEnvelope:
        try:
            decision = self.quota.check(caller_id, SERP_LOOKUPS)
        except QuotaUnavailable as e:
            return ResponseEnvelope.quota_unavailable(str(e))
        if not decision.allowed:
            return ResponseEnvelope.failure(
                "quota",
                "SERP analysis quota reached for this billing period",
                code="LIMIT_EXCEEDED",
                data={"quota": decision.to_dict()},
            )

        logger.info(f"SERP analysis for '{request.keyword}' (limit: {request.limit}) by {caller_id}")

        try:
            response = await self.client.call(GatewayRequest(
                endpoint=SERP_ENDPOINT,
                payload=[{
                    "keyword": request.keyword,
                    "location_code": request.location_code,
                    "language_code": request.language_code,
                    "device": "desktop",
                    "os": "windows",
                    "depth": serp_depth(request.limit),
                }],
                module=MODULE,
                caller_id=caller_id,
            ), cancel=cancel)
        except DataForSEOError as e:
            logger.error(f"SERP lookup failed for '{request.keyword}': {e}")
            return ResponseEnvelope.from_gateway_error(e)

        task = response.first_task
        if task is None or task.status_code != 20000:
            message = task.status_message if task is not None else "No tasks returned"
            return ResponseEnvelope.failure("upstream", f"SERP API error: {message or 'Unknown SERP API error'}", code="API_ERROR")

        results = extract_organic_results(task.items, request.limit)
        cost = estimate_serp_cost(len(results))
        logger.info(f"Processed {len(results)} organic SERP results for '{request.keyword}'")

        self.quota.commit(caller_id, SERP_LOOKUPS, decision)

        return ResponseEnvelope.success({
            "keyword": request.keyword,
            "results": results,
            "total_results": len(results),
            "estimated_cost": f"{cost:.3f}",
        })
