"""
Advanced Search Volume

Google Ads search volume for up to 1000 keywords in one call.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from foundry.auth.quota import SEARCH_VOLUME_LOOKUPS, QuotaGate, QuotaUnavailable
from foundry.gateway.cancellation import CancelToken
from foundry.gateway.client import DataForSEOClient
from foundry.gateway.errors import DataForSEOError
from foundry.gateway.models import GatewayRequest
from .envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

MODULE = "keywords_data"
SEARCH_VOLUME_ENDPOINT = "/keywords_data/google_ads/search_volume/live"
MAX_KEYWORDS = 1000


class SearchVolumeRequest(BaseModel):
    keywords: List[str] = Field(..., min_length=1, max_length=MAX_KEYWORDS)
    location_name: str = "United Kingdom"
    language_name: str = "English"
    sort_by: str = Field(default="relevance", pattern="^(relevance|search_volume|competition_index|low_top_of_page_bid|high_top_of_page_bid)$")
    include_adult_keywords: bool = False
    search_partners: bool = False
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    tag: Optional[str] = None

    @field_validator("keywords")
    @classmethod
    def strip_keywords(cls, value: List[str]) -> List[str]:
        cleaned = [k.strip() for k in value if k and k.strip()]
        if not cleaned:
            raise ValueError("keywords array is required")
        return cleaned

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "keywords": self.keywords,
            "location_name": self.location_name,
            "language_name": self.language_name,
            "sort_by": self.sort_by,
            "include_adult_keywords": self.include_adult_keywords,
            "search_partners": self.search_partners,
        }
        for key in ("date_from", "date_to", "tag"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


class SearchVolumeService:
    def __init__(self, client: DataForSEOClient, quota: QuotaGate):
        self.client = client
        self.quota = quota

    async def lookup(
        self,
        request: SearchVolumeRequest,
        caller_id: str,
        cancel: Optional[CancelToken] = None,
    ) -> ResponseEnvelope:
        try:
            decision = self.quota.check(caller_id, SEARCH_VOLUME_LOOKUPS)
        except QuotaUnavailable as e:
            return ResponseEnvelope.quota_unavailable(str(e))
        if not decision.allowed:
            return ResponseEnvelope.failure(
                "quota",
                "Search volume quota reached for this billing period",
                code="LIMIT_EXCEEDED",
                data={"quota": decision.to_dict()},
            )

        logger.info(f"Search volume for {len(request.keywords)} keywords (sort_by={request.sort_by}) by {caller_id}")

        try:
            response = await self.client.call(GatewayRequest(
                endpoint=SEARCH_VOLUME_ENDPOINT,
                payload=[request.to_payload()],
                module=MODULE,
                caller_id=caller_id,
            ), cancel=cancel)
        except DataForSEOError as e:
            logger.error(f"Search volume lookup failed: {e}")
            return ResponseEnvelope.from_gateway_error(e)

        task = response.first_task
        if task is None:
            return ResponseEnvelope.failure("upstream", "No tasks returned from DataForSEO", code="API_ERROR")
        if task.status_code != 20000:
            return ResponseEnvelope.failure("upstream", task.status_message or "DataForSEO task failed", code="API_ERROR")

        results = task.result
        self.quota.commit(caller_id, SEARCH_VOLUME_LOOKUPS, decision)

        return ResponseEnvelope.success({
            "results": results,
            "cost": response.credits_used or 0,
            "total": len(results),
        })
