"""
Competitor Analysis

Compares the caller's domain with one competitor:
- keyword gap (competitor keywords the caller does not rank for)
- backlink totals for both sides
- on-page crawl summary for both sides

Six upstream sub-operations run concurrently; any of them may fail without
failing the report. Requests with default parameters are served from and
written to the shared result cache. Each fresh report costs one unit of the
caller's free report quota.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from foundry.auth.quota import FREE_COMPETITOR_REPORTS, QuotaGate, QuotaUnavailable
from foundry.cache.analysis_cache import AnalysisCache
from foundry.cache.checksum import competitor_checksum
from foundry.cache.config import CACHE_BYPASS_WARNING
from foundry.cache.result_cache import ResultCache, is_cacheable
from foundry.gateway.cancellation import CancelToken
from foundry.gateway.client import DataForSEOClient
from foundry.gateway.errors import DataForSEOError
from foundry.gateway.poller import TaskPoller
from foundry.utils.domains import normalize_domain
from .aggregator import Aggregator, Composition
from .envelope import InvalidRequestError, ResponseEnvelope
from .fetchers import (
    EMPTY_BACKLINK_SUMMARY,
    EMPTY_ONPAGE_SUMMARY,
    MODULE,
    ONPAGE_MAX_CRAWL_PAGES,
    compute_keyword_gap,
    fetch_backlink_summary,
    fetch_onpage_summary,
    fetch_ranked_keywords,
)
from .outcomes import FailureReason, SubOperation

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_CODE = 2840  # United States
DEFAULT_LANGUAGE_CODE = "en"
DEFAULT_LIMIT = 300
MIN_LIMIT = 50
MAX_LIMIT = 1000

_LANGUAGE_RE = re.compile(r"^[a-z-]{2,10}$")

SIDES = ("your_domain", "competitor_domain")


# ============================================================================
# REQUEST
# ============================================================================

@dataclass(frozen=True)
class CompetitorRequest:
    your_domain: str
    competitor_domain: str
    location_code: int = DEFAULT_LOCATION_CODE
    language_code: str = DEFAULT_LANGUAGE_CODE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_raw(
        cls,
        your_domain: Optional[str],
        competitor_domain: Optional[str],
        location_code: Any = None,
        language_code: Any = None,
        limit: Any = None,
    ) -> "CompetitorRequest":
        """
        Normalize caller input.

        Domains are required. Invalid optional values fall back to their
        defaults with a warning in the log.

        Raises:
            InvalidRequestError: If either domain is missing or not a string
        """
        for name, value in (("your_domain", your_domain), ("competitor_domain", competitor_domain)):
            if value is not None and not isinstance(value, str):
                raise InvalidRequestError(f"{name} must be a string")

        your = normalize_domain(your_domain)
        competitor = normalize_domain(competitor_domain)
        if not your or not competitor:
            raise InvalidRequestError("Both your_domain and competitor_domain are required")

        return cls(
            your_domain=your,
            competitor_domain=competitor,
            location_code=_valid_location(location_code),
            language_code=_valid_language(language_code),
            limit=_valid_limit(limit),
        )

    @property
    def uses_defaults(self) -> bool:
        return (
            self.location_code == DEFAULT_LOCATION_CODE
            and self.language_code == DEFAULT_LANGUAGE_CODE
            and self.limit == DEFAULT_LIMIT
        )

    @property
    def checksum(self) -> str:
        return competitor_checksum(
            self.your_domain,
            self.competitor_domain,
            self.location_code,
            self.language_code,
            self.limit,
        )

    def params(self) -> Dict[str, Any]:
        return {
            "location_code": self.location_code,
            "language_code": self.language_code,
            "limit": self.limit,
        }


def _valid_location(value: Any) -> int:
    if value is None:
        return DEFAULT_LOCATION_CODE
    try:
        code = int(value)
    except (TypeError, ValueError):
        code = 0
    if code <= 0 or isinstance(value, bool):
        logger.warning(f"Invalid location_code {value!r}, using default {DEFAULT_LOCATION_CODE}")
        return DEFAULT_LOCATION_CODE
    return code


def _valid_language(value: Any) -> str:
    if value is None:
        return DEFAULT_LANGUAGE_CODE
    code = str(value).strip().lower()
    if not _LANGUAGE_RE.match(code):
        logger.warning(f"Invalid language_code {value!r}, using default {DEFAULT_LANGUAGE_CODE}")
        return DEFAULT_LANGUAGE_CODE
    return code


def _valid_limit(value: Any) -> int:
    if value is None:
        return DEFAULT_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = 0
    if not MIN_LIMIT <= limit <= MAX_LIMIT or isinstance(value, bool):
        logger.warning(f"Invalid limit {value!r}, using default {DEFAULT_LIMIT}")
        return DEFAULT_LIMIT
    return limit


# ============================================================================
# SERVICE
# ============================================================================

class CompetitorAnalysisService:
    """
    Usage:
        service = CompetitorAnalysisService(client, poller, result_cache, quota_gate, legacy_cache)
        envelope = await service.analyze(CompetitorRequest.from_raw("me.com", "rival.org"), caller_id)
    """

    def __init__(
        self,
        client: DataForSEOClient,
        poller: TaskPoller,
        result_cache: ResultCache,
        quota: QuotaGate,
        legacy_cache: Optional[AnalysisCache] = None,
        aggregator: Optional[Aggregator] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        max_crawl_pages: int = ONPAGE_MAX_CRAWL_PAGES,
    ):
        self.client = client
        self.poller = poller
        self.result_cache = result_cache
        self.quota = quota
        self.legacy_cache = legacy_cache
        self.aggregator = aggregator or Aggregator()
        self._clock = clock
        self.max_crawl_pages = max_crawl_pages

    async def analyze(
        self,
        request: CompetitorRequest,
        caller_id: str,
        cancel: Optional[CancelToken] = None,
    ) -> ResponseEnvelope:
        logger.info(f"Competitor analysis: {request.your_domain} vs {request.competitor_domain} for {caller_id}")

        try:
            decision = self.quota.check(caller_id, FREE_COMPETITOR_REPORTS)
        except QuotaUnavailable as e:
            return ResponseEnvelope.quota_unavailable(str(e))
        if not decision.allowed:
            return ResponseEnvelope.failure(
                "quota",
                f"Free report limit reached ({decision.used}/{decision.limit}), "
                f"renews at {decision.renewal_at.isoformat()}",
                code="LIMIT_EXCEEDED",
                data={"quota": decision.to_dict()},
            )

        warnings: List[str] = []
        if request.uses_defaults:
            cached = self._cached_report(request, caller_id)
            if cached is not None:
                return ResponseEnvelope.success(cached)
        else:
            logger.info(f"Custom params {request.params()} - bypassing cache")
            warnings.append(CACHE_BYPASS_WARNING)

        if not self.client.has_credentials:
            return ResponseEnvelope.failure(
                "gateway",
                "DataForSEO credentials not configured",
                code="CREDENTIALS_MISSING",
                warnings=warnings,
            )

        operations = self.build_operations(request, caller_id, cancel)
        try:
            composition = await self.aggregator.compose(operations)
        except DataForSEOError as e:
            logger.error(f"Competitor analysis aborted: {e}")
            return ResponseEnvelope.from_gateway_error(e, warnings)

        warnings.extend(composition.warnings)
        report = self.build_report(request, composition)

        if request.uses_defaults and is_cacheable(warnings):
            self.result_cache.store(request.checksum, report, caller_id=caller_id)
        elif composition.warnings:
            logger.info(f"Not caching partial report ({len(composition.warnings)} failed sub-operations)")

        if len(composition.failed) < len(operations):
            self.quota.commit(caller_id, FREE_COMPETITOR_REPORTS, decision)

        return ResponseEnvelope.success({**report, "cached": False}, warnings)

    def build_operations(
        self,
        request: CompetitorRequest,
        caller_id: Optional[str],
        cancel: Optional[CancelToken] = None,
    ) -> List[SubOperation]:
        operations = []
        for side in SIDES:
            domain = getattr(request, side)
            operations.append(SubOperation(
                name=f"keywords_{side}",
                run=lambda domain=domain: fetch_ranked_keywords(
                    self.client, domain, request.location_code, request.language_code, request.limit,
                    caller_id=caller_id, module=MODULE, cancel=cancel,
                ),
                default=[],
            ))
        for side in SIDES:
            domain = getattr(request, side)
            operations.append(SubOperation(
                name=f"backlinks_{side}",
                run=lambda domain=domain: fetch_backlink_summary(
                    self.client, domain, caller_id=caller_id, module=MODULE, cancel=cancel,
                ),
                default=EMPTY_BACKLINK_SUMMARY,
            ))
        for side in SIDES:
            domain = getattr(request, side)
            operations.append(SubOperation(
                name=f"onpage_{side}",
                run=lambda domain=domain: fetch_onpage_summary(
                    self.poller, domain, caller_id=caller_id, module=MODULE,
                    max_crawl_pages=self.max_crawl_pages, cancel=cancel,
                ),
                default=EMPTY_ONPAGE_SUMMARY,
                error_reason=FailureReason.UNAVAILABLE,
            ))
        return operations

    def build_report(self, request: CompetitorRequest, composition: Composition) -> Dict[str, Any]:
        values = composition.values
        return {
            "your_domain": request.your_domain,
            "competitor_domain": request.competitor_domain,
            "params": request.params(),
            "keyword_gap_list": compute_keyword_gap(
                values["keywords_your_domain"],
                values["keywords_competitor_domain"],
            ),
            "backlink_summary": {side: values[f"backlinks_{side}"] for side in SIDES},
            "onpage_summary": {side: values[f"onpage_{side}"] for side in SIDES},
            "analyzed_at": self._clock().isoformat(),
        }

    def _cached_report(self, request: CompetitorRequest, caller_id: str) -> Optional[Dict[str, Any]]:
        entry = self.result_cache.lookup(request.checksum)
        if entry is not None:
            return {**entry.payload, "cached": True, "cached_at": entry.created_at.isoformat()}

        if self.legacy_cache is None:
            return None

        legacy = self.legacy_cache.lookup_recent(caller_id, request.your_domain, request.competitor_domain)
        if legacy is None:
            return None

        return {
            "your_domain": request.your_domain,
            "competitor_domain": request.competitor_domain,
            "params": request.params(),
            **legacy,
            "cached": True,
        }
