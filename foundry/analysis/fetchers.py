"""
Competitor data fetchers.

One coroutine per upstream source used by the competitor report. Each
returns normalized data or raises; turning failures into defaults and
warnings is the aggregator's job, not theirs.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from foundry.gateway.cancellation import CancelToken
from foundry.gateway.client import DataForSEOClient
from foundry.gateway.errors import DataForSEOError
from foundry.gateway.models import GatewayRequest, GatewayResponse, GatewayTask
from foundry.gateway.poller import TaskPoller
from .outcomes import Failure, FailureReason

logger = logging.getLogger(__name__)

MODULE = "competitor-analyze"

RANKED_KEYWORDS_ENDPOINT = "/dataforseo_labs/google/ranked_keywords/live"
BACKLINKS_SUMMARY_ENDPOINT = "/backlinks/summary/live"
ONPAGE_TASK_POST_ENDPOINT = "/on_page/task_post"
ONPAGE_SUMMARY_ENDPOINT = "/on_page/summary"

ONPAGE_MAX_CRAWL_PAGES = 50

EMPTY_BACKLINK_SUMMARY = {"backlinks": 0, "referring_domains": 0, "referring_ips": 0}
EMPTY_ONPAGE_SUMMARY = {
    "pages_crawled": 0,
    "internal_links": 0,
    "external_links": 0,
    "images": 0,
    "tech_score": 0,
}


def require_task(response: GatewayResponse, endpoint: str) -> GatewayTask:
    """First task of a response, raising if it is missing or failed."""
    task = response.first_task
    if task is None:
        raise DataForSEOError(f"No tasks returned from {endpoint}", status_code=response.http_status, response=response.raw)
    if not task.ok:
        raise DataForSEOError(
            f"Task failed in {endpoint}: {task.status_message or 'unknown error'} (status: {task.status_code})",
            status_code=task.status_code,
            response=response.raw,
        )
    return task


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


# ============================================================================
# RANKED KEYWORDS
# ============================================================================

def normalize_ranked_keyword(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Flatten a ranked_keywords item.

    Labs responses nest everything under ``keyword_data`` and
    ``ranked_serp_element.serp_item``; flattened shapes are accepted too.
    """
    if not isinstance(item, dict):
        return None

    keyword_data = item.get("keyword_data") or {}
    keyword_info = keyword_data.get("keyword_info") or {}
    serp_item = (item.get("ranked_serp_element") or {}).get("serp_item") or {}

    keyword = item.get("keyword") or keyword_data.get("keyword")
    if not keyword:
        return None

    position = (
        item.get("rank_absolute")
        or item.get("rank")
        or serp_item.get("rank_absolute")
        or serp_item.get("rank_group")
    )

    return {
        "keyword": keyword,
        "position": position,
        "search_volume": item.get("search_volume") or keyword_info.get("search_volume") or 0,
        "cpc": item.get("cpc") if item.get("cpc") is not None else keyword_info.get("cpc"),
        "ranking_url": serp_item.get("url") or keyword_data.get("url") or item.get("url"),
    }


async def fetch_ranked_keywords(
    client: DataForSEOClient,
    domain: str,
    location_code: int,
    language_code: str,
    limit: int,
    caller_id: Optional[str] = None,
    module: str = MODULE,
    cancel: Optional[CancelToken] = None,
) -> List[Dict[str, Any]]:
    """Keywords ``domain`` ranks for, normalized."""
    response = await client.call(GatewayRequest(
        endpoint=RANKED_KEYWORDS_ENDPOINT,
        payload=[{
            "target": domain,
            "location_code": location_code,
            "language_code": language_code,
            "limit": limit,
        }],
        module=module,
        caller_id=caller_id,
    ), cancel=cancel)

    task = require_task(response, RANKED_KEYWORDS_ENDPOINT)
    keywords = [k for k in (normalize_ranked_keyword(item) for item in task.items) if k]
    logger.info(f"Ranked keywords for {domain}: {len(keywords)}")
    return keywords


def compute_keyword_gap(
    your_keywords: List[Dict[str, Any]],
    competitor_keywords: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Competitor keywords the caller does not rank for.

    Keywords are compared as exact strings, so "Trail Shoes" and
    "trail shoes" are different keywords. Competitor order is preserved.
    """
    yours = {k.get("keyword") for k in your_keywords}

    return [
        {
            "keyword": item.get("keyword"),
            "position": item.get("position"),
            "search_volume": item.get("search_volume") or 0,
            "cpc": item.get("cpc") or 0,
            "ranking_url": item.get("ranking_url"),
        }
        for item in competitor_keywords
        if item.get("keyword") not in yours
    ]


# ============================================================================
# BACKLINKS
# ============================================================================

async def fetch_backlink_summary(
    client: DataForSEOClient,
    domain: str,
    caller_id: Optional[str] = None,
    module: str = MODULE,
    cancel: Optional[CancelToken] = None,
) -> Dict[str, int]:
    """Backlink totals for ``domain`` including subdomains."""
    response = await client.call(GatewayRequest(
        endpoint=BACKLINKS_SUMMARY_ENDPOINT,
        payload=[{"target": domain, "include_subdomains": True}],
        module=module,
        caller_id=caller_id,
    ), cancel=cancel)

    task = require_task(response, BACKLINKS_SUMMARY_ENDPOINT)
    result = task.first_result or {}
    summary = {
        "backlinks": _int(result.get("backlinks")),
        "referring_domains": _int(result.get("referring_domains")),
        "referring_ips": _int(result.get("referring_ips")),
    }
    logger.info(f"Backlink summary for {domain}: {summary}")
    return summary


# ============================================================================
# ON-PAGE
# ============================================================================

def map_onpage_summary(result: Dict[str, Any]) -> Dict[str, Any]:
    """Map an on_page summary result onto the report's technical summary."""
    crawl_status = result.get("crawl_status") or {}
    page_metrics = result.get("page_metrics") or {}

    return {
        "pages_crawled": _int(result.get("crawled_pages") or crawl_status.get("pages_crawled")),
        "internal_links": _int(result.get("links_internal") or page_metrics.get("links_internal")),
        "external_links": _int(result.get("links_external") or page_metrics.get("links_external")),
        "images": _int(result.get("images") or page_metrics.get("images")),
        "tech_score": result.get("onpage_score") or page_metrics.get("onpage_score") or 0,
    }


async def fetch_onpage_summary(
    poller: TaskPoller,
    domain: str,
    caller_id: Optional[str] = None,
    module: str = MODULE,
    max_crawl_pages: int = ONPAGE_MAX_CRAWL_PAGES,
    cancel: Optional[CancelToken] = None,
) -> Union[Dict[str, Any], Failure]:
    """
    Crawl ``domain`` and summarize it.

    Returns a ``Failure(TIMEOUT)`` when the crawl does not finish within the
    poll budget; raises on creation or polling errors.
    """
    poll = await poller.run(
        ONPAGE_TASK_POST_ENDPOINT,
        [{
            "target": f"https://{domain}",
            "max_crawl_pages": max_crawl_pages,
            "force_sitewide_checks": True,
        }],
        ONPAGE_SUMMARY_ENDPOINT,
        module,
        caller_id=caller_id,
        cancel=cancel,
    )

    if poll.timed_out:
        return Failure(
            reason=FailureReason.TIMEOUT,
            code="POLL_TIMEOUT",
            message=f"On-page crawl for {domain} not finished after {poll.task.polls} polls",
        )

    return map_onpage_summary(poll.result or {})
