"""
Keyword Research API

Endpoints:
- POST /api/competitor-analyze  competitor report (keyword gap, backlinks, on-page)
- POST /api/serp-analysis       organic SERP for one keyword
- POST /api/search-volume       Google Ads search volume for up to 1000 keywords

Every endpoint answers HTTP 200 with a ``ResponseEnvelope``; failures are
reported in-band through ``ok``/``error``.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError

from foundry.analysis.competitor import CompetitorRequest
from foundry.analysis.envelope import InvalidRequestError, ResponseEnvelope
from foundry.analysis.search_volume import SearchVolumeRequest
from foundry.analysis.serp import SerpRequest
from foundry.auth.dependencies import AuthResult, get_caller
from foundry.gateway.cancellation import CancelToken
from foundry.services import GatewayServices, get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Keyword Research"])


def _unauthorized(auth: AuthResult) -> ResponseEnvelope:
    return ResponseEnvelope.failure("auth", auth.error or "Not authenticated", code="UNAUTHORIZED")


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in error.errors()
    )


@contextmanager
def request_deadline(services: GatewayServices) -> Iterator[CancelToken]:
    """Cancel upstream work still running when the request deadline passes."""
    token = CancelToken.with_deadline(services.settings.REQUEST_DEADLINE_SECONDS)
    try:
        yield token
    finally:
        token.release()


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/competitor-analyze", response_model=ResponseEnvelope)
async def competitor_analyze(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    auth: AuthResult = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
) -> ResponseEnvelope:
    """Compare the caller's domain against one competitor."""
    if not auth.authenticated:
        return _unauthorized(auth)
    payload = payload or {}

    try:
        request = CompetitorRequest.from_raw(
            payload.get("your_domain"),
            payload.get("competitor_domain"),
            location_code=payload.get("location_code"),
            language_code=payload.get("language_code"),
            limit=payload.get("limit"),
        )
    except InvalidRequestError as e:
        return ResponseEnvelope.invalid(str(e))

    with request_deadline(services) as cancel:
        return await services.competitor.analyze(request, auth.identity.caller_id, cancel=cancel)


@router.post("/serp-analysis", response_model=ResponseEnvelope)
async def serp_analysis(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    auth: AuthResult = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
) -> ResponseEnvelope:
    """Top organic results for a keyword."""
    if not auth.authenticated:
        return _unauthorized(auth)
    payload = payload or {}

    try:
        request = SerpRequest(**payload)
    except ValidationError as e:
        return ResponseEnvelope.invalid(_describe(e))

    with request_deadline(services) as cancel:
        return await services.serp.analyze(request, auth.identity.caller_id, cancel=cancel)


@router.post("/search-volume", response_model=ResponseEnvelope)
async def search_volume(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    auth: AuthResult = Depends(get_caller),
    services: GatewayServices = Depends(get_services),
) -> ResponseEnvelope:
    """Search volume for a batch of keywords."""
    if not auth.authenticated:
        return _unauthorized(auth)
    payload = payload or {}

    try:
        request = SearchVolumeRequest(**payload)
    except ValidationError as e:
        return ResponseEnvelope.invalid(_describe(e))

    with request_deadline(services) as cancel:
        return await services.search_volume.lookup(request, auth.identity.caller_id, cancel=cancel)
