"""
Analysis Package

Caller-facing services built on the gateway:
- competitor: six-source competitor report with partial-failure composition
- serp: organic SERP analysis
- search_volume: Google Ads search volume
"""

from .aggregator import Aggregator, Composition, compose
from .competitor import CompetitorAnalysisService, CompetitorRequest
from .envelope import ErrorDetail, InvalidRequestError, ResponseEnvelope
from .outcomes import Failure, FailureReason, SubOperation, SubOperationOutcome, Success
from .search_volume import SearchVolumeRequest, SearchVolumeService
from .serp import SerpAnalysisService, SerpRequest

__all__ = [
    # Composition
    "Aggregator",
    "Composition",
    "compose",
    "Failure",
    "FailureReason",
    "SubOperation",
    "SubOperationOutcome",
    "Success",

    # Envelope
    "ErrorDetail",
    "InvalidRequestError",
    "ResponseEnvelope",

    # Services
    "CompetitorAnalysisService",
    "CompetitorRequest",
    "SearchVolumeRequest",
    "SearchVolumeService",
    "SerpAnalysisService",
    "SerpRequest",
]
