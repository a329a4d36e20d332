"""
Cache Configuration

Freshness windows and the parameter set that is eligible for caching.
"""

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration by data type.

    Competitor reports are expensive (six upstream calls plus a crawl) but
    rankings move slowly, so a day-old report is still useful.
    """

    COMPETITOR_REPORT: timedelta = timedelta(hours=24)
    LEGACY_ANALYSIS: timedelta = timedelta(hours=24)


# Warning attached when a request opts out of caching by using custom params
CACHE_BYPASS_WARNING = "cache_bypass_custom_params"
