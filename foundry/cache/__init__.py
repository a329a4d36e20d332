"""
Caching Package

Request-level caching for expensive multi-call reports:
- checksum: deterministic request keys
- result_cache: shared checksum cache (canonical)
- analysis_cache: legacy per-caller fallback (read-only)
"""

from .config import CacheTTL, CACHE_BYPASS_WARNING
from .checksum import competitor_checksum
from .result_cache import ResultCache, CacheEntry, is_cacheable
from .analysis_cache import AnalysisCache

__all__ = [
    "CacheTTL",
    "CACHE_BYPASS_WARNING",
    "competitor_checksum",
    "ResultCache",
    "CacheEntry",
    "is_cacheable",
    "AnalysisCache",
]
