"""
Authentication and Quota Package

- jwt: Supabase bearer token -> caller identity
- dependencies: FastAPI dependency exposing the caller identity
- quota: per-caller usage counters with rolling renewal
"""

from .config import AuthConfig, get_auth_config
from .jwt import CallerIdentity, JWTError, identity_from_token, verify_supabase_token
from .quota import (
    FREE_COMPETITOR_REPORTS,
    SERP_LOOKUPS,
    SEARCH_VOLUME_LOOKUPS,
    QuotaDecision,
    QuotaGate,
    QuotaState,
    QuotaUnavailable,
    evaluate_quota,
)

__all__ = [
    "AuthConfig",
    "get_auth_config",
    "CallerIdentity",
    "JWTError",
    "identity_from_token",
    "verify_supabase_token",
    "FREE_COMPETITOR_REPORTS",
    "SERP_LOOKUPS",
    "SEARCH_VOLUME_LOOKUPS",
    "QuotaDecision",
    "QuotaGate",
    "QuotaState",
    "QuotaUnavailable",
    "evaluate_quota",
]
