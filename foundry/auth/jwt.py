"""
JWT Token Validation for Supabase Auth

Turns a bearer token into a caller identity. Supports the project's shared
secret (HS256) and asymmetric keys published at the Supabase JWKS endpoint.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWTError, PyJWKClient

from .config import AuthConfig, get_auth_config

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = {"RS256", "RS384", "RS512", "ES256", "ES384", "ES512", "PS256", "PS384", "PS512"}


class JWTError(Exception):
    """Custom JWT validation error."""
    pass


@dataclass(frozen=True)
class CallerIdentity:
    """Who is making the request, as far as quotas and usage logs care."""
    caller_id: str
    email: Optional[str] = None
    role: str = "authenticated"


@lru_cache(maxsize=1)
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Get cached JWKS client for fetching public keys."""
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)


def get_verification_key(token: str, config: AuthConfig) -> Any:
    if config.jwt_algorithm in ASYMMETRIC_ALGORITHMS:
        if not config.jwks_url:
            raise JWTError(f"SUPABASE_URL required for {config.jwt_algorithm} algorithm")
        try:
            return get_jwks_client(config.jwks_url).get_signing_key_from_jwt(token).key
        except PyJWTError as e:
            logger.error(f"Failed to fetch JWKS from {config.jwks_url}: {e}")
            raise JWTError(f"Failed to fetch public key from Supabase: {e}")

    if not config.supabase_jwt_secret:
        raise JWTError("SUPABASE_JWT_SECRET not configured")
    return config.supabase_jwt_secret


def verify_supabase_token(token: str, config: Optional[AuthConfig] = None) -> Dict[str, Any]:
    """
    Verify and decode a Supabase JWT token.

    Args:
        token: The JWT token from the Authorization header
        config: Auth configuration (defaults to environment)

    Returns:
        Decoded token payload

    Raises:
        JWTError: If token is invalid, expired, or malformed
    """
    config = config or get_auth_config()

    try:
        payload = jwt.decode(
            token,
            get_verification_key(token, config),
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise JWTError("Token has expired")
    except jwt.InvalidAudienceError:
        raise JWTError("Invalid token audience")
    except jwt.InvalidSignatureError:
        raise JWTError("Invalid token signature")
    except jwt.InvalidAlgorithmError:
        raise JWTError(f"JWT algorithm mismatch: server expects '{config.jwt_algorithm}'")
    except jwt.DecodeError as e:
        raise JWTError(f"Token decode error: {e}")
    except PyJWTError as e:
        raise JWTError(f"Token validation error: {e}")

    if not payload.get("sub"):
        raise JWTError("Token missing 'sub' claim (user ID)")

    return payload


def identity_from_token(token: str, config: Optional[AuthConfig] = None) -> CallerIdentity:
    payload = verify_supabase_token(token, config)
    return CallerIdentity(
        caller_id=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role", "authenticated"),
    )
