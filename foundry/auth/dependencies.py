"""
FastAPI Authentication Dependencies

Resolves the caller identity from the bearer token. Handlers answer with an
in-band ``UNAUTHORIZED`` envelope instead of an HTTP 401, so this dependency
never raises; it reports what went wrong instead.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import AuthConfig, get_auth_config
from .jwt import CallerIdentity, JWTError, identity_from_token

logger = logging.getLogger(__name__)

# HTTP Bearer token extraction
security = HTTPBearer(auto_error=False)


@dataclass
class AuthResult:
    identity: Optional[CallerIdentity] = None
    error: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    config: AuthConfig = Depends(get_auth_config),
) -> AuthResult:
    """Verify the bearer token, if any, and return the caller identity."""
    if not config.auth_enabled:
        return AuthResult(identity=CallerIdentity(caller_id=config.dev_caller_id, role="dev"))

    if not credentials:
        return AuthResult(error="Not authenticated")

    try:
        return AuthResult(identity=identity_from_token(credentials.credentials, config))
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        return AuthResult(error=str(e))
