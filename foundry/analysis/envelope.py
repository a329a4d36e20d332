"""
Caller-facing response envelope.

Every handler answers HTTP 200 with this shape; success and failure are
carried in-band:

    {"ok": true,  "warnings": [...], "data": {...}}
    {"ok": false, "warnings": [...], "error": {"stage": "quota", "message": "...", "code": "LIMIT_EXCEEDED"}}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from foundry.gateway.errors import DataForSEOError


class InvalidRequestError(ValueError):
    """Caller input that cannot be repaired with a default."""


class ErrorDetail(BaseModel):
    stage: str = Field(..., description="Pipeline stage that failed (validation, auth, quota, gateway, upstream)")
    message: str
    code: Optional[str] = None


class ResponseEnvelope(BaseModel):
    ok: bool
    warnings: List[str] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def success(cls, data: Dict[str, Any], warnings: Optional[List[str]] = None) -> "ResponseEnvelope":
        return cls(ok=True, data=data, warnings=list(warnings or []))

    @classmethod
    def failure(
        cls,
        stage: str,
        message: str,
        code: Optional[str] = None,
        warnings: Optional[List[str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> "ResponseEnvelope":
        return cls(
            ok=False,
            warnings=list(warnings or []),
            data=data,
            error=ErrorDetail(stage=stage, message=message, code=code),
        )

    @classmethod
    def invalid(cls, message: str) -> "ResponseEnvelope":
        return cls.failure("validation", message, code="INVALID_INPUT")

    @classmethod
    def quota_unavailable(cls, message: str) -> "ResponseEnvelope":
        return cls.failure("quota", message, code="QUOTA_UNAVAILABLE")

    @classmethod
    def from_gateway_error(cls, error: DataForSEOError, warnings: Optional[List[str]] = None) -> "ResponseEnvelope":
        return cls.failure("gateway", str(error), code=error.code, warnings=warnings)
