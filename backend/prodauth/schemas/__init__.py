"""Pydantic schemas for API validation"""

from prodauth.schemas.user import (
    UserLogin,
    UserResponse,
    TokenResponse,
    RefreshTokenRequest,
    LogoutRequest,
    SessionResponse,
)
from prodauth.schemas.response import ErrorResponse, HealthResponse
from prodauth.schemas.audit import AuditEventResponse

__all__ = [
    "UserLogin", "UserResponse", "TokenResponse", "RefreshTokenRequest", "LogoutRequest", "SessionResponse",
    "AuditEventResponse",
    "ErrorResponse", "HealthResponse",
]
