"""Authentication and session schemas"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class UserLogin(BaseModel):
    """User login schema; email may be missing and is then tracked as 'unknown'"""
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """User response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class TokenResponse(BaseModel):
    """JWT token pair response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    """Revoke the presented token's family, or every session with all_sessions"""
    refresh_token: Optional[str] = None
    all_sessions: bool = False


class SessionResponse(BaseModel):
    """An active refresh token, shown as a signed-in session"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    family: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    expires_at: datetime
