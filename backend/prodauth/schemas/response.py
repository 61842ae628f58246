"""Generic API response schemas"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict

from pydantic import BaseModel, Field


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None
    path: Optional[str] = None
    timestamp: str = Field(default_factory=_timestamp)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    readiness: Dict[str, Any] = Field(default_factory=dict)
