"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password"""
    def __init__(self):
        super().__init__("Invalid email or password")


class TokenNotFoundError(AuthenticationError):
    """Refresh token is not on record"""
    def __init__(self, message: str = "Refresh token not recognized"):
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    """Token has expired"""
    def __init__(self):
        super().__init__("Token has expired")


class TokenRevokedError(AuthenticationError):
    """Refresh token was explicitly revoked"""
    def __init__(self):
        super().__init__("Token has been revoked")


class TokenInvalidError(AuthenticationError):
    """Token is malformed or its secret does not match"""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ReplayDetectedError(AuthenticationError):
    """A consumed refresh token was presented again; its family is revoked"""
    def __init__(self, family: str, revoked: int = 0, owner_id: Optional[int] = None):
        super().__init__(
            "Refresh token reuse detected. All sessions of this login have been revoked; "
            "please sign in again.",
            details={"family_revoked": True, "revoked_tokens": revoked},
        )
        self.family = family
        self.revoked = revoked
        self.owner_id = owner_id


class LoginLockedError(BaseAPIException):
    """Too many failed logins for one identity from one origin"""
    def __init__(self, remaining_minutes: int, attempts: int, locked_until: str):
        super().__init__(
            "Too many failed login attempts. Account temporarily locked. "
            f"Try again in {remaining_minutes} minute(s).",
            status_code=429,
            details={
                "remaining_minutes": remaining_minutes,
                "attempts": attempts,
                "locked_until": locked_until,
            },
        )
        self.remaining_minutes = remaining_minutes
        self.attempts = attempts
        self.locked_until = locked_until


class OriginThrottledError(BaseAPIException):
    """Too many failed logins from one network origin across identities"""
    def __init__(self, origin: str, attempts: int):
        super().__init__(
            "Too many failed login attempts from this IP address. Please try again later.",
            status_code=429,
            details={"origin": origin, "attempts": attempts},
        )
        self.origin = origin
        self.attempts = attempts


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


class ForbiddenError(AuthorizationError):
    """Authenticated, but no rights over the targeted project"""
    def __init__(self, reason: str, message: Optional[str] = None, **details: Any):
        super().__init__(message or reason, details={"reason": reason, **details})
        self.reason = reason


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str, resource_id: Optional[int] = None):
        label = resource if resource_id is None else f"{resource} {resource_id}"
        super().__init__(
            f"{label} not found",
            status_code=404,
            details={"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id
