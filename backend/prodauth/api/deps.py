"""API dependencies - authentication and project authorization"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Any, Callable, Mapping, Optional, Union

from prodauth.core.database import get_db
from prodauth.core.metrics import ACCESS_DENIED
from prodauth.core.security import decode_access_token
from prodauth.core.exceptions import AuthenticationError, AuthorizationError, ForbiddenError
from prodauth.models.permission import ProjectPermission, ProjectRole
from prodauth.models.user import User
from prodauth.services.permission_service import PermissionService, ResourceKind, ResourceRef
from prodauth.services.user_service import user_service

# HTTP Bearer token scheme
security = HTTPBearer()


def client_ip(request: Any) -> str:
    """Network origin of a request; 'unknown' when the transport has none"""
    client = getattr(request, "client", None)
    host = getattr(client, "host", None) if client else None
    return host or "unknown"


def user_agent(request: Any) -> Optional[str]:
    headers = getattr(request, "headers", None) or {}
    return headers.get("user-agent")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT access token

    Args:
        credentials: HTTP Bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        AuthenticationError: If token is invalid or user not found
    """
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = user_service.get_user_by_id(db, int(user_id))
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user


def get_permission_service(db: Session = Depends(get_db)) -> PermissionService:
    """Request-scoped resolver; its cache lives only as long as the request"""
    return PermissionService(db, cache={})


def authorize_request(
    request: Any,
    current_user: User,
    permissions: PermissionService,
    min_role: ProjectRole,
    ref: ResourceRef,
) -> Optional[ProjectPermission]:
    """Run the project check and attach the grant to request.state"""
    try:
        permission = permissions.authorize(current_user, min_role, ref)
    except ForbiddenError as exc:
        ACCESS_DENIED.labels(exc.reason).inc()
        raise
    state = getattr(request, "state", None)
    if state is not None:
        state.project_permission = permission
    return permission


def require_project_role(
    min_role: ProjectRole,
    kind: Union[str, ResourceKind],
    param: str = "id",
) -> Callable[..., Optional[ProjectPermission]]:
    """
    Build a dependency enforcing ``min_role`` on the project owning the
    resource named by path parameter ``param``.

    Example:
        @router.patch("/shots/{id}")
        def update_shot(id: int, _=Depends(require_project_role(ProjectRole.CONTRIBUTOR, "shot"))):
            ...
    """
    resource_kind = ResourceKind(kind)

    def dependency(
        request: Request,
        current_user: User = Depends(get_current_user),
        permissions: PermissionService = Depends(get_permission_service),
    ) -> Optional[ProjectPermission]:
        path_params: Mapping[str, Any] = getattr(request, "path_params", None) or {}
        ref = ResourceRef.of(resource_kind, path_params.get(param))
        return authorize_request(request, current_user, permissions, min_role, ref)

    return dependency


def ref_from_body(body: Mapping[str, Any]) -> Optional[ResourceRef]:
    """
    Reference for create routes, where the parent comes in the request body.

    An explicit project_id wins over episode_id, which wins over sequence_id.
    """
    if body.get("project_id") is not None:
        return ResourceRef.of(ResourceKind.PROJECT, body.get("project_id"))
    if body.get("episode_id") is not None:
        return ResourceRef.of(ResourceKind.EPISODE, body.get("episode_id"))
    if body.get("sequence_id") is not None:
        return ResourceRef.of(ResourceKind.SEQUENCE, body.get("sequence_id"))
    return None
