"""Project access routes - what the current user can reach"""

from fastapi import APIRouter, Depends, Query, Request

from prodauth.api.deps import authorize_request, get_current_user, get_permission_service, ref_from_body
from prodauth.core.exceptions import ForbiddenError
from prodauth.models.permission import ProjectRole
from prodauth.models.user import User
from prodauth.schemas.access import ParentAccessRequest
from prodauth.services.permission_service import PermissionService, ResourceKind, ResourceRef

router = APIRouter()


@router.get("/projects")
def accessible_projects(
    current_user: User = Depends(get_current_user),
    permissions: PermissionService = Depends(get_permission_service),
):
    """Ids of every project the user can see (all projects for admins)"""
    return {"project_ids": permissions.get_accessible_project_ids(current_user)}


@router.get("/{kind}/{resource_id}")
def check_access(
    kind: ResourceKind,
    resource_id: int,
    request: Request,
    min_role: ProjectRole = Query(ProjectRole.VIEWER),
    current_user: User = Depends(get_current_user),
    permissions: PermissionService = Depends(get_permission_service),
):
    """
    Resolve a resource to its project and check the user's role there

    Responds 403 without sufficient rights and 404 for dangling references.
    """
    ref = ResourceRef(kind, resource_id)
    authorize_request(request, current_user, permissions, min_role, ref)
    project_id = permissions.resolve_project(ref)
    role = permissions.get_project_role(current_user, project_id) if project_id else None
    return {
        "allowed": True,
        "resource": {"kind": kind.value, "id": resource_id},
        "project_id": project_id,
        "role": role.value if role else None,
        "required_role": min_role.value,
    }


@router.post("/create-check")
def check_create_access(
    body: ParentAccessRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    permissions: PermissionService = Depends(get_permission_service),
):
    """Whether the user may create an entity under the parent named in the body"""
    ref = ref_from_body(body.model_dump(exclude={"min_role"}))
    if ref is None:
        raise ForbiddenError(
            "no project context",
            "Could not determine project context",
            resource="body",
        )
    authorize_request(request, current_user, permissions, body.min_role, ref)
    return {
        "allowed": True,
        "parent": {"kind": ref.kind.value, "id": ref.id},
        "project_id": permissions.resolve_project(ref),
        "required_role": body.min_role.value,
    }
