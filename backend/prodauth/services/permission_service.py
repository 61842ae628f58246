"""Project-scoped access control.

Child entities only carry a reference to their immediate parent, so finding
the project that owns a shot means walking shot -> sequence -> episode ->
project. The walk is driven by the ``_HOPS`` table below: each entry resolves
one level and returns the parent reference. Lookup misses raise
``ResourceNotFoundError`` naming the missing level, which callers can tell
apart from ``ForbiddenError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from prodauth.core.exceptions import ForbiddenError, ResourceNotFoundError
from prodauth.models.permission import ProjectPermission, ProjectRole
from prodauth.services.hierarchy_store import HierarchyStore

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    PROJECT = "project"
    EPISODE = "episode"
    SEQUENCE = "sequence"
    SHOT = "shot"
    ASSET = "asset"
    VERSION = "version"


@dataclass(frozen=True)
class ResourceRef:
    """A target resource; id is None when the request did not carry one."""

    kind: ResourceKind
    id: Optional[int]

    @classmethod
    def of(cls, kind: Union[str, ResourceKind], raw_id: Any) -> "ResourceRef":
        """Build a reference from loose input such as a path parameter."""
        if not isinstance(kind, ResourceKind):
            kind = ResourceKind(kind.strip().lower())
        return cls(kind, _parse_id(raw_id))


def _parse_id(raw_id: Any) -> Optional[int]:
    if raw_id is None or isinstance(raw_id, bool):
        return None
    try:
        value = int(raw_id)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _episode_hop(store: HierarchyStore, episode_id: int) -> Optional[ResourceRef]:
    project_id = store.episode_project_id(episode_id)
    if project_id is None:
        raise ResourceNotFoundError("Episode", episode_id)
    return ResourceRef(ResourceKind.PROJECT, project_id)


def _sequence_hop(store: HierarchyStore, sequence_id: int) -> Optional[ResourceRef]:
    episode_id = store.sequence_episode_id(sequence_id)
    if episode_id is None:
        raise ResourceNotFoundError("Sequence", sequence_id)
    return ResourceRef(ResourceKind.EPISODE, episode_id)


def _shot_hop(store: HierarchyStore, shot_id: int) -> Optional[ResourceRef]:
    sequence_id = store.shot_sequence_id(shot_id)
    if sequence_id is None:
        raise ResourceNotFoundError("Shot", shot_id)
    return ResourceRef(ResourceKind.SEQUENCE, sequence_id)


def _asset_hop(store: HierarchyStore, asset_id: int) -> Optional[ResourceRef]:
    project_id = store.asset_project_id(asset_id)
    if project_id is None:
        raise ResourceNotFoundError("Asset", asset_id)
    return ResourceRef(ResourceKind.PROJECT, project_id)


def _version_hop(store: HierarchyStore, version_id: int) -> Optional[ResourceRef]:
    owner = store.version_owner(version_id)
    if owner is None:
        raise ResourceNotFoundError("Version", version_id)
    entity_type, entity_id = owner
    try:
        kind = ResourceKind((entity_type or "").strip().lower())
    except ValueError:
        return None
    if kind is ResourceKind.VERSION:
        return None
    return ResourceRef(kind, _parse_id(entity_id))


Hop = Callable[[HierarchyStore, int], Optional[ResourceRef]]

_HOPS: Dict[ResourceKind, Hop] = {
    ResourceKind.EPISODE: _episode_hop,
    ResourceKind.SEQUENCE: _sequence_hop,
    ResourceKind.SHOT: _shot_hop,
    ResourceKind.ASSET: _asset_hop,
    ResourceKind.VERSION: _version_hop,
}

# version -> shot -> sequence -> episode -> project
_MAX_HOPS = len(_HOPS)


def is_admin(actor: Any) -> bool:
    return actor is not None and getattr(actor, "role", None) == "admin"


class PermissionService:
    """
    Resolve resources to projects and check project grants.

    Instances are cheap and meant to live for one request. Passing
    ``cache={}`` memoizes ``(kind, id) -> project_id`` for that lifetime;
    call ``invalidate`` after any write that changes parentage.
    """

    def __init__(self, db: Session, cache: Optional[Dict[Tuple[ResourceKind, int], int]] = None) -> None:
        self.store = HierarchyStore(db)
        self._cache = cache

    def resolve_project(self, ref: ResourceRef) -> Optional[int]:
        """
        Map a resource to the id of the project that owns it.

        Returns None when the reference cannot be resolved (no id, or a
        version attached to an unknown entity type).

        Raises:
            ResourceNotFoundError: a referenced row is missing at some hop
        """
        visited: List[ResourceRef] = []
        current: Optional[ResourceRef] = ref

        for _ in range(_MAX_HOPS + 1):
            if current is None or current.id is None:
                return None

            if self._cache is not None and (current.kind, current.id) in self._cache:
                project_id = self._cache[(current.kind, current.id)]
                self._remember(visited, project_id)
                return project_id

            if current.kind is ResourceKind.PROJECT:
                self._remember(visited, current.id)
                return current.id

            visited.append(current)
            current = _HOPS[current.kind](self.store, current.id)

        logger.error("Hierarchy walk for %s exceeded %s hops", ref, _MAX_HOPS)
        return None

    def _remember(self, visited: List[ResourceRef], project_id: int) -> None:
        if self._cache is None:
            return
        for ref in visited:
            self._cache[(ref.kind, ref.id)] = project_id

    def invalidate(self, kind: Optional[ResourceKind] = None, resource_id: Optional[int] = None) -> None:
        """
        Drop cached resolutions; with no arguments the whole cache is cleared.

        A walk caches every node it passed through, so descendants of the
        invalidated node share its project id. Every entry resolved to that
        project is dropped with it.
        """
        if self._cache is None:
            return
        if kind is None:
            self._cache.clear()
            return
        kind = ResourceKind(kind)
        if kind is ResourceKind.PROJECT:
            project_id = resource_id
        else:
            project_id = self._cache.pop((kind, resource_id), None)
        if project_id is None:
            return
        stale = [key for key, cached in self._cache.items() if cached == project_id]
        for key in stale:
            del self._cache[key]

    def get_project_role(self, actor: Any, project_id: int) -> Optional[ProjectRole]:
        if is_admin(actor):
            return ProjectRole.OWNER
        grant = self.store.grant(actor.id, project_id)
        return grant.project_role if grant else None

    def has_project_permission(
        self,
        actor: Any,
        project_id: int,
        min_role: ProjectRole = ProjectRole.VIEWER,
    ) -> bool:
        role = self.get_project_role(actor, project_id)
        return role is not None and role.satisfies(min_role)

    def verify_project_access(
        self,
        actor: Any,
        project_id: int,
        min_role: ProjectRole = ProjectRole.VIEWER,
    ) -> Optional[ProjectPermission]:
        return self.authorize(actor, min_role, ResourceRef(ResourceKind.PROJECT, project_id))

    def get_accessible_project_ids(self, actor: Any) -> List[int]:
        if is_admin(actor):
            return self.store.all_project_ids()
        return self.store.granted_project_ids(actor.id)

    def authorize(
        self,
        actor: Any,
        required_role: ProjectRole,
        ref: ResourceRef,
    ) -> Optional[ProjectPermission]:
        """
        Require at least ``required_role`` on the project owning ``ref``.

        Returns the matching grant (None for administrators, who bypass
        grants entirely).

        Raises:
            ForbiddenError: no project context, no grant, or a lower role
            ResourceNotFoundError: dangling reference in the hierarchy
        """
        if actor is None:
            raise ForbiddenError("not authenticated", "User not authenticated")

        if is_admin(actor):
            return None

        required = ProjectRole(required_role)
        project_id = self.resolve_project(ref)
        if project_id is None:
            raise ForbiddenError(
                "no project context",
                "Could not determine project context",
                resource=ref.kind.value,
            )

        grant = self.store.grant(actor.id, project_id)
        if grant is None:
            raise ForbiddenError(
                "no access to project",
                "You do not have access to this project",
                project_id=project_id,
            )

        if not grant.project_role.satisfies(required):
            raise ForbiddenError(
                "insufficient role",
                f"Insufficient project permissions. Required: {required.value}, "
                f"You have: {grant.role}",
                project_id=project_id,
                required_role=required.value,
                actual_role=grant.role,
            )

        return grant
