from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from prodauth.api.deps import ref_from_body, require_project_role
from prodauth.api.v1 import access
from prodauth.core.exceptions import ForbiddenError, ResourceNotFoundError
from prodauth.models.hierarchy import Asset, Episode, Project, Sequence, Shot, Version
from prodauth.models.permission import ProjectPermission, ProjectRole
from prodauth.schemas.access import ParentAccessRequest
from prodauth.services.permission_service import PermissionService, ResourceKind, ResourceRef


@pytest.fixture
def tree(db):
    """One project with a full episode/sequence/shot chain, an asset and versions."""
    project = Project(code="PRJ", name="Feature")
    other_project = Project(code="OTH", name="Other")
    db.add_all([project, other_project])
    db.flush()

    episode = Episode(code="EP01", project_id=project.id)
    asset = Asset(code="hero", project_id=project.id)
    db.add_all([episode, asset])
    db.flush()

    sequence = Sequence(code="SQ010", episode_id=episode.id)
    db.add(sequence)
    db.flush()

    shot = Shot(code="SH0010", sequence_id=sequence.id)
    db.add(shot)
    db.flush()

    shot_version = Version(code="SH0010_v001", entity_type="shot", entity_id=shot.id)
    asset_version = Version(code="hero_v003", entity_type="Asset", entity_id=asset.id)
    odd_version = Version(code="odd_v001", entity_type="playlist", entity_id=1)
    db.add_all([shot_version, asset_version, odd_version])
    db.commit()

    return SimpleNamespace(
        project=project,
        other_project=other_project,
        episode=episode,
        sequence=sequence,
        shot=shot,
        asset=asset,
        shot_version=shot_version,
        asset_version=asset_version,
        odd_version=odd_version,
    )


def _grant(db, user, project, role):
    db.add(ProjectPermission(user_id=user.id, project_id=project.id, role=role.value))
    db.commit()


def test_role_order():
    assert ProjectRole.OWNER.satisfies(ProjectRole.CONTRIBUTOR)
    assert ProjectRole.CONTRIBUTOR.satisfies(ProjectRole.CONTRIBUTOR)
    assert not ProjectRole.VIEWER.satisfies(ProjectRole.CONTRIBUTOR)
    assert ProjectRole.VIEWER.rank < ProjectRole.CONTRIBUTOR.rank < ProjectRole.OWNER.rank


def test_resource_ref_parses_loose_ids():
    assert ResourceRef.of("Shot", "12") == ResourceRef(ResourceKind.SHOT, 12)
    assert ResourceRef.of(ResourceKind.EPISODE, None).id is None
    assert ResourceRef.of("episode", "abc").id is None
    assert ResourceRef.of("episode", 0).id is None
    assert ResourceRef.of("episode", -3).id is None


def test_resolve_walks_each_level(db, tree):
    service = PermissionService(db)
    pid = tree.project.id

    assert service.resolve_project(ResourceRef(ResourceKind.PROJECT, pid)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.EPISODE, tree.episode.id)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.SEQUENCE, tree.sequence.id)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.SHOT, tree.shot.id)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.ASSET, tree.asset.id)) == pid


def test_resolve_version_follows_polymorphic_parent(db, tree):
    service = PermissionService(db)
    pid = tree.project.id

    assert service.resolve_project(ResourceRef(ResourceKind.VERSION, tree.shot_version.id)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.VERSION, tree.asset_version.id)) == pid
    assert service.resolve_project(ResourceRef(ResourceKind.VERSION, tree.odd_version.id)) is None


def test_resolve_without_id_has_no_context(db, tree):
    assert PermissionService(db).resolve_project(ResourceRef(ResourceKind.SHOT, None)) is None


def test_resolve_missing_rows_name_the_level(db, tree):
    service = PermissionService(db)

    with pytest.raises(ResourceNotFoundError) as missing_shot:
        service.resolve_project(ResourceRef(ResourceKind.SHOT, 9999))
    assert missing_shot.value.resource == "Shot"
    assert missing_shot.value.status_code == 404

    with pytest.raises(ResourceNotFoundError) as missing_version:
        service.resolve_project(ResourceRef(ResourceKind.VERSION, 9999))
    assert missing_version.value.resource == "Version"


def test_dangling_parent_reports_the_missing_parent(db, tree):
    orphan = Shot(code="SH9999", sequence_id=4242)
    db.add(orphan)
    db.commit()

    with pytest.raises(ResourceNotFoundError) as exc_info:
        PermissionService(db).resolve_project(ResourceRef(ResourceKind.SHOT, orphan.id))
    assert exc_info.value.resource == "Sequence"
    assert exc_info.value.resource_id == 4242
    assert exc_info.value.message == "Sequence 4242 not found"


def test_cache_short_circuits_and_invalidates(db, tree):
    cache = {}
    service = PermissionService(db, cache=cache)
    pid = tree.project.id

    assert service.resolve_project(ResourceRef(ResourceKind.SHOT, tree.shot.id)) == pid
    assert cache[(ResourceKind.SHOT, tree.shot.id)] == pid
    assert cache[(ResourceKind.SEQUENCE, tree.sequence.id)] == pid
    assert cache[(ResourceKind.EPISODE, tree.episode.id)] == pid

    # Move the episode to the other project; the cache still answers.
    tree.episode.project_id = tree.other_project.id
    db.commit()
    assert service.resolve_project(ResourceRef(ResourceKind.SHOT, tree.shot.id)) == pid

    service.invalidate()
    assert service.resolve_project(ResourceRef(ResourceKind.SHOT, tree.shot.id)) == tree.other_project.id

    service.invalidate(ResourceKind.SHOT, tree.shot.id)
    assert (ResourceKind.SHOT, tree.shot.id) not in cache


def test_invalidating_a_moved_episode_drops_its_cached_descendants(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.OWNER)
    cache = {}
    service = PermissionService(db, cache=cache)
    shot_ref = ResourceRef(ResourceKind.SHOT, tree.shot.id)
    service.authorize(user, ProjectRole.OWNER, shot_ref)

    tree.episode.project_id = tree.other_project.id
    db.commit()
    service.invalidate(ResourceKind.EPISODE, tree.episode.id)

    assert (ResourceKind.SHOT, tree.shot.id) not in cache
    assert (ResourceKind.SEQUENCE, tree.sequence.id) not in cache
    assert service.resolve_project(shot_ref) == tree.other_project.id
    with pytest.raises(ForbiddenError) as exc_info:
        service.authorize(user, ProjectRole.VIEWER, shot_ref)
    assert exc_info.value.reason == "no access to project"


def test_invalidating_a_project_drops_everything_under_it(db, tree):
    cache = {}
    service = PermissionService(db, cache=cache)
    service.resolve_project(ResourceRef(ResourceKind.SHOT, tree.shot.id))
    service.resolve_project(ResourceRef(ResourceKind.ASSET, tree.asset.id))

    service.invalidate(ResourceKind.PROJECT, tree.project.id)
    assert cache == {}


def test_admin_bypasses_grants(db, tree, make_user):
    admin = make_user(email="admin@studio.test", role="admin")
    service = PermissionService(db)

    assert service.authorize(admin, ProjectRole.OWNER, ResourceRef(ResourceKind.SHOT, tree.shot.id)) is None
    # even without project context
    assert service.authorize(admin, ProjectRole.OWNER, ResourceRef(ResourceKind.SHOT, None)) is None
    assert service.get_project_role(admin, tree.project.id) is ProjectRole.OWNER


def test_contributor_may_edit_shot(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.CONTRIBUTOR)
    service = PermissionService(db)

    grant = service.authorize(user, ProjectRole.CONTRIBUTOR, ResourceRef(ResourceKind.SHOT, tree.shot.id))
    assert grant.project_id == tree.project.id
    assert grant.project_role is ProjectRole.CONTRIBUTOR
    assert service.has_project_permission(user, tree.project.id, ProjectRole.VIEWER)
    assert not service.has_project_permission(user, tree.project.id, ProjectRole.OWNER)


def test_viewer_cannot_edit(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.VIEWER)

    with pytest.raises(ForbiddenError) as exc_info:
        PermissionService(db).authorize(user, ProjectRole.CONTRIBUTOR, ResourceRef(ResourceKind.SHOT, tree.shot.id))

    err = exc_info.value
    assert err.reason == "insufficient role"
    assert err.status_code == 403
    assert err.details["required_role"] == "contributor"
    assert err.details["actual_role"] == "viewer"


def test_no_grant_is_forbidden(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.other_project, ProjectRole.OWNER)

    with pytest.raises(ForbiddenError) as exc_info:
        PermissionService(db).verify_project_access(user, tree.project.id)
    assert exc_info.value.reason == "no access to project"


def test_missing_context_and_anonymous_are_forbidden(db, tree, make_user):
    user = make_user()
    service = PermissionService(db)

    with pytest.raises(ForbiddenError) as no_context:
        service.authorize(user, ProjectRole.VIEWER, ResourceRef(ResourceKind.VERSION, tree.odd_version.id))
    assert no_context.value.reason == "no project context"

    with pytest.raises(ForbiddenError) as anonymous:
        service.authorize(None, ProjectRole.VIEWER, ResourceRef(ResourceKind.PROJECT, tree.project.id))
    assert anonymous.value.reason == "not authenticated"


def test_accessible_projects(db, tree, make_user):
    user = make_user()
    admin = make_user(email="admin@studio.test", role="admin")
    _grant(db, user, tree.other_project, ProjectRole.VIEWER)
    service = PermissionService(db)

    assert service.get_accessible_project_ids(user) == [tree.other_project.id]
    assert service.get_accessible_project_ids(admin) == [tree.project.id, tree.other_project.id]


def test_require_project_role_dependency(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.CONTRIBUTOR)
    dependency = require_project_role(ProjectRole.CONTRIBUTOR, "shot")

    request = SimpleNamespace(path_params={"id": str(tree.shot.id)}, state=SimpleNamespace())
    grant = dependency(request=request, current_user=user, permissions=PermissionService(db, cache={}))

    assert grant.project_id == tree.project.id
    assert request.state.project_permission is grant

    owner_only = require_project_role(ProjectRole.OWNER, "shot")
    with pytest.raises(ForbiddenError):
        owner_only(request=request, current_user=user, permissions=PermissionService(db))


def test_ref_from_body_prefers_project_then_episode_then_sequence():
    assert ref_from_body({"project_id": 3, "episode_id": 7}) == ResourceRef(ResourceKind.PROJECT, 3)
    assert ref_from_body({"episode_id": "7"}) == ResourceRef(ResourceKind.EPISODE, 7)
    assert ref_from_body({"sequence_id": 2}) == ResourceRef(ResourceKind.SEQUENCE, 2)
    assert ref_from_body({"name": "x"}) is None


def test_access_routes_report_project_and_role(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.CONTRIBUTOR)
    permissions = PermissionService(db, cache={})
    request = SimpleNamespace(state=SimpleNamespace())

    result = access.check_access(
        ResourceKind.VERSION, tree.shot_version.id, request, ProjectRole.VIEWER, user, permissions
    )
    assert result["project_id"] == tree.project.id
    assert result["role"] == "contributor"
    assert access.accessible_projects(user, permissions) == {"project_ids": [tree.project.id]}

    with pytest.raises(ForbiddenError):
        access.check_access(ResourceKind.SHOT, tree.shot.id, request, ProjectRole.OWNER, user, permissions)


def test_create_check_uses_parent_from_body(db, tree, make_user):
    user = make_user()
    _grant(db, user, tree.project, ProjectRole.CONTRIBUTOR)
    permissions = PermissionService(db, cache={})
    request = SimpleNamespace(state=SimpleNamespace())

    result = access.check_create_access(
        ParentAccessRequest(sequence_id=tree.sequence.id), request, user, permissions
    )
    assert result["parent"] == {"kind": "sequence", "id": tree.sequence.id}
    assert result["project_id"] == tree.project.id

    with pytest.raises(ForbiddenError) as owner_needed:
        access.check_create_access(
            ParentAccessRequest(episode_id=tree.episode.id, min_role=ProjectRole.OWNER), request, user, permissions
        )
    assert owner_needed.value.reason == "insufficient role"

    with pytest.raises(ForbiddenError) as no_parent:
        access.check_create_access(ParentAccessRequest(), request, user, permissions)
    assert no_parent.value.reason == "no project context"


def test_grant_with_unknown_role_is_rejected(db, tree, make_user):
    user = make_user()
    db.add(ProjectPermission(user_id=user.id, project_id=tree.project.id, role="superuser"))

    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
