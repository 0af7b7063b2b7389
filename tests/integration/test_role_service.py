import pytest
from fastapi import HTTPException
from models.roles import Role, Permission
from schemas.role_schemas import RoleCreate, RoleUpdate, PermissionCreate, PermissionUpdate
from services.role_service import RoleService, DEFAULT_PERMISSIONS, DEFAULT_USER_PERMISSIONS


def test_seeding_is_idempotent(session):
    first = RoleService.ensure_default_roles(session)
    second = RoleService.ensure_default_roles(session)

    assert first.id == second.id
    assert session.query(Role).count() == 2
    assert session.query(Permission).count() == len(DEFAULT_PERMISSIONS)
    assert sorted(p.name for p in first.permissions) == sorted(DEFAULT_USER_PERMISSIONS)

    admin = session.query(Role).filter(Role.name == "admin").one()
    assert len(admin.permissions) == len(DEFAULT_PERMISSIONS)


def test_seeding_restores_deleted_default_role(session, default_role):
    default_role.soft_delete()
    session.commit()

    restored = RoleService.ensure_default_roles(session)

    assert restored.id == default_role.id
    assert restored.is_deleted is False


def test_create_role_with_permissions(session, default_role):
    read_note = session.query(Permission).filter(Permission.name == "read_note").one()

    role = RoleService.create_role(session, RoleCreate(name="reader", permissions=[read_note.id]))

    assert role.id
    assert [p.name for p in role.permissions] == ["read_note"]


def test_create_role_rejects_unknown_permission(session, default_role):
    with pytest.raises(HTTPException) as exc_info:
        RoleService.create_role(session, RoleCreate(name="reader", permissions=[9999]))

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "One or more permissions are invalid"


def test_create_role_rejects_duplicate_name(session, default_role):
    with pytest.raises(HTTPException) as exc_info:
        RoleService.create_role(session, RoleCreate(name="user"))

    assert exc_info.value.status_code == 400


def test_default_role_is_protected(session, default_role):
    with pytest.raises(HTTPException) as exc_info:
        RoleService.delete_role(session, default_role.id)
    assert exc_info.value.status_code == 400

    with pytest.raises(HTTPException) as exc_info:
        RoleService.update_role(session, default_role.id, RoleUpdate(name="member"))
    assert exc_info.value.status_code == 400


def test_deleted_role_is_hidden(session, default_role):
    role = RoleService.create_role(session, RoleCreate(name="temporary"))
    RoleService.delete_role(session, role.id)

    assert role.id not in [r.id for r in RoleService.list_roles(session)]
    with pytest.raises(HTTPException) as exc_info:
        RoleService.get_role(session, role.id)
    assert exc_info.value.status_code == 404


def test_permission_crud(session):
    permission = RoleService.create_permission(session, PermissionCreate(name="export_notes", description="Export"))

    updated = RoleService.update_permission(session, permission.id, PermissionUpdate(description="Export notes"))
    assert updated.description == "Export notes"
    assert updated.name == "export_notes"

    with pytest.raises(HTTPException):
        RoleService.create_permission(session, PermissionCreate(name="export_notes", description="Again"))

    RoleService.delete_permission(session, permission.id)
    assert RoleService.list_permissions(session) == []
