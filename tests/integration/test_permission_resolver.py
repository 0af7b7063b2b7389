from utils.deps import claims_to_identity
from models.roles import Role, Permission
from schemas.identity import IdentityContext
from services.permission_service import (PermissionService, ROLE_NOT_FOUND, MISSING_PERMISSION,
    UNAUTHENTICATED)


def identity(**overrides):
    values = {"id": 1, "username": "user", "role": "user", "permissions": [], "is_admin": False}
    values.update(overrides)
    return IdentityContext(**values)


def test_unauthenticated(session):
    decision = PermissionService.authorize(session, None, "read_note")

    assert decision.allowed is False
    assert decision.reason == UNAUTHENTICATED


def test_admin_flag_bypasses_lookup(session):
    # no roles seeded: reaching the database would deny
    assert PermissionService.authorize(session, identity(is_admin=True), "anything")


def test_claim_permission_allows(session):
    assert PermissionService.authorize(session, identity(permissions=["read_note"]), "read_note")


def test_admin_role_name_allows(session):
    assert PermissionService.authorize(session, identity(role="admin"), "manage_system")


def test_database_fallback_allows(session, default_role):
    manage_users = session.query(Permission).filter(Permission.name == "manage_users").one()
    default_role.permissions.append(manage_users)
    session.commit()

    decision = PermissionService.authorize(session, identity(), "manage_users")

    assert decision.allowed is True


def test_database_fallback_denies(session, default_role):
    decision = PermissionService.authorize(session, identity(), "manage_system")

    assert decision.allowed is False
    assert decision.reason == MISSING_PERMISSION


def test_role_resolved_by_id_when_name_unknown(session, default_role):
    decision = PermissionService.authorize(
        session, identity(role="renamed-role", role_id=default_role.id), "read_note"
    )

    assert decision.allowed is True


def test_nested_role_object(session, default_role):
    claims = {"id": 1, "role": {"name": "user", "id": default_role.id}, "permissions": []}

    assert PermissionService.authorize(session, claims, "create_note")


def test_unknown_role(session, default_role):
    decision = PermissionService.authorize(session, identity(role="ghost"), "read_note")

    assert decision.allowed is False
    assert decision.reason == ROLE_NOT_FOUND


def test_deleted_role_is_not_found(session, default_role):
    default_role.soft_delete()
    session.commit()

    decision = PermissionService.authorize(session, identity(), "read_note")

    assert decision.reason == ROLE_NOT_FOUND


def test_deleted_permission_no_longer_grants(session, default_role):
    read_note = session.query(Permission).filter(Permission.name == "read_note").one()
    read_note.soft_delete()
    session.commit()

    assert not PermissionService.authorize(session, identity(), "read_note")


def test_nested_role_claims_through_identity(session, default_role):
    ctx = claims_to_identity({"id": 1, "role": {"name": "user", "id": default_role.id}, "permissions": []})

    assert ctx.role == "user"
    assert ctx.role_id == default_role.id
    assert PermissionService.authorize(session, ctx, "create_note")


def test_bare_id_permission_claims_are_accepted(session, default_role):
    ctx = claims_to_identity({"id": 1, "role": "user", "permissions": [1, 2]})

    assert ctx.permissions == [1, 2]
    assert PermissionService.authorize(session, ctx, "read_note")
