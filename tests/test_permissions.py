from __future__ import annotations

import itertools

import pytest

from gym_access.core.permissions import (
    ROLE_HIERARCHY,
    ROLE_PERMISSIONS,
    CatalogError,
    Permission,
    Role,
    UnknownPermissionError,
    has_all_permissions,
    has_any_permission,
    has_minimum_role,
    has_permission,
    has_role,
    parse_permission,
    permissions_for,
    strongest_role,
    validate_catalog,
)


def test_catalog_is_valid() -> None:
    validate_catalog()


def test_every_role_is_mapped_and_ordered() -> None:
    assert set(ROLE_HIERARCHY) == set(Role)
    assert set(ROLE_PERMISSIONS) == set(Role)


@pytest.mark.parametrize("lower,higher", list(itertools.combinations(ROLE_HIERARCHY, 2)))
def test_permissions_are_monotonic(lower: Role, higher: Role) -> None:
    assert permissions_for(lower) <= permissions_for(higher)


def test_validate_catalog_rejects_non_monotonic_table() -> None:
    broken = dict(ROLE_PERMISSIONS)
    broken[Role.ADMIN] = broken[Role.ADMIN] - {Permission.MEMBERS_READ}
    with pytest.raises(CatalogError, match="admin"):
        validate_catalog(broken)


def test_validate_catalog_rejects_missing_role() -> None:
    broken = {role: grants for role, grants in ROLE_PERMISSIONS.items() if role is not Role.STAFF}
    with pytest.raises(CatalogError, match="staff"):
        validate_catalog(broken)


def test_manager_can_read_training() -> None:
    assert has_permission(Role.MANAGER, Permission.TRAINING_READ) is True
    assert has_permission("manager", "training:read") is True


def test_member_cannot_delete_members() -> None:
    assert has_permission(Role.MEMBER, Permission.MEMBERS_DELETE) is False


def test_only_super_admin_manages_platform() -> None:
    holders = [role for role in Role if has_permission(role, Permission.PLATFORM_MANAGE)]
    assert holders == [Role.SUPER_ADMIN]


def test_unknown_role_and_permission_fail_closed() -> None:
    assert has_permission("janitor", Permission.MEMBERS_READ) is False
    assert has_permission(Role.SUPER_ADMIN, "members:teleport") is False
    assert has_permission(None, Permission.MEMBERS_READ) is False
    assert has_minimum_role("janitor", Role.MEMBER) is False
    assert has_minimum_role(Role.ADMIN, "janitor") is False
    assert permissions_for("janitor") == frozenset()


@pytest.mark.parametrize("role", list(Role))
def test_minimum_role_is_reflexive(role: Role) -> None:
    assert has_minimum_role(role, role) is True


def test_minimum_role_is_transitive() -> None:
    for a, b, c in itertools.product(Role, repeat=3):
        if has_minimum_role(a, b) and has_minimum_role(b, c):
            assert has_minimum_role(a, c)


def test_minimum_role_follows_hierarchy() -> None:
    assert has_minimum_role(Role.ADMIN, Role.MANAGER) is True
    assert has_minimum_role(Role.STAFF, Role.MANAGER) is False
    assert has_minimum_role("super_admin", "gym_owner") is True


def test_any_and_all_permission_helpers() -> None:
    perms = [Permission.MEMBERS_READ, Permission.MEMBERS_DELETE]
    assert has_any_permission(Role.STAFF, perms) is True
    assert has_all_permissions(Role.STAFF, perms) is False
    assert has_all_permissions(Role.ADMIN, perms) is True


def test_has_role_matches_exact_roles() -> None:
    assert has_role(Role.STAFF, [Role.STAFF, Role.ADMIN]) is True
    assert has_role(Role.MANAGER, ["staff", "admin"]) is False
    assert has_role(None, [Role.STAFF]) is False


def test_parse_permission() -> None:
    assert parse_permission("members:delete") is Permission.MEMBERS_DELETE
    with pytest.raises(UnknownPermissionError):
        parse_permission("members:destroy")


def test_permission_vocabulary_properties() -> None:
    assert Permission.MEMBERS_CREATE.resource.value == "members"
    assert Permission.MEMBERS_CREATE.is_write is True
    assert Permission.TRAINING_READ.is_write is False
    for permission in Permission:
        assert permission.value == permission.value.lower()
        assert permission.value.count(":") == 1


def test_strongest_role_ignores_unknown() -> None:
    assert strongest_role(["member", "janitor", "admin"]) is Role.ADMIN
    assert strongest_role(["janitor"]) is None


def test_practitioner_roles_sit_between_member_and_staff() -> None:
    practitioners = [
        Role.RECEPTIONIST,
        Role.NUTRITIONIST,
        Role.PHYSIOTHERAPIST,
        Role.INSTRUCTOR,
        Role.TRAINER,
        Role.COACH,
    ]
    assert list(ROLE_HIERARCHY[1:7]) == practitioners
    for role in practitioners:
        assert has_minimum_role(role, Role.MEMBER) is True
        assert has_minimum_role(role, Role.STAFF) is False


def test_practitioner_rows_are_recognized() -> None:
    assert has_permission("receptionist", Permission.CHECKINS_CREATE) is True
    assert has_permission("coach", Permission.CLASSES_CREATE) is True
    assert has_permission("trainer", Permission.TRAINING_CREATE) is True
    assert has_permission("nutritionist", Permission.MEMBERS_READ) is True
    assert has_permission("coach", Permission.PAYMENTS_READ) is False
    assert has_permission("receptionist", Permission.MEMBERS_DELETE) is False
