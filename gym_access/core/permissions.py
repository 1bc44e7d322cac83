"""
Static role -> permission catalog.

Roles are totally ordered; each role is granted everything the role below it
holds plus its own additions, so grants are monotonic along the ordering.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum

logger = logging.getLogger(__name__)


class CatalogError(RuntimeError):
    pass


class UnknownPermissionError(ValueError):
    pass


class Role(str, Enum):
    MEMBER = "member"
    RECEPTIONIST = "receptionist"
    NUTRITIONIST = "nutritionist"
    PHYSIOTHERAPIST = "physiotherapist"
    INSTRUCTOR = "instructor"
    TRAINER = "trainer"
    COACH = "coach"
    STAFF = "staff"
    MANAGER = "manager"
    ADMIN = "admin"
    GYM_OWNER = "gym_owner"
    SUPER_ADMIN = "super_admin"


ROLE_HIERARCHY: tuple[Role, ...] = (
    Role.MEMBER,
    Role.RECEPTIONIST,
    Role.NUTRITIONIST,
    Role.PHYSIOTHERAPIST,
    Role.INSTRUCTOR,
    Role.TRAINER,
    Role.COACH,
    Role.STAFF,
    Role.MANAGER,
    Role.ADMIN,
    Role.GYM_OWNER,
    Role.SUPER_ADMIN,
)

_ROLE_RANK: dict[Role, int] = {role: index for index, role in enumerate(ROLE_HIERARCHY)}


class Resource(str, Enum):
    MEMBERS = "members"
    CHECKINS = "checkins"
    PAYMENTS = "payments"
    CLASSES = "classes"
    TRAINING = "training"
    FINANCE = "finance"
    STAFF = "staff"
    LOCATIONS = "locations"
    SETTINGS = "settings"
    REPORTS = "reports"
    AUDIT = "audit"
    GYMS = "gyms"
    PLATFORM = "platform"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


class Permission(str, Enum):
    MEMBERS_READ = "members:read"
    MEMBERS_CREATE = "members:create"
    MEMBERS_UPDATE = "members:update"
    MEMBERS_DELETE = "members:delete"

    CHECKINS_READ = "checkins:read"
    CHECKINS_CREATE = "checkins:create"
    CHECKINS_UPDATE = "checkins:update"
    CHECKINS_DELETE = "checkins:delete"

    PAYMENTS_READ = "payments:read"
    PAYMENTS_CREATE = "payments:create"
    PAYMENTS_UPDATE = "payments:update"
    PAYMENTS_DELETE = "payments:delete"

    CLASSES_READ = "classes:read"
    CLASSES_CREATE = "classes:create"
    CLASSES_UPDATE = "classes:update"
    CLASSES_DELETE = "classes:delete"

    TRAINING_READ = "training:read"
    TRAINING_CREATE = "training:create"
    TRAINING_UPDATE = "training:update"
    TRAINING_DELETE = "training:delete"

    FINANCE_READ = "finance:read"
    FINANCE_CREATE = "finance:create"
    FINANCE_UPDATE = "finance:update"
    FINANCE_DELETE = "finance:delete"

    STAFF_READ = "staff:read"
    STAFF_CREATE = "staff:create"
    STAFF_UPDATE = "staff:update"
    STAFF_DELETE = "staff:delete"

    LOCATIONS_READ = "locations:read"
    LOCATIONS_CREATE = "locations:create"
    LOCATIONS_UPDATE = "locations:update"
    LOCATIONS_DELETE = "locations:delete"

    SETTINGS_READ = "settings:read"
    SETTINGS_UPDATE = "settings:update"

    REPORTS_READ = "reports:read"
    AUDIT_READ = "audit:read"

    GYMS_READ = "gyms:read"
    GYMS_CREATE = "gyms:create"
    GYMS_UPDATE = "gyms:update"
    GYMS_DELETE = "gyms:delete"

    PLATFORM_MANAGE = "platform:manage"

    @property
    def resource(self) -> Resource:
        return Resource(self.value.split(":", 1)[0])

    @property
    def action(self) -> Action:
        return Action(self.value.split(":", 1)[1])

    @property
    def is_write(self) -> bool:
        return self.action is not Action.READ


# Additions per role; the effective set of a role is the union of its own
# additions and those of every role below it.
_ROLE_GRANTS: dict[Role, frozenset[Permission]] = {
    Role.MEMBER: frozenset(
        {
            Permission.CHECKINS_READ,
            Permission.CLASSES_READ,
            Permission.TRAINING_READ,
        }
    ),
    Role.RECEPTIONIST: frozenset(
        {
            Permission.MEMBERS_READ,
            Permission.CHECKINS_CREATE,
            Permission.CHECKINS_UPDATE,
            Permission.LOCATIONS_READ,
        }
    ),
    Role.NUTRITIONIST: frozenset(),
    Role.PHYSIOTHERAPIST: frozenset({Permission.TRAINING_UPDATE}),
    Role.INSTRUCTOR: frozenset({Permission.CLASSES_UPDATE}),
    Role.TRAINER: frozenset({Permission.TRAINING_CREATE}),
    Role.COACH: frozenset({Permission.CLASSES_CREATE}),
    Role.STAFF: frozenset(
        {
            Permission.PAYMENTS_READ,
            Permission.FINANCE_READ,
        }
    ),
    Role.MANAGER: frozenset(
        {
            Permission.MEMBERS_CREATE,
            Permission.MEMBERS_UPDATE,
            Permission.PAYMENTS_CREATE,
            Permission.STAFF_READ,
            Permission.LOCATIONS_CREATE,
            Permission.LOCATIONS_UPDATE,
            Permission.SETTINGS_READ,
            Permission.REPORTS_READ,
            Permission.AUDIT_READ,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Permission.MEMBERS_DELETE,
            Permission.CHECKINS_DELETE,
            Permission.PAYMENTS_UPDATE,
            Permission.CLASSES_DELETE,
            Permission.TRAINING_DELETE,
            Permission.FINANCE_CREATE,
            Permission.FINANCE_UPDATE,
            Permission.STAFF_CREATE,
            Permission.STAFF_UPDATE,
            Permission.SETTINGS_UPDATE,
        }
    ),
    Role.GYM_OWNER: frozenset(
        {
            Permission.PAYMENTS_DELETE,
            Permission.FINANCE_DELETE,
            Permission.STAFF_DELETE,
            Permission.LOCATIONS_DELETE,
        }
    ),
    Role.SUPER_ADMIN: frozenset(
        {
            Permission.GYMS_READ,
            Permission.GYMS_CREATE,
            Permission.GYMS_UPDATE,
            Permission.GYMS_DELETE,
            Permission.PLATFORM_MANAGE,
        }
    ),
}


def _accumulate(grants: Mapping[Role, frozenset[Permission]]) -> dict[Role, frozenset[Permission]]:
    effective: dict[Role, frozenset[Permission]] = {}
    granted: frozenset[Permission] = frozenset()
    for role in ROLE_HIERARCHY:
        granted = granted | grants.get(role, frozenset())
        effective[role] = granted
    return effective


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = _accumulate(_ROLE_GRANTS)


def coerce_role(value: Role | str | None) -> Role | None:
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        logger.warning("Unrecognized role %r in access check; denying", value)
        return None


def parse_permission(value: Permission | str) -> Permission:
    if isinstance(value, Permission):
        return value
    try:
        return Permission(str(value).strip())
    except ValueError as exc:
        raise UnknownPermissionError(f"Unknown permission string: {value!r}") from exc


def _coerce_permission(value: Permission | str) -> Permission | None:
    try:
        return parse_permission(value)
    except UnknownPermissionError:
        logger.warning("Unrecognized permission %r in access check; denying", value)
        return None


def role_rank(role: Role | str) -> int | None:
    resolved = coerce_role(role)
    if resolved is None:
        return None
    return _ROLE_RANK[resolved]


def permissions_for(role: Role | str | None) -> frozenset[Permission]:
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS[resolved]


def has_permission(role: Role | str | None, permission: Permission | str) -> bool:
    resolved_role = coerce_role(role)
    resolved_permission = _coerce_permission(permission)
    if resolved_role is None or resolved_permission is None:
        return False
    return resolved_permission in ROLE_PERMISSIONS[resolved_role]


def has_any_permission(role: Role | str | None, permissions: Iterable[Permission | str]) -> bool:
    return any(has_permission(role, permission) for permission in permissions)


def has_all_permissions(role: Role | str | None, permissions: Iterable[Permission | str]) -> bool:
    return all(has_permission(role, permission) for permission in permissions)


def has_minimum_role(role: Role | str | None, minimum: Role | str) -> bool:
    current = coerce_role(role)
    required = coerce_role(minimum)
    if current is None or required is None:
        return False
    return _ROLE_RANK[current] >= _ROLE_RANK[required]


def has_role(role: Role | str | None, roles: Iterable[Role | str]) -> bool:
    current = coerce_role(role)
    if current is None:
        return False
    return any(coerce_role(candidate) is current for candidate in roles)


def strongest_role(roles: Iterable[Role | str | None]) -> Role | None:
    known = [resolved for resolved in (coerce_role(role) for role in roles) if resolved is not None]
    if not known:
        return None
    return max(known, key=_ROLE_RANK.__getitem__)


def validate_catalog(
    catalog: Mapping[Role, frozenset[Permission]] | None = None,
) -> None:
    """Raise ``CatalogError`` unless every role is mapped and grants only grow
    along ``ROLE_HIERARCHY``."""
    table = ROLE_PERMISSIONS if catalog is None else catalog

    missing = [role.value for role in Role if role not in table]
    if missing:
        raise CatalogError(f"Roles missing from permission catalog: {', '.join(missing)}")

    for permission in Permission:
        try:
            _ = permission.resource, permission.action
        except ValueError as exc:
            raise CatalogError(f"Permission {permission.value!r} is outside the vocabulary") from exc

    for lower, higher in zip(ROLE_HIERARCHY, ROLE_HIERARCHY[1:]):
        dropped = table[lower] - table[higher]
        if dropped:
            names = ", ".join(sorted(permission.value for permission in dropped))
            raise CatalogError(
                f"Role {higher.value} must include every permission of {lower.value}; missing {names}"
            )
