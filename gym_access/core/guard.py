"""
Route- and action-level access decisions.

``AccessGuard.evaluate`` is a pure function of an already fetched
``TenantSession`` snapshot and a ``Requirement``. It never performs I/O and
never raises for a denial: every outcome is a ``Decision`` value that the
caller maps to a redirect or an error response.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from gym_access.core.config import settings
from gym_access.core.permissions import (
    Permission,
    Role,
    coerce_role,
    has_minimum_role,
    has_permission,
    has_role,
    parse_permission,
)
from gym_access.core.subscription import tenant_writes_suspended

if TYPE_CHECKING:
    from gym_access.core.session import TenantSession


class GuardState(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    NO_TENANT_SELECTED = "no_tenant_selected"
    TENANT_SELECTED = "tenant_selected"
    AUTHENTICATED = "authenticated"


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NO_TENANT_SELECTED = "no_tenant_selected"
    PERMISSION_DENIED = "permission_denied"
    TENANT_SUSPENDED = "tenant_suspended"
    PLATFORM_ACCESS_DENIED = "platform_access_denied"
    FEATURE_DISABLED = "feature_disabled"
    MAINTENANCE = "maintenance"


@dataclass(slots=True, frozen=True)
class Decision:
    state: GuardState
    granted: bool = False
    reason: DenyReason | None = None
    redirect_to: str | None = None
    message: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state is GuardState.LOADING

    @property
    def is_known(self) -> bool:
        return not self.is_loading

    @property
    def is_denied(self) -> bool:
        return self.is_known and not self.granted

    @classmethod
    def loading(cls) -> Decision:
        return cls(state=GuardState.LOADING)

    @classmethod
    def allow(cls, state: GuardState = GuardState.TENANT_SELECTED) -> Decision:
        return cls(state=state, granted=True)

    @classmethod
    def deny(
        cls,
        state: GuardState,
        reason: DenyReason,
        redirect_to: str,
        message: str | None = None,
    ) -> Decision:
        return cls(state=state, granted=False, reason=reason, redirect_to=redirect_to, message=message)


@dataclass(slots=True, frozen=True)
class Requirement:
    permissions: tuple[Permission, ...] = ()
    require_all: bool = True
    minimum_role: Role | None = None
    roles: tuple[Role, ...] = ()
    feature: str | None = None
    write: bool | None = None

    @classmethod
    def of(
        cls,
        *permissions: Permission | str,
        any_of: bool = False,
        minimum_role: Role | str | None = None,
        roles: tuple[Role | str, ...] = (),
        feature: str | None = None,
        write: bool | None = None,
    ) -> Requirement:
        """Build a requirement, rejecting unknown permission or role names up front."""
        parsed_minimum = None
        if minimum_role is not None:
            parsed_minimum = Role(minimum_role)
        return cls(
            permissions=tuple(parse_permission(permission) for permission in permissions),
            require_all=not any_of,
            minimum_role=parsed_minimum,
            roles=tuple(Role(role) for role in roles),
            feature=feature,
            write=write,
        )

    @property
    def is_write(self) -> bool:
        if self.write is not None:
            return self.write
        return any(permission.is_write for permission in self.permissions)


TENANT_ACCESS = Requirement()


class AccessGuard:
    def __init__(
        self,
        *,
        login_path: str | None = None,
        onboarding_path: str | None = None,
        dashboard_path: str | None = None,
        forbidden_path: str | None = None,
        grace_period_days: int | None = None,
    ) -> None:
        self.login_path = login_path or settings.login_path
        self.onboarding_path = onboarding_path or settings.onboarding_path
        self.dashboard_path = dashboard_path or settings.dashboard_path
        self.forbidden_path = forbidden_path or settings.forbidden_path
        self.grace_period_days = grace_period_days

    def evaluate(
        self,
        session: TenantSession | None,
        requirement: Requirement = TENANT_ACCESS,
        *,
        now: datetime | None = None,
    ) -> Decision:
        if session is None or session.auth_pending:
            return Decision.loading()

        if session.principal is None:
            return Decision.deny(GuardState.UNAUTHENTICATED, DenyReason.UNAUTHENTICATED, self.login_path)

        if session.resolution_failed:
            return self._forbidden(DenyReason.PERMISSION_DENIED, "Access could not be verified")

        if session.selected_tenant_id is None:
            target = self.dashboard_path if session.tenant_ids else self.onboarding_path
            return Decision.deny(GuardState.NO_TENANT_SELECTED, DenyReason.NO_TENANT_SELECTED, target)

        if session.roles_pending:
            return Decision.loading()

        tenant = session.tenant
        if tenant is None:
            return self._forbidden(DenyReason.PERMISSION_DENIED, "Gym not found")

        role = session.role
        if role is None:
            return self._forbidden(DenyReason.PERMISSION_DENIED, "No role in this gym")

        now = now or datetime.now(timezone.utc)
        if requirement.is_write and tenant_writes_suspended(tenant, now, self.grace_period_days):
            return self._forbidden(
                DenyReason.TENANT_SUSPENDED,
                f"Gym subscription is {tenant.subscription_status.value}",
            )

        if not self._role_satisfies(role, requirement):
            return self._forbidden(DenyReason.PERMISSION_DENIED)

        if requirement.feature and not session.flags.is_enabled(
            requirement.feature, tenant.id, plan_id=tenant.plan_id
        ):
            return self._forbidden(DenyReason.FEATURE_DISABLED, f"Feature {requirement.feature} is not available")

        return Decision.allow()

    @staticmethod
    def _role_satisfies(role: Role, requirement: Requirement) -> bool:
        if coerce_role(role) is None:
            return False
        if requirement.minimum_role is not None and not has_minimum_role(role, requirement.minimum_role):
            return False
        if requirement.roles and not has_role(role, requirement.roles):
            return False
        if not requirement.permissions:
            return True
        checks = (has_permission(role, permission) for permission in requirement.permissions)
        return all(checks) if requirement.require_all else any(checks)

    def _forbidden(self, reason: DenyReason, message: str | None = None) -> Decision:
        return Decision.deny(GuardState.TENANT_SELECTED, reason, self.forbidden_path, message)


access_guard = AccessGuard()
