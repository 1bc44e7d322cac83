from __future__ import annotations

from typing import TYPE_CHECKING

from gym_access.core.config import settings
from gym_access.core.guard import Decision, DenyReason, GuardState
from gym_access.core.records import MaintenanceMode
from gym_access.core.roles import grants_platform_access

if TYPE_CHECKING:
    from gym_access.core.session import TenantSession


class PlatformAdminGate:
    """Gate for tenant-independent routes.

    Only a ``super_admin`` row with no gym id satisfies it. Every failure,
    including an anonymous visitor, is routed to the forbidden surface.
    """

    def __init__(self, *, forbidden_path: str | None = None) -> None:
        self.forbidden_path = forbidden_path or settings.forbidden_path

    def evaluate(self, session: TenantSession | None) -> Decision:
        if session is None or session.auth_pending:
            return Decision.loading()
        if session.principal is not None and grants_platform_access(session.platform_assignment):
            return Decision.allow(GuardState.AUTHENTICATED)
        state = GuardState.AUTHENTICATED if session.principal is not None else GuardState.UNAUTHENTICATED
        return Decision.deny(
            state,
            DenyReason.PLATFORM_ACCESS_DENIED,
            self.forbidden_path,
            "Platform administrator access required",
        )


class MaintenanceGate:
    def __init__(self, *, maintenance_path: str | None = None) -> None:
        self.maintenance_path = maintenance_path or settings.maintenance_path

    def evaluate(self, session: TenantSession | None, maintenance: MaintenanceMode | None) -> Decision:
        if maintenance is None or not maintenance.enabled:
            return Decision.allow(GuardState.AUTHENTICATED)
        if session is None or session.auth_pending:
            return Decision.loading()
        if session.principal is not None and grants_platform_access(session.platform_assignment):
            return Decision.allow(GuardState.AUTHENTICATED)
        state = GuardState.AUTHENTICATED if session.principal is not None else GuardState.UNAUTHENTICATED
        return Decision.deny(
            state,
            DenyReason.MAINTENANCE,
            self.maintenance_path,
            maintenance.message or "The system is currently undergoing maintenance. Please check back later.",
        )


platform_admin_gate = PlatformAdminGate()
maintenance_gate = MaintenanceGate()
