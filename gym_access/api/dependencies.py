from __future__ import annotations

from collections.abc import Awaitable, Callable
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from gym_access.core.auth import AuthContext, get_optional_auth_context
from gym_access.core.guard import TENANT_ACCESS, Decision, DenyReason, Requirement
from gym_access.core.permissions import Permission, Role
from gym_access.core.platform import maintenance_gate
from gym_access.core.session import SessionController
from gym_access.core.store import AccessStore, SqlAccessStore

_DENIAL_STATUS: dict[DenyReason, int] = {
    DenyReason.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    DenyReason.NO_TENANT_SELECTED: status.HTTP_400_BAD_REQUEST,
    DenyReason.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    DenyReason.TENANT_SUSPENDED: status.HTTP_402_PAYMENT_REQUIRED,
    DenyReason.PLATFORM_ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    DenyReason.FEATURE_DISABLED: status.HTTP_403_FORBIDDEN,
    DenyReason.MAINTENANCE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_access_store() -> AccessStore:
    return SqlAccessStore()


def raise_for_decision(decision: Decision) -> None:
    if decision.granted:
        return
    if decision.is_loading or decision.reason is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"reason": "loading", "redirect_to": None},
        )
    raise HTTPException(
        status_code=_DENIAL_STATUS[decision.reason],
        detail={
            "reason": decision.reason.value,
            "redirect_to": decision.redirect_to,
            "message": decision.message,
        },
    )


async def get_session_controller(
    gym_id: str | None = Header(default=None, alias="X-Gym-Id"),
    auth: AuthContext | None = Depends(get_optional_auth_context),
    store: AccessStore = Depends(get_access_store),
) -> SessionController:
    controller = SessionController(store)
    if auth is None:
        controller.logout()
        return controller

    await controller.login(auth.principal)
    if gym_id:
        try:
            tenant_id = UUID(gym_id)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Gym-Id header",
            ) from exc
        await controller.select_tenant(tenant_id)
    return controller


async def enforce_maintenance(
    controller: SessionController = Depends(get_session_controller),
    store: AccessStore = Depends(get_access_store),
) -> SessionController:
    maintenance = await store.fetch_maintenance_mode()
    raise_for_decision(maintenance_gate.evaluate(controller.session, maintenance))
    return controller


async def require_authenticated(
    controller: SessionController = Depends(enforce_maintenance),
) -> SessionController:
    if controller.session.principal is None:
        raise_for_decision(controller.check())
    return controller


def require_access(
    requirement: Requirement = TENANT_ACCESS,
) -> Callable[..., Awaitable[SessionController]]:
    async def _dependency(
        controller: SessionController = Depends(enforce_maintenance),
    ) -> SessionController:
        raise_for_decision(controller.check(requirement))
        return controller

    return _dependency


def require_permission(
    *permissions: Permission | str,
    minimum_role: Role | str | None = None,
    feature: str | None = None,
) -> Callable[..., Awaitable[SessionController]]:
    return require_access(Requirement.of(*permissions, minimum_role=minimum_role, feature=feature))


async def require_platform_admin(
    controller: SessionController = Depends(get_session_controller),
) -> SessionController:
    raise_for_decision(controller.check_platform())
    return controller
