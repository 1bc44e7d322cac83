from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from gym_access.api.dependencies import get_access_store, require_access, require_authenticated
from gym_access.core.announcements import visible_announcements
from gym_access.core.guard import Requirement
from gym_access.core.permissions import UnknownPermissionError
from gym_access.core.session import SessionController
from gym_access.core.store import AccessStore
from gym_access.schemas.access import (
    AccessCheckRequest,
    AnnouncementResponse,
    DecisionResponse,
    FeatureStatusResponse,
    SessionSummaryResponse,
)

router = APIRouter(prefix="/access", tags=["access"])


@router.get("/session", response_model=SessionSummaryResponse)
async def get_session_summary(
    controller: SessionController = Depends(require_authenticated),
) -> SessionSummaryResponse:
    session = controller.session
    tenant = session.tenant
    enabled: list[str] = []
    if tenant is not None:
        enabled = session.flags.enabled_flags(tenant.id, plan_id=tenant.plan_id)

    return SessionSummaryResponse(
        principal_id=str(session.principal.id),
        gym_id=str(session.selected_tenant_id) if session.selected_tenant_id else None,
        gym_ids=[str(tenant_id) for tenant_id in session.tenant_ids],
        role=session.role.value if session.role else None,
        is_trainer=session.is_trainer,
        is_platform_admin=session.is_platform_admin,
        subscription_status=session.subscription_status.value if session.subscription_status else None,
        permissions=session.permissions(),
        enabled_features=enabled,
    )


@router.post("/check", response_model=DecisionResponse)
async def check_access(
    payload: AccessCheckRequest,
    controller: SessionController = Depends(require_authenticated),
) -> DecisionResponse:
    try:
        requirement = Requirement.of(
            *payload.permissions,
            any_of=payload.any_of,
            minimum_role=payload.minimum_role,
            roles=tuple(payload.roles),
            feature=payload.feature,
            write=payload.write,
        )
    except (UnknownPermissionError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc

    return DecisionResponse.from_decision(controller.check(requirement))


@router.get("/features/{name}", response_model=FeatureStatusResponse)
async def get_feature_status(
    name: str,
    controller: SessionController = Depends(require_access()),
) -> FeatureStatusResponse:
    tenant = controller.session.tenant
    return FeatureStatusResponse(
        name=name,
        gym_id=str(tenant.id),
        enabled=controller.is_feature_enabled(name),
    )


@router.get("/announcements", response_model=list[AnnouncementResponse])
async def list_announcements(
    controller: SessionController = Depends(require_authenticated),
    store: AccessStore = Depends(get_access_store),
) -> list[AnnouncementResponse]:
    announcements = visible_announcements(
        await store.list_announcements(),
        controller.session,
        datetime.now(timezone.utc),
    )
    return [
        AnnouncementResponse(
            id=str(announcement.id),
            title=announcement.title,
            content=announcement.content,
            target_audience=announcement.target_audience,
            starts_at=announcement.starts_at,
            ends_at=announcement.ends_at,
        )
        for announcement in announcements
    ]
