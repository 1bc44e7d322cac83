from __future__ import annotations

from datetime import datetime, timezone

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.api.dependencies import get_access_store, require_platform_admin
from gym_access.core.config import settings
from gym_access.core.db import get_db_session
from gym_access.core.session import SessionController
from gym_access.core.store import AccessStore
from gym_access.core.subscription import tenant_writes_suspended
from gym_access.models.gym import Gym
from gym_access.schemas.admin import GymStatusResponse, SystemHealthResponse

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/gyms", response_model=list[GymStatusResponse])
async def list_gyms(
    _: SessionController = Depends(require_platform_admin),
    store: AccessStore = Depends(get_access_store),
) -> list[GymStatusResponse]:
    now = datetime.now(timezone.utc)
    return [
        GymStatusResponse(
            gym_id=str(tenant.id),
            name=tenant.name,
            subscription_status=tenant.subscription_status.value,
            plan_id=tenant.plan_id,
            current_period_end=tenant.current_period_end,
            trial_ends_at=tenant.trial_ends_at,
            writes_suspended=tenant_writes_suspended(tenant, now),
        )
        for tenant in await store.list_tenants()
    ]


@router.get("/system/health", response_model=SystemHealthResponse)
async def system_health(
    _: SessionController = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> SystemHealthResponse:
    database_ok = True
    total_gyms = 0
    try:
        await session.execute(text("SELECT 1"))
        total_gyms = int(await session.scalar(select(func.count(Gym.id))) or 0)
    except Exception:
        database_ok = False

    redis_ok = True
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        redis_ok = bool(await redis_client.ping())
    except Exception:
        redis_ok = False
    finally:
        await redis_client.aclose()

    status_value = "ok" if database_ok and redis_ok else "degraded"
    return SystemHealthResponse(
        status=status_value,
        database_ok=database_ok,
        redis_ok=redis_ok,
        total_gyms=total_gyms,
    )
