from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class GymStatusResponse(BaseModel):
    gym_id: str
    name: str
    subscription_status: str
    plan_id: str | None = None
    current_period_end: datetime | None = None
    trial_ends_at: datetime | None = None
    writes_suspended: bool


class SystemHealthResponse(BaseModel):
    status: str
    database_ok: bool
    redis_ok: bool
    total_gyms: int
