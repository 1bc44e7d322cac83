from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from gym_access.core.guard import Decision


class AccessCheckRequest(BaseModel):
    permissions: list[str] = Field(default_factory=list)
    any_of: bool = False
    minimum_role: str | None = None
    roles: list[str] = Field(default_factory=list)
    feature: str | None = None
    write: bool | None = None


class DecisionResponse(BaseModel):
    state: str
    granted: bool
    reason: str | None = None
    redirect_to: str | None = None
    message: str | None = None

    @classmethod
    def from_decision(cls, decision: Decision) -> DecisionResponse:
        return cls(
            state=decision.state.value,
            granted=decision.granted,
            reason=decision.reason.value if decision.reason else None,
            redirect_to=decision.redirect_to,
            message=decision.message,
        )


class SessionSummaryResponse(BaseModel):
    principal_id: str
    gym_id: str | None
    gym_ids: list[str]
    role: str | None
    is_trainer: bool
    is_platform_admin: bool
    subscription_status: str | None
    permissions: list[str]
    enabled_features: list[str]


class FeatureStatusResponse(BaseModel):
    name: str
    gym_id: str
    enabled: bool


class AnnouncementResponse(BaseModel):
    id: str
    title: str
    content: str
    target_audience: str
    starts_at: datetime
    ends_at: datetime | None = None
