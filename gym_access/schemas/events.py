from __future__ import annotations

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field

from gym_access.core.records import FeatureFlag
from gym_access.core.subscription import SubscriptionStatus


class FeatureFlagPayload(BaseModel):
    name: str
    is_enabled: bool = False
    rollout_percentage: int = Field(default=0, ge=0, le=100)
    target_plans: list[str] = Field(default_factory=list)
    target_gyms: list[UUID] = Field(default_factory=list)

    def to_record(self) -> FeatureFlag:
        return FeatureFlag(
            name=self.name,
            is_enabled=self.is_enabled,
            rollout_percentage=self.rollout_percentage,
            target_plans=frozenset(self.target_plans),
            target_gyms=frozenset(self.target_gyms),
        )


class SubscriptionStatusEvent(BaseModel):
    type: Literal["subscription_status"] = "subscription_status"
    tenant_id: UUID
    status: SubscriptionStatus


class FeatureFlagEvent(BaseModel):
    type: Literal["feature_flag"] = "feature_flag"
    flag: FeatureFlagPayload


class FeatureFlagDeletedEvent(BaseModel):
    type: Literal["feature_flag_deleted"] = "feature_flag_deleted"
    name: str


InvalidationEvent = Annotated[
    Union[SubscriptionStatusEvent, FeatureFlagEvent, FeatureFlagDeletedEvent],
    Field(discriminator="type"),
]
