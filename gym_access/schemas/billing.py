from __future__ import annotations

from pydantic import BaseModel

from gym_access.core.subscription import SubscriptionEvent


class BillingEventRequest(BaseModel):
    gym_id: str
    event: SubscriptionEvent
    days_since_due: int | None = None


class BillingWebhookResponse(BaseModel):
    received: bool
    event_type: str
    gym_id: str | None = None
    previous_status: str | None = None
    status: str | None = None
    updated: bool
