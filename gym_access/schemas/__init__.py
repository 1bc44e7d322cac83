from gym_access.schemas.access import (
    AccessCheckRequest,
    AnnouncementResponse,
    DecisionResponse,
    FeatureStatusResponse,
    SessionSummaryResponse,
)
from gym_access.schemas.admin import GymStatusResponse, SystemHealthResponse
from gym_access.schemas.billing import BillingEventRequest, BillingWebhookResponse
from gym_access.schemas.events import (
    FeatureFlagDeletedEvent,
    FeatureFlagEvent,
    FeatureFlagPayload,
    InvalidationEvent,
    SubscriptionStatusEvent,
)

__all__ = [
    "AccessCheckRequest",
    "DecisionResponse",
    "SessionSummaryResponse",
    "FeatureStatusResponse",
    "AnnouncementResponse",
    "GymStatusResponse",
    "SystemHealthResponse",
    "BillingEventRequest",
    "BillingWebhookResponse",
    "FeatureFlagPayload",
    "SubscriptionStatusEvent",
    "FeatureFlagEvent",
    "FeatureFlagDeletedEvent",
    "InvalidationEvent",
]
