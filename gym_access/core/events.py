from __future__ import annotations

from uuid import UUID

import redis.asyncio as redis
from pydantic import TypeAdapter

from gym_access.core.config import settings
from gym_access.core.records import FeatureFlag
from gym_access.core.subscription import SubscriptionStatus
from gym_access.schemas.events import (
    FeatureFlagDeletedEvent,
    FeatureFlagEvent,
    FeatureFlagPayload,
    InvalidationEvent,
    SubscriptionStatusEvent,
)

SUBSCRIPTION_TOPIC = "subscription"
FLAGS_TOPIC = "flags"

_event_adapter: TypeAdapter[InvalidationEvent] = TypeAdapter(InvalidationEvent)


def parse_event(raw: str | bytes) -> InvalidationEvent:
    return _event_adapter.validate_json(raw)


async def publish_subscription_status(
    redis_client: redis.Redis,
    tenant_id: UUID,
    status: SubscriptionStatus,
) -> None:
    event = SubscriptionStatusEvent(tenant_id=tenant_id, status=status)
    await redis_client.publish(
        settings.invalidation_channel(f"{SUBSCRIPTION_TOPIC}:{tenant_id}"),
        event.model_dump_json(),
    )


async def publish_flag(redis_client: redis.Redis, flag: FeatureFlag) -> None:
    event = FeatureFlagEvent(
        flag=FeatureFlagPayload(
            name=flag.name,
            is_enabled=flag.is_enabled,
            rollout_percentage=flag.rollout_percentage,
            target_plans=sorted(flag.target_plans),
            target_gyms=sorted(flag.target_gyms, key=str),
        )
    )
    await redis_client.publish(settings.invalidation_channel(FLAGS_TOPIC), event.model_dump_json())


async def publish_flag_deleted(redis_client: redis.Redis, flag_name: str) -> None:
    event = FeatureFlagDeletedEvent(name=flag_name)
    await redis_client.publish(settings.invalidation_channel(FLAGS_TOPIC), event.model_dump_json())
