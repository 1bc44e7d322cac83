from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from uuid import UUID

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.core.config import settings
from gym_access.core.db import get_db_session
from gym_access.core.events import publish_subscription_status
from gym_access.core.records import TenantRecord
from gym_access.core.subscription import (
    EVENT_TRANSITIONS,
    InvalidTransitionError,
    SubscriptionLifecycle,
    SubscriptionStatus,
)
from gym_access.models.gym import Gym
from gym_access.schemas.billing import BillingEventRequest, BillingWebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_gym_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook payload has an invalid gym id",
        ) from exc


async def _publish_status(tenant_id: UUID, new_status: SubscriptionStatus) -> None:
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await publish_subscription_status(redis_client, tenant_id, new_status)
    finally:
        await redis_client.aclose()


@router.post("/billing", response_model=BillingWebhookResponse)
async def billing_webhook(
    payload: BillingEventRequest,
    session: AsyncSession = Depends(get_db_session),
    webhook_secret: str | None = Header(default=None, alias="X-Billing-Webhook-Secret"),
) -> BillingWebhookResponse:
    if settings.billing_webhook_secret and not hmac.compare_digest(
        (webhook_secret or "").encode("utf-8"),
        settings.billing_webhook_secret.encode("utf-8"),
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid billing webhook secret",
        )

    gym_id = _parse_gym_id(payload.gym_id)
    gym = await session.scalar(select(Gym).where(Gym.id == gym_id))
    if gym is None:
        return BillingWebhookResponse(received=True, event_type=payload.event.value, gym_id=None, updated=False)

    previous = SubscriptionStatus(gym.subscription_status)
    _, target = EVENT_TRANSITIONS[payload.event]
    if previous is target:
        # Redelivered event; the status already reflects it.
        return BillingWebhookResponse(
            received=True,
            event_type=payload.event.value,
            gym_id=str(gym.id),
            previous_status=previous.value,
            status=previous.value,
            updated=False,
        )

    days_since_due = payload.days_since_due
    if days_since_due is None:
        days_since_due = TenantRecord.from_row(gym).days_since_due(datetime.now(timezone.utc))

    lifecycle = SubscriptionLifecycle(previous)
    try:
        new_status = lifecycle.apply(payload.event, days_since_due=days_since_due)
    except InvalidTransitionError as exc:
        logger.warning("Rejected billing event %s for gym=%s: %s", payload.event.value, gym.id, exc)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    gym.subscription_status = new_status.value
    await session.commit()
    await _publish_status(gym.id, new_status)

    return BillingWebhookResponse(
        received=True,
        event_type=payload.event.value,
        gym_id=str(gym.id),
        previous_status=previous.value,
        status=new_status.value,
        updated=True,
    )
