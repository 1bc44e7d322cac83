from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone

import redis.asyncio as redis
from fastapi import FastAPI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.agents.health import AgentHealth
from gym_access.core.config import settings
from gym_access.core.db import AsyncSessionLocal
from gym_access.core.events import publish_subscription_status
from gym_access.core.records import TenantRecord
from gym_access.core.subscription import (
    InvalidTransitionError,
    SubscriptionLifecycle,
    SubscriptionStatus,
)
from gym_access.models.gym import Gym

logger = logging.getLogger(__name__)

# Only these statuses have time-driven transitions.
SWEEPABLE_STATUSES = (SubscriptionStatus.TRIAL.value, SubscriptionStatus.PAST_DUE.value)


class SubscriptionSweeper:
    """Expires elapsed trials and past-due gyms whose grace period ran out."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        grace_period_days: int | None = None,
    ) -> None:
        self.health = AgentHealth(name="subscription-sweeper", ready=True)
        self._stop_event = asyncio.Event()
        self._session_factory = session_factory
        self.grace_period_days = grace_period_days

    async def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            self.health.mark_cycle()
            try:
                redis_client = redis.from_url(settings.redis_url, decode_responses=True)
                try:
                    await self.sweep(redis_client, datetime.now(timezone.utc))
                finally:
                    await redis_client.aclose()
                self.health.mark_success()
                retry_delay = 1
                await asyncio.wait_for(self._stop_event.wait(), timeout=settings.sweeper_interval_seconds)
            except asyncio.TimeoutError:
                continue
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Subscription sweep failed")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, settings.sweeper_max_retry_delay_seconds)

    async def sweep(self, redis_client: redis.Redis, now: datetime) -> list[tuple[Gym, SubscriptionStatus]]:
        changed: list[tuple[Gym, SubscriptionStatus]] = []
        async with self._session_factory() as session:
            gyms = (
                await session.scalars(select(Gym).where(Gym.subscription_status.in_(SWEEPABLE_STATUSES)))
            ).all()

            for gym in gyms:
                lifecycle = SubscriptionLifecycle(
                    SubscriptionStatus(gym.subscription_status),
                    grace_period_days=self.grace_period_days,
                )
                try:
                    new_status = lifecycle.advance(TenantRecord.from_row(gym), now)
                except InvalidTransitionError:
                    logger.exception("Sweeper produced an invalid transition for gym=%s", gym.id)
                    self.health.increment("gyms_failed")
                    continue
                if new_status is None:
                    continue
                gym.subscription_status = new_status.value
                changed.append((gym, new_status))

            if changed:
                await session.commit()

        for gym, new_status in changed:
            logger.info("Gym %s subscription moved to %s", gym.id, new_status.value)
            await publish_subscription_status(redis_client, gym.id, new_status)

        self.health.counters["gyms_seen"] = len(gyms)
        self.health.increment("gyms_expired", len(changed))
        return changed


subscription_sweeper = SubscriptionSweeper()
app = FastAPI(title="Gym Subscription Sweeper")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO)
    app.state.task = asyncio.create_task(subscription_sweeper.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await subscription_sweeper.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return subscription_sweeper.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": subscription_sweeper.health.ready}
