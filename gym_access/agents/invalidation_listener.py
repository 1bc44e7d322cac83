from __future__ import annotations

import asyncio
import logging

import redis.asyncio as redis
from pydantic import ValidationError

from gym_access.agents.health import AgentHealth
from gym_access.core.config import settings
from gym_access.core.events import parse_event
from gym_access.core.session import SessionController
from gym_access.schemas.events import (
    FeatureFlagDeletedEvent,
    FeatureFlagEvent,
    InvalidationEvent,
    SubscriptionStatusEvent,
)

logger = logging.getLogger(__name__)


class InvalidationListener:
    """Applies pushed billing and flag changes to live session controllers.

    A pushed change replaces the controller's snapshot, which also drops its
    memoized decisions. Decisions already handed out are not revoked.
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self.health = AgentHealth(name="invalidation-listener", ready=True)
        self._stop_event = asyncio.Event()
        self._redis = redis_client or redis.from_url(settings.redis_url, decode_responses=True)
        self._controllers: set[SessionController] = set()

    def register(self, controller: SessionController) -> None:
        self._controllers.add(controller)

    def unregister(self, controller: SessionController) -> None:
        self._controllers.discard(controller)

    async def stop(self) -> None:
        self._stop_event.set()
        await self._redis.aclose()

    async def run(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(settings.invalidation_pattern())
        retry_delay = 1
        try:
            while not self._stop_event.is_set():
                self.health.mark_cycle()
                try:
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if message is not None:
                        self.handle_message(message.get("data"))
                    self.health.mark_success()
                    retry_delay = 1
                except Exception as exc:  # pragma: no cover - operational path
                    self.health.mark_error(exc)
                    logger.exception("Invalidation listener loop failed")
                    await asyncio.sleep(retry_delay)
                    retry_delay = min(retry_delay * 2, 60)
        finally:
            await pubsub.aclose()

    def handle_message(self, data: str | bytes | None) -> int:
        if not data:
            return 0
        try:
            event = parse_event(data)
        except ValidationError:
            self.health.increment("events_rejected")
            logger.warning("Ignoring malformed invalidation event: %r", data)
            return 0

        applied = self.apply(event)
        self.health.increment("events_processed")
        return applied

    def apply(self, event: InvalidationEvent) -> int:
        applied = 0
        for controller in list(self._controllers):
            if isinstance(event, SubscriptionStatusEvent):
                if controller.apply_subscription_status(event.tenant_id, event.status):
                    applied += 1
            elif isinstance(event, FeatureFlagEvent):
                controller.apply_flag(event.flag.to_record())
                applied += 1
            elif isinstance(event, FeatureFlagDeletedEvent):
                controller.discard_flag(event.name)
                applied += 1
        return applied
