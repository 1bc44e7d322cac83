from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from gym_access.core.config import settings

if TYPE_CHECKING:
    from gym_access.core.records import TenantRecord

logger = logging.getLogger(__name__)


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionEvent(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    TRIAL_ELAPSED = "trial_elapsed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RECOVERED = "payment_recovered"
    GRACE_EXCEEDED = "grace_exceeded"
    CANCELLED = "cancelled"


INITIAL_STATUS = SubscriptionStatus.TRIAL
TERMINAL_STATUSES: frozenset[SubscriptionStatus] = frozenset({SubscriptionStatus.CANCELLED})
WRITE_SUSPENDED_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }
)

ALLOWED_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.TRIAL: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED}
    ),
    SubscriptionStatus.ACTIVE: frozenset(
        {SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED}
    ),
    SubscriptionStatus.PAST_DUE: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED}
    ),
    SubscriptionStatus.EXPIRED: frozenset({SubscriptionStatus.CANCELLED}),
    SubscriptionStatus.CANCELLED: frozenset(),
}

EVENT_TRANSITIONS: dict[SubscriptionEvent, tuple[frozenset[SubscriptionStatus], SubscriptionStatus]] = {
    SubscriptionEvent.PAYMENT_SUCCEEDED: (
        frozenset({SubscriptionStatus.TRIAL}),
        SubscriptionStatus.ACTIVE,
    ),
    SubscriptionEvent.TRIAL_ELAPSED: (
        frozenset({SubscriptionStatus.TRIAL}),
        SubscriptionStatus.EXPIRED,
    ),
    SubscriptionEvent.PAYMENT_FAILED: (
        frozenset({SubscriptionStatus.ACTIVE}),
        SubscriptionStatus.PAST_DUE,
    ),
    SubscriptionEvent.PAYMENT_RECOVERED: (
        frozenset({SubscriptionStatus.PAST_DUE}),
        SubscriptionStatus.ACTIVE,
    ),
    SubscriptionEvent.GRACE_EXCEEDED: (
        frozenset({SubscriptionStatus.PAST_DUE}),
        SubscriptionStatus.EXPIRED,
    ),
    SubscriptionEvent.CANCELLED: (
        frozenset(status for status in SubscriptionStatus if status not in TERMINAL_STATUSES),
        SubscriptionStatus.CANCELLED,
    ),
}


class InvalidTransitionError(ValueError):
    def __init__(
        self,
        current: SubscriptionStatus,
        target: SubscriptionStatus,
        reason: str | None = None,
    ) -> None:
        message = f"Subscription cannot move from {current.value} to {target.value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target


def is_transition_allowed(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def grace_exceeded(days_since_due: int, grace_period_days: int | None = None) -> bool:
    grace = settings.subscription_grace_period_days if grace_period_days is None else grace_period_days
    return days_since_due > grace


def writes_suspended(
    status: SubscriptionStatus,
    *,
    days_since_due: int = 0,
    grace_period_days: int | None = None,
) -> bool:
    if status not in WRITE_SUSPENDED_STATUSES:
        return False
    if status is SubscriptionStatus.PAST_DUE:
        # Inside the grace window past_due is only a warning state.
        return grace_exceeded(days_since_due, grace_period_days)
    return True


def tenant_writes_suspended(
    tenant: TenantRecord,
    now: datetime,
    grace_period_days: int | None = None,
) -> bool:
    return writes_suspended(
        tenant.subscription_status,
        days_since_due=tenant.days_since_due(now),
        grace_period_days=grace_period_days,
    )


class SubscriptionLifecycle:
    """State machine over one tenant's billing status.

    Rejected transitions raise ``InvalidTransitionError``; the caller (the
    billing integration) decides what to do, the status is never nudged to
    a nearby valid state.
    """

    def __init__(
        self,
        status: SubscriptionStatus = INITIAL_STATUS,
        *,
        grace_period_days: int | None = None,
    ) -> None:
        self._status = SubscriptionStatus(status)
        self.grace_period_days = (
            settings.subscription_grace_period_days if grace_period_days is None else grace_period_days
        )
        self.history: list[tuple[SubscriptionStatus, SubscriptionStatus]] = []

    @classmethod
    def for_tenant(cls, tenant: TenantRecord, *, grace_period_days: int | None = None) -> SubscriptionLifecycle:
        return cls(tenant.subscription_status, grace_period_days=grace_period_days)

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def can_transition(self, target: SubscriptionStatus) -> bool:
        return is_transition_allowed(self._status, SubscriptionStatus(target))

    def transition(self, target: SubscriptionStatus) -> SubscriptionStatus:
        target = SubscriptionStatus(target)
        if not self.can_transition(target):
            raise InvalidTransitionError(self._status, target)
        logger.info("Subscription transition %s -> %s", self._status.value, target.value)
        self.history.append((self._status, target))
        self._status = target
        return target

    def apply(self, event: SubscriptionEvent, *, days_since_due: int | None = None) -> SubscriptionStatus:
        event = SubscriptionEvent(event)
        sources, target = EVENT_TRANSITIONS[event]
        if self._status not in sources:
            raise InvalidTransitionError(self._status, target, reason=f"event {event.value}")
        if event is SubscriptionEvent.GRACE_EXCEEDED and days_since_due is None:
            raise InvalidTransitionError(self._status, target, reason="days since due is required")
        if event is SubscriptionEvent.GRACE_EXCEEDED and not grace_exceeded(
            days_since_due, self.grace_period_days
        ):
            raise InvalidTransitionError(
                self._status,
                target,
                reason=f"{days_since_due} days since due is within the {self.grace_period_days} day grace period",
            )
        return self.transition(target)

    def check_grace(self, days_since_due: int) -> bool:
        if self._status is not SubscriptionStatus.PAST_DUE:
            return False
        if not grace_exceeded(days_since_due, self.grace_period_days):
            return False
        self.transition(SubscriptionStatus.EXPIRED)
        return True

    def check_trial(self, trial_ends_at: datetime | None, now: datetime) -> bool:
        if self._status is not SubscriptionStatus.TRIAL or trial_ends_at is None:
            return False
        if now < trial_ends_at:
            return False
        self.transition(SubscriptionStatus.EXPIRED)
        return True

    def advance(self, tenant: TenantRecord, now: datetime) -> SubscriptionStatus | None:
        """Apply whichever automatic transition is due; ``None`` when nothing changed."""
        if self.check_trial(tenant.trial_ends_at, now):
            return self._status
        if self.check_grace(tenant.days_since_due(now)):
            return self._status
        return None

    def writes_suspended(self, days_since_due: int = 0) -> bool:
        return writes_suspended(
            self._status,
            days_since_due=days_since_due,
            grace_period_days=self.grace_period_days,
        )
