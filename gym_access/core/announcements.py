from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from gym_access.core.permissions import Role, has_minimum_role
from gym_access.core.records import Announcement
from gym_access.core.subscription import SubscriptionStatus

if TYPE_CHECKING:
    from gym_access.core.session import TenantSession


class Audience(str, Enum):
    ALL = "all"
    GYM_OWNERS = "gym_owners"
    ACTIVE_SUBSCRIBERS = "active_subscribers"


def is_live(announcement: Announcement, now: datetime) -> bool:
    if not announcement.is_active or now < announcement.starts_at:
        return False
    return announcement.ends_at is None or now < announcement.ends_at


def audience_matches(audience: str, session: TenantSession) -> bool:
    try:
        target = Audience(audience)
    except ValueError:
        return False
    if target is Audience.ALL:
        return session.principal is not None
    if target is Audience.GYM_OWNERS:
        return has_minimum_role(session.role, Role.GYM_OWNER)
    return session.subscription_status is SubscriptionStatus.ACTIVE


def visible_announcements(
    announcements: Iterable[Announcement],
    session: TenantSession,
    now: datetime,
) -> list[Announcement]:
    visible = [
        announcement
        for announcement in announcements
        if is_live(announcement, now) and audience_matches(announcement.target_audience, session)
    ]
    return sorted(visible, key=lambda announcement: announcement.starts_at, reverse=True)
