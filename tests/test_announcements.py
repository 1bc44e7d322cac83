from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from gym_access.core.announcements import audience_matches, is_live, visible_announcements
from gym_access.core.records import Announcement, Principal, RoleAssignment, TenantRecord
from gym_access.core.roles import ResolvedRoles
from gym_access.core.session import TenantSession
from gym_access.core.subscription import SubscriptionStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _announcement(audience: str = "all", *, starts: int = -1, ends: int | None = None, active: bool = True) -> Announcement:
    return Announcement(
        id=uuid4(),
        title=f"{audience} notice",
        content="Body",
        target_audience=audience,
        starts_at=NOW + timedelta(days=starts),
        ends_at=NOW + timedelta(days=ends) if ends is not None else None,
        is_active=active,
    )


def _session(role: str, status: SubscriptionStatus = SubscriptionStatus.ACTIVE) -> TenantSession:
    user_id, gym_id = uuid4(), uuid4()
    return TenantSession(
        principal=Principal(id=user_id),
        selected_tenant_id=gym_id,
        tenant=TenantRecord(id=gym_id, subscription_status=status),
        roles=ResolvedRoles(user_id, gym_id, tenant_assignment=RoleAssignment(user_id, gym_id, role)),
    )


def test_live_window() -> None:
    assert is_live(_announcement(), NOW) is True
    assert is_live(_announcement(starts=1), NOW) is False
    assert is_live(_announcement(ends=0), NOW) is False
    assert is_live(_announcement(active=False), NOW) is False


def test_audiences() -> None:
    owner = _session("gym_owner")
    staff = _session("staff", SubscriptionStatus.TRIAL)

    assert audience_matches("all", staff) is True
    assert audience_matches("all", TenantSession.anonymous()) is False
    assert audience_matches("gym_owners", owner) is True
    assert audience_matches("gym_owners", staff) is False
    assert audience_matches("active_subscribers", owner) is True
    assert audience_matches("active_subscribers", staff) is False
    assert audience_matches("everyone_else", owner) is False


def test_visible_announcements_newest_first() -> None:
    older = _announcement(starts=-5)
    newer = _announcement(starts=-1)
    hidden = _announcement("gym_owners")

    visible = visible_announcements([older, hidden, newer], _session("member"), NOW)

    assert visible == [newer, older]
