from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from gym_access.core.permissions import Role, coerce_role
from gym_access.core.subscription import SubscriptionStatus


@dataclass(slots=True, frozen=True)
class Principal:
    id: UUID
    email: str | None = None


@dataclass(slots=True, frozen=True)
class RoleAssignment:
    principal_id: UUID
    tenant_id: UUID | None
    role: str
    is_trainer: bool = False

    @property
    def is_platform_scoped(self) -> bool:
        return self.tenant_id is None

    @property
    def known_role(self) -> Role | None:
        return coerce_role(self.role)

    @classmethod
    def from_row(cls, row: object) -> RoleAssignment:
        return cls(
            principal_id=row.user_id,
            tenant_id=row.gym_id,
            role=row.role,
            is_trainer=bool(row.is_trainer),
        )


@dataclass(slots=True, frozen=True)
class TenantRecord:
    id: UUID
    subscription_status: SubscriptionStatus
    plan_id: str | None = None
    current_period_end: datetime | None = None
    trial_ends_at: datetime | None = None
    name: str = ""

    def days_since_due(self, now: datetime) -> int:
        if self.current_period_end is None or now <= self.current_period_end:
            return 0
        return (now - self.current_period_end).days

    @classmethod
    def from_row(cls, row: object) -> TenantRecord:
        return cls(
            id=row.id,
            subscription_status=SubscriptionStatus(row.subscription_status),
            plan_id=row.plan_id,
            current_period_end=row.current_period_end,
            trial_ends_at=row.trial_ends_at,
            name=row.name or "",
        )


@dataclass(slots=True, frozen=True)
class FeatureFlag:
    name: str
    is_enabled: bool = False
    rollout_percentage: int = 0
    target_plans: frozenset[str] = field(default_factory=frozenset)
    target_gyms: frozenset[UUID] = field(default_factory=frozenset)

    @classmethod
    def from_row(cls, row: object) -> FeatureFlag:
        return cls(
            name=row.name,
            is_enabled=bool(row.is_enabled),
            rollout_percentage=int(row.rollout_percentage),
            target_plans=frozenset(row.target_plans or ()),
            target_gyms=frozenset(row.target_gyms or ()),
        )


@dataclass(slots=True, frozen=True)
class Announcement:
    id: UUID
    title: str
    content: str
    target_audience: str
    starts_at: datetime
    ends_at: datetime | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: object) -> Announcement:
        return cls(
            id=row.id,
            title=row.title,
            content=row.content,
            target_audience=row.target_audience,
            starts_at=row.starts_at,
            ends_at=row.ends_at,
            is_active=bool(row.is_active),
        )


@dataclass(slots=True, frozen=True)
class MaintenanceMode:
    enabled: bool = False
    message: str = ""

    @classmethod
    def from_value(cls, value: dict | None) -> MaintenanceMode:
        if not value:
            return cls()
        return cls(enabled=bool(value.get("enabled")), message=str(value.get("message") or ""))
