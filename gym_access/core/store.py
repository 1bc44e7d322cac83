from __future__ import annotations

from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from gym_access.core.db import AsyncSessionLocal
from gym_access.core.permissions import Role
from gym_access.core.records import (
    Announcement,
    FeatureFlag,
    MaintenanceMode,
    RoleAssignment,
    TenantRecord,
)
from gym_access.models.announcement import PlatformAnnouncement
from gym_access.models.feature_flag import FeatureFlagSetting
from gym_access.models.gym import Gym
from gym_access.models.platform_setting import PlatformSetting
from gym_access.models.user_role import UserRole

MAINTENANCE_SETTING_KEY = "maintenance_mode"


class AccessStore(Protocol):
    async def fetch_role_assignments(
        self, principal_id: UUID, tenant_id: UUID | None
    ) -> list[RoleAssignment]: ...

    async def fetch_platform_assignments(self, principal_id: UUID) -> list[RoleAssignment]: ...

    async def fetch_tenant(self, tenant_id: UUID) -> TenantRecord | None: ...

    async def list_tenant_ids(self, principal_id: UUID) -> list[UUID]: ...

    async def list_tenants(self) -> list[TenantRecord]: ...

    async def list_feature_flags(self) -> list[FeatureFlag]: ...

    async def list_announcements(self) -> list[Announcement]: ...

    async def fetch_maintenance_mode(self) -> MaintenanceMode: ...


def role_assignments_stmt(principal_id: UUID, tenant_id: UUID | None) -> Select[tuple[UserRole]]:
    stmt = select(UserRole).where(UserRole.user_id == principal_id)
    if tenant_id is None:
        return stmt.where(UserRole.gym_id.is_(None))
    return stmt.where(or_(UserRole.gym_id == tenant_id, UserRole.gym_id.is_(None)))


def platform_assignments_stmt(principal_id: UUID) -> Select[tuple[UserRole]]:
    return (
        select(UserRole)
        .where(UserRole.user_id == principal_id)
        .where(UserRole.gym_id.is_(None))
        .where(UserRole.role == Role.SUPER_ADMIN.value)
    )


def tenant_ids_stmt(principal_id: UUID, *, all_tenants: bool) -> Select[tuple[UUID]]:
    if all_tenants:
        return select(Gym.id).order_by(Gym.name)
    return (
        select(Gym.id)
        .join(UserRole, UserRole.gym_id == Gym.id)
        .where(UserRole.user_id == principal_id)
        .group_by(Gym.id, Gym.name)
        .order_by(Gym.name)
    )


class SqlAccessStore:
    """Read-only queries against the shared database. Nothing here writes."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    async def fetch_role_assignments(
        self, principal_id: UUID, tenant_id: UUID | None
    ) -> list[RoleAssignment]:
        async with self._session_factory() as session:
            rows = (await session.scalars(role_assignments_stmt(principal_id, tenant_id))).all()
        return [RoleAssignment.from_row(row) for row in rows]

    async def fetch_platform_assignments(self, principal_id: UUID) -> list[RoleAssignment]:
        async with self._session_factory() as session:
            rows = (await session.scalars(platform_assignments_stmt(principal_id))).all()
        return [RoleAssignment.from_row(row) for row in rows]

    async def fetch_tenant(self, tenant_id: UUID) -> TenantRecord | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(Gym).where(Gym.id == tenant_id))
        return TenantRecord.from_row(row) if row is not None else None

    async def list_tenant_ids(self, principal_id: UUID) -> list[UUID]:
        platform_rows = await self.fetch_platform_assignments(principal_id)
        async with self._session_factory() as session:
            ids = (
                await session.scalars(tenant_ids_stmt(principal_id, all_tenants=bool(platform_rows)))
            ).all()
        return list(ids)

    async def list_tenants(self) -> list[TenantRecord]:
        async with self._session_factory() as session:
            rows = (await session.scalars(select(Gym).order_by(Gym.created_at))).all()
        return [TenantRecord.from_row(row) for row in rows]

    async def list_feature_flags(self) -> list[FeatureFlag]:
        async with self._session_factory() as session:
            rows = (await session.scalars(select(FeatureFlagSetting))).all()
        return [FeatureFlag.from_row(row) for row in rows]

    async def list_announcements(self) -> list[Announcement]:
        async with self._session_factory() as session:
            rows = (
                await session.scalars(
                    select(PlatformAnnouncement)
                    .where(PlatformAnnouncement.is_active.is_(True))
                    .order_by(PlatformAnnouncement.starts_at.desc())
                )
            ).all()
        return [Announcement.from_row(row) for row in rows]

    async def fetch_maintenance_mode(self) -> MaintenanceMode:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(PlatformSetting).where(PlatformSetting.key == MAINTENANCE_SETTING_KEY)
            )
        return MaintenanceMode.from_value(row.value if row is not None else None)
