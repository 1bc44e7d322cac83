from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from gym_access.core.permissions import Role, role_rank
from gym_access.core.records import RoleAssignment
from gym_access.core.store import AccessStore

logger = logging.getLogger(__name__)


class RoleResolutionError(RuntimeError):
    pass


def grants_platform_access(assignment: RoleAssignment | None) -> bool:
    if assignment is None:
        return False
    return assignment.tenant_id is None and assignment.known_role is Role.SUPER_ADMIN


def _strongest(assignments: list[RoleAssignment]) -> RoleAssignment | None:
    ranked = [(role_rank(a.role), a) for a in assignments]
    ranked = [(rank, a) for rank, a in ranked if rank is not None]
    if not ranked:
        return None
    return max(ranked, key=lambda item: item[0])[1]


@dataclass(slots=True, frozen=True)
class ResolvedRoles:
    principal_id: UUID
    tenant_id: UUID | None
    tenant_assignment: RoleAssignment | None = None
    platform_assignment: RoleAssignment | None = None

    @property
    def effective(self) -> RoleAssignment | None:
        # Tenant-scoped rows win for tenant-bound checks. A null-gym row only
        # applies across gyms when it is the platform super_admin row.
        if self.tenant_assignment is not None:
            return self.tenant_assignment
        if grants_platform_access(self.platform_assignment):
            return self.platform_assignment
        return None

    @property
    def role(self) -> Role | None:
        effective = self.effective
        return effective.known_role if effective is not None else None

    @property
    def is_trainer(self) -> bool:
        return self.tenant_assignment is not None and self.tenant_assignment.is_trainer

    @property
    def is_platform_admin(self) -> bool:
        return grants_platform_access(self.platform_assignment)

    @property
    def found(self) -> bool:
        return self.effective is not None


def select_assignments(
    principal_id: UUID,
    tenant_id: UUID | None,
    assignments: list[RoleAssignment],
) -> ResolvedRoles:
    tenant_rows: list[RoleAssignment] = []
    platform_rows: list[RoleAssignment] = []
    for assignment in assignments:
        if assignment.principal_id != principal_id:
            logger.warning("Discarding role row for another principal (%s)", assignment.principal_id)
            continue
        if assignment.tenant_id is None:
            platform_rows.append(assignment)
        elif tenant_id is not None and assignment.tenant_id == tenant_id:
            tenant_rows.append(assignment)
        else:
            logger.warning(
                "Discarding role row scoped to tenant=%s while resolving tenant=%s",
                assignment.tenant_id,
                tenant_id,
            )

    return ResolvedRoles(
        principal_id=principal_id,
        tenant_id=tenant_id,
        tenant_assignment=_strongest(tenant_rows),
        platform_assignment=_strongest(platform_rows),
    )


class RoleResolver:
    def __init__(self, store: AccessStore) -> None:
        self._store = store
        self._cache: dict[tuple[UUID, UUID | None], ResolvedRoles] = {}

    async def resolve(self, principal_id: UUID, tenant_id: UUID | None) -> ResolvedRoles:
        key = (principal_id, tenant_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            rows = await self._store.fetch_role_assignments(principal_id, tenant_id)
        except Exception as exc:
            raise RoleResolutionError(
                f"Unable to load role assignments for principal={principal_id} tenant={tenant_id}"
            ) from exc

        resolved = select_assignments(principal_id, tenant_id, rows)
        self._cache[key] = resolved
        return resolved

    async def resolve_platform(self, principal_id: UUID) -> RoleAssignment | None:
        try:
            rows = await self._store.fetch_platform_assignments(principal_id)
        except Exception as exc:
            raise RoleResolutionError(
                f"Unable to load platform role for principal={principal_id}"
            ) from exc

        for row in rows:
            if row.principal_id == principal_id and grants_platform_access(row):
                return row
        return None

    def invalidate(self) -> None:
        self._cache.clear()

    def cached_tenants(self) -> list[UUID | None]:
        return [tenant_id for _, tenant_id in self._cache]
