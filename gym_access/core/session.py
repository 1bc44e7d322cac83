"""
Explicit per-flow session state.

``TenantSession`` is an immutable snapshot passed to every decision call.
``SessionController`` is owned by exactly one UI flow (or one request on the
server): it performs the async fetches, replaces the snapshot wholesale on
tenant switch, and makes sure a fetch that was superseded by a newer
selection can never be applied.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from uuid import UUID

from gym_access.core.config import settings
from gym_access.core.flags import FeatureFlagEvaluator
from gym_access.core.guard import TENANT_ACCESS, AccessGuard, Decision, Requirement, access_guard
from gym_access.core.permissions import Role, permissions_for
from gym_access.core.platform import PlatformAdminGate, platform_admin_gate
from gym_access.core.records import FeatureFlag, Principal, RoleAssignment, TenantRecord
from gym_access.core.roles import ResolvedRoles, RoleResolver, grants_platform_access
from gym_access.core.store import AccessStore
from gym_access.core.subscription import SubscriptionStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class TenantSession:
    principal: Principal | None = None
    auth_pending: bool = False
    tenant_ids: tuple[UUID, ...] = ()
    selected_tenant_id: UUID | None = None
    tenant: TenantRecord | None = None
    roles: ResolvedRoles | None = None
    platform_assignment: RoleAssignment | None = None
    resolution_failed: bool = False
    flags: FeatureFlagEvaluator = field(default_factory=FeatureFlagEvaluator)
    fetched_at: datetime | None = None
    generation: int = 0

    @classmethod
    def pending(cls) -> TenantSession:
        return cls(auth_pending=True)

    @classmethod
    def anonymous(cls) -> TenantSession:
        return cls()

    @property
    def roles_pending(self) -> bool:
        return self.selected_tenant_id is not None and self.roles is None and not self.resolution_failed

    @property
    def role(self) -> Role | None:
        return self.roles.role if self.roles is not None else None

    @property
    def is_trainer(self) -> bool:
        return self.roles is not None and self.roles.is_trainer

    @property
    def is_platform_admin(self) -> bool:
        return grants_platform_access(self.platform_assignment)

    @property
    def subscription_status(self) -> SubscriptionStatus | None:
        return self.tenant.subscription_status if self.tenant is not None else None

    @property
    def default_tenant_id(self) -> UUID | None:
        return self.tenant_ids[0] if self.tenant_ids else None

    def permissions(self) -> list[str]:
        return sorted(permission.value for permission in permissions_for(self.role))

    def is_stale(self, now: datetime, max_age_seconds: int | None = None) -> bool:
        if self.fetched_at is None:
            return True
        max_age = settings.session_max_age_seconds if max_age_seconds is None else max_age_seconds
        return now - self.fetched_at > timedelta(seconds=max_age)


class SessionController:
    def __init__(
        self,
        store: AccessStore,
        *,
        resolver: RoleResolver | None = None,
        guard: AccessGuard | None = None,
        platform_gate: PlatformAdminGate | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver or RoleResolver(store)
        self._guard = guard or access_guard
        self._platform_gate = platform_gate or platform_admin_gate
        self._clock = clock
        self._session = TenantSession.pending()
        self._generation = 0
        self._inflight: asyncio.Task[TenantSession] | None = None
        self._decisions: dict[Requirement, Decision] = {}

    @property
    def session(self) -> TenantSession:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    def _replace_session(self, session: TenantSession) -> TenantSession:
        self._session = session
        self._decisions.clear()
        return session

    def _supersede(self) -> int:
        self._generation += 1
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._resolver.invalidate()
        return self._generation

    async def login(self, principal: Principal) -> TenantSession:
        generation = self._supersede()
        self._replace_session(
            TenantSession(principal=principal, auth_pending=True, generation=generation)
        )

        try:
            platform_assignment = await self._resolver.resolve_platform(principal.id)
            tenant_ids = tuple(await self._store.list_tenant_ids(principal.id))
            flags = await FeatureFlagEvaluator.load(self._store)
        except Exception:
            logger.exception("Session bootstrap failed for principal=%s", principal.id)
            if generation != self._generation:
                return self._session
            return self._replace_session(
                TenantSession(principal=principal, resolution_failed=True, generation=generation)
            )

        if generation != self._generation:
            return self._session

        return self._replace_session(
            TenantSession(
                principal=principal,
                tenant_ids=tenant_ids,
                platform_assignment=platform_assignment,
                flags=flags,
                fetched_at=self._clock(),
                generation=generation,
            )
        )

    def logout(self) -> TenantSession:
        generation = self._supersede()
        return self._replace_session(TenantSession(generation=generation))

    async def select_tenant(self, tenant_id: UUID) -> TenantSession:
        base = self._session
        if base.principal is None:
            return base

        generation = self._supersede()
        self._replace_session(
            replace(
                base,
                selected_tenant_id=tenant_id,
                tenant=None,
                roles=None,
                resolution_failed=False,
                generation=generation,
            )
        )

        task = asyncio.ensure_future(self._load_tenant(base, tenant_id, generation))
        self._inflight = task
        try:
            loaded = await task
        except asyncio.CancelledError:
            if generation == self._generation:
                raise
            return self._session

        if generation != self._generation:
            logger.info("Discarding superseded resolution for tenant=%s", tenant_id)
            return self._session
        self._inflight = None
        return self._replace_session(loaded)

    async def refresh(self) -> TenantSession:
        if self._session.selected_tenant_id is None:
            return self._session
        return await self.select_tenant(self._session.selected_tenant_id)

    async def _load_tenant(self, base: TenantSession, tenant_id: UUID, generation: int) -> TenantSession:
        principal = base.principal
        if principal is None:
            raise RuntimeError("Cannot load a tenant for an anonymous session")
        try:
            tenant = await self._store.fetch_tenant(tenant_id)
            roles = await self._resolver.resolve(principal.id, tenant_id)
        except Exception:
            # Fail closed: the guard reports PERMISSION_DENIED for this snapshot.
            logger.exception("Role resolution failed for principal=%s tenant=%s", principal.id, tenant_id)
            return replace(
                base,
                selected_tenant_id=tenant_id,
                tenant=None,
                roles=None,
                resolution_failed=True,
                fetched_at=self._clock(),
                generation=generation,
            )

        return replace(
            base,
            selected_tenant_id=tenant_id,
            tenant=tenant,
            roles=roles,
            resolution_failed=False,
            fetched_at=self._clock(),
            generation=generation,
        )

    def check(self, requirement: Requirement = TENANT_ACCESS) -> Decision:
        cached = self._decisions.get(requirement)
        if cached is not None:
            return cached
        decision = self._guard.evaluate(self._session, requirement, now=self._clock())
        # past_due write decisions change once the grace window elapses.
        if decision.is_known and self._session.subscription_status is not SubscriptionStatus.PAST_DUE:
            self._decisions[requirement] = decision
        return decision

    def check_platform(self) -> Decision:
        return self._platform_gate.evaluate(self._session)

    def is_feature_enabled(self, flag_name: str) -> bool:
        tenant = self._session.tenant
        if tenant is None:
            return False
        return self._session.flags.is_enabled(flag_name, tenant.id, plan_id=tenant.plan_id)

    def apply_subscription_status(self, tenant_id: UUID, status: SubscriptionStatus) -> bool:
        tenant = self._session.tenant
        if tenant is None or tenant.id != tenant_id:
            return False
        self._replace_session(
            replace(self._session, tenant=replace(tenant, subscription_status=SubscriptionStatus(status)))
        )
        return True

    def apply_flag(self, flag: FeatureFlag) -> None:
        self._replace_session(replace(self._session, flags=self._session.flags.with_flag(flag)))

    def discard_flag(self, flag_name: str) -> None:
        self._replace_session(replace(self._session, flags=self._session.flags.without_flag(flag_name)))
