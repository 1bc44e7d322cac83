from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

from gym_access.core.records import FeatureFlag

if TYPE_CHECKING:
    from gym_access.core.store import AccessStore

ROLLOUT_BUCKETS = 100


def rollout_bucket(tenant_id: UUID | str, flag_name: str) -> int:
    # Stable across processes; depends on nothing but the two inputs.
    digest = hashlib.sha256(f"{flag_name}:{tenant_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % ROLLOUT_BUCKETS


def flag_enabled_for(flag: FeatureFlag | None, tenant_id: UUID, plan_id: str | None = None) -> bool:
    if flag is None or not flag.is_enabled:
        return False
    if flag.target_plans and plan_id not in flag.target_plans:
        return False
    if flag.target_gyms and tenant_id not in flag.target_gyms:
        return False
    return rollout_bucket(tenant_id, flag.name) < flag.rollout_percentage


class FeatureFlagEvaluator:
    def __init__(self, flags: Iterable[FeatureFlag] = ()) -> None:
        self._flags: dict[str, FeatureFlag] = {flag.name: flag for flag in flags}

    @classmethod
    async def load(cls, store: AccessStore) -> FeatureFlagEvaluator:
        return cls(await store.list_feature_flags())

    def get(self, flag_name: str) -> FeatureFlag | None:
        return self._flags.get(flag_name)

    def names(self) -> list[str]:
        return sorted(self._flags)

    def is_enabled(self, flag_name: str, tenant_id: UUID, *, plan_id: str | None = None) -> bool:
        return flag_enabled_for(self._flags.get(flag_name), tenant_id, plan_id)

    def enabled_flags(self, tenant_id: UUID, *, plan_id: str | None = None) -> list[str]:
        return [name for name in self.names() if self.is_enabled(name, tenant_id, plan_id=plan_id)]

    def with_flag(self, flag: FeatureFlag) -> FeatureFlagEvaluator:
        flags = dict(self._flags)
        flags[flag.name] = flag
        return FeatureFlagEvaluator(flags.values())

    def without_flag(self, flag_name: str) -> FeatureFlagEvaluator:
        return FeatureFlagEvaluator(flag for name, flag in self._flags.items() if name != flag_name)
