from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from gym_access.api.dependencies import get_access_store
from gym_access.api.main import app
from gym_access.core.auth import AuthContext, get_optional_auth_context
from gym_access.core.db import get_db_session
from gym_access.core.records import (
    Announcement,
    FeatureFlag,
    MaintenanceMode,
    Principal,
    RoleAssignment,
    TenantRecord,
)
from gym_access.core.subscription import SubscriptionStatus


class _FakeStore:
    def __init__(self) -> None:
        self.tenants: dict[UUID, TenantRecord] = {}
        self.assignments: list[RoleAssignment] = []
        self.flags: list[FeatureFlag] = []
        self.announcements: list[Announcement] = []
        self.maintenance = MaintenanceMode()

    def add_gym(self, user_id: UUID, role: str, status: SubscriptionStatus = SubscriptionStatus.ACTIVE) -> UUID:
        gym_id = uuid4()
        self.tenants[gym_id] = TenantRecord(id=gym_id, subscription_status=status, name=f"Gym {len(self.tenants)}")
        self.assignments.append(RoleAssignment(user_id, gym_id, role))
        return gym_id

    async def fetch_role_assignments(self, principal_id: UUID, tenant_id: UUID | None) -> list[RoleAssignment]:
        return [row for row in self.assignments if row.principal_id == principal_id and row.tenant_id in (tenant_id, None)]

    async def fetch_platform_assignments(self, principal_id: UUID) -> list[RoleAssignment]:
        return [row for row in self.assignments if row.principal_id == principal_id and row.tenant_id is None]

    async def fetch_tenant(self, tenant_id: UUID) -> TenantRecord | None:
        return self.tenants.get(tenant_id)

    async def list_tenant_ids(self, principal_id: UUID) -> list[UUID]:
        return [row.tenant_id for row in self.assignments if row.principal_id == principal_id and row.tenant_id]

    async def list_tenants(self) -> list[TenantRecord]:
        return list(self.tenants.values())

    async def list_feature_flags(self) -> list[FeatureFlag]:
        return list(self.flags)

    async def list_announcements(self) -> list[Announcement]:
        return list(self.announcements)

    async def fetch_maintenance_mode(self) -> MaintenanceMode:
        return self.maintenance


class _FakeSession:
    def __init__(self, gym: object | None = None, *, count: int = 0) -> None:
        self.gym = gym
        self.count = count
        self.committed = False

    async def scalar(self, stmt):  # noqa: ANN001
        return self.gym if self.gym is not None else self.count

    async def execute(self, stmt):  # noqa: ANN001
        return None

    async def commit(self) -> None:
        self.committed = True


@pytest.fixture
def principal() -> Principal:
    return Principal(id=uuid4(), email="owner@gym.test")


@pytest.fixture
def store() -> _FakeStore:
    return _FakeStore()


@pytest.fixture
def client(principal: Principal, store: _FakeStore):
    async def _auth_override() -> AuthContext:
        return AuthContext(principal=principal, subject=str(principal.id))

    app.dependency_overrides[get_optional_auth_context] = _auth_override
    app.dependency_overrides[get_access_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(store: _FakeStore):
    async def _auth_override() -> None:
        return None

    app.dependency_overrides[get_optional_auth_context] = _auth_override
    app.dependency_overrides[get_access_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_session_requires_login(anonymous_client: TestClient) -> None:
    res = anonymous_client.get("/api/v1/access/session")

    assert res.status_code == 401
    assert res.json()["detail"]["reason"] == "unauthenticated"
    assert res.json()["detail"]["redirect_to"] == "/auth"


def test_session_summary(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    gym_id = store.add_gym(principal.id, "manager")
    store.flags.append(FeatureFlag(name="kiosk", is_enabled=True, rollout_percentage=100))

    res = client.get("/api/v1/access/session", headers={"X-Gym-Id": str(gym_id)})

    assert res.status_code == 200
    body = res.json()
    assert body["gym_id"] == str(gym_id)
    assert body["gym_ids"] == [str(gym_id)]
    assert body["role"] == "manager"
    assert body["subscription_status"] == "active"
    assert "training:read" in body["permissions"]
    assert body["enabled_features"] == ["kiosk"]


def test_invalid_gym_header(client: TestClient) -> None:
    res = client.get("/api/v1/access/session", headers={"X-Gym-Id": "not-a-uuid"})
    assert res.status_code == 400


def test_check_reports_suspended_tenant(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    gym_id = store.add_gym(principal.id, "gym_owner", SubscriptionStatus.CANCELLED)

    res = client.post(
        "/api/v1/access/check",
        json={"permissions": ["members:create"]},
        headers={"X-Gym-Id": str(gym_id)},
    )

    assert res.status_code == 200
    assert res.json()["granted"] is False
    assert res.json()["reason"] == "tenant_suspended"

    res = client.post(
        "/api/v1/access/check",
        json={"permissions": ["members:read"]},
        headers={"X-Gym-Id": str(gym_id)},
    )
    assert res.json()["granted"] is True


def test_check_rejects_unknown_permission(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    gym_id = store.add_gym(principal.id, "admin")

    res = client.post(
        "/api/v1/access/check",
        json={"permissions": ["members:teleport"]},
        headers={"X-Gym-Id": str(gym_id)},
    )

    assert res.status_code == 422


def test_check_without_tenant(client: TestClient) -> None:
    res = client.post("/api/v1/access/check", json={})

    assert res.status_code == 200
    assert res.json()["reason"] == "no_tenant_selected"
    assert res.json()["redirect_to"] == "/onboarding"


def test_feature_status_requires_tenant(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    store.add_gym(principal.id, "staff")

    res = client.get("/api/v1/access/features/kiosk")

    assert res.status_code == 400
    assert res.json()["detail"]["redirect_to"] == "/dashboard"


def test_feature_status(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    gym_id = store.add_gym(principal.id, "staff")

    res = client.get("/api/v1/access/features/kiosk", headers={"X-Gym-Id": str(gym_id)})

    assert res.status_code == 200
    assert res.json() == {"name": "kiosk", "gym_id": str(gym_id), "enabled": False}


def test_foreign_gym_is_forbidden(client: TestClient, store: _FakeStore) -> None:
    other_gym = store.add_gym(uuid4(), "gym_owner")

    res = client.get("/api/v1/access/features/kiosk", headers={"X-Gym-Id": str(other_gym)})

    assert res.status_code == 403
    assert res.json()["detail"]["reason"] == "permission_denied"


def test_announcements_filtered_by_audience(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    gym_id = store.add_gym(principal.id, "member")
    now = datetime.now(timezone.utc)
    for audience in ("all", "gym_owners"):
        store.announcements.append(
            Announcement(
                id=uuid4(),
                title=audience,
                content="Body",
                target_audience=audience,
                starts_at=now - timedelta(hours=1),
            )
        )

    res = client.get("/api/v1/access/announcements", headers={"X-Gym-Id": str(gym_id)})

    assert res.status_code == 200
    assert [item["title"] for item in res.json()] == ["all"]


def test_maintenance_blocks_regular_users(client: TestClient, store: _FakeStore) -> None:
    store.maintenance = MaintenanceMode(enabled=True, message="Upgrading")

    res = client.get("/api/v1/access/session")

    assert res.status_code == 503
    assert res.json()["detail"]["reason"] == "maintenance"
    assert res.json()["detail"]["message"] == "Upgrading"


def test_admin_routes_require_platform_admin(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    store.add_gym(principal.id, "gym_owner")

    res = client.get("/api/v1/admin/gyms")

    assert res.status_code == 403
    assert res.json()["detail"]["reason"] == "platform_access_denied"


def test_admin_routes_reject_anonymous_with_forbidden(anonymous_client: TestClient) -> None:
    res = anonymous_client.get("/api/v1/admin/gyms")

    assert res.status_code == 403
    assert res.json()["detail"]["redirect_to"] == "/403"


def test_admin_lists_gyms(client: TestClient, principal: Principal, store: _FakeStore) -> None:
    store.assignments.append(RoleAssignment(principal.id, None, "super_admin"))
    store.add_gym(uuid4(), "gym_owner", SubscriptionStatus.EXPIRED)

    res = client.get("/api/v1/admin/gyms")

    assert res.status_code == 200
    assert len(res.json()) == 1
    assert res.json()[0]["subscription_status"] == "expired"
    assert res.json()[0]["writes_suspended"] is True


def test_admin_system_health(
    client: TestClient,
    principal: Principal,
    store: _FakeStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    from gym_access.api.routes import admin

    store.assignments.append(RoleAssignment(principal.id, None, "super_admin"))
    fake_redis = SimpleNamespace(ping=AsyncMock(return_value=True), aclose=AsyncMock())
    monkeypatch.setattr(admin.redis, "from_url", lambda *args, **kwargs: fake_redis)

    async def _db_override():
        yield _FakeSession(count=3)

    app.dependency_overrides[get_db_session] = _db_override
    res = client.get("/api/v1/admin/system/health")

    assert res.status_code == 200
    assert res.json() == {"status": "ok", "database_ok": True, "redis_ok": True, "total_gyms": 3}


@pytest.fixture
def webhook_client(monkeypatch: pytest.MonkeyPatch):
    from gym_access.api.routes import webhooks

    published = AsyncMock()
    monkeypatch.setattr(webhooks, "_publish_status", published)
    monkeypatch.setattr(webhooks.settings, "billing_webhook_secret", "")
    state: dict[str, object] = {"session": _FakeSession(), "published": published}

    async def _db_override():
        yield state["session"]

    app.dependency_overrides[get_db_session] = _db_override
    with TestClient(app) as c:
        yield c, state
    app.dependency_overrides.clear()


def _gym(status: SubscriptionStatus, *, current_period_end: datetime | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        name="Gym",
        subscription_status=status.value,
        plan_id=None,
        current_period_end=current_period_end,
        trial_ends_at=None,
    )


def test_billing_webhook_applies_transition(webhook_client) -> None:  # noqa: ANN001
    client, state = webhook_client
    gym = _gym(SubscriptionStatus.PAST_DUE)
    state["session"] = _FakeSession(gym)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(gym.id), "event": "payment_recovered"})

    assert res.status_code == 200
    assert res.json()["updated"] is True
    assert res.json()["previous_status"] == "past_due"
    assert res.json()["status"] == "active"
    assert gym.subscription_status == "active"
    assert state["session"].committed is True
    state["published"].assert_awaited_once_with(gym.id, SubscriptionStatus.ACTIVE)


def test_billing_webhook_rejects_invalid_transition(webhook_client) -> None:  # noqa: ANN001
    client, state = webhook_client
    gym = _gym(SubscriptionStatus.CANCELLED)
    state["session"] = _FakeSession(gym)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(gym.id), "event": "payment_succeeded"})

    assert res.status_code == 409
    assert gym.subscription_status == "cancelled"
    assert state["session"].committed is False
    state["published"].assert_not_awaited()


def test_billing_webhook_redelivery_is_noop(webhook_client) -> None:  # noqa: ANN001
    client, state = webhook_client
    gym = _gym(SubscriptionStatus.ACTIVE)
    state["session"] = _FakeSession(gym)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(gym.id), "event": "payment_succeeded"})

    assert res.status_code == 200
    assert res.json()["updated"] is False
    assert res.json()["status"] == "active"
    state["published"].assert_not_awaited()


def test_billing_webhook_unknown_gym(webhook_client) -> None:  # noqa: ANN001
    client, state = webhook_client
    state["session"] = _FakeSession(None, count=None)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(uuid4()), "event": "cancelled"})

    assert res.status_code == 200
    assert res.json()["gym_id"] is None
    assert res.json()["updated"] is False


def test_billing_webhook_grace_exceeded_uses_period_end(webhook_client) -> None:  # noqa: ANN001
    client, state = webhook_client
    inside = _gym(SubscriptionStatus.PAST_DUE, current_period_end=datetime.now(timezone.utc) - timedelta(days=2))
    state["session"] = _FakeSession(inside)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(inside.id), "event": "grace_exceeded"})

    assert res.status_code == 409
    assert inside.subscription_status == "past_due"
    state["published"].assert_not_awaited()

    overdue = _gym(SubscriptionStatus.PAST_DUE, current_period_end=datetime.now(timezone.utc) - timedelta(days=30))
    state["session"] = _FakeSession(overdue)

    res = client.post("/api/v1/webhooks/billing", json={"gym_id": str(overdue.id), "event": "grace_exceeded"})

    assert res.status_code == 200
    assert res.json()["status"] == "expired"
    state["published"].assert_awaited_once_with(overdue.id, SubscriptionStatus.EXPIRED)


def test_billing_webhook_secret_must_match(webhook_client, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    from gym_access.api.routes import webhooks

    client, state = webhook_client
    gym = _gym(SubscriptionStatus.ACTIVE)
    state["session"] = _FakeSession(gym)
    monkeypatch.setattr(webhooks.settings, "billing_webhook_secret", "s3cret")
    body = {"gym_id": str(gym.id), "event": "payment_failed"}

    assert client.post("/api/v1/webhooks/billing", json=body).status_code == 401
    res = client.post("/api/v1/webhooks/billing", json=body, headers={"X-Billing-Webhook-Secret": "s3cret"})
    assert res.status_code == 200
    assert res.json()["status"] == "past_due"


def test_billing_webhook_validates_payload(webhook_client, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    from gym_access.api.routes import webhooks

    client, _ = webhook_client
    assert client.post("/api/v1/webhooks/billing", json={"gym_id": "nope", "event": "cancelled"}).status_code == 400
    assert client.post("/api/v1/webhooks/billing", json={"gym_id": str(uuid4()), "event": "refund"}).status_code == 422

    monkeypatch.setattr(webhooks.settings, "billing_webhook_secret", "s3cret")
    res = client.post(
        "/api/v1/webhooks/billing",
        json={"gym_id": str(uuid4()), "event": "cancelled"},
        headers={"X-Billing-Webhook-Secret": "wrong"},
    )
    assert res.status_code == 401
