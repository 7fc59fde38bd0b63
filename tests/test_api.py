import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import app
from app.models.session import MessagingInstance, Session
from app.services.runtime import Runtime
from conftest import FakeBot, FakeCollection, make_tenant


@pytest.fixture
def payment_events():
    return FakeCollection(unique_keys=("event_id",))


@pytest.fixture
def runtime(store, repo, services, payment_events):
    return Runtime(
        store,
        repo,
        payment_events,
        wuzapi=services.wuzapi,
        ai=services.ai,
        payments=services.payments,
        bot_factory=FakeBot,
    )


@pytest.fixture
def client(runtime, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", None)
    app.state.runtime = runtime
    yield TestClient(app)
    app.state.runtime = None


@pytest.fixture
def linked_session(store):
    session = Session(stage="READY")
    session.whatsapp.instances.append(MessagingInstance(id="user_2000_000001", token="user_2000_000001", name="Sales"))
    asyncio.run(store.save(1, "2000", session))
    store.invalidate(1)
    return session


# ============================================================
# HEALTH
# ============================================================

def test_root_and_liveness(client):
    assert client.get("/").json()["name"] == "BotFleet API"
    assert client.get("/live").json() == {"status": "alive"}


def test_ready_requires_runtime(client, monkeypatch):
    monkeypatch.setattr("app.main.check_database_health", AsyncMock(return_value=True))
    assert client.get("/ready").status_code == 200

    app.state.runtime = None
    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["reason"] == "runtime_not_started"


def test_health_reports_bots(client, runtime, monkeypatch):
    monkeypatch.setattr("app.main.check_database_health", AsyncMock(return_value=True))
    asyncio.run(runtime.registry.start(make_tenant()))

    checks = client.get("/health").json()["checks"]

    assert checks["database"] == "healthy"
    assert checks["tenant_bots"] == 1
    assert checks["master_bot"] == "disabled"


# ============================================================
# ADMIN
# ============================================================

def test_create_tenant(client, runtime):
    response = client.post(
        "/admin/create-tenant",
        json={"name": "Acme", "telegram_token": "111:AAA", "owner_chat_id": 1000, "syncpay_id": "id", "syncpay_secret": "s"},
    )

    assert response.status_code == 200
    tenant = response.json()["tenant"]
    assert response.json()["success"] is True
    assert tenant["id"] == 1
    assert tenant["owner_chat_id"] == "1000"
    assert tenant["telegram_token"] == "...1:AAA"
    assert tenant["payment_configured"] is True
    assert tenant["running"] is True
    assert runtime.registry.is_running(1)


def test_create_tenant_reports_bot_start_failure(client, runtime):
    runtime.registry._bot_factory = lambda tenant: FakeBot(tenant, fail_start=True)

    response = client.post("/admin/create-tenant", json={"name": "Acme", "telegram_token": "111:AAA"})

    assert response.status_code == 200
    assert response.json()["tenant"]["running"] is False


@pytest.mark.parametrize("body", [
    {"name": "Acme"},
    {"telegram_token": "111:AAA"},
    {"name": "   ", "telegram_token": "111:AAA"},
])
def test_create_tenant_rejects_incomplete_body(client, body):
    response = client.post("/admin/create-tenant", json=body)

    assert response.status_code == 400
    assert "error" in response.json()


def test_create_tenant_rejects_invalid_json(client):
    response = client.post("/admin/create-tenant", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400


def test_admin_token_guard(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", "secret")

    refused = client.get("/admin/tenants")
    allowed = client.get("/admin/tenants", headers={"X-Admin-Token": "secret"})

    assert refused.status_code == 401
    assert refused.json()["code"] == "AUTHENTICATION_FAILED"
    assert allowed.status_code == 200


def test_list_tenants(client, runtime, tenant_collections):
    tenant_collections.tenants.documents.append(make_tenant().to_document())
    asyncio.run(runtime.registry.start(make_tenant()))

    tenants = client.get("/admin/tenants").json()["tenants"]

    assert [t["name"] for t in tenants] == ["Acme"]
    assert tenants[0]["running"] is True
    assert tenants[0]["telegram_token"] == "...BCDEF"


# ============================================================
# PAYMENT WEBHOOK
# ============================================================

def test_payment_webhook_renews(client, tenant_collections):
    tenant_collections.tenants.documents.append(make_tenant().to_document())

    response = client.post(
        "/webhook/master",
        json={"data": {"id": "evt-1", "status": "completed", "client": {"email": "tenant_1@botfleet.app"}}},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_payment_webhook_statuses(client):
    ignored = client.post("/webhook/master", json={"status": "pending"})
    missing = client.post("/webhook/master", json={"status": "completed"})
    unknown = client.post("/webhook/master", json={"status": "PAID", "external_id": "SUB_99"})

    assert ignored.status_code == 200 and ignored.json()["ignored"] is True
    assert missing.status_code == 400
    assert unknown.status_code == 404


def test_payment_webhook_rejects_non_object(client):
    assert client.post("/webhook/master", json=[1, 2]).status_code == 400
    assert client.post("/webhook/master", content=b"oops", headers={"Content-Type": "application/json"}).status_code == 400


# ============================================================
# GATEWAY WEBHOOK
# ============================================================

def test_gateway_connect_event_updates_instance(client, store, linked_session):
    response = client.post("/webhook/wuzapi/1/2000/user_2000_000001", json={"type": "Connected"})

    assert response.json() == {"ok": True, "connected": True}
    store.invalidate(1)
    session = asyncio.run(store.get(1, "2000"))
    assert session.find_instance("user_2000_000001").is_connected is True


def test_gateway_disconnect_event(client, store, linked_session):
    client.post("/webhook/wuzapi/1/2000/user_2000_000001", json={"type": "Connected"})

    response = client.post("/webhook/wuzapi/1/2000/user_2000_000001", json={"type": "LoggedOut"})

    assert response.json()["connected"] is False


@pytest.mark.parametrize("path, body", [
    ("/webhook/wuzapi/1/2000/user_2000_000001", {"type": "Message"}),
    ("/webhook/wuzapi/1/3000/user_2000_000001", {"type": "Connected"}),
    ("/webhook/wuzapi/1/2000/user_2000_999999", {"type": "Connected"}),
])
def test_gateway_events_ignored(client, sessions_collection, linked_session, path, body):
    before = [dict(d) for d in sessions_collection.documents]

    response = client.post(path, json=body)

    assert response.status_code == 200
    assert response.json()["ignored"] is True
    assert len(sessions_collection.documents) == len(before)


# ============================================================
# RUNTIME
# ============================================================

def test_runtime_starts_and_stops_everything(runtime, tenant_collections, monkeypatch):
    monkeypatch.setattr(settings, "MASTER_BOT_TOKEN", None)
    tenant_collections.tenants.documents.append(make_tenant().to_document())
    master_bot = AsyncMock()
    runtime.master_bot = master_bot

    asyncio.run(runtime.startup())

    assert runtime.registry.running_ids == [1]
    master_bot.start.assert_awaited_once()

    asyncio.run(runtime.shutdown())

    master_bot.stop.assert_awaited_once()
    assert runtime.registry.running_ids == []


def test_runtime_without_master_token(runtime, monkeypatch):
    monkeypatch.setattr(settings, "MASTER_BOT_TOKEN", None)

    asyncio.run(runtime.startup())

    assert runtime.master_bot is None
