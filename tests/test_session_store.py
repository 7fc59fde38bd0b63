import asyncio

import pytest

from app.core.exceptions import StoreError
from app.models.session import MessagingInstance, Session, heal_session_data
from app.services.session_store import SessionStore
from conftest import FakeCollection


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_unknown_pair_creates_and_persists_default(store, sessions_collection):
    session = asyncio.run(store.get(1, 42))

    assert session.stage == "START"
    assert session.whatsapp.instances == []
    assert session.whatsapp.max_instances == 1
    assert len(sessions_collection.documents) == 1
    stored = sessions_collection.documents[0]
    assert stored["tenant_id"] == 1
    assert stored["chat_id"] == "42"
    assert stored["data"]["stage"] == "START"


def test_save_then_get_returns_equal_session(store):
    session = Session(stage="READY")
    session.whatsapp.instances.append(MessagingInstance(id="user_42_000001", token="user_42_000001", name="Sales"))

    asyncio.run(store.save(1, "42", session))
    loaded = asyncio.run(store.get(1, "42"))

    assert loaded == session


def test_get_after_invalidate_reads_storage(store):
    session = Session(stage="READY", is_vip=True)
    asyncio.run(store.save(1, "42", session))
    store.invalidate(1, "42")

    loaded = asyncio.run(store.get(1, "42"))

    assert loaded is not session
    assert loaded.is_vip is True
    assert loaded.stage == "READY"


def test_expired_cache_entry_is_refetched():
    collection = FakeCollection()
    clock = FakeClock()
    store = SessionStore(collection, ttl_seconds=60, clock=clock)

    asyncio.run(store.save(1, "42", Session(stage="READY")))
    collection.documents[0]["data"]["is_vip"] = True

    assert asyncio.run(store.get(1, "42")).is_vip is False
    assert store.is_cached(1, "42")

    clock.now = 61
    assert not store.is_cached(1, "42")
    assert asyncio.run(store.get(1, "42")).is_vip is True


def test_stored_blob_is_healed_on_read(store, sessions_collection):
    sessions_collection.documents.append({
        "tenant_id": 1,
        "chat_id": "42",
        "data": {"whatsapp": {"instances": [{"id": "a", "token": "a", "name": "Old", "isConnected": True, "wuzapiId": "9"}]}},
    })

    session = asyncio.run(store.get(1, "42"))

    assert session.stage == "READY"
    assert session.whatsapp.max_instances == 1
    assert session.affiliate.referrals_count == 0
    assert session.whatsapp.instances[0].is_connected is True
    assert session.whatsapp.instances[0].gateway_id == "9"


def test_heal_keeps_unknown_keys_and_fills_nulls():
    data = heal_session_data({"stage": "READY", "affiliate": {"balance": None}, "future_flag": 1})

    assert data["affiliate"] == {"balance": 0, "total_earned": 0, "referrals_count": 0}
    assert data["future_flag"] == 1
    assert data["reports"] == {}


def test_read_failure_raises_store_error(store, sessions_collection):
    sessions_collection.fail_reads = True

    with pytest.raises(StoreError):
        asyncio.run(store.get(1, "42"))


def test_write_failure_is_swallowed_and_cache_kept(store, sessions_collection):
    sessions_collection.fail_writes = True
    session = Session(stage="READY", is_vip=True)

    asyncio.run(store.save(1, "42", session))

    assert sessions_collection.documents == []
    assert asyncio.run(store.get(1, "42")) is session


def test_exists_and_count_users(store):
    asyncio.run(store.get(1, "a"))
    asyncio.run(store.get(1, "b"))
    asyncio.run(store.get(2, "a"))

    assert asyncio.run(store.count_users(1)) == 2
    assert asyncio.run(store.exists(2, "a")) is True
    assert asyncio.run(store.exists(2, "b")) is False


def test_invalidate_whole_tenant(store):
    asyncio.run(store.save(1, "a", Session()))
    asyncio.run(store.save(1, "b", Session()))
    asyncio.run(store.save(2, "a", Session()))

    store.invalidate(1)

    assert not store.is_cached(1, "a")
    assert not store.is_cached(1, "b")
    assert store.is_cached(2, "a")
