import asyncio
from datetime import timedelta

import pytest

from app.core.exceptions import StoreError
from app.models.session import Session
from app.services.access_gate import AccessGate
from conftest import OWNER_CHAT_ID, make_tenant
from utils.constants import PLAN_EXPIRED_MESSAGE
from utils.time_utils import utcnow


@pytest.fixture
def gate(store):
    return AccessGate(store)


def test_owner_admitted_even_when_expired(gate):
    tenant = make_tenant(expiration_date=utcnow() - timedelta(days=1))

    decision = asyncio.run(gate.check(tenant, OWNER_CHAT_ID))

    assert decision.admitted


def test_expired_tenant_refuses_non_owner(gate):
    tenant = make_tenant(expiration_date=utcnow() - timedelta(seconds=1))

    decision = asyncio.run(gate.check(tenant, "2000"))

    assert not decision.admitted
    assert decision.reply == PLAN_EXPIRED_MESSAGE


def test_no_expiration_date_never_expires(gate):
    tenant = make_tenant(expiration_date=None)

    assert asyncio.run(gate.check(tenant, "2000")).admitted


def test_quota_admits_first_n_users_and_refuses_next(gate):
    tenant = make_tenant(max_users=2)

    first = asyncio.run(gate.check(tenant, "a"))
    second = asyncio.run(gate.check(tenant, "b"))
    third = asyncio.run(gate.check(tenant, "c"))

    assert first.admitted and first.new_user
    assert second.admitted and second.new_user
    assert not third.admitted
    assert "2" in third.reply
    assert tenant.active_user_count == 2


def test_refusal_leaves_counter_unchanged(gate):
    tenant = make_tenant(max_users=1)
    tenant.active_user_count = 1

    decision = asyncio.run(gate.check(tenant, "new"))

    assert not decision.admitted
    assert tenant.active_user_count == 1


def test_known_user_admitted_at_limit(gate, store):
    tenant = make_tenant(max_users=1)
    asyncio.run(store.save(tenant.id, "known", Session(stage="READY")))
    store.invalidate(tenant.id)
    tenant.active_user_count = 1

    decision = asyncio.run(gate.check(tenant, "known"))

    assert decision.admitted
    assert not decision.new_user
    assert tenant.active_user_count == 1


def test_cached_user_skips_storage(gate, store, sessions_collection):
    tenant = make_tenant(max_users=1)
    asyncio.run(store.save(tenant.id, "cached", Session(stage="READY")))
    sessions_collection.fail_reads = True

    assert asyncio.run(gate.check(tenant, "cached")).admitted


def test_storage_failure_propagates(gate, sessions_collection):
    sessions_collection.fail_reads = True

    with pytest.raises(StoreError):
        asyncio.run(gate.check(make_tenant(), "stranger"))
