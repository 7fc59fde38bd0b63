import asyncio

import pytest

from app.core.exceptions import ExternalServiceError
from app.models.session import Session
from app.services.lifecycle import TenantRegistry
from conftest import FakeBot, make_tenant


class BotFactory:
    """Records every bot the registry builds; tenant ids in `failing` refuse to start."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.built = []

    def __call__(self, tenant):
        bot = FakeBot(tenant, fail_start=tenant.id in self.failing)
        self.built.append(bot)
        return bot


@pytest.fixture
def factory():
    return BotFactory()


@pytest.fixture
def registry(services, factory):
    return TenantRegistry(services, bot_factory=factory)


def store_tenant(tenant_collections, tenant):
    tenant_collections.tenants.documents.append(tenant.to_document())
    return tenant


def test_registry_attaches_itself_to_services(registry, services):
    assert services.registry is registry


def test_start_registers_bot_and_loads_user_count(registry, store):
    tenant = make_tenant()
    asyncio.run(store.save(tenant.id, "a", Session()))
    asyncio.run(store.save(tenant.id, "b", Session()))

    bot = asyncio.run(registry.start(tenant))

    assert bot.started
    assert registry.is_running(tenant.id)
    assert registry.get(tenant.id) is bot
    assert tenant.active_user_count == 2


def test_start_twice_leaves_one_bot(registry, factory):
    tenant = make_tenant()

    first = asyncio.run(registry.start(tenant))
    second = asyncio.run(registry.start(tenant))

    assert first.stopped
    assert registry.get(tenant.id) is second
    assert registry.running_ids == [tenant.id]


def test_concurrent_starts_leave_one_bot(registry, factory):
    tenant = make_tenant()

    async def scenario():
        await asyncio.gather(registry.start(tenant), registry.start(tenant))

    asyncio.run(scenario())

    assert len(factory.built) == 2
    running = [bot for bot in factory.built if not bot.stopped]
    assert len(running) == 1
    assert registry.get(tenant.id) is running[0]


def test_failed_start_is_not_registered(services):
    registry = TenantRegistry(services, bot_factory=BotFactory(failing={1}))

    with pytest.raises(ExternalServiceError):
        asyncio.run(registry.start(make_tenant()))

    assert not registry.is_running(1)


def test_stop(registry):
    tenant = make_tenant()
    bot = asyncio.run(registry.start(tenant))

    assert asyncio.run(registry.stop(tenant.id)) is True
    assert bot.stopped
    assert not registry.is_running(tenant.id)
    assert asyncio.run(registry.stop(tenant.id)) is False


def test_reload_merges_record_and_keeps_counter(registry, tenant_collections):
    tenant = store_tenant(tenant_collections, make_tenant())
    asyncio.run(registry.start(tenant))
    tenant.active_user_count = 7
    tenant_collections.tenants.documents[0]["max_users"] = 50
    tenant_collections.tenants.documents[0]["system_prompt"] = "Be brief"

    assert asyncio.run(registry.reload(tenant.id)) is True

    live = registry.get(tenant.id).tenant
    assert live.max_users == 50
    assert live.system_prompt == "Be brief"
    assert live.active_user_count == 7


def test_reload_of_stopped_or_missing_tenant(registry):
    assert asyncio.run(registry.reload(1)) is False

    asyncio.run(registry.start(make_tenant()))
    assert asyncio.run(registry.reload(1)) is False


def test_load_all_isolates_failures(services, tenant_collections):
    factory = BotFactory(failing={2})
    registry = TenantRegistry(services, bot_factory=factory)
    for tenant_id in (1, 2, 3):
        store_tenant(tenant_collections, make_tenant(id=tenant_id, name=f"T{tenant_id}"))
    store_tenant(tenant_collections, make_tenant(id=4, is_active=False))

    started = asyncio.run(registry.load_all())

    assert started == 2
    assert registry.running_ids == [1, 3]


def test_load_all_survives_storage_outage(registry, tenant_collections):
    tenant_collections.tenants.fail_reads = True

    assert asyncio.run(registry.load_all()) == 0


def test_stop_all(registry, factory):
    asyncio.run(registry.start(make_tenant(id=1)))
    asyncio.run(registry.start(make_tenant(id=2)))

    asyncio.run(registry.stop_all())

    assert registry.running_ids == []
    assert all(bot.stopped for bot in factory.built)


def test_notify_goes_through_running_bot(registry):
    bot = asyncio.run(registry.start(make_tenant()))

    assert asyncio.run(registry.notify(1, "1000", "hello")) is True
    assert bot.sent == [("1000", "hello")]
    assert asyncio.run(registry.notify(99, "1000", "hello")) is False
