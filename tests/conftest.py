"""
Shared test doubles: in-memory Mongo collections, Telegram/gateway mocks,
tenant factories.
"""

import copy
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.flow.context import BotContext, BotServices
from app.models.session import Session
from app.models.tenant import Tenant
from app.schemas.webhook import IncomingEvent
from app.services.ai_service import OpenAIService
from app.services.payment_service import PaymentService
from app.services.session_store import SessionStore
from app.services.telegram_service import TelegramService
from app.services.tenant_service import TenantRepository
from app.services.wuzapi_service import WuzapiService
from utils.time_utils import utcnow

OWNER_CHAT_ID = "1000"


def _matches(document, query):
    return all(document.get(key) == value for key, value in (query or {}).items())


class FakeCursor:
    def __init__(self, documents):
        self._documents = documents

    def sort(self, key, direction=1):
        self._documents.sort(key=lambda d: d.get(key), reverse=direction == -1)
        return self

    async def to_list(self, length=None):
        return [copy.deepcopy(d) for d in self._documents]


class FakeCollection:
    """The subset of the Motor collection API the services use."""

    def __init__(self, unique_keys=()):
        self.documents = []
        self.unique_keys = tuple(unique_keys)
        self.fail_reads = False
        self.fail_writes = False
        self._sequence = 0

    def _new_id(self):
        self._sequence += 1
        return self._sequence

    def _check_unique(self, document, ignore=None):
        for key in self.unique_keys:
            if key not in document:
                continue
            for other in self.documents:
                if other is not ignore and other.get(key) == document[key]:
                    raise DuplicateKeyError(f"E11000 duplicate key: {key}={document[key]!r}", code=11000)

    def _read(self):
        if self.fail_reads:
            raise PyMongoError("read failed")

    def _write(self):
        if self.fail_writes:
            raise PyMongoError("write failed")

    @staticmethod
    def _apply(document, update, inserting):
        for key, value in update.get("$set", {}).items():
            document[key] = copy.deepcopy(value)
        if inserting:
            for key, value in update.get("$setOnInsert", {}).items():
                document[key] = copy.deepcopy(value)
        for key, value in update.get("$inc", {}).items():
            document[key] = document.get(key, 0) + value
        for key, value in update.get("$max", {}).items():
            document[key] = max(document.get(key, value), value)

    async def insert_one(self, document):
        self._write()
        document = copy.deepcopy(document)
        document.setdefault("_id", self._new_id())
        self._check_unique(document)
        self.documents.append(document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def find_one(self, query=None, projection=None, sort=None):
        self._read()
        found = [d for d in self.documents if _matches(d, query)]
        if sort:
            key, direction = sort[0]
            found.sort(key=lambda d: d.get(key), reverse=direction == -1)
        if not found:
            return None
        document = copy.deepcopy(found[0])
        if projection:
            keep = {key for key, wanted in projection.items() if wanted}
            document = {key: value for key, value in document.items() if key in keep or key == "_id"}
        return document

    def find(self, query=None):
        self._read()
        return FakeCursor([d for d in self.documents if _matches(d, query)])

    async def update_one(self, query, update, upsert=False):
        self._write()
        for document in self.documents:
            if _matches(document, query):
                self._apply(document, update, inserting=False)
                self._check_unique(document, ignore=document)
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        document = copy.deepcopy(query)
        document.setdefault("_id", self._new_id())
        self._apply(document, update, inserting=True)
        self.documents.append(document)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=document["_id"])

    async def find_one_and_update(self, query, update, upsert=False, return_document=False):
        self._write()
        for document in self.documents:
            if _matches(document, query):
                before = copy.deepcopy(document)
                self._apply(document, update, inserting=False)
                return copy.deepcopy(document) if return_document else before
        if not upsert:
            return None
        document = copy.deepcopy(query)
        self._apply(document, update, inserting=True)
        self.documents.append(document)
        return copy.deepcopy(document) if return_document else None

    async def count_documents(self, query):
        self._read()
        return sum(1 for d in self.documents if _matches(d, query))

    async def delete_one(self, query):
        self._write()
        for index, document in enumerate(self.documents):
            if _matches(document, query):
                del self.documents[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def create_index(self, keys, **kwargs):
        return kwargs.get("name", str(keys))


class FakeBot:
    """Stands in for TenantBot inside the registry."""

    def __init__(self, tenant, fail_start=False):
        self.tenant = tenant
        self.fail_start = fail_start
        self.started = False
        self.stopped = False
        self.sent = []

    async def start(self):
        if self.fail_start:
            from app.core.exceptions import ExternalServiceError
            raise ExternalServiceError("Telegram getMe error: Unauthorized", details={"error_code": 401})
        self.started = True

    async def stop(self):
        self.stopped = True

    async def notify(self, chat_id, text):
        self.sent.append((chat_id, text))


def make_tenant(**overrides) -> Tenant:
    data = {
        "id": 1,
        "name": "Acme",
        "telegram_token": "123456:ABCDEF",
        "owner_chat_id": OWNER_CHAT_ID,
        "is_active": True,
        "expiration_date": utcnow() + timedelta(days=10),
        "max_users": 10,
    }
    data.update(overrides)
    return Tenant(**data)


def make_event(chat_id="2000", text=None, callback_data=None, first_name="Ana") -> IncomingEvent:
    if callback_data is not None:
        return IncomingEvent(
            update_id=1,
            kind="callback",
            chat_id=str(chat_id),
            first_name=first_name,
            message_id=77,
            callback_id="cb-1",
            callback_data=callback_data,
        )
    return IncomingEvent(update_id=1, kind="message", chat_id=str(chat_id), first_name=first_name, text=text, message_id=55)


def make_telegram() -> AsyncMock:
    return AsyncMock(spec=TelegramService)


def html_page(request: httpx.Request) -> httpx.Response:
    """MockTransport handler: a 200 error page from a proxy in front of an API."""
    return httpx.Response(200, text="<html>oops</html>", headers={"Content-Type": "text/html"})


def sent_texts(telegram) -> list:
    """Every text sent or edited through a mocked TelegramService, in order."""
    texts = []
    for call in telegram.mock_calls:
        name, args, kwargs = call
        if name == "send_message":
            texts.append(args[1] if len(args) > 1 else kwargs.get("text"))
        elif name == "edit_message":
            texts.append(args[2] if len(args) > 2 else kwargs.get("text"))
    return texts


@pytest.fixture
def sessions_collection():
    return FakeCollection()


@pytest.fixture
def store(sessions_collection):
    return SessionStore(sessions_collection, ttl_seconds=300)


@pytest.fixture
def tenant_collections():
    return SimpleNamespace(
        tenants=FakeCollection(unique_keys=("id",)),
        system_config=FakeCollection(unique_keys=("key",)),
        counters=FakeCollection(),
    )


@pytest.fixture
def repo(tenant_collections):
    return TenantRepository(tenant_collections.tenants, tenant_collections.system_config, tenant_collections.counters)


@pytest.fixture
def services(store, repo):
    return BotServices(
        sessions=store,
        tenants=repo,
        wuzapi=AsyncMock(spec=WuzapiService),
        ai=AsyncMock(spec=OpenAIService),
        payments=AsyncMock(spec=PaymentService),
        registry=MagicMock(),
    )


@pytest.fixture
def bot_context(services):
    """Builds a BotContext with a mocked TelegramService."""
    def build(event=None, tenant=None, session=None):
        return BotContext(
            event=event or make_event(text="hello"),
            telegram=make_telegram(),
            tenant=tenant or make_tenant(),
            services=services,
            session=session or Session(stage="READY"),
        )
    return build
