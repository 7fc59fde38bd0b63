"""
app/services/session_store.py

Purpose: Session state store

- Cache-aside layer over the bot_sessions collection
- Composite key (tenant_id, chat_id)
- Synthesizes and persists a default session on first contact
- Heals stored blobs to the current schema on read
- Write-through: every save refreshes the cache before hitting storage
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.models.session import Session

logger = get_logger(__name__)

CacheKey = Tuple[int, str]


@dataclass
class CacheEntry:
    session: Session
    fetched_at: float


class SessionStore:
    """
    The only path through which session state is read or written at request
    time. Callers never see cache vs. storage.
    """

    def __init__(
        self,
        collection,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._collection = collection
        self._ttl = settings.SESSION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: Dict[CacheKey, CacheEntry] = {}

    @staticmethod
    def _key(tenant_id: int, chat_id: Any) -> CacheKey:
        return (tenant_id, str(chat_id))

    @staticmethod
    def _filter(key: CacheKey) -> Dict[str, Any]:
        return {"tenant_id": key[0], "chat_id": key[1]}

    def _fresh_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry

    def is_cached(self, tenant_id: int, chat_id: Any) -> bool:
        return self._fresh_entry(self._key(tenant_id, chat_id)) is not None

    async def get(self, tenant_id: int, chat_id: Any) -> Session:
        """
        Returns the session for (tenant_id, chat_id). Never raises not-found:
        an unknown pair gets a default session which is persisted first.

        Raises:
            StoreError: If the durable read fails
        """
        key = self._key(tenant_id, chat_id)

        entry = self._fresh_entry(key)
        if entry is not None:
            return entry.session

        try:
            document = await self._collection.find_one(self._filter(key), {"data": 1})
        except PyMongoError as e:
            logger.error(
                f"Session read failed: {e}",
                extra={"tenant_id": tenant_id, "chat_id": key[1]}
            )
            raise StoreError("Could not load session", details={"tenant_id": tenant_id}) from e

        if document is not None:
            session = Session.from_document(document.get("data"))
            self._cache[key] = CacheEntry(session=session, fetched_at=self._clock())
            return session

        logger.info(
            "Creating default session",
            extra={"tenant_id": tenant_id, "chat_id": key[1]}
        )
        session = Session()
        await self.save(tenant_id, chat_id, session)
        return session

    async def save(self, tenant_id: int, chat_id: Any, session: Session) -> None:
        """
        Upserts the session. Storage failures are logged and swallowed: the
        cache already holds the intended value.
        """
        key = self._key(tenant_id, chat_id)
        self._cache[key] = CacheEntry(session=session, fetched_at=self._clock())

        try:
            await self._collection.update_one(
                self._filter(key),
                {
                    "$set": {
                        "data": session.to_document(),
                        "updated_at": datetime.now(timezone.utc),
                    }
                },
                upsert=True,
            )
        except Exception as e:
            logger.error(
                f"Session write failed, cache kept: {e}",
                extra={"tenant_id": tenant_id, "chat_id": key[1], "stage": session.stage},
                exc_info=True,
            )

    async def exists(self, tenant_id: int, chat_id: Any) -> bool:
        """Durable lookup, ignoring the cache."""
        key = self._key(tenant_id, chat_id)
        try:
            document = await self._collection.find_one(self._filter(key), {"_id": 1})
        except PyMongoError as e:
            raise StoreError("Could not check session", details={"tenant_id": tenant_id}) from e
        return document is not None

    async def count_users(self, tenant_id: int) -> int:
        """Number of distinct chats that ever reached this tenant's bot."""
        try:
            return await self._collection.count_documents({"tenant_id": tenant_id})
        except PyMongoError as e:
            raise StoreError("Could not count sessions", details={"tenant_id": tenant_id}) from e

    def invalidate(self, tenant_id: int, chat_id: Optional[Any] = None) -> None:
        """Drops cache entries for one chat or for a whole tenant."""
        if chat_id is not None:
            self._cache.pop(self._key(tenant_id, chat_id), None)
            return
        for key in [k for k in self._cache if k[0] == tenant_id]:
            del self._cache[key]
