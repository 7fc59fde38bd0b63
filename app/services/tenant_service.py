"""
app/services/tenant_service.py

Purpose: Tenant data management

- Create tenants with numeric ids
- Read single / active / all tenants
- Field updates from owner wizards, master console and reconciler
- Global scalar settings (default price) in system_config
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.exceptions import StoreError, ValidationError
from app.core.logging import get_logger, LogContext
from app.models.tenant import Tenant
from utils.time_utils import utcnow

logger = get_logger(__name__)

DEFAULT_PRICE_KEY = "default_price"
TENANT_SEQUENCE = "tenants"


class TenantRepository:
    """Durable tenant records. No caching: every call reads storage."""

    def __init__(self, tenants, system_config, counters):
        self._tenants = tenants
        self._system_config = system_config
        self._counters = counters

    async def get_record(self, tenant_id: int) -> Optional[Dict[str, Any]]:
        """
        Returns the raw tenant document or None.

        Raises:
            StoreError: If the read fails
        """
        try:
            document = await self._tenants.find_one({"id": tenant_id})
        except PyMongoError as e:
            raise StoreError("Could not load tenant", details={"tenant_id": tenant_id}) from e
        if document is not None:
            document.pop("_id", None)
        return document

    async def get(self, tenant_id: int) -> Optional[Tenant]:
        record = await self.get_record(tenant_id)
        return Tenant.from_document(record) if record else None

    async def _list(self, query: Dict[str, Any]) -> List[Tenant]:
        try:
            documents = await self._tenants.find(query).sort("id", 1).to_list(None)
        except PyMongoError as e:
            raise StoreError("Could not list tenants") from e
        return [Tenant.from_document(doc) for doc in documents]

    async def list_active(self) -> List[Tenant]:
        return await self._list({"is_active": True})

    async def list_all(self) -> List[Tenant]:
        return await self._list({})

    async def _next_id(self) -> int:
        counter = await self._counters.find_one_and_update(
            {"_id": TENANT_SEQUENCE},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def create(
        self,
        name: str,
        telegram_token: str,
        owner_chat_id: Optional[str] = None,
        syncpay_client_id: Optional[str] = None,
        syncpay_client_secret: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tenant:
        """
        Inserts an active tenant whose first period starts now.

        Raises:
            ValidationError: If name or token is missing
            StoreError: If the insert fails
        """
        name = (name or "").strip()
        telegram_token = (telegram_token or "").strip()
        if not name:
            raise ValidationError("Tenant name is required")
        if not telegram_token:
            raise ValidationError("Bot token is required")

        now = now or utcnow()
        try:
            tenant_id = await self._next_id()
            tenant = Tenant(
                id=tenant_id,
                name=name,
                telegram_token=telegram_token,
                owner_chat_id=owner_chat_id,
                syncpay_client_id=syncpay_client_id,
                syncpay_client_secret=syncpay_client_secret,
                is_active=True,
                expiration_date=now + timedelta(days=settings.SUBSCRIPTION_PERIOD_DAYS),
                created_at=now,
            )
            await self._tenants.insert_one(tenant.to_document())
        except PyMongoError as e:
            logger.error(f"Tenant insert failed: {e}", exc_info=True)
            raise StoreError(f"Could not create tenant: {e}") from e

        with LogContext(tenant_id=tenant.id, tenant_name=tenant.name):
            logger.info("Tenant created")
        return tenant

    async def update(self, tenant_id: int, fields: Dict[str, Any]) -> bool:
        """
        Sets the given fields. Returns False if no tenant matched.

        Raises:
            StoreError: If the write fails
        """
        try:
            result = await self._tenants.update_one({"id": tenant_id}, {"$set": fields})
        except PyMongoError as e:
            logger.error(
                f"Tenant update failed: {e}",
                extra={"tenant_id": tenant_id, "operation": ",".join(fields)}
            )
            raise StoreError("Could not update tenant", details={"tenant_id": tenant_id}) from e
        return result.matched_count > 0

    async def get_global_price(self) -> float:
        try:
            document = await self._system_config.find_one({"key": DEFAULT_PRICE_KEY})
        except PyMongoError as e:
            raise StoreError("Could not read global price") from e
        if not document:
            return settings.DEFAULT_SUBSCRIPTION_PRICE
        try:
            return float(document["value"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Ignoring malformed {DEFAULT_PRICE_KEY}: {document.get('value')!r}")
            return settings.DEFAULT_SUBSCRIPTION_PRICE

    async def set_global_price(self, price: float) -> None:
        try:
            await self._system_config.update_one(
                {"key": DEFAULT_PRICE_KEY},
                {"$set": {"value": str(price)}},
                upsert=True,
            )
        except PyMongoError as e:
            raise StoreError("Could not save global price") from e

    async def price_for(self, tenant: Tenant) -> float:
        """Fixed override if set, global default otherwise."""
        if tenant.subscription_price:
            return tenant.subscription_price
        return await self.get_global_price()
