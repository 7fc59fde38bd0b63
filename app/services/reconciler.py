"""
app/services/reconciler.py

Purpose: Subscription renewal from payment-gateway notifications

- Accepts the SyncPay payload (top-level or nested under `data`)
- Finds the tenant from the charge e-mail, then from the external id
- Extends the subscription by one period and reactivates the tenant
- Claims each gateway event id once, so a redelivery renews only once
- Notifies the owner through the tenant's running bot
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import settings
from app.core.exceptions import ExternalServiceError, StoreError
from app.core.logging import get_logger
from app.models.tenant import Tenant
from app.services.lifecycle import TenantRegistry
from app.services.tenant_service import TenantRepository
from utils.constants import PAYMENT_CONFIRMED_MESSAGE
from utils.time_utils import extend_expiration, format_date, utcnow
from utils.validation_utils import extract_tenant_id_from_email, extract_tenant_id_from_external_id

logger = get_logger(__name__)

COMPLETED_STATUSES = frozenset({"completed", "PAID", "RECEIVED"})


@dataclass
class ReconcileOutcome:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def extract_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    nested = body.get("data")
    return nested if isinstance(nested, dict) else body


def extract_tenant_id(payload: Dict[str, Any]) -> Optional[int]:
    """Charge e-mail first (tenant_<id>@...), then external_id (SUB_<id>)."""
    client = payload.get("client")
    email = client.get("email") if isinstance(client, dict) else None
    tenant_id = extract_tenant_id_from_email(email)
    if tenant_id is not None:
        return tenant_id
    return extract_tenant_id_from_external_id(payload.get("external_id"))


class SubscriptionReconciler:
    def __init__(
        self,
        tenants: TenantRepository,
        registry: TenantRegistry,
        payment_events,
        clock: Callable[[], datetime] = utcnow,
        period_days: Optional[int] = None,
    ):
        self._tenants = tenants
        self._registry = registry
        self._events = payment_events
        self._clock = clock
        self._period_days = period_days or settings.SUBSCRIPTION_PERIOD_DAYS

    async def process(self, body: Dict[str, Any]) -> ReconcileOutcome:
        payload = extract_payload(body or {})
        status = payload.get("status")
        event_id = payload.get("id")

        logger.info(f"💰 Payment notification: status={status} id={event_id}")

        if not isinstance(status, str) or status not in COMPLETED_STATUSES:
            return ReconcileOutcome(200, {"ignored": True, "reason": f"Status {status} not eligible"})

        tenant_id = extract_tenant_id(payload)
        if tenant_id is None:
            logger.error("Tenant id not found in payment payload")
            return ReconcileOutcome(400, {"error": "Tenant ID not found in payload"})

        try:
            tenant = await self._tenants.get(tenant_id)
        except StoreError as e:
            return ReconcileOutcome(500, {"error": e.message})
        if tenant is None:
            logger.error("Payment for unknown tenant", extra={"tenant_id": tenant_id})
            return ReconcileOutcome(404, {"error": "Tenant not found"})

        if event_id is not None:
            try:
                claimed = await self._claim(event_id, tenant_id, status)
            except PyMongoError as e:
                logger.error(f"Could not claim payment event: {e}", extra={"tenant_id": tenant_id})
                return ReconcileOutcome(500, {"error": "Could not record payment event"})
            if not claimed:
                logger.info(f"Duplicate payment event {event_id} ignored", extra={"tenant_id": tenant_id})
                return ReconcileOutcome(200, {"ignored": True, "reason": "duplicate event"})

        new_expiration = extend_expiration(tenant.expiration_date, self._period_days, now=self._clock())
        try:
            await self._tenants.update(tenant_id, {"expiration_date": new_expiration, "is_active": True})
        except StoreError as e:
            if event_id is not None:
                await self._release(event_id)
            return ReconcileOutcome(500, {"error": e.message})

        logger.info(
            f"✅ Subscription renewed until {new_expiration.isoformat()}",
            extra={"tenant_id": tenant_id, "tenant_name": tenant.name},
        )

        await self._after_renewal(tenant, new_expiration)
        return ReconcileOutcome(200, {"success": True, "new_expiration": new_expiration.isoformat()})

    async def _claim(self, event_id: Any, tenant_id: int, status: str) -> bool:
        """
        Records the event id. Returns False if it was already recorded.

        Raises:
            PyMongoError: On any other write failure
        """
        try:
            await self._events.insert_one({
                "event_id": str(event_id),
                "tenant_id": tenant_id,
                "status": status,
                "processed_at": self._clock(),
            })
        except DuplicateKeyError:
            return False
        return True

    async def _release(self, event_id: Any) -> None:
        """Lets the gateway's retry through after a failed renewal."""
        try:
            await self._events.delete_one({"event_id": str(event_id)})
        except PyMongoError as e:
            logger.error(f"Could not release payment event {event_id}: {e}")

    async def _after_renewal(self, tenant: Tenant, new_expiration: datetime) -> None:
        if self._registry.is_running(tenant.id):
            try:
                await self._registry.reload(tenant.id)
            except StoreError as e:
                logger.warning(f"Reload after renewal failed: {e.message}", extra={"tenant_id": tenant.id})

            if tenant.owner_chat_id:
                text = PAYMENT_CONFIRMED_MESSAGE.format(expiration=format_date(new_expiration))
                try:
                    await self._registry.notify(tenant.id, tenant.owner_chat_id, text)
                except ExternalServiceError as e:
                    logger.warning(f"Owner notification failed: {e.message}", extra={"tenant_id": tenant.id})
            return

        if not tenant.is_active:
            tenant.expiration_date = new_expiration
            tenant.is_active = True
            try:
                await self._registry.start(tenant)
            except Exception as e:
                logger.error(f"Could not start renewed tenant: {e}", extra={"tenant_id": tenant.id})
