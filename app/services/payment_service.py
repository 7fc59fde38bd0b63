"""
app/services/payment_service.py

Purpose: Subscription charges through the master SyncPay account

- Authenticates as the platform (master credentials)
- Creates a PIX cash-in charge for a tenant renewal
- Charge e-mail encodes the tenant id for the payment webhook
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.models.tenant import Tenant

logger = get_logger(__name__)

AUTH_PATH = "/api/partner/v1/auth-token"
CASH_IN_PATH = "/api/partner/v1/cash-in"

# The gateway requires these; renewals are B2B so placeholders are sent
PLACEHOLDER_PHONE = "11999999999"
PLACEHOLDER_CPF = "00000000000"


@dataclass
class Charge:
    id: Optional[str]
    amount: float
    pix_code: str


def billing_email(tenant_id: int) -> str:
    return f"tenant_{tenant_id}@{settings.BILLING_EMAIL_DOMAIN}"


class PaymentService:
    """SyncPay partner API client for platform renewals."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.SYNCPAY_BASE_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else settings.SYNCPAY_MASTER_ID
        self.client_secret = client_secret if client_secret is not None else settings.SYNCPAY_MASTER_SECRET
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _auth_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            f"{self.base_url}{AUTH_PATH}",
            json={"client_id": self.client_id, "client_secret": self.client_secret},
        )
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"SyncPay auth failed ({response.status_code})",
                details={"body": response.text[:500]},
            )
        try:
            token = response.json().get("access_token")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(
                "SyncPay auth returned an unreadable reply",
                details={"body": response.text[:500]},
            ) from e
        if not token:
            raise ExternalServiceError("SyncPay auth returned no access_token")
        return token

    async def create_subscription_charge(self, tenant: Tenant, amount: float) -> Charge:
        """
        Creates a PIX charge that renews `tenant` once paid.

        Raises:
            ExternalServiceError: If billing is not configured or the gateway fails
        """
        if not self.is_configured():
            raise ExternalServiceError("Billing is not configured by the platform administrator")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                token = await self._auth_token(client)
                logger.info(
                    f"Creating renewal charge of {amount:.2f}",
                    extra={"tenant_id": tenant.id, "operation": "renewal_charge"}
                )
                response = await client.post(
                    f"{self.base_url}{CASH_IN_PATH}",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                    json={
                        "amount": amount,
                        "description": f"SaaS renewal - {tenant.name}",
                        "webhook_url": f"{settings.webhook_base}/webhook/master",
                        "client": {
                            "name": tenant.name,
                            "email": billing_email(tenant.id),
                            "phone": PLACEHOLDER_PHONE,
                            "cpf": PLACEHOLDER_CPF,
                        },
                    },
                )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"SyncPay request failed: {e}") from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"SyncPay charge failed ({response.status_code})",
                details={"body": response.text[:500]},
            )

        try:
            data = response.json()
            pix_code = data.get("pix_code")
            identifier = data.get("identifier")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(
                "SyncPay charge returned an unreadable reply",
                details={"body": response.text[:500]},
            ) from e
        if not pix_code:
            raise ExternalServiceError("SyncPay charge returned no pix_code")
        return Charge(id=identifier, amount=amount, pix_code=pix_code)


# Singleton instance
payment_service = PaymentService()
