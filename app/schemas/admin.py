"""
app/schemas/admin.py

Purpose: Admin HTTP request and response bodies
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.models.tenant import Tenant
from utils.telegram_utils import mask_token


class CreateTenantRequest(BaseModel):
    name: str
    telegram_token: str
    syncpay_id: Optional[str] = None
    syncpay_secret: Optional[str] = None
    owner_chat_id: Optional[Union[str, int]] = Field(default=None, description="Owner's Telegram chat id")

    @field_validator("owner_chat_id", mode="after")
    @classmethod
    def stringify_owner(cls, value: Optional[Union[str, int]]) -> Optional[str]:
        return str(value) if value is not None else None


class TenantSummary(BaseModel):
    """Tenant as shown to operators: secrets masked."""
    id: int
    name: str
    telegram_token: str
    owner_chat_id: Optional[str] = None
    is_active: bool
    expiration_date: Optional[datetime] = None
    max_users: int
    subscription_price: Optional[float] = None
    payment_configured: bool
    ai_configured: bool
    running: bool = False

    @classmethod
    def from_tenant(cls, tenant: Tenant, running: bool = False) -> "TenantSummary":
        return cls(
            id=tenant.id,
            name=tenant.name,
            telegram_token=mask_token(tenant.telegram_token),
            owner_chat_id=tenant.owner_chat_id,
            is_active=tenant.is_active,
            expiration_date=tenant.expiration_date,
            max_users=tenant.user_limit,
            subscription_price=tenant.subscription_price,
            payment_configured=tenant.has_payment_credentials,
            ai_configured=bool(tenant.openai_api_key),
            running=running,
        )
