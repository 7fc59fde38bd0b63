"""
app/models/tenant.py

Purpose: Tenant document model

- Bot credential and owner chat id
- Activation flag and subscription expiry
- User quota, price override, AI and payment credentials
- In-memory live user counter (never persisted)
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings
from utils.time_utils import utcnow

# Fields a record read back from storage may overwrite on the live object
PERSISTED_FIELDS = (
    "name",
    "telegram_token",
    "owner_chat_id",
    "is_active",
    "expiration_date",
    "max_users",
    "subscription_price",
    "openai_api_key",
    "openai_model",
    "system_prompt",
    "syncpay_client_id",
    "syncpay_client_secret",
    "created_at",
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes unless tz_aware is set; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Tenant(BaseModel):
    """A customer running one bot instance on the platform."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: int
    name: str
    telegram_token: str
    owner_chat_id: Optional[str] = None
    is_active: bool = True
    expiration_date: Optional[datetime] = None
    max_users: Optional[int] = None
    subscription_price: Optional[float] = None
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    system_prompt: Optional[str] = None
    syncpay_client_id: Optional[str] = None
    syncpay_client_secret: Optional[str] = None
    created_at: Optional[datetime] = None

    # Soft counter, re-derived from storage on every start
    active_user_count: int = Field(default=0, exclude=True)

    @field_validator("owner_chat_id", mode="before")
    @classmethod
    def coerce_owner_chat_id(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value).strip()

    @field_validator("expiration_date", "created_at", mode="after")
    @classmethod
    def normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def user_limit(self) -> int:
        return self.max_users or settings.DEFAULT_MAX_USERS

    @property
    def ai_model(self) -> str:
        return self.openai_model or settings.DEFAULT_AI_MODEL

    @property
    def has_payment_credentials(self) -> bool:
        return bool(self.syncpay_client_id and self.syncpay_client_secret)

    def is_owner(self, chat_id: Any) -> bool:
        return self.owner_chat_id is not None and str(chat_id) == self.owner_chat_id

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True only when an expiration date exists and lies strictly in the past."""
        if self.expiration_date is None:
            return False
        return (now or utcnow()) > self.expiration_date

    def apply(self, record: Dict[str, Any]) -> None:
        """Shallow-merge a stored record over this live object, keeping the counter."""
        for field in PERSISTED_FIELDS:
            if field in record:
                setattr(self, field, record[field])

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"active_user_count"})

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Tenant":
        data = {key: value for key, value in document.items() if key != "_id"}
        return cls.model_validate(data)
