"""
app/models/session.py

Purpose: Session document model

- Per (tenant, chat) conversational state
- Wizard stage and temp_* scratch fields
- Linked WhatsApp instances, affiliate stats, free-form reports
- Schema healing applied once when a stored blob is read
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.flow.states import Stage

SESSION_SCHEMA_VERSION = 2

TEMP_FIELDS = ("temp_sync_id", "temp_openai_key")


class MessagingInstance(BaseModel):
    """A WhatsApp number linked through the gateway."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    token: str
    name: str
    is_connected: bool = Field(default=False, validation_alias=AliasChoices("is_connected", "isConnected"))
    gateway_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("gateway_id", "wuzapiId"))
    webhook: Optional[str] = None


class WhatsAppSettings(BaseModel):
    instances: List[MessagingInstance] = Field(default_factory=list)
    max_instances: int = 1


class AffiliateStats(BaseModel):
    balance: float = 0
    total_earned: float = 0
    referrals_count: int = 0


class Session(BaseModel):
    """
    Always structurally complete. Unknown top-level keys written by newer
    code are kept so a rollback does not drop them.
    """

    model_config = ConfigDict(extra="allow")

    schema_version: int = SESSION_SCHEMA_VERSION
    stage: str = Stage.START.value
    is_vip: bool = False
    whatsapp: WhatsAppSettings = Field(default_factory=WhatsAppSettings)
    affiliate: AffiliateStats = Field(default_factory=AffiliateStats)
    reports: Dict[str, Any] = Field(default_factory=dict)

    temp_sync_id: Optional[str] = None
    temp_openai_key: Optional[str] = None

    def clear_temp(self) -> None:
        for field in TEMP_FIELDS:
            setattr(self, field, None)

    def find_instance(self, instance_id: str) -> Optional[MessagingInstance]:
        for instance in self.whatsapp.instances:
            if instance.id == instance_id:
                return instance
        return None

    def remove_instance(self, instance_id: str) -> bool:
        before = len(self.whatsapp.instances)
        self.whatsapp.instances = [i for i in self.whatsapp.instances if i.id != instance_id]
        return len(self.whatsapp.instances) != before

    @property
    def can_add_instance(self) -> bool:
        return len(self.whatsapp.instances) < self.whatsapp.max_instances

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_document(cls, data: Optional[Dict[str, Any]]) -> "Session":
        return cls.model_validate(heal_session_data(data))


def default_session_data() -> Dict[str, Any]:
    """Blob written for a (tenant, chat) pair seen for the first time."""
    return {
        "schema_version": SESSION_SCHEMA_VERSION,
        "stage": Stage.START.value,
        "is_vip": False,
        "whatsapp": {"instances": [], "max_instances": 1},
        "affiliate": {"balance": 0, "total_earned": 0, "referrals_count": 0},
        "reports": {},
    }


def heal_session_data(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Fill every substructure the current schema expects but the stored blob lacks.

    Stored sessions missing a stage are treated as finished (READY), unlike
    brand-new sessions which start at START.
    """
    data = dict(raw or {})
    defaults = default_session_data()
    defaults["stage"] = Stage.READY.value

    for key, default in defaults.items():
        current = data.get(key)
        if current is None:
            data[key] = default
        elif isinstance(default, dict) and isinstance(current, dict):
            present = {k: v for k, v in current.items() if v is not None}
            data[key] = {**default, **present}

    data["schema_version"] = SESSION_SCHEMA_VERSION
    return data
