"""
app/flow/context.py

Purpose: Per-event context handed to every handler

- ChatContext: the event plus reply helpers bound to its chat
- BotContext: tenant bot events (live tenant, session, save(), collaborators)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.models.session import Session
from app.models.tenant import Tenant
from app.schemas.webhook import IncomingEvent
from app.services.ai_service import OpenAIService
from app.services.payment_service import PaymentService
from app.services.session_store import SessionStore
from app.services.telegram_service import TelegramService
from app.services.tenant_service import TenantRepository
from app.services.wuzapi_service import WuzapiService

logger = get_logger(__name__)


@dataclass
class BotServices:
    """Collaborators shared by all tenant bots of the process."""
    sessions: SessionStore
    tenants: TenantRepository
    wuzapi: WuzapiService
    ai: OpenAIService
    payments: PaymentService
    # TenantRegistry; set by the registry itself (import cycle otherwise)
    registry: Any = None


@dataclass
class ChatContext:
    event: IncomingEvent
    telegram: TelegramService
    # Telegram accepts one answer per callback query
    answered: bool = field(default=False, init=False)

    @property
    def chat_id(self) -> str:
        return self.event.chat_id

    def log_extra(self, **extra: Any) -> Dict[str, Any]:
        context = {"chat_id": self.chat_id}
        context.update(extra)
        return context

    async def reply(self, text: str, reply_markup: Optional[Dict[str, Any]] = None, parse_mode: Optional[str] = "HTML"):
        return await self.telegram.send_message(self.chat_id, text, reply_markup=reply_markup, parse_mode=parse_mode)

    async def edit_or_reply(self, text: str, reply_markup: Optional[Dict[str, Any]] = None):
        """
        Edits the message a button belongs to; falls back to a new message
        for text commands or when the edit is refused. A refused edit also
        removes the stale message so the chat keeps a single menu.
        """
        if self.event.kind == "callback" and self.event.message_id is not None:
            try:
                return await self.telegram.edit_message(self.chat_id, self.event.message_id, text, reply_markup=reply_markup)
            except ExternalServiceError as e:
                logger.debug(f"Edit refused, sending new message: {e.message}", extra=self.log_extra())
            try:
                await self.telegram.delete_message(self.chat_id, self.event.message_id)
            except ExternalServiceError as e:
                logger.debug(f"Stale message not deleted: {e.message}", extra=self.log_extra())
        return await self.reply(text, reply_markup=reply_markup)

    async def answer(self, text: Optional[str] = None, show_alert: bool = False) -> None:
        """Acknowledges a button press once. No-op for messages; failures are logged."""
        if self.event.kind != "callback" or not self.event.callback_id or self.answered:
            return
        self.answered = True
        try:
            await self.telegram.answer_callback_query(self.event.callback_id, text=text, show_alert=show_alert)
        except ExternalServiceError as e:
            logger.debug(f"Callback answer failed: {e.message}", extra=self.log_extra())


@dataclass
class BotContext(ChatContext):
    tenant: Tenant
    services: BotServices
    session: Optional[Session] = None

    @property
    def is_owner(self) -> bool:
        return self.tenant.is_owner(self.chat_id)

    def log_extra(self, **extra: Any) -> Dict[str, Any]:
        context = {"tenant_id": self.tenant.id, "tenant_name": self.tenant.name, "chat_id": self.chat_id}
        if self.session is not None:
            context["stage"] = self.session.stage
        context.update(extra)
        return context

    async def save(self) -> None:
        """Persists the session through the store (write-through)."""
        await self.services.sessions.save(self.tenant.id, self.chat_id, self.session)
