"""
app/services/tenant_bot.py

Purpose: One running Telegram bot

- PollingBot: long-polls getUpdates and handles each update in its own task
- TenantBot: gate -> session -> context -> dispatcher for one tenant
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.flow.context import BotContext, BotServices
from app.flow.dispatcher import Dispatcher
from app.models.tenant import Tenant
from app.schemas.webhook import IncomingEvent, parse_telegram_update
from app.services.access_gate import AccessGate
from app.services.telegram_service import TelegramService
from utils.constants import TENANT_BOT_COMMANDS
from utils.telegram_utils import bot_commands_payload

logger = get_logger(__name__)

INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 60.0
# In-flight handlers get this long to finish on stop
SHUTDOWN_GRACE_SECONDS = 5.0
UNAUTHORIZED = 401


class PollingBot(ABC):
    """
    Receives updates by long polling.

    Updates are handled concurrently: a slow handler (QR wait, AI call)
    never blocks the next update.
    """

    name = "bot"
    commands: List = []

    def __init__(self, telegram: TelegramService):
        self.telegram = telegram
        self._offset: Optional[int] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self.username: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def log_extra(self, **extra: Any) -> Dict[str, Any]:
        context: Dict[str, Any] = {"bot": self.name}
        context.update(extra)
        return context

    async def start(self) -> None:
        """
        Validates the token and starts polling.

        Raises:
            ExternalServiceError: If Telegram rejects the token
        """
        me = await self.telegram.get_me()
        self.username = me.get("username")
        await self.telegram.delete_webhook()
        try:
            await self.telegram.set_my_commands(bot_commands_payload(self.commands))
        except ExternalServiceError as e:
            logger.warning(f"Command menu registration failed: {e.message}", extra=self.log_extra())

        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"{self.name}-poll")
        logger.info(f"🤖 Bot @{self.username} polling", extra=self.log_extra())

    async def stop(self) -> None:
        self._running = False
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        pending = [task for task in self._tasks if task is not asyncio.current_task()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=SHUTDOWN_GRACE_SECONDS)
            for task in still_running:
                task.cancel()

        await self.telegram.close()
        logger.info("Bot stopped", extra=self.log_extra())

    async def _poll_loop(self) -> None:
        backoff = INITIAL_BACKOFF_SECONDS
        while self._running:
            try:
                updates = await self.telegram.get_updates(offset=self._offset)
            except ExternalServiceError as e:
                details = e.details or {}
                if details.get("error_code") == UNAUTHORIZED:
                    logger.error(f"Token revoked, polling stopped: {e.message}", extra=self.log_extra())
                    self._running = False
                    return
                logger.warning(f"Polling failed, retrying in {backoff:.0f}s: {e.message}", extra=self.log_extra())
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue
            except Exception as e:
                logger.error(f"Unexpected polling error: {e}", exc_info=True, extra=self.log_extra())
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue

            backoff = INITIAL_BACKOFF_SECONDS
            for update in updates:
                self._offset = update["update_id"] + 1
                self.spawn(update)

    def spawn(self, update: Dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self.handle_update(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_update(self, update: Dict[str, Any]) -> None:
        """Handles one raw update. Errors end here: they never reach the poller."""
        event = parse_telegram_update(update)
        if event is None:
            return
        try:
            await self.process(event)
        except Exception as e:
            logger.error(
                f"Update {event.update_id} failed: {e}",
                exc_info=True,
                extra=self.log_extra(chat_id=event.chat_id),
            )

    @abstractmethod
    async def process(self, event: IncomingEvent) -> None:
        """Handles one parsed event."""

    async def notify(self, chat_id: str, text: str) -> None:
        """
        Raises:
            ExternalServiceError: If Telegram refuses the message
        """
        await self.telegram.send_message(chat_id, text)


class TenantBot(PollingBot):
    """
    The bot of one tenant.

    `tenant` is the live record: reloads and owner edits mutate it in place,
    so the next event sees them without a restart.
    """

    commands = TENANT_BOT_COMMANDS

    def __init__(
        self,
        tenant: Tenant,
        services: BotServices,
        dispatcher: Dispatcher,
        gate: AccessGate,
        telegram: Optional[TelegramService] = None,
    ):
        super().__init__(telegram or TelegramService(tenant.telegram_token))
        self.tenant = tenant
        self.services = services
        self.dispatcher = dispatcher
        self.gate = gate

    @property
    def name(self) -> str:
        return f"tenant-{self.tenant.id}"

    def log_extra(self, **extra: Any) -> Dict[str, Any]:
        context: Dict[str, Any] = {"tenant_id": self.tenant.id, "tenant_name": self.tenant.name}
        context.update(extra)
        return context

    async def process(self, event: IncomingEvent) -> None:
        decision = await self.gate.check(self.tenant, event.chat_id)
        if not decision.admitted:
            if event.kind == "callback" and event.callback_id:
                try:
                    await self.telegram.answer_callback_query(event.callback_id)
                except ExternalServiceError as e:
                    logger.debug(f"Callback answer failed: {e.message}", extra=self.log_extra(chat_id=event.chat_id))
            await self.telegram.send_message(event.chat_id, decision.reply)
            return

        session = await self.services.sessions.get(self.tenant.id, event.chat_id)
        ctx = BotContext(
            event=event,
            telegram=self.telegram,
            tenant=self.tenant,
            services=self.services,
            session=session,
        )
        await self.dispatcher.dispatch(ctx)
