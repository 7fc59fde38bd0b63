"""
app/services/master_bot.py

Purpose: The operator's Telegram bot

- Same polling loop as tenant bots
- Every update goes to the master console
"""

from typing import Optional

from app.core.config import settings
from app.flow.master import MasterConsole
from app.schemas.webhook import IncomingEvent
from app.services.telegram_service import TelegramService
from app.services.tenant_bot import PollingBot
from utils.constants import MASTER_BOT_COMMANDS


class MasterBot(PollingBot):
    name = "master"
    commands = MASTER_BOT_COMMANDS

    def __init__(self, console: MasterConsole, telegram: Optional[TelegramService] = None):
        super().__init__(telegram or TelegramService(settings.MASTER_BOT_TOKEN))
        self.console = console

    async def process(self, event: IncomingEvent) -> None:
        await self.console.handle(event, self.telegram)
