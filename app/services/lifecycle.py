"""
app/services/lifecycle.py

Purpose: Registry of running tenant bots

- At most one running bot per tenant id
- Start (restart-safe), stop, reload of stored settings into a live bot
- Boot-time load of every active tenant; one failure never blocks the rest
- Owner notifications through the tenant's own bot
"""

import asyncio
from typing import Callable, Dict, List, Optional

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.flow.context import BotServices
from app.flow.dispatcher import Dispatcher
from app.models.tenant import Tenant
from app.services.access_gate import AccessGate
from app.services.tenant_bot import TenantBot

logger = get_logger(__name__)

BotFactory = Callable[[Tenant], TenantBot]


class TenantRegistry:
    """
    Owns the process-wide map tenant id -> running bot.

    Start and stop of one tenant are serialized by a per-tenant lock, so two
    concurrent starts still leave exactly one bot polling.
    """

    def __init__(self, services: BotServices, bot_factory: Optional[BotFactory] = None):
        self._services = services
        self._bots: Dict[int, TenantBot] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._dispatcher = Dispatcher()
        self._gate = AccessGate(services.sessions)
        self._bot_factory = bot_factory or self._build_bot
        services.registry = self

    def _build_bot(self, tenant: Tenant) -> TenantBot:
        return TenantBot(tenant, self._services, self._dispatcher, self._gate)

    def _lock(self, tenant_id: int) -> asyncio.Lock:
        if tenant_id not in self._locks:
            self._locks[tenant_id] = asyncio.Lock()
        return self._locks[tenant_id]

    def is_running(self, tenant_id: int) -> bool:
        return tenant_id in self._bots

    def get(self, tenant_id: int) -> Optional[TenantBot]:
        return self._bots.get(tenant_id)

    @property
    def running_ids(self) -> List[int]:
        return sorted(self._bots)

    async def start(self, tenant: Tenant) -> TenantBot:
        """
        Starts a bot for `tenant`, replacing any bot already registered for it.

        The user counter is re-derived from storage before the bot sees its
        first event.

        Raises:
            StoreError: If the user count cannot be read
            ExternalServiceError: If Telegram rejects the bot token
        """
        async with self._lock(tenant.id):
            if tenant.id in self._bots:
                logger.info("Restarting running bot", extra={"tenant_id": tenant.id, "tenant_name": tenant.name})
                await self._stop_unlocked(tenant.id)

            tenant.active_user_count = await self._services.sessions.count_users(tenant.id)
            bot = self._bot_factory(tenant)
            await bot.start()
            self._bots[tenant.id] = bot

        logger.info(
            f"✅ Tenant bot started ({tenant.active_user_count}/{tenant.user_limit} users)",
            extra={"tenant_id": tenant.id, "tenant_name": tenant.name},
        )
        return bot

    async def stop(self, tenant_id: int) -> bool:
        """Stops and unregisters a bot. Returns False if none was running."""
        async with self._lock(tenant_id):
            return await self._stop_unlocked(tenant_id)

    async def _stop_unlocked(self, tenant_id: int) -> bool:
        bot = self._bots.pop(tenant_id, None)
        if bot is None:
            return False
        try:
            await bot.stop()
        except Exception as e:
            logger.warning(f"Error while stopping bot: {e}", extra={"tenant_id": tenant_id})
        return True

    async def reload(self, tenant_id: int) -> bool:
        """
        Merges the stored record over the running bot's live tenant.

        Returns False if the tenant is not running or no longer stored.

        Raises:
            StoreError: If the record cannot be read
        """
        bot = self._bots.get(tenant_id)
        if bot is None:
            return False

        record = await self._services.tenants.get_record(tenant_id)
        if record is None:
            logger.warning("Reload of a tenant missing from storage", extra={"tenant_id": tenant_id})
            return False

        bot.tenant.apply(record)
        logger.info("Tenant settings reloaded", extra={"tenant_id": tenant_id, "tenant_name": bot.tenant.name})
        return True

    async def load_all(self) -> int:
        """Starts every active tenant. Returns how many bots started."""
        try:
            tenants = await self._services.tenants.list_active()
        except StoreError as e:
            logger.error(f"Could not list tenants: {e.message}")
            return 0

        logger.info(f"Loading {len(tenants)} active tenant(s)")
        started = 0
        for tenant in tenants:
            try:
                await self.start(tenant)
                started += 1
            except Exception as e:
                logger.error(
                    f"❌ Tenant bot failed to start: {e}",
                    extra={"tenant_id": tenant.id, "tenant_name": tenant.name},
                )
        return started

    async def stop_all(self) -> None:
        for tenant_id in list(self._bots):
            await self.stop(tenant_id)
        logger.info("All tenant bots stopped")

    async def notify(self, tenant_id: int, chat_id: str, text: str) -> bool:
        """
        Sends `text` through the tenant's running bot.

        Returns False if the tenant is not running.

        Raises:
            ExternalServiceError: If Telegram refuses the message
        """
        bot = self._bots.get(tenant_id)
        if bot is None:
            return False
        await bot.notify(chat_id, text)
        return True
