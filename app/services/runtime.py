"""
app/services/runtime.py

Purpose: Process-scoped object graph

- Builds the session store, tenant repository, registry, reconciler and
  master console once per process
- Owned by the FastAPI app (app.state.runtime) and passed by reference
- Starts and stops every bot with the application
"""

from typing import Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.db.mongo import (
    get_counters_collection,
    get_payment_events_collection,
    get_sessions_collection,
    get_system_config_collection,
    get_tenants_collection,
)
from app.flow.context import BotServices
from app.flow.master import MasterConsole
from app.services.ai_service import OpenAIService, openai_service
from app.services.lifecycle import BotFactory, TenantRegistry
from app.services.master_bot import MasterBot
from app.services.payment_service import PaymentService, payment_service
from app.services.reconciler import SubscriptionReconciler
from app.services.session_store import SessionStore
from app.services.tenant_service import TenantRepository
from app.services.wuzapi_service import WuzapiService, wuzapi_service

logger = get_logger(__name__)


class Runtime:
    def __init__(
        self,
        sessions: SessionStore,
        tenants: TenantRepository,
        payment_events,
        wuzapi: WuzapiService = wuzapi_service,
        ai: OpenAIService = openai_service,
        payments: PaymentService = payment_service,
        bot_factory: Optional[BotFactory] = None,
        master_bot: Optional[MasterBot] = None,
    ):
        self.services = BotServices(
            sessions=sessions,
            tenants=tenants,
            wuzapi=wuzapi,
            ai=ai,
            payments=payments,
        )
        self.registry = TenantRegistry(self.services, bot_factory=bot_factory)
        self.reconciler = SubscriptionReconciler(tenants, self.registry, payment_events)
        self.console = MasterConsole(tenants, self.registry)
        self.master_bot = master_bot

    @property
    def sessions(self) -> SessionStore:
        return self.services.sessions

    @property
    def tenants(self) -> TenantRepository:
        return self.services.tenants

    @classmethod
    def from_database(cls) -> "Runtime":
        """Wires the runtime to the connected MongoDB collections."""
        return cls(
            sessions=SessionStore(get_sessions_collection()),
            tenants=TenantRepository(
                get_tenants_collection(),
                get_system_config_collection(),
                get_counters_collection(),
            ),
            payment_events=get_payment_events_collection(),
        )

    async def startup(self) -> None:
        started = await self.registry.load_all()
        logger.info(f"✅ {started} tenant bot(s) running")

        if self.master_bot is None and settings.MASTER_BOT_TOKEN:
            self.master_bot = MasterBot(self.console)
        if self.master_bot is None:
            logger.warning("⚠️ MASTER_BOT_TOKEN not set, master console disabled")
            return

        try:
            await self.master_bot.start()
        except Exception as e:
            logger.error(f"❌ Master bot failed to start: {e}")
            self.master_bot = None
            return
        logger.info("👑 Master bot running")

    async def shutdown(self) -> None:
        if self.master_bot is not None:
            await self.master_bot.stop()
        await self.registry.stop_all()
