"""
app/flow/master.py

Purpose: Master console (operator control plane)

- Gated to MASTER_ADMIN_ID; /my_id is answered for anyone
- Tenant creation: WAIT_NAME -> WAIT_TOKEN -> WAIT_OWNER_ID -> READY
- Tenant list and detail view
- Quota, fixed price, manual renewal, block/unblock
- Global default price
- Sessions are in memory: the console has a single operator
"""

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.core.exceptions import BotFleetError, ResourceNotFoundError
from app.core.logging import get_logger
from app.flow.context import ChatContext
from app.flow.states import CANCEL_TOKEN, MASTER_ENTRY_STAGES, MASTER_TRANSITIONS, MasterStage
from app.flow.wizard import WizardEngine, WizardResult, enter_wizard, is_in_wizard
from app.models.tenant import Tenant
from app.schemas.webhook import IncomingEvent
from app.services.lifecycle import TenantRegistry
from app.services.telegram_service import TelegramService
from app.services.tenant_service import TenantRepository
from utils.constants import (
    BUTTON_BACK,
    BUTTON_MASTER_BLOCK,
    BUTTON_MASTER_GLOBAL_PRICE,
    BUTTON_MASTER_LIMIT,
    BUTTON_MASTER_NEW,
    BUTTON_MASTER_PRICE,
    BUTTON_MASTER_RENEW,
    BUTTON_MASTER_TENANTS,
    BUTTON_MASTER_UNBLOCK,
    CB_MASTER_GLOBAL_PRICE,
    CB_MASTER_HOME,
    CB_MASTER_LIMIT,
    CB_MASTER_LIST,
    CB_MASTER_MANAGE,
    CB_MASTER_NEW,
    CB_MASTER_PRICE,
    CB_MASTER_RENEW,
    CB_MASTER_TOGGLE,
    MASTER_ASK_GLOBAL_PRICE_MESSAGE,
    MASTER_ASK_LIMIT_MESSAGE,
    MASTER_ASK_NAME_MESSAGE,
    MASTER_ASK_OWNER_MESSAGE,
    MASTER_ASK_PRICE_MESSAGE,
    MASTER_ASK_RENEW_MESSAGE,
    MASTER_ASK_TOKEN_MESSAGE,
    MASTER_CREATED_MESSAGE,
    MASTER_CREATING_MESSAGE,
    MASTER_ERROR_MESSAGE,
    MASTER_GLOBAL_PRICE_SAVED_MESSAGE,
    MASTER_HOME_MESSAGE,
    MASTER_INVALID_INTEGER_MESSAGE,
    MASTER_INVALID_PRICE_MESSAGE,
    MASTER_INVALID_TOKEN_MESSAGE,
    MASTER_LIMIT_SAVED_MESSAGE,
    MASTER_MY_ID_MESSAGE,
    MASTER_NO_TENANTS_MESSAGE,
    MASTER_NOT_CONFIGURED_MESSAGE,
    MASTER_PRICE_GLOBAL_LABEL,
    MASTER_PRICE_SAVED_MESSAGE,
    MASTER_RENEWED_MESSAGE,
    MASTER_RUNNING_LABEL,
    MASTER_SELECT_TENANT_MESSAGE,
    MASTER_START_FAILED_MESSAGE,
    MASTER_STOPPED_LABEL,
    MASTER_TENANT_BUTTON,
    MASTER_TENANT_DETAIL_MESSAGE,
    MASTER_TENANT_NOT_FOUND_MESSAGE,
    MASTER_TOGGLED_MESSAGE,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
)
from utils.telegram_utils import callback_data, create_button, create_inline_keyboard, format_brl, parse_callback_data
from utils.time_utils import extend_expiration, format_date, utcnow
from utils.validation_utils import is_valid_bot_token, parse_int, parse_price, sanitize_input

logger = get_logger(__name__)

MAX_TENANT_NAME_LENGTH = 100


@dataclass
class MasterSession:
    stage: str = MasterStage.READY.value
    target_tenant_id: Optional[int] = None
    new_name: Optional[str] = None
    new_token: Optional[str] = None

    def clear_temp(self) -> None:
        self.target_tenant_id = None
        self.new_name = None
        self.new_token = None


@dataclass
class MasterContext(ChatContext):
    session: Optional[MasterSession] = None

    @property
    def is_owner(self) -> bool:
        return True

    def log_extra(self, **extra: Any) -> Dict[str, Any]:
        context: Dict[str, Any] = {"console": "master", "chat_id": self.chat_id}
        if self.session is not None:
            context["stage"] = self.session.stage
        context.update(extra)
        return context

    async def save(self) -> None:
        """Master sessions live in memory only."""


def home_keyboard() -> Dict[str, Any]:
    return create_inline_keyboard([
        [create_button(BUTTON_MASTER_TENANTS, CB_MASTER_LIST)],
        [create_button(BUTTON_MASTER_NEW, CB_MASTER_NEW)],
        [create_button(BUTTON_MASTER_GLOBAL_PRICE, CB_MASTER_GLOBAL_PRICE)],
    ])


def tenant_keyboard(tenant: Tenant) -> Dict[str, Any]:
    return create_inline_keyboard([
        [
            create_button(BUTTON_MASTER_LIMIT, callback_data(CB_MASTER_LIMIT, tenant.id)),
            create_button(BUTTON_MASTER_PRICE, callback_data(CB_MASTER_PRICE, tenant.id)),
        ],
        [create_button(BUTTON_MASTER_RENEW, callback_data(CB_MASTER_RENEW, tenant.id))],
        [create_button(
            BUTTON_MASTER_BLOCK if tenant.is_active else BUTTON_MASTER_UNBLOCK,
            callback_data(CB_MASTER_TOGGLE, tenant.id),
        )],
        [create_button(BUTTON_BACK, CB_MASTER_LIST)],
    ])


def tenant_status(tenant: Tenant, now: Optional[datetime] = None) -> str:
    if not tenant.is_active:
        return STATUS_INACTIVE
    if tenant.is_expired(now):
        return STATUS_EXPIRED
    return STATUS_ACTIVE


class MasterConsole:
    """Conversation logic of the master bot."""

    def __init__(
        self,
        tenants: TenantRepository,
        registry: TenantRegistry,
        admin_id: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._tenants = tenants
        self._registry = registry
        admin_id = admin_id if admin_id is not None else settings.MASTER_ADMIN_ID
        self.admin_id = str(admin_id).strip() if admin_id else None
        self._clock = clock
        self._sessions: Dict[str, MasterSession] = {}

        self.wizard = WizardEngine(
            steps={
                MasterStage.WAIT_NAME: self.step_name,
                MasterStage.WAIT_TOKEN: self.step_token,
                MasterStage.WAIT_OWNER_ID: self.step_owner_id,
                MasterStage.WAIT_LIMIT_VALUE: self.step_limit,
                MasterStage.WAIT_PRICE_VALUE: self.step_price,
                MasterStage.WAIT_RENEW_DAYS: self.step_renew_days,
                MasterStage.WAIT_GLOBAL_PRICE: self.step_global_price,
            },
            stage_type=MasterStage,
            transitions=MASTER_TRANSITIONS,
            metadata=None,
        )

        self.callbacks = {
            CB_MASTER_HOME: self.show_home,
            CB_MASTER_LIST: self.list_tenants,
            CB_MASTER_NEW: self.start_create,
            CB_MASTER_GLOBAL_PRICE: self.start_global_price,
        }
        self.arg_callbacks = {
            CB_MASTER_MANAGE: self.show_tenant,
            CB_MASTER_LIMIT: self.start_limit,
            CB_MASTER_PRICE: self.start_price,
            CB_MASTER_RENEW: self.start_renew,
            CB_MASTER_TOGGLE: self.toggle,
        }

    def session_for(self, chat_id: str) -> MasterSession:
        if chat_id not in self._sessions:
            self._sessions[chat_id] = MasterSession()
        return self._sessions[chat_id]

    # ============================================================
    # ROUTING
    # ============================================================

    async def handle(self, event: IncomingEvent, telegram: TelegramService) -> None:
        ctx = MasterContext(event=event, telegram=telegram)

        if event.command == "my_id":
            await ctx.reply(MASTER_MY_ID_MESSAGE.format(chat_id=ctx.chat_id))
            return

        if not self.admin_id:
            await ctx.answer()
            await ctx.reply(MASTER_NOT_CONFIGURED_MESSAGE)
            return

        if ctx.chat_id != self.admin_id:
            logger.warning("Master console access denied", extra=ctx.log_extra())
            return

        ctx.session = self.session_for(ctx.chat_id)
        try:
            await self._route(ctx)
        except BotFleetError as e:
            logger.error(f"Master console operation failed: {e.message}", extra=ctx.log_extra())
            await ctx.reply(MASTER_ERROR_MESSAGE.format(error=escape(e.message)))

    async def _route(self, ctx: MasterContext) -> None:
        event = ctx.event
        if event.kind == "callback":
            action, argument = parse_callback_data(event.callback_data)
            if argument is not None and action in self.arg_callbacks:
                await self.arg_callbacks[action](ctx, argument)
                return
            handler = self.callbacks.get(action)
            if handler is None:
                logger.warning(f"Unknown master callback {event.callback_data!r}", extra=ctx.log_extra())
                await ctx.answer()
                return
            await handler(ctx)
            return

        text = (event.text or "").strip()
        if text == CANCEL_TOKEN:
            await self.wizard.handle(ctx, CANCEL_TOKEN)
            return

        if event.command == "start":
            ctx.session.stage = MasterStage.READY.value
            ctx.session.clear_temp()
            await self.show_home(ctx)
            return

        if event.command is not None:
            logger.debug(f"Unknown master command /{event.command}", extra=ctx.log_extra())
            return

        if is_in_wizard(ctx.session):
            await self.wizard.handle(ctx, text)

    # ============================================================
    # MENUS
    # ============================================================

    async def show_home(self, ctx: MasterContext) -> None:
        await ctx.answer()
        await ctx.edit_or_reply(MASTER_HOME_MESSAGE, reply_markup=home_keyboard())

    async def list_tenants(self, ctx: MasterContext) -> None:
        await ctx.answer()
        tenants = await self._tenants.list_all()
        back = [create_button(BUTTON_BACK, CB_MASTER_HOME)]
        if not tenants:
            await ctx.edit_or_reply(MASTER_NO_TENANTS_MESSAGE, reply_markup=create_inline_keyboard([back]))
            return

        rows = [
            [create_button(
                MASTER_TENANT_BUTTON.format(icon="✅" if tenant.is_active else "❌", name=tenant.name, id=tenant.id),
                callback_data(CB_MASTER_MANAGE, tenant.id),
            )]
            for tenant in tenants
        ]
        rows.append(back)
        await ctx.edit_or_reply(MASTER_SELECT_TENANT_MESSAGE, reply_markup=create_inline_keyboard(rows))

    async def _price_label(self, tenant: Tenant) -> str:
        if tenant.subscription_price:
            return f"R$ {format_brl(tenant.subscription_price)}"
        global_price = await self._tenants.get_global_price()
        return f"{MASTER_PRICE_GLOBAL_LABEL} R$ {format_brl(global_price)}"

    async def _load_tenant(self, ctx: MasterContext, argument: str) -> Optional[Tenant]:
        tenant_id = parse_int(argument)
        tenant = await self._tenants.get(tenant_id) if tenant_id is not None else None
        if tenant is None:
            await ctx.reply(MASTER_TENANT_NOT_FOUND_MESSAGE.format(tenant_id=escape(argument)))
        return tenant

    async def show_tenant(self, ctx: MasterContext, argument: str) -> None:
        await ctx.answer()
        tenant = await self._load_tenant(ctx, argument)
        if tenant is None:
            return

        text = MASTER_TENANT_DETAIL_MESSAGE.format(
            name=escape(tenant.name),
            id=tenant.id,
            status=tenant_status(tenant, self._clock()),
            running=MASTER_RUNNING_LABEL if self._registry.is_running(tenant.id) else MASTER_STOPPED_LABEL,
            max_users=tenant.user_limit,
            price=await self._price_label(tenant),
            expiration=format_date(tenant.expiration_date),
        )
        await ctx.edit_or_reply(text, reply_markup=tenant_keyboard(tenant))

    # ============================================================
    # FLOW ENTRY POINTS
    # ============================================================

    async def start_create(self, ctx: MasterContext) -> None:
        await ctx.answer()
        await enter_wizard(ctx, MasterStage.WAIT_NAME, MASTER_ASK_NAME_MESSAGE, entry_stages=MASTER_ENTRY_STAGES)

    async def start_global_price(self, ctx: MasterContext) -> None:
        await ctx.answer()
        current = await self._tenants.get_global_price()
        await enter_wizard(
            ctx,
            MasterStage.WAIT_GLOBAL_PRICE,
            MASTER_ASK_GLOBAL_PRICE_MESSAGE.format(price=format_brl(current)),
            entry_stages=MASTER_ENTRY_STAGES,
        )

    async def _start_tenant_flow(self, ctx: MasterContext, argument: str, stage: MasterStage, prompt: str) -> None:
        await ctx.answer()
        tenant_id = parse_int(argument)
        if tenant_id is None:
            await ctx.reply(MASTER_TENANT_NOT_FOUND_MESSAGE.format(tenant_id=escape(argument)))
            return
        await enter_wizard(
            ctx,
            stage,
            prompt.format(tenant_id=tenant_id),
            entry_stages=MASTER_ENTRY_STAGES,
            scratch={"target_tenant_id": tenant_id},
        )

    async def start_limit(self, ctx: MasterContext, argument: str) -> None:
        await self._start_tenant_flow(ctx, argument, MasterStage.WAIT_LIMIT_VALUE, MASTER_ASK_LIMIT_MESSAGE)

    async def start_price(self, ctx: MasterContext, argument: str) -> None:
        await self._start_tenant_flow(ctx, argument, MasterStage.WAIT_PRICE_VALUE, MASTER_ASK_PRICE_MESSAGE)

    async def start_renew(self, ctx: MasterContext, argument: str) -> None:
        await self._start_tenant_flow(ctx, argument, MasterStage.WAIT_RENEW_DAYS, MASTER_ASK_RENEW_MESSAGE)

    # ============================================================
    # WIZARD STEPS
    # ============================================================

    async def step_name(self, ctx: MasterContext, text: str) -> WizardResult:
        ctx.session.new_name = sanitize_input(text, max_length=MAX_TENANT_NAME_LENGTH)
        return WizardResult(MasterStage.WAIT_TOKEN, MASTER_ASK_TOKEN_MESSAGE)

    async def step_token(self, ctx: MasterContext, text: str) -> WizardResult:
        if not is_valid_bot_token(text):
            return WizardResult(MasterStage.WAIT_TOKEN, MASTER_INVALID_TOKEN_MESSAGE)
        ctx.session.new_token = text
        return WizardResult(MasterStage.WAIT_OWNER_ID, MASTER_ASK_OWNER_MESSAGE)

    async def step_owner_id(self, ctx: MasterContext, text: str) -> WizardResult:
        await ctx.reply(MASTER_CREATING_MESSAGE)
        try:
            tenant = await self._tenants.create(
                name=ctx.session.new_name,
                telegram_token=ctx.session.new_token,
                owner_chat_id=text,
                now=self._clock(),
            )
        except BotFleetError as e:
            return WizardResult(MasterStage.READY, MASTER_ERROR_MESSAGE.format(error=escape(e.message)))

        reply = MASTER_CREATED_MESSAGE.format(name=escape(tenant.name), id=tenant.id)
        failure = await self._start_bot(tenant)
        if failure:
            reply += "\n" + failure
        return WizardResult(MasterStage.READY, reply)

    async def step_limit(self, ctx: MasterContext, text: str) -> WizardResult:
        limit = parse_int(text)
        if limit is None or limit < 1:
            return WizardResult(MasterStage.WAIT_LIMIT_VALUE, MASTER_INVALID_INTEGER_MESSAGE)
        return await self._apply(
            ctx.session.target_tenant_id,
            {"max_users": limit},
            MASTER_LIMIT_SAVED_MESSAGE.format(limit=limit),
        )

    async def step_price(self, ctx: MasterContext, text: str) -> WizardResult:
        price = parse_price(text)
        if price is None or price < 0:
            return WizardResult(MasterStage.WAIT_PRICE_VALUE, MASTER_INVALID_PRICE_MESSAGE)
        # 0 falls back to the global price
        override = price if price > 0 else None
        label = f"R$ {format_brl(override)}" if override else MASTER_PRICE_GLOBAL_LABEL
        return await self._apply(
            ctx.session.target_tenant_id,
            {"subscription_price": override},
            MASTER_PRICE_SAVED_MESSAGE.format(price=label),
        )

    async def step_global_price(self, ctx: MasterContext, text: str) -> WizardResult:
        price = parse_price(text)
        if price is None or price <= 0:
            return WizardResult(MasterStage.WAIT_GLOBAL_PRICE, MASTER_INVALID_PRICE_MESSAGE)
        try:
            await self._tenants.set_global_price(price)
        except BotFleetError as e:
            return WizardResult(MasterStage.READY, MASTER_ERROR_MESSAGE.format(error=escape(e.message)))
        logger.info(f"Global price set to {price}", extra=ctx.log_extra())
        return WizardResult(MasterStage.READY, MASTER_GLOBAL_PRICE_SAVED_MESSAGE.format(price=format_brl(price)))

    async def step_renew_days(self, ctx: MasterContext, text: str) -> WizardResult:
        days = parse_int(text)
        if days is None or days < 1:
            return WizardResult(MasterStage.WAIT_RENEW_DAYS, MASTER_INVALID_INTEGER_MESSAGE)

        tenant_id = ctx.session.target_tenant_id
        try:
            tenant = await self._tenants.get(tenant_id)
            if tenant is None:
                raise ResourceNotFoundError(MASTER_TENANT_NOT_FOUND_MESSAGE.format(tenant_id=tenant_id))
            expiration = extend_expiration(tenant.expiration_date, days, now=self._clock())
            await self._tenants.update(tenant_id, {"expiration_date": expiration, "is_active": True})
        except BotFleetError as e:
            return WizardResult(MasterStage.READY, MASTER_ERROR_MESSAGE.format(error=escape(e.message)))

        reply = MASTER_RENEWED_MESSAGE.format(days=days, expiration=format_date(expiration))
        if self._registry.is_running(tenant_id):
            try:
                await self._registry.reload(tenant_id)
            except BotFleetError as e:
                logger.warning(f"Reload after renewal failed: {e.message}", extra=ctx.log_extra(tenant_id=tenant_id))
        else:
            tenant.apply({"expiration_date": expiration, "is_active": True})
            failure = await self._start_bot(tenant)
            if failure:
                reply += "\n" + failure
        logger.info(f"Tenant renewed for {days} days", extra=ctx.log_extra(tenant_id=tenant_id))
        return WizardResult(MasterStage.READY, reply)

    # ============================================================
    # ACTIONS
    # ============================================================

    async def toggle(self, ctx: MasterContext, argument: str) -> None:
        await ctx.answer()
        tenant = await self._load_tenant(ctx, argument)
        if tenant is None:
            return

        active = not tenant.is_active
        await self._tenants.update(tenant.id, {"is_active": active})
        tenant.is_active = active

        reply = MASTER_TOGGLED_MESSAGE.format(
            name=escape(tenant.name),
            state=STATUS_ACTIVE if active else STATUS_INACTIVE,
        )
        if active:
            failure = await self._start_bot(tenant)
            if failure:
                reply += "\n" + failure
        else:
            await self._registry.stop(tenant.id)

        logger.info(f"Tenant {'unblocked' if active else 'blocked'}", extra=ctx.log_extra(tenant_id=tenant.id))
        await ctx.reply(
            reply,
            reply_markup=create_inline_keyboard([[create_button(BUTTON_BACK, callback_data(CB_MASTER_MANAGE, tenant.id))]]),
        )

    async def _apply(self, tenant_id: Optional[int], fields: Dict[str, Any], success_reply: str) -> WizardResult:
        """Persists tenant fields and pushes them into the running bot, if any."""
        try:
            if tenant_id is None or not await self._tenants.update(tenant_id, fields):
                raise ResourceNotFoundError(MASTER_TENANT_NOT_FOUND_MESSAGE.format(tenant_id=tenant_id))
            await self._registry.reload(tenant_id)
        except BotFleetError as e:
            return WizardResult(MasterStage.READY, MASTER_ERROR_MESSAGE.format(error=escape(e.message)))
        logger.info(f"Tenant updated: {', '.join(fields)}", extra={"console": "master", "tenant_id": tenant_id})
        return WizardResult(MasterStage.READY, success_reply)

    async def _start_bot(self, tenant: Tenant) -> Optional[str]:
        """Starts the tenant's bot. Returns a message for the operator on failure."""
        try:
            await self._registry.start(tenant)
        except Exception as e:
            logger.error(f"Tenant bot failed to start: {e}", extra={"console": "master", "tenant_id": tenant.id})
            return MASTER_START_FAILED_MESSAGE.format(error=escape(str(e)))
        return None
