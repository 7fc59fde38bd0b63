"""
app/flow/dispatcher.py

Purpose: Central update dispatcher for tenant bots

- Receives an admitted event with its session already loaded
- Mid-wizard text goes to the wizard engine; commands may interrupt
- Routes commands and button presses to their handlers
- Plain text outside a wizard goes to the AI chat
"""

from typing import Awaitable, Callable, Dict, Optional

from app.core.logging import get_logger
from app.flow.context import BotContext
from app.flow.handlers.chat import handle_chat
from app.flow.handlers.instances import (
    INSTANCE_STEPS,
    delete_instance,
    manage_instance,
    send_qr,
    show_instances,
    start_add_instance,
)
from app.flow.handlers.menu import PLACEHOLDER_CALLBACKS, handle_id_command, render_user_menu
from app.flow.handlers.owner import (
    OWNER_STEPS,
    commit_tenant_fields,
    handle_admin_command,
    handle_owner_menu,
    handle_reload,
    handle_renewal,
    start_ai_setup,
    start_payment_setup,
    start_prompt_setup,
)
from app.flow.states import CANCEL_TOKEN, Stage
from app.flow.wizard import WizardEngine, is_in_wizard
from utils.constants import (
    CB_CANCEL,
    CB_INSTANCE_ADD,
    CB_INSTANCE_DELETE,
    CB_INSTANCE_MANAGE,
    CB_INSTANCE_QR,
    CB_INSTANCES,
    CB_OWNER_MENU,
    CB_OWNER_RELOAD,
    CB_OWNER_RENEW,
    CB_OWNER_SETUP_AI,
    CB_OWNER_SETUP_PAYMENT,
    CB_OWNER_SETUP_PROMPT,
    CB_SET_MODEL,
    CB_USER_MENU,
    FLOW_RESET_MESSAGE,
)
from utils.telegram_utils import parse_callback_data

logger = get_logger(__name__)

Handler = Callable[[BotContext], Awaitable[None]]
ArgHandler = Callable[[BotContext, str], Awaitable[None]]


def build_wizard() -> WizardEngine:
    return WizardEngine(steps={**OWNER_STEPS, **INSTANCE_STEPS}, commit=commit_tenant_fields)


class Dispatcher:
    """Routing table shared by every tenant bot."""

    def __init__(self, wizard: Optional[WizardEngine] = None):
        self.wizard = wizard or build_wizard()

        self.commands: Dict[str, Handler] = {
            "start": render_user_menu,
            "admin": handle_admin_command,
            "id": handle_id_command,
        }

        self.callbacks: Dict[str, Handler] = {
            CB_USER_MENU: render_user_menu,
            CB_INSTANCES: show_instances,
            CB_INSTANCE_ADD: start_add_instance,
            CB_OWNER_MENU: handle_owner_menu,
            CB_OWNER_SETUP_PAYMENT: start_payment_setup,
            CB_OWNER_SETUP_AI: start_ai_setup,
            CB_OWNER_SETUP_PROMPT: start_prompt_setup,
            CB_OWNER_RENEW: handle_renewal,
            CB_OWNER_RELOAD: handle_reload,
            CB_CANCEL: self._cancel,
            **PLACEHOLDER_CALLBACKS,
        }

        self.arg_callbacks: Dict[str, ArgHandler] = {
            CB_INSTANCE_MANAGE: manage_instance,
            CB_INSTANCE_QR: send_qr,
            CB_INSTANCE_DELETE: delete_instance,
            CB_SET_MODEL: self._select_model,
        }

    async def dispatch(self, ctx: BotContext) -> None:
        if ctx.event.kind == "callback":
            await self._dispatch_callback(ctx)
            return

        text = (ctx.event.text or "").strip()
        if text == CANCEL_TOKEN:
            await self.wizard.handle(ctx, CANCEL_TOKEN)
            return

        command = ctx.event.command
        if command is not None:
            handler = self.commands.get(command)
            if handler is None:
                logger.debug(f"Unknown command /{command}", extra=ctx.log_extra())
                return
            await handler(ctx)
            return

        if is_in_wizard(ctx.session):
            await self.wizard.handle(ctx, ctx.event.text)
            return

        await handle_chat(ctx)

    async def _dispatch_callback(self, ctx: BotContext) -> None:
        action, argument = parse_callback_data(ctx.event.callback_data)

        if argument is not None and action in self.arg_callbacks:
            await self.arg_callbacks[action](ctx, argument)
            return

        handler = self.callbacks.get(action)
        if handler is None:
            logger.warning(f"Unknown callback {ctx.event.callback_data!r}", extra=ctx.log_extra())
            await ctx.answer()
            return
        await handler(ctx)

    async def _cancel(self, ctx: BotContext) -> None:
        await ctx.answer()
        await self.wizard.handle(ctx, CANCEL_TOKEN)

    async def _select_model(self, ctx: BotContext, model: str) -> None:
        """Model buttons feed the AI setup flow like typed input."""
        await ctx.answer()
        if ctx.session.stage != Stage.OWNER_AWAIT_AI_MODEL.value:
            await ctx.reply(FLOW_RESET_MESSAGE)
            return
        await self.wizard.handle(ctx, model)
