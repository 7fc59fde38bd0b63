"""
app/flow/handlers/owner.py

Handles: Owner dashboard and owner configuration flows

- /admin dashboard (status, users, payment and AI configuration)
- Payment credentials: OWNER_AWAIT_PAYMENT_ID -> OWNER_AWAIT_PAYMENT_SECRET -> READY
- AI credentials: OWNER_AWAIT_AI_KEY -> OWNER_AWAIT_AI_MODEL -> READY
- Personality prompt: OWNER_AWAIT_PROMPT -> READY
- Renewal charge and settings reload
"""

from datetime import datetime
from html import escape
from typing import Any, Dict, Optional

from app.core.exceptions import ExternalServiceError, StoreError
from app.core.logging import get_logger
from app.flow.context import BotContext
from app.flow.states import Stage
from app.flow.wizard import WizardResult, enter_wizard
from app.models.tenant import Tenant
from utils.constants import (
    AI_KEY_ACTIVE,
    AI_KEY_MISSING,
    AI_MODELS,
    AI_SAVED_MESSAGE,
    ASK_AI_KEY_MESSAGE,
    ASK_AI_MODEL_MESSAGE,
    ASK_PAYMENT_ID_MESSAGE,
    ASK_PAYMENT_SECRET_MESSAGE,
    ASK_PROMPT_MESSAGE,
    BUTTON_RELOAD,
    BUTTON_RENEW,
    BUTTON_SETUP_AI,
    BUTTON_SETUP_PAYMENT,
    BUTTON_SETUP_PROMPT,
    CB_OWNER_RELOAD,
    CB_OWNER_RENEW,
    CB_OWNER_SETUP_AI,
    CB_OWNER_SETUP_PAYMENT,
    CB_OWNER_SETUP_PROMPT,
    CB_SET_MODEL,
    FLOW_RESET_MESSAGE,
    INVALID_AI_KEY_MESSAGE,
    INVALID_AI_MODEL_MESSAGE,
    OWNER_DASHBOARD_MESSAGE,
    OWNER_ONLY_MESSAGE,
    PAYMENT_CONFIGURED,
    PAYMENT_PENDING,
    PAYMENT_SAVED_MESSAGE,
    PROMPT_SAVED_MESSAGE,
    RELOAD_DONE_MESSAGE,
    RELOAD_FAILED_MESSAGE,
    RENEWAL_CHARGE_MESSAGE,
    RENEWAL_CODE_MESSAGE,
    RENEWAL_FAILED_MESSAGE,
    RENEWAL_GENERATING_MESSAGE,
    RENEWAL_INFO_MESSAGE,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
)
from utils.telegram_utils import callback_data, create_button, create_inline_keyboard, format_brl, mask_token, single_column_keyboard
from utils.validation_utils import is_valid_openai_key

logger = get_logger(__name__)


# ============================================================
# DASHBOARD
# ============================================================

def owner_dashboard_text(tenant: Tenant, now: Optional[datetime] = None) -> str:
    if tenant.is_expired(now):
        status = STATUS_EXPIRED
    elif tenant.is_active:
        status = STATUS_ACTIVE
    else:
        status = STATUS_INACTIVE

    return OWNER_DASHBOARD_MESSAGE.format(
        name=escape(tenant.name),
        status=status,
        users=tenant.active_user_count,
        max_users=tenant.user_limit,
        payment_status=PAYMENT_CONFIGURED if tenant.has_payment_credentials else PAYMENT_PENDING,
        ai_key_status=AI_KEY_ACTIVE if tenant.openai_api_key else AI_KEY_MISSING,
        ai_model=escape(tenant.ai_model),
        token=escape(mask_token(tenant.telegram_token)),
    )


def owner_dashboard_keyboard() -> Dict[str, Any]:
    return single_column_keyboard([
        (BUTTON_SETUP_PAYMENT, CB_OWNER_SETUP_PAYMENT),
        (BUTTON_SETUP_AI, CB_OWNER_SETUP_AI),
        (BUTTON_SETUP_PROMPT, CB_OWNER_SETUP_PROMPT),
        (BUTTON_RENEW, CB_OWNER_RENEW),
        (BUTTON_RELOAD, CB_OWNER_RELOAD),
    ])


def model_keyboard() -> Dict[str, Any]:
    return create_inline_keyboard([
        [create_button(label, callback_data(CB_SET_MODEL, model))]
        for model, label in AI_MODELS.items()
    ])


async def render_owner_dashboard(ctx: BotContext) -> None:
    if not ctx.is_owner:
        return
    await ctx.reply(owner_dashboard_text(ctx.tenant), reply_markup=owner_dashboard_keyboard())


async def handle_admin_command(ctx: BotContext) -> None:
    if not ctx.is_owner:
        await ctx.reply(OWNER_ONLY_MESSAGE)
        return
    await render_owner_dashboard(ctx)


async def handle_owner_menu(ctx: BotContext) -> None:
    await ctx.answer()
    await render_owner_dashboard(ctx)


async def commit_tenant_fields(ctx: BotContext, fields: Dict[str, Any]) -> None:
    """
    Writes completed-flow fields to the tenant record, then to the live tenant.

    Raises:
        StoreError: If the write fails (live tenant left untouched)
    """
    matched = await ctx.services.tenants.update(ctx.tenant.id, fields)
    if not matched:
        logger.warning("Tenant record missing on commit", extra=ctx.log_extra(operation="commit"))
    ctx.tenant.apply(fields)
    logger.info(f"Tenant fields committed: {', '.join(sorted(fields))}", extra=ctx.log_extra(operation="commit"))


# ============================================================
# FLOW ENTRY POINTS (buttons)
# ============================================================

async def start_payment_setup(ctx: BotContext) -> None:
    await ctx.answer()
    if not ctx.is_owner:
        return
    await enter_wizard(ctx, Stage.OWNER_AWAIT_PAYMENT_ID, ASK_PAYMENT_ID_MESSAGE)


async def start_ai_setup(ctx: BotContext) -> None:
    await ctx.answer()
    if not ctx.is_owner:
        return
    await enter_wizard(ctx, Stage.OWNER_AWAIT_AI_KEY, ASK_AI_KEY_MESSAGE)


async def start_prompt_setup(ctx: BotContext) -> None:
    await ctx.answer()
    if not ctx.is_owner:
        return
    current = escape(ctx.tenant.system_prompt) if ctx.tenant.system_prompt else "Default"
    await enter_wizard(ctx, Stage.OWNER_AWAIT_PROMPT, ASK_PROMPT_MESSAGE.format(current=current))


# ============================================================
# WIZARD STEPS
# ============================================================

async def step_payment_id(ctx: BotContext, text: str) -> WizardResult:
    ctx.session.temp_sync_id = text
    return WizardResult(Stage.OWNER_AWAIT_PAYMENT_SECRET, ASK_PAYMENT_SECRET_MESSAGE)


async def step_payment_secret(ctx: BotContext, text: str) -> WizardResult:
    client_id = ctx.session.temp_sync_id
    if not client_id:
        logger.warning("Payment secret received without a client id", extra=ctx.log_extra())
        return WizardResult(Stage.READY, FLOW_RESET_MESSAGE)

    return WizardResult(
        Stage.READY,
        PAYMENT_SAVED_MESSAGE,
        committed_fields={"syncpay_client_id": client_id, "syncpay_client_secret": text},
        after=render_owner_dashboard,
    )


async def step_ai_key(ctx: BotContext, text: str) -> WizardResult:
    if not is_valid_openai_key(text):
        return WizardResult(Stage.OWNER_AWAIT_AI_KEY, INVALID_AI_KEY_MESSAGE)

    ctx.session.temp_openai_key = text
    return WizardResult(Stage.OWNER_AWAIT_AI_MODEL, ASK_AI_MODEL_MESSAGE, reply_markup=model_keyboard())


def resolve_model(text: str) -> Optional[str]:
    """Accepts a model id or its button label, case-insensitively."""
    wanted = text.strip().lower()
    for model, label in AI_MODELS.items():
        if wanted in (model.lower(), label.lower()):
            return model
    return None


async def step_ai_model(ctx: BotContext, text: str) -> WizardResult:
    model = resolve_model(text)
    if model is None:
        return WizardResult(Stage.OWNER_AWAIT_AI_MODEL, INVALID_AI_MODEL_MESSAGE, reply_markup=model_keyboard())

    key = ctx.session.temp_openai_key
    if not key:
        logger.warning("Model chosen without a pending API key", extra=ctx.log_extra())
        return WizardResult(Stage.READY, FLOW_RESET_MESSAGE)

    return WizardResult(
        Stage.READY,
        AI_SAVED_MESSAGE.format(model=model),
        committed_fields={"openai_api_key": key, "openai_model": model},
        after=render_owner_dashboard,
    )


async def step_prompt(ctx: BotContext, text: str) -> WizardResult:
    return WizardResult(
        Stage.READY,
        PROMPT_SAVED_MESSAGE,
        committed_fields={"system_prompt": text},
        after=render_owner_dashboard,
    )


OWNER_STEPS = {
    Stage.OWNER_AWAIT_PAYMENT_ID: step_payment_id,
    Stage.OWNER_AWAIT_PAYMENT_SECRET: step_payment_secret,
    Stage.OWNER_AWAIT_AI_KEY: step_ai_key,
    Stage.OWNER_AWAIT_AI_MODEL: step_ai_model,
    Stage.OWNER_AWAIT_PROMPT: step_prompt,
}


# ============================================================
# RENEWAL & RELOAD
# ============================================================

async def handle_renewal(ctx: BotContext) -> None:
    """Generates a PIX charge on the platform account for the next period."""
    if not ctx.is_owner:
        await ctx.answer()
        return

    await ctx.answer("Generating PIX...")
    await ctx.reply(RENEWAL_GENERATING_MESSAGE)

    try:
        price = await ctx.services.tenants.price_for(ctx.tenant)
        charge = await ctx.services.payments.create_subscription_charge(ctx.tenant, price)
    except (ExternalServiceError, StoreError) as e:
        logger.error(f"Renewal charge failed: {e.message}", extra=ctx.log_extra(operation="renewal_charge"))
        await ctx.reply(RENEWAL_FAILED_MESSAGE)
        return

    logger.info(f"Renewal charge created: {charge.id}", extra=ctx.log_extra(operation="renewal_charge"))
    await ctx.reply(RENEWAL_CHARGE_MESSAGE.format(amount=format_brl(charge.amount), name=escape(ctx.tenant.name)))
    await ctx.reply(RENEWAL_CODE_MESSAGE.format(code=escape(charge.pix_code)))
    await ctx.reply(RENEWAL_INFO_MESSAGE)


async def handle_reload(ctx: BotContext) -> None:
    """Re-reads the tenant record into the running instance."""
    if not ctx.is_owner:
        await ctx.answer()
        return

    await ctx.answer("🔄 Reloading...", show_alert=True)
    try:
        reloaded = await ctx.services.registry.reload(ctx.tenant.id)
    except StoreError as e:
        logger.error(f"Reload failed: {e.message}", extra=ctx.log_extra(operation="reload"))
        reloaded = False

    if not reloaded:
        await ctx.reply(RELOAD_FAILED_MESSAGE)
        return

    await ctx.reply(RELOAD_DONE_MESSAGE)
    await render_owner_dashboard(ctx)
