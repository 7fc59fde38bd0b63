"""
app/flow/handlers/instances.py

Handles: WhatsApp messaging instances of an end user

- Lists linked instances with live gateway status
- AWAIT_INSTANCE_NAME -> READY: provisions a gateway user, registers its webhook
- Manage view, QR linking code, deletion
"""

import asyncio
import time
from html import escape
from typing import Any, Dict

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.flow.context import BotContext
from app.flow.states import Stage
from app.flow.wizard import WizardResult, enter_wizard
from app.models.session import MessagingInstance
from utils.constants import (
    ASK_INSTANCE_NAME_MESSAGE,
    BUTTON_ADD_INSTANCE,
    BUTTON_BACK,
    BUTTON_CANCEL,
    BUTTON_DELETE_INSTANCE,
    BUTTON_MANAGE_INSTANCE,
    BUTTON_QR,
    CB_CANCEL,
    CB_INSTANCE_ADD,
    CB_INSTANCE_DELETE,
    CB_INSTANCE_MANAGE,
    CB_INSTANCE_QR,
    CB_INSTANCES,
    CB_USER_MENU,
    CONNECTED_LABEL,
    DISCONNECTED_LABEL,
    INSTANCE_CREATE_FAILED_MESSAGE,
    INSTANCE_CREATED_MESSAGE,
    INSTANCE_CREATING_MESSAGE,
    INSTANCE_DELETED_MESSAGE,
    INSTANCE_LIMIT_MESSAGE,
    INSTANCE_LIMIT_REFUSED_MESSAGE,
    INSTANCE_LINE,
    INSTANCE_MANAGE_MESSAGE,
    INSTANCE_NOT_FOUND_MESSAGE,
    INSTANCES_HEADER,
    INSTANCES_LIST_HEADER,
    NO_INSTANCES_MESSAGE,
    QR_CAPTION,
    QR_FAILED_MESSAGE,
    QR_GENERATING_MESSAGE,
)
from utils.telegram_utils import callback_data, create_button, create_inline_keyboard
from utils.validation_utils import sanitize_input

logger = get_logger(__name__)

MAX_INSTANCE_NAME_LENGTH = 64


def new_instance_id(chat_id: str) -> str:
    """Short unique id, also used as the gateway token: user_<chat>_<6 digits>."""
    return f"user_{chat_id}_{int(time.time() * 1000) % 1_000_000:06d}"


def instance_webhook_url(tenant_id: int, chat_id: str, instance_id: str) -> str:
    return f"{settings.webhook_base}/webhook/wuzapi/{tenant_id}/{chat_id}/{instance_id}"


async def show_instances(ctx: BotContext) -> None:
    await ctx.answer()
    instances = ctx.session.whatsapp.instances

    text = INSTANCES_HEADER
    if not instances:
        text += NO_INSTANCES_MESSAGE
    else:
        text += INSTANCES_LIST_HEADER
        for instance in instances:
            online = await ctx.services.wuzapi.is_online(instance.token)
            text += INSTANCE_LINE.format(
                icon="✅" if online else "🔴",
                name=escape(instance.name),
                id=escape(instance.id),
                status=CONNECTED_LABEL if online else DISCONNECTED_LABEL,
            )

    rows = [
        [create_button(BUTTON_MANAGE_INSTANCE.format(name=instance.name), callback_data(CB_INSTANCE_MANAGE, instance.id))]
        for instance in instances
    ]
    if ctx.session.can_add_instance:
        rows.append([create_button(BUTTON_ADD_INSTANCE, CB_INSTANCE_ADD)])
    else:
        text += INSTANCE_LIMIT_MESSAGE.format(max_instances=ctx.session.whatsapp.max_instances)
    rows.append([create_button(BUTTON_BACK, CB_USER_MENU)])

    await ctx.edit_or_reply(text, reply_markup=create_inline_keyboard(rows))


async def start_add_instance(ctx: BotContext) -> None:
    await ctx.answer()
    if not ctx.session.can_add_instance:
        await ctx.reply(INSTANCE_LIMIT_REFUSED_MESSAGE.format(max_instances=ctx.session.whatsapp.max_instances))
        return
    await enter_wizard(
        ctx,
        Stage.AWAIT_INSTANCE_NAME,
        ASK_INSTANCE_NAME_MESSAGE,
        reply_markup=create_inline_keyboard([[create_button(BUTTON_CANCEL, CB_CANCEL)]]),
    )


async def step_instance_name(ctx: BotContext, text: str) -> WizardResult:
    """Provisions the gateway user and appends the instance to the session."""
    name = sanitize_input(text, max_length=MAX_INSTANCE_NAME_LENGTH)
    if not ctx.session.can_add_instance:
        return WizardResult(
            Stage.READY,
            INSTANCE_LIMIT_REFUSED_MESSAGE.format(max_instances=ctx.session.whatsapp.max_instances),
        )

    await ctx.reply(INSTANCE_CREATING_MESSAGE)

    wuzapi = ctx.services.wuzapi
    instance_id = new_instance_id(ctx.chat_id)
    created = await wuzapi.create_user(name=instance_id, token=instance_id)
    if not created.get("success"):
        logger.error(
            f"Gateway user creation failed: {created.get('text') or created.get('message') or created}",
            extra=ctx.log_extra(operation="instance_create"),
        )
        return WizardResult(Stage.READY, INSTANCE_CREATE_FAILED_MESSAGE)

    webhook = instance_webhook_url(ctx.tenant.id, ctx.chat_id, instance_id)
    hooked = await wuzapi.set_webhook(instance_id, webhook)
    if not hooked.get("success"):
        logger.warning("Gateway webhook registration failed", extra=ctx.log_extra(operation="instance_create"))

    gateway_id = (created.get("data") or {}).get("id") or instance_id
    ctx.session.whatsapp.instances.append(
        MessagingInstance(
            id=instance_id,
            token=instance_id,
            name=name,
            is_connected=False,
            gateway_id=str(gateway_id),
            webhook=webhook,
        )
    )
    logger.info(f"Instance {instance_id} created", extra=ctx.log_extra(operation="instance_create"))

    return WizardResult(
        Stage.READY,
        INSTANCE_CREATED_MESSAGE.format(name=escape(name)),
        reply_markup=create_inline_keyboard([
            [create_button(BUTTON_QR, callback_data(CB_INSTANCE_MANAGE, instance_id))],
            [create_button(BUTTON_BACK, CB_INSTANCES)],
        ]),
    )


INSTANCE_STEPS = {
    Stage.AWAIT_INSTANCE_NAME: step_instance_name,
}


def manage_keyboard(instance_id: str, online: bool) -> Dict[str, Any]:
    rows = []
    if not online:
        rows.append([create_button(BUTTON_QR, callback_data(CB_INSTANCE_QR, instance_id))])
    rows.append([create_button(BUTTON_DELETE_INSTANCE, callback_data(CB_INSTANCE_DELETE, instance_id))])
    rows.append([create_button(BUTTON_BACK, CB_INSTANCES)])
    return create_inline_keyboard(rows)


async def manage_instance(ctx: BotContext, instance_id: str) -> None:
    await ctx.answer()
    instance = ctx.session.find_instance(instance_id)
    if instance is None:
        await ctx.reply(INSTANCE_NOT_FOUND_MESSAGE)
        return

    online = await ctx.services.wuzapi.is_online(instance.token)
    text = INSTANCE_MANAGE_MESSAGE.format(
        name=escape(instance.name),
        id=escape(instance.id),
        status=CONNECTED_LABEL if online else DISCONNECTED_LABEL,
    )
    await ctx.edit_or_reply(text, reply_markup=manage_keyboard(instance.id, online))


async def send_qr(ctx: BotContext, instance_id: str) -> None:
    """Starts the gateway session and sends its QR linking code as a photo."""
    await ctx.answer(QR_GENERATING_MESSAGE)
    instance = ctx.session.find_instance(instance_id)
    if instance is None:
        await ctx.reply(INSTANCE_NOT_FOUND_MESSAGE)
        return

    wuzapi = ctx.services.wuzapi
    await wuzapi.connect(instance.token)
    # The gateway needs a moment before a QR code is available
    await asyncio.sleep(settings.WUZAPI_QR_DELAY_SECONDS)
    result = await wuzapi.get_qr(instance.token)

    image = wuzapi.decode_qr(result)
    if image is None:
        logger.warning(f"QR unavailable for {instance_id}: {result}", extra=ctx.log_extra(operation="instance_qr"))
        await ctx.reply(QR_FAILED_MESSAGE)
        return

    try:
        await ctx.telegram.send_photo(ctx.chat_id, image, caption=QR_CAPTION)
    except ExternalServiceError as e:
        logger.error(f"QR upload failed: {e.message}", extra=ctx.log_extra(operation="instance_qr"))
        await ctx.reply(QR_FAILED_MESSAGE)


async def delete_instance(ctx: BotContext, instance_id: str) -> None:
    instance = ctx.session.find_instance(instance_id)
    if instance is None:
        await ctx.answer()
        await ctx.reply(INSTANCE_NOT_FOUND_MESSAGE)
        return

    result = await ctx.services.wuzapi.delete_user(instance.gateway_id or instance.id)
    if not result.get("success"):
        logger.warning(f"Gateway delete failed for {instance_id}", extra=ctx.log_extra(operation="instance_delete"))

    ctx.session.remove_instance(instance_id)
    await ctx.save()
    logger.info(f"Instance {instance_id} removed", extra=ctx.log_extra(operation="instance_delete"))

    await ctx.answer(INSTANCE_DELETED_MESSAGE)
    await show_instances(ctx)
