"""
app/flow/handlers/chat.py

Handles: Free-text AI conversation outside any wizard

- Uses the tenant's own API key, model and system prompt
- Owner gets a setup hint when no key is configured
"""

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger
from app.flow.context import BotContext
from utils.constants import AI_FAILED_MESSAGE, AI_NOT_CONFIGURED_OWNER_MESSAGE, AI_NOT_CONFIGURED_USER_MESSAGE

logger = get_logger(__name__)


async def handle_chat(ctx: BotContext) -> None:
    text = (ctx.event.text or "").strip()
    if not text or text.startswith("/"):
        return

    tenant = ctx.tenant
    if not tenant.openai_api_key:
        await ctx.reply(AI_NOT_CONFIGURED_OWNER_MESSAGE if ctx.is_owner else AI_NOT_CONFIGURED_USER_MESSAGE)
        return

    try:
        await ctx.telegram.send_chat_action(ctx.chat_id, "typing")
    except ExternalServiceError as e:
        logger.debug(f"Typing indicator failed: {e.message}", extra=ctx.log_extra())

    try:
        result = await ctx.services.ai.complete(
            api_key=tenant.openai_api_key,
            model=tenant.ai_model,
            system_prompt=tenant.system_prompt or settings.DEFAULT_SYSTEM_PROMPT,
            user_message=text,
        )
    except ExternalServiceError as e:
        logger.error(f"AI completion failed: {e.message}", extra=ctx.log_extra(operation="ai_chat"))
        await ctx.reply(AI_FAILED_MESSAGE)
        return

    if not result.content:
        logger.warning("AI returned an empty completion", extra=ctx.log_extra(operation="ai_chat"))
        await ctx.reply(AI_FAILED_MESSAGE)
        return

    # Model output is plain text, not HTML
    await ctx.reply(result.content, parse_mode=None)
