"""
app/flow/handlers/menu.py

Handles: End-user main menu

- /start menu (owner gets an extra panel button)
- /id echo
- Placeholder areas (broadcast, affiliates, plans, support)
"""

from html import escape

from app.flow.context import BotContext
from utils.constants import (
    AFFILIATES_SOON_MESSAGE,
    BROADCAST_SOON_MESSAGE,
    BUTTON_AFFILIATES,
    BUTTON_BROADCAST,
    BUTTON_INSTANCES,
    BUTTON_OWNER_PANEL,
    BUTTON_PLAN,
    BUTTON_SUPPORT,
    CB_AFFILIATES,
    CB_BROADCAST,
    CB_INSTANCES,
    CB_OWNER_MENU,
    CB_PLAN,
    CB_SUPPORT,
    CHAT_ID_MESSAGE,
    PLANS_SOON_MESSAGE,
    SUPPORT_SOON_MESSAGE,
    USER_MENU_MESSAGE,
)
from utils.telegram_utils import create_button, create_inline_keyboard

DEFAULT_FIRST_NAME = "Partner"


async def render_user_menu(ctx: BotContext) -> None:
    await ctx.answer()
    first_name = escape(ctx.event.first_name or DEFAULT_FIRST_NAME)

    rows = [
        [create_button(BUTTON_INSTANCES, CB_INSTANCES)],
        [create_button(BUTTON_BROADCAST, CB_BROADCAST), create_button(BUTTON_AFFILIATES, CB_AFFILIATES)],
        [create_button(BUTTON_PLAN, CB_PLAN), create_button(BUTTON_SUPPORT, CB_SUPPORT)],
    ]
    if ctx.is_owner:
        rows.append([create_button(BUTTON_OWNER_PANEL, CB_OWNER_MENU)])

    await ctx.edit_or_reply(USER_MENU_MESSAGE.format(first_name=first_name), reply_markup=create_inline_keyboard(rows))


async def handle_id_command(ctx: BotContext) -> None:
    await ctx.reply(CHAT_ID_MESSAGE.format(chat_id=ctx.chat_id))


def coming_soon(message: str):
    async def handler(ctx: BotContext) -> None:
        await ctx.answer()
        await ctx.reply(message)
    return handler


PLACEHOLDER_CALLBACKS = {
    CB_BROADCAST: coming_soon(BROADCAST_SOON_MESSAGE),
    CB_AFFILIATES: coming_soon(AFFILIATES_SOON_MESSAGE),
    CB_PLAN: coming_soon(PLANS_SOON_MESSAGE),
    CB_SUPPORT: coming_soon(SUPPORT_SOON_MESSAGE),
}
