"""
utils/telegram_utils.py

Purpose: Telegram message builders

- Constructs inline keyboard payloads
- Packs and unpacks callback data
- Abstracts Telegram API formatting
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from utils.constants import CALLBACK_SEPARATOR

# Telegram rejects callback_data longer than 64 bytes
MAX_CALLBACK_DATA_BYTES = 64


def create_button(text: str, callback_data: str) -> Dict[str, str]:
    """
    Creates a single inline keyboard button.

    Args:
        text: Button label
        callback_data: Payload echoed back in the callback query (max 64 bytes)

    Returns:
        Button dict
    """
    if len(callback_data.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
        raise ValueError(f"callback_data too long: {callback_data!r}")
    return {"text": text, "callback_data": callback_data}


def create_inline_keyboard(rows: Sequence[Sequence[Dict[str, str]]]) -> Dict[str, Any]:
    """
    Creates an inline keyboard reply_markup.

    Example:
        create_inline_keyboard([
            [create_button("Yes", "yes"), create_button("No", "no")],
            [create_button("Back", "back")],
        ])
    """
    return {"inline_keyboard": [list(row) for row in rows if row]}


def single_column_keyboard(buttons: Sequence[Tuple[str, str]]) -> Dict[str, Any]:
    """One button per row from (label, callback_data) pairs."""
    return create_inline_keyboard([[create_button(text, data)] for text, data in buttons])


def callback_data(action: str, argument: Optional[Any] = None) -> str:
    """Packs an action and an optional argument: ("inst_qr", "abc") -> "inst_qr:abc"."""
    if argument is None:
        return action
    return f"{action}{CALLBACK_SEPARATOR}{argument}"


def parse_callback_data(data: Optional[str]) -> Tuple[str, Optional[str]]:
    """Inverse of callback_data(). Only the first separator splits."""
    if not data:
        return "", None
    action, separator, argument = data.partition(CALLBACK_SEPARATOR)
    return action, (argument if separator else None)


def parse_command(text: Optional[str]) -> Optional[str]:
    """
    Extracts the command name from a message text.

    "/start" -> "start", "/admin@MyBot extra" -> "admin", "hello" -> None
    """
    if not text or not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


def mask_token(token: Optional[str], visible: int = 5) -> str:
    """Shows only the last characters of a secret."""
    if not token:
        return "-"
    return f"...{token[-visible:]}"


def format_brl(amount: float) -> str:
    """49.9 -> "49,90"."""
    return f"{amount:.2f}".replace(".", ",")


def bot_commands_payload(commands: List[Tuple[str, str]]) -> List[Dict[str, str]]:
    return [{"command": command, "description": description} for command, description in commands]
