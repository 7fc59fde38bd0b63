"""
app/schemas/webhook.py

Purpose: Inbound payload schemas and parsers

- Normalizes Telegram updates (messages and button presses) into IncomingEvent
- Validates WhatsApp gateway connection events
- Ensures predictable request handling
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.telegram_utils import parse_command


class IncomingEvent(BaseModel):
    """
    Normalized Telegram update for internal processing.
    Works for both text messages and callback queries.
    """
    update_id: int = Field(..., description="Telegram update id")
    kind: Literal["message", "callback"] = Field(..., description="Update type")
    chat_id: str = Field(..., description="Chat the reply goes to")
    first_name: Optional[str] = None

    # message
    text: Optional[str] = None
    message_id: Optional[int] = None

    # callback
    callback_id: Optional[str] = None
    callback_data: Optional[str] = None

    @property
    def command(self) -> Optional[str]:
        if self.kind != "message":
            return None
        return parse_command(self.text)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "update_id": 1001,
                "kind": "message",
                "chat_id": "123456789",
                "first_name": "Ana",
                "text": "/start",
                "message_id": 10,
            }
        }
    )


def parse_telegram_update(update: Dict[str, Any]) -> Optional[IncomingEvent]:
    """
    Parses a raw getUpdates entry.

    Telegram format:
    {
        "update_id": 1001,
        "message": {"message_id": 10, "chat": {"id": 123}, "from": {...}, "text": "hi"}
    }
    or
    {
        "update_id": 1002,
        "callback_query": {"id": "abc", "data": "inst_menu", "from": {...},
                           "message": {"message_id": 11, "chat": {"id": 123}}}
    }

    Returns None for update types the bots do not handle.
    """
    update_id = update.get("update_id")
    if update_id is None:
        return None

    message = update.get("message")
    if message:
        chat = message.get("chat") or {}
        if "id" not in chat:
            return None
        sender = message.get("from") or {}
        return IncomingEvent(
            update_id=update_id,
            kind="message",
            chat_id=str(chat["id"]),
            first_name=sender.get("first_name"),
            text=message.get("text"),
            message_id=message.get("message_id"),
        )

    callback = update.get("callback_query")
    if callback:
        sender = callback.get("from") or {}
        origin = callback.get("message") or {}
        chat_id = (origin.get("chat") or {}).get("id", sender.get("id"))
        if chat_id is None:
            return None
        return IncomingEvent(
            update_id=update_id,
            kind="callback",
            chat_id=str(chat_id),
            first_name=sender.get("first_name"),
            message_id=origin.get("message_id"),
            callback_id=callback.get("id"),
            callback_data=callback.get("data"),
        )

    return None


class GatewayEvent(BaseModel):
    """
    WuzAPI webhook body. Only the event type is interpreted; everything else is
    kept for logging.
    """
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    event: Optional[Any] = None


CONNECTED_EVENTS = frozenset({"Connected", "PairSuccess", "LoggedIn"})
DISCONNECTED_EVENTS = frozenset({"Disconnected", "LoggedOut", "ConnectFailure", "StreamReplaced"})


def connection_state(event: GatewayEvent) -> Optional[bool]:
    """True/False for connection changes, None for anything else."""
    if event.type in CONNECTED_EVENTS:
        return True
    if event.type in DISCONNECTED_EVENTS:
        return False
    return None
