"""
app/services/telegram_service.py

Purpose: Telegram Bot API client

- Long polling (getUpdates)
- Text, photo and chat-action sending
- Inline keyboard edits and callback answers
- Command menu registration
"""

from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 15.0


class TelegramService:
    """Thin async client for one bot token."""

    def __init__(self, bot_token: str, client: Optional[httpx.AsyncClient] = None):
        self.bot_token = bot_token
        self.base_url = f"{settings.TELEGRAM_API_URL.rstrip('/')}/bot{bot_token}"
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _request(
        self,
        method: str,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Calls a Bot API method and returns its `result`.

        Raises:
            ExternalServiceError: On transport errors or an `ok: false` reply
        """
        url = f"{self.base_url}/{method}"
        request_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
        try:
            if files:
                response = await self.client.post(url, data=data or {}, files=files, timeout=request_timeout)
            else:
                response = await self.client.post(url, json=data or {}, timeout=request_timeout)
            body = response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Telegram {method} failed: {e}") from e
        except ValueError as e:
            raise ExternalServiceError(f"Telegram {method} returned non-JSON ({response.status_code})") from e

        if not body.get("ok"):
            raise ExternalServiceError(
                f"Telegram {method} error: {body.get('description', response.status_code)}",
                details={"error_code": body.get("error_code")},
            )
        return body.get("result")

    async def get_me(self) -> Dict[str, Any]:
        return await self._request("getMe")

    async def get_updates(self, offset: Optional[int] = None, timeout: Optional[int] = None) -> List[Dict[str, Any]]:
        """Long-polls for updates after `offset`."""
        poll_timeout = settings.TELEGRAM_POLL_TIMEOUT if timeout is None else timeout
        data: Dict[str, Any] = {
            "timeout": poll_timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            data["offset"] = offset
        # HTTP timeout must outlast the server-side long poll
        return await self._request("getUpdates", data, timeout=poll_timeout + 10) or []

    async def delete_webhook(self) -> None:
        """getUpdates is refused while a webhook is set."""
        await self._request("deleteWebhook", {"drop_pending_updates": False})

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        return await self._request("sendMessage", data)

    async def edit_message(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        return await self._request("editMessageText", data)

    async def delete_message(self, chat_id: str, message_id: int) -> bool:
        return await self._request("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        show_alert: bool = False,
    ) -> bool:
        data: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
            data["show_alert"] = show_alert
        return await self._request("answerCallbackQuery", data)

    async def send_photo(
        self,
        chat_id: str,
        photo: bytes,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = "HTML",
        filename: str = "qr.png",
    ) -> Dict[str, Any]:
        """Uploads raw image bytes."""
        data: Dict[str, Any] = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption
            if parse_mode:
                data["parse_mode"] = parse_mode
        return await self._request("sendPhoto", data=data, files={"photo": (filename, photo, "image/png")})

    async def send_chat_action(self, chat_id: str, action: str = "typing") -> bool:
        return await self._request("sendChatAction", {"chat_id": chat_id, "action": action})

    async def set_my_commands(self, commands: List[Dict[str, str]]) -> bool:
        return await self._request("setMyCommands", {"commands": commands})
