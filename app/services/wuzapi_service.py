"""
app/services/wuzapi_service.py

Purpose: WhatsApp gateway (WuzAPI) client

- Admin calls (create / delete gateway users) with the admin token
- Per-instance calls (webhook, session connect / status / QR) with the instance token
- Never raises: every call returns a dict with a `success` flag
"""

import base64
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class WuzapiService:
    """Service for provisioning and linking WhatsApp sessions via WuzAPI"""

    def __init__(self, base_url: Optional[str] = None, admin_token: Optional[str] = None, timeout: float = 15.0):
        self.base_url = (base_url or settings.WUZAPI_BASE_URL).rstrip("/")
        self.admin_token = admin_token if admin_token is not None else settings.WUZAPI_ADMIN_TOKEN
        self.timeout = timeout

    def _headers(self, instance_token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if instance_token:
            headers["token"] = instance_token
        elif self.admin_token:
            headers["Authorization"] = self.admin_token
        return headers

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        instance_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Calls the gateway.

        Returns:
            The gateway's JSON body, or
            {"error": True, "text": ..., "success": False} for non-JSON replies, or
            {"error": True, "message": ..., "success": False} for transport failures
        """
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(instance_token),
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error(f"WuzAPI {method} {endpoint} failed: {e}")
            return {"error": True, "message": str(e), "success": False}

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"WuzAPI returned non-JSON from {endpoint}: {response.text[:50]}")
            return {"error": True, "text": response.text, "success": False}

        if not isinstance(data, dict):
            return {"success": False, "data": data}
        data.setdefault("success", False)
        return data

    async def create_user(self, name: str, token: str) -> Dict[str, Any]:
        return await self.call("/admin/users", "POST", {"name": name, "token": token})

    async def delete_user(self, user_id: str) -> Dict[str, Any]:
        return await self.call(f"/admin/users/{user_id}", "DELETE")

    async def set_webhook(self, instance_token: str, webhook_url: str) -> Dict[str, Any]:
        return await self.call(
            "/webhook",
            "POST",
            {"webhook": webhook_url, "events": ["All"]},
            instance_token=instance_token,
        )

    async def connect(self, instance_token: str) -> Dict[str, Any]:
        return await self.call("/session/connect", "POST", {"Immediate": True}, instance_token=instance_token)

    async def status(self, instance_token: str) -> Dict[str, Any]:
        return await self.call("/session/status", "GET", instance_token=instance_token)

    async def is_online(self, instance_token: str) -> bool:
        result = await self.status(instance_token)
        data = result.get("data") or {}
        return bool(result.get("success")) and bool(data.get("loggedIn") or data.get("status") == "LoggedIn")

    async def get_qr(self, instance_token: str) -> Dict[str, Any]:
        return await self.call("/session/qr", "GET", instance_token=instance_token)

    @staticmethod
    def decode_qr(result: Dict[str, Any]) -> Optional[bytes]:
        """
        Extracts PNG bytes from a /session/qr reply.

        The gateway answers {"data": {"QRCode": "data:image/png;base64,...."}}.
        """
        qr = (result.get("data") or {}).get("QRCode")
        if not qr:
            return None
        encoded = qr.split(",", 1)[1] if "," in qr else qr
        try:
            return base64.b64decode(encoded)
        except ValueError:
            logger.warning("WuzAPI returned an undecodable QR code")
            return None


# Singleton instance
wuzapi_service = WuzapiService()
