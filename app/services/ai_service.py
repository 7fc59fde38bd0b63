"""
app/services/ai_service.py

Purpose: LLM chat completion

- One system + one user message per call
- Uses the tenant's own API key and model
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CompletionResult:
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None


class OpenAIService:
    """OpenAI chat completions over plain HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.OPENAI_API_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def complete(
        self,
        api_key: str,
        model: str,
        system_prompt: str,
        user_message: str,
    ) -> CompletionResult:
        """
        Raises:
            ExternalServiceError: On transport errors, a non-200 reply or an
                unreadable body
        """
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }
        logger.debug(f"OpenAI request: model={model}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"OpenAI request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.status_code} {response.text[:200]}")
            raise ExternalServiceError(
                f"OpenAI API error: {response.status_code}",
                details={"body": response.text[:500]},
            )

        try:
            data = response.json()
            content = ""
            choices = data.get("choices") or []
            if choices:
                content = (choices[0].get("message") or {}).get("content") or ""
            return CompletionResult(content=content, model=data.get("model", model), usage=data.get("usage"))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"OpenAI returned an unreadable reply: {response.text[:200]}")
            raise ExternalServiceError(
                "OpenAI returned an unreadable reply",
                details={"body": response.text[:500]},
            ) from e


# Singleton instance
openai_service = OpenAIService()
