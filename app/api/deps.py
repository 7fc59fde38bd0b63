"""
app/api/deps.py

Purpose: Shared route dependencies
"""

from typing import Optional

from fastapi import Header, Request

from app.core.config import settings
from app.core.exceptions import AuthenticationError, BotFleetError
from app.services.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """The process runtime built during application startup."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise BotFleetError("Service is starting", code="NOT_READY", status_code=503)
    return runtime


async def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    if settings.ADMIN_API_TOKEN and x_admin_token != settings.ADMIN_API_TOKEN:
        raise AuthenticationError("Invalid admin token")
