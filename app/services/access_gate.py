"""
app/services/access_gate.py

Purpose: Quota & expiration gate

- Runs once per inbound event, before any handler
- Refuses non-owners of expired tenants
- Counts new users against the tenant's quota (soft, per-process counter)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from app.core.logging import get_logger
from app.models.tenant import Tenant
from app.services.session_store import SessionStore
from utils.constants import PLAN_EXPIRED_MESSAGE, USER_LIMIT_MESSAGE
from utils.time_utils import utcnow

logger = get_logger(__name__)


@dataclass
class GateDecision:
    admitted: bool
    reply: Optional[str] = None
    new_user: bool = False


ADMIT = GateDecision(admitted=True)


class AccessGate:
    def __init__(self, sessions: SessionStore, clock: Callable[[], datetime] = utcnow):
        self._sessions = sessions
        self._clock = clock

    async def check(self, tenant: Tenant, chat_id: Any) -> GateDecision:
        """
        Decides whether an event from `chat_id` reaches the handlers.

        The owner always passes. Known users (cached or stored) pass while the
        plan is current. A new user is counted only when admitted.

        Raises:
            StoreError: If the durable existence check fails
        """
        if tenant.is_owner(chat_id):
            return ADMIT

        context = {"tenant_id": tenant.id, "tenant_name": tenant.name, "chat_id": str(chat_id)}

        if tenant.is_expired(self._clock()):
            logger.info("Refused: plan expired", extra=context)
            return GateDecision(admitted=False, reply=PLAN_EXPIRED_MESSAGE)

        if self._sessions.is_cached(tenant.id, chat_id):
            return ADMIT

        if await self._sessions.exists(tenant.id, chat_id):
            return ADMIT

        # No await between the check and the increment
        limit = tenant.user_limit
        if tenant.active_user_count >= limit:
            logger.warning(f"Refused: user limit reached ({tenant.active_user_count}/{limit})", extra=context)
            return GateDecision(admitted=False, reply=USER_LIMIT_MESSAGE.format(max_users=limit))

        tenant.active_user_count += 1
        logger.info(f"New user admitted ({tenant.active_user_count}/{limit})", extra=context)
        return GateDecision(admitted=True, new_user=True)
