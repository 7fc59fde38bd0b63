"""
app/api/webhook.py

Purpose: Inbound webhooks

- POST /webhook/master: payment-gateway notifications, handed to the reconciler
- POST /webhook/wuzapi/{tenant_id}/{chat_id}/{instance_id}: WhatsApp gateway
  connection events, mirrored into the owning session
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_runtime
from app.core.logging import get_logger
from app.schemas.webhook import GatewayEvent, connection_state
from app.services.runtime import Runtime

logger = get_logger(__name__)
router = APIRouter(prefix="/webhook")


@router.post("/master")
async def payment_webhook(request: Request, runtime: Runtime = Depends(get_runtime)):
    """
    Subscription payments of all tenants.

    The status code comes from the reconciler: 200 for processed or ignored
    notifications, 400/404 for payloads that cannot be matched to a tenant,
    500 when the renewal could not be stored (the gateway retries).
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    outcome = await runtime.reconciler.process(body)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/wuzapi/{tenant_id}/{chat_id}/{instance_id}")
async def gateway_webhook(
    tenant_id: int,
    chat_id: str,
    instance_id: str,
    request: Request,
    runtime: Runtime = Depends(get_runtime),
):
    context = {"tenant_id": tenant_id, "chat_id": chat_id, "operation": "gateway_webhook"}
    try:
        body = await request.json()
    except ValueError:
        body = {}
    event = GatewayEvent.model_validate(body if isinstance(body, dict) else {})

    connected = connection_state(event)
    if connected is None:
        return {"ok": True, "ignored": True}

    sessions = runtime.sessions
    if not sessions.is_cached(tenant_id, chat_id) and not await sessions.exists(tenant_id, chat_id):
        logger.warning(f"Gateway event for unknown session ({event.type})", extra=context)
        return {"ok": True, "ignored": True}

    session = await sessions.get(tenant_id, chat_id)
    instance = session.find_instance(instance_id)
    if instance is None:
        logger.warning(f"Gateway event for unknown instance {instance_id} ({event.type})", extra=context)
        return {"ok": True, "ignored": True}

    if instance.is_connected != connected:
        instance.is_connected = connected
        await sessions.save(tenant_id, chat_id, session)
        logger.info(f"Instance {instance_id} {'connected' if connected else 'disconnected'}", extra=context)

    return {"ok": True, "connected": connected}
