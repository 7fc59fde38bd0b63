"""
app/api/admin.py

Purpose: Operator HTTP endpoints

- POST /admin/create-tenant: provisions a tenant and starts its bot
- GET /admin/tenants: lists tenants with their running flag
- Guarded by X-Admin-Token when ADMIN_API_TOKEN is configured
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_runtime, require_admin_token
from app.core.exceptions import BotFleetError
from app.core.logging import get_logger
from app.schemas.admin import CreateTenantRequest, TenantSummary
from app.services.runtime import Runtime

logger = get_logger(__name__)
router = APIRouter(prefix="/admin")


@router.post("/create-tenant", dependencies=[Depends(require_admin_token)])
async def create_tenant(request: Request, runtime: Runtime = Depends(get_runtime)):
    """
    Creates an active tenant (first period starts now) and starts its bot.

    Failures answer 400 {"error": ...}. A bot that fails to start does not
    fail the request: the tenant exists and is reported with running=false.
    """
    try:
        payload = CreateTenantRequest.model_validate(await request.json())
    except ValueError as e:
        logger.warning(f"Rejected create-tenant body: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid request body: name and telegram_token are required"})

    try:
        tenant = await runtime.tenants.create(
            name=payload.name,
            telegram_token=payload.telegram_token,
            owner_chat_id=payload.owner_chat_id,
            syncpay_client_id=payload.syncpay_id,
            syncpay_client_secret=payload.syncpay_secret,
        )
    except BotFleetError as e:
        return JSONResponse(status_code=400, content={"error": e.message})

    running = True
    try:
        await runtime.registry.start(tenant)
    except Exception as e:
        logger.error(f"Tenant bot failed to start: {e}", extra={"tenant_id": tenant.id, "tenant_name": tenant.name})
        running = False

    return {"success": True, "tenant": TenantSummary.from_tenant(tenant, running=running).model_dump(mode="json")}


@router.get("/tenants", dependencies=[Depends(require_admin_token)])
async def list_tenants(runtime: Runtime = Depends(get_runtime)):
    tenants = await runtime.tenants.list_all()
    return {
        "tenants": [
            TenantSummary.from_tenant(tenant, running=runtime.registry.is_running(tenant.id)).model_dump(mode="json")
            for tenant in tenants
        ]
    }
