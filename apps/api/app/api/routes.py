from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.accounts.api import auth_router, users_router
from app.api.activities import router as activities_router
from app.business.billing.api import invoices_router, quotes_router
from app.core.config import get_settings
from app.core.rbac import require_capability
from app.crm.api import clients_router, inquiries_router, leads_router
from app.metrics import generate_metrics_payload, metrics_content_type
from app.operations.api import (
    client_portal_router,
    communications_router,
    projects_router,
    requests_router,
    tasks_router,
    tickets_router,
)
from app.platform.security.context import Principal
from app.platform.security.roles import Capability
from app.public.api import router as public_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(clients_router)
router.include_router(leads_router)
router.include_router(inquiries_router)
router.include_router(requests_router)
router.include_router(communications_router)
router.include_router(projects_router)
router.include_router(tasks_router)
router.include_router(tickets_router)
router.include_router(client_portal_router)
router.include_router(quotes_router)
router.include_router(invoices_router)
router.include_router(public_router)
router.include_router(activities_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics(principal: Principal = Depends(require_capability(Capability.MANAGE_SYSTEM))) -> Response:
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
