# taskgraph/routers/notifications.py
from fastapi import APIRouter, Depends

from taskgraph.services.commands import CommandService, get_command_service
from taskgraph.utils.auth import get_tenant_context
from taskgraph.utils.tenant import TenantContext

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    service: CommandService = Depends(get_command_service),
):
    service.mark_read(notification_id, tenant)
    return {"message": "Notification marked as read"}
