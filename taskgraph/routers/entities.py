# taskgraph/routers/entities.py
from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError
from typing import Any, Dict
import json

from taskgraph.models.kinds import EntityKind
from taskgraph.schemas import CREATE_SCHEMAS, PatchIn, CreatedOut, DeleteOut, UpdateOut
from taskgraph.services.commands import CommandService, get_command_service
from taskgraph.utils.auth import get_tenant_context
from taskgraph.utils.tenant import TenantContext

router = APIRouter(prefix="/entities", tags=["entities"])

KIND_SLUGS = {
    "organizations": EntityKind.ORGANIZATION,
    "departments": EntityKind.DEPARTMENT,
    "users": EntityKind.USER,
    "vendors": EntityKind.VENDOR,
    "routine-tasks": EntityKind.ROUTINE_TASK,
    "assigned-tasks": EntityKind.ASSIGNED_TASK,
    "project-tasks": EntityKind.PROJECT_TASK,
    "task-activities": EntityKind.TASK_ACTIVITY,
    "task-comments": EntityKind.TASK_COMMENT,
    "attachments": EntityKind.ATTACHMENT,
    "materials": EntityKind.MATERIAL,
    "notifications": EntityKind.NOTIFICATION,
}


def resolve_kind(kind: str) -> EntityKind:
    entity_kind = KIND_SLUGS.get(kind)
    if entity_kind is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown entity type '{kind}'")
    return entity_kind


@router.post("/{kind}", response_model=CreatedOut, status_code=status.HTTP_201_CREATED)
def create_entity(
    kind: str,
    payload: Dict[str, Any] = Body(...),
    tenant: TenantContext = Depends(get_tenant_context),
    service: CommandService = Depends(get_command_service),
):
    entity_kind = resolve_kind(kind)
    try:
        values = CREATE_SCHEMAS[entity_kind].model_validate(payload).model_dump(exclude_unset=True)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=json.loads(e.json()))

    entity_id = service.apply_create(entity_kind, values, tenant)
    return {"id": entity_id}


@router.get("/{kind}/{entity_id}")
def get_entity(
    kind: str,
    entity_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    service: CommandService = Depends(get_command_service),
):
    return service.get(resolve_kind(kind), entity_id, tenant)


@router.patch("/{kind}/{entity_id}", response_model=UpdateOut)
def update_entity(
    kind: str,
    entity_id: int,
    patch: PatchIn,
    tenant: TenantContext = Depends(get_tenant_context),
    service: CommandService = Depends(get_command_service),
):
    report = service.apply_update(resolve_kind(kind), entity_id, patch.model_dump(), tenant)
    return {"id": entity_id, "cascade": report.to_dict() if report else None}


@router.delete("/{kind}/{entity_id}", response_model=DeleteOut)
def delete_entity(
    kind: str,
    entity_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    service: CommandService = Depends(get_command_service),
):
    """Soft-delete an entity and everything that belongs to it"""
    report = service.apply_delete(resolve_kind(kind), entity_id, tenant)
    if report is None:
        return {"deleted": False, "cascade": None}
    return {"deleted": True, "cascade": report.to_dict()}
