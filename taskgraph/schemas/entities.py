# taskgraph/schemas/entities.py
# Create payloads per entity kind. Tenant keys and creator fields are optional:
# the command layer fills them from the caller's token.
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Type

from taskgraph.models.kinds import (
    EntityKind, UserRole, TaskStatus, TaskPriority, AttachmentType, NotificationType, IndustrySize, IndustryType,
)


class TenantScoped(BaseModel):
    model_config = {"extra": "forbid"}

    organization_id: Optional[int] = None
    department_id: Optional[int] = None


class OrganizationCreate(BaseModel):
    model_config = {"extra": "forbid"}

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=1, max_length=20)
    address: str = Field(..., min_length=1, max_length=200)
    size: IndustrySize
    industry: IndustryType
    logo_url: Optional[str] = Field(None, max_length=500)


class DepartmentCreate(BaseModel):
    model_config = {"extra": "forbid"}

    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=2000)
    organization_id: Optional[int] = None
    created_by_id: Optional[int] = None


class UserCreate(TenantScoped):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    position: str = Field(..., min_length=1, max_length=50)
    role: UserRole = UserRole.USER
    email: str = Field(..., min_length=3, max_length=255)
    hashed_password: str = Field(..., min_length=1)
    skills: List[str] = []


class VendorCreate(TenantScoped):
    name: str = Field(..., min_length=1, max_length=200)
    contact: Optional[str] = Field(None, max_length=255)


class TaskCreate(TenantScoped):
    """Common shape of the three task variants; variant rules run in the service"""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    created_by_id: Optional[int] = None
    assignees: List[int] = []
    watchers: List[int] = []
    tags: List[str] = []
    date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    vendor_id: Optional[int] = None
    vendor_name: Optional[str] = Field(None, max_length=100)
    vendor_contact: Optional[str] = Field(None, max_length=255)
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)


class TaskActivityCreate(TenantScoped):
    task_id: int
    task_kind: EntityKind
    description: str = Field(..., min_length=1, max_length=1000)
    logged_at: Optional[datetime] = None
    created_by_id: Optional[int] = None


class TaskCommentCreate(TenantScoped):
    parent_id: int
    parent_kind: EntityKind
    content: str = Field(..., min_length=1, max_length=2000)
    mentions: List[int] = []
    created_by_id: Optional[int] = None


class AttachmentCreate(TenantScoped):
    original_name: str = Field(..., min_length=1, max_length=255)
    stored_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=100)
    size: int = Field(..., ge=0)
    type: AttachmentType = AttachmentType.OTHER
    url: str = Field(..., min_length=1, max_length=500)
    parent_id: int
    parent_kind: EntityKind
    uploaded_by_id: Optional[int] = None


class MaterialCreate(TenantScoped):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: float = Field(..., ge=0)
    unit: Optional[str] = Field(None, max_length=50)
    cost: Optional[float] = Field(None, ge=0)
    parent_id: int
    parent_kind: EntityKind
    added_by_id: Optional[int] = None


class NotificationCreate(TenantScoped):
    type: NotificationType = NotificationType.SYSTEM
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    entity_id: Optional[int] = None
    entity_kind: Optional[EntityKind] = None
    recipients: List[int] = Field(..., min_length=1)
    created_by_id: Optional[int] = None


CREATE_SCHEMAS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.ORGANIZATION: OrganizationCreate,
    EntityKind.DEPARTMENT: DepartmentCreate,
    EntityKind.USER: UserCreate,
    EntityKind.VENDOR: VendorCreate,
    EntityKind.ROUTINE_TASK: TaskCreate,
    EntityKind.ASSIGNED_TASK: TaskCreate,
    EntityKind.PROJECT_TASK: TaskCreate,
    EntityKind.TASK_ACTIVITY: TaskActivityCreate,
    EntityKind.TASK_COMMENT: TaskCommentCreate,
    EntityKind.ATTACHMENT: AttachmentCreate,
    EntityKind.MATERIAL: MaterialCreate,
    EntityKind.NOTIFICATION: NotificationCreate,
}
