# taskgraph/models/registry.py
"""
Static map from kind tag to the collection that stores it.

Polymorphic references are resolved here and nowhere else; the store never
looks a model up by name string.
"""

from dataclasses import dataclass
from typing import Optional, Type

from taskgraph.database import Base
from taskgraph.models.kinds import EntityKind, TaskType
from taskgraph.models.organization import Organization, Department, Vendor
from taskgraph.models.user import User
from taskgraph.models.task import Task, TaskActivity, TaskComment
from taskgraph.models.attachment import Attachment, Material
from taskgraph.models.notification import Notification


@dataclass(frozen=True)
class Collection:
    kind: EntityKind
    model: Type[Base]
    # Tenant keys of a row in this collection: the column holding the
    # organization id and the department id. "id" means the row is the tenant.
    org_field: str = "organization_id"
    dept_field: Optional[str] = "department_id"
    variant: Optional[TaskType] = None


REGISTRY = {
    EntityKind.ORGANIZATION: Collection(EntityKind.ORGANIZATION, Organization, org_field="id", dept_field=None),
    EntityKind.DEPARTMENT: Collection(EntityKind.DEPARTMENT, Department, dept_field="id"),
    EntityKind.USER: Collection(EntityKind.USER, User),
    EntityKind.VENDOR: Collection(EntityKind.VENDOR, Vendor),
    EntityKind.ROUTINE_TASK: Collection(EntityKind.ROUTINE_TASK, Task, variant=TaskType.ROUTINE),
    EntityKind.ASSIGNED_TASK: Collection(EntityKind.ASSIGNED_TASK, Task, variant=TaskType.ASSIGNED),
    EntityKind.PROJECT_TASK: Collection(EntityKind.PROJECT_TASK, Task, variant=TaskType.PROJECT),
    EntityKind.TASK_ACTIVITY: Collection(EntityKind.TASK_ACTIVITY, TaskActivity),
    EntityKind.TASK_COMMENT: Collection(EntityKind.TASK_COMMENT, TaskComment),
    EntityKind.ATTACHMENT: Collection(EntityKind.ATTACHMENT, Attachment),
    EntityKind.MATERIAL: Collection(EntityKind.MATERIAL, Material),
    EntityKind.NOTIFICATION: Collection(EntityKind.NOTIFICATION, Notification),
}


def collection_for(kind: EntityKind) -> Collection:
    return REGISTRY[EntityKind(kind)]


def column_names(kind: EntityKind) -> set:
    return {column.name for column in collection_for(kind).model.__table__.columns}
