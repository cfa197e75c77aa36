from .kinds import (
    EntityKind, TaskType, UserRole, TaskStatus, TaskPriority, AttachmentType,
    NotificationType, IndustrySize, IndustryType, TASK_KINDS, TASK_KIND_BY_TYPE, TASK_TYPE_BY_KIND,
)
from .organization import Organization, Department, Vendor
from .user import User, ADMIN_ROLES
from .task import Task, TaskActivity, TaskComment
from .attachment import Attachment, Material
from .notification import Notification
from .registry import REGISTRY, Collection, collection_for, column_names
