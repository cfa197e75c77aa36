# taskgraph/models/kinds.py
import enum


class EntityKind(str, enum.Enum):
    """Type tag of every node in the graph; polymorphic references carry one of these"""
    ORGANIZATION = "Organization"
    DEPARTMENT = "Department"
    USER = "User"
    ROUTINE_TASK = "RoutineTask"
    ASSIGNED_TASK = "AssignedTask"
    PROJECT_TASK = "ProjectTask"
    TASK_ACTIVITY = "TaskActivity"
    TASK_COMMENT = "TaskComment"
    ATTACHMENT = "Attachment"
    MATERIAL = "Material"
    NOTIFICATION = "Notification"
    VENDOR = "Vendor"


class TaskType(str, enum.Enum):
    ROUTINE = "Routine"
    ASSIGNED = "Assigned"
    PROJECT = "Project"


TASK_KIND_BY_TYPE = {
    TaskType.ROUTINE: EntityKind.ROUTINE_TASK,
    TaskType.ASSIGNED: EntityKind.ASSIGNED_TASK,
    TaskType.PROJECT: EntityKind.PROJECT_TASK,
}
TASK_TYPE_BY_KIND = {kind: task_type for task_type, kind in TASK_KIND_BY_TYPE.items()}
TASK_KINDS = tuple(TASK_KIND_BY_TYPE.values())


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    MANAGER = "Manager"
    USER = "User"


class TaskStatus(str, enum.Enum):
    TO_DO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    PENDING = "Pending"


class TaskPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class AttachmentType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    OTHER = "other"


class NotificationType(str, enum.Enum):
    TASK_ASSIGNED = "TaskAssigned"
    TASK_UPDATED = "TaskUpdated"
    TASK_COMMENTED = "TaskCommented"
    ACTIVITY_LOGGED = "ActivityLogged"
    REMINDER = "Reminder"
    ANNOUNCEMENT = "Announcement"
    SYSTEM = "System"


class IndustrySize(str, enum.Enum):
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"


class IndustryType(str, enum.Enum):
    HOSPITALITY = "Hospitality"
    CONSTRUCTION = "Construction"
    EDUCATION = "Education"
    HEALTHCARE = "Healthcare"
    MANUFACTURING = "Manufacturing"
    RETAIL = "Retail"
    TECHNOLOGY = "Technology"
    FINANCE = "Finance"
    TRANSPORTATION = "Transportation"
    UTILITIES = "Utilities"
    TELECOMMUNICATIONS = "Telecommunications"
    GOVERNMENT = "Government"
    NON_PROFIT = "Non-Profit"
    OTHER = "Other"
