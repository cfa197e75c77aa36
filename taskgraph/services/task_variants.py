# taskgraph/services/task_variants.py
"""
Per-variant rules for tasks.

Tasks are one tagged type (``task_type``); everything that differs between
Routine, Assigned and Project tasks lives in the rule table below rather than
in subclasses.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from taskgraph.errors import InvalidPayload
from taskgraph.models.kinds import EntityKind, TaskType, TaskStatus, TaskPriority, TASK_TYPE_BY_KIND

ALL_STATUSES = tuple(TaskStatus)
ALL_PRIORITIES = tuple(TaskPriority)

PROJECT_FIELDS = ("vendor_id", "vendor_name", "vendor_contact", "estimated_cost", "actual_cost", "watchers", "tags")


@dataclass(frozen=True)
class TaskVariantRule:
    task_type: TaskType
    kind: EntityKind
    required_fields: Tuple[str, ...]
    forbidden_fields: Tuple[str, ...]
    allowed_statuses: Tuple[TaskStatus, ...]
    allowed_priorities: Tuple[TaskPriority, ...]
    default_status: TaskStatus
    default_priority: TaskPriority
    min_assignees: int = 0
    dates_required_in_order: bool = False
    supports_activities: bool = False
    supports_materials: bool = False


VARIANT_RULES: Dict[TaskType, TaskVariantRule] = {
    TaskType.ROUTINE: TaskVariantRule(
        task_type=TaskType.ROUTINE,
        kind=EntityKind.ROUTINE_TASK,
        required_fields=("date",),
        forbidden_fields=("assignees", "start_date", "due_date") + PROJECT_FIELDS,
        allowed_statuses=(TaskStatus.COMPLETED, TaskStatus.PENDING),
        allowed_priorities=(TaskPriority.MEDIUM, TaskPriority.HIGH, TaskPriority.URGENT),
        default_status=TaskStatus.COMPLETED,
        default_priority=TaskPriority.MEDIUM,
        supports_materials=True,
    ),
    TaskType.ASSIGNED: TaskVariantRule(
        task_type=TaskType.ASSIGNED,
        kind=EntityKind.ASSIGNED_TASK,
        required_fields=("start_date", "due_date"),
        forbidden_fields=("date", "materials") + PROJECT_FIELDS,
        allowed_statuses=ALL_STATUSES,
        allowed_priorities=ALL_PRIORITIES,
        default_status=TaskStatus.TO_DO,
        default_priority=TaskPriority.MEDIUM,
        min_assignees=1,
        dates_required_in_order=True,
        supports_activities=True,
    ),
    TaskType.PROJECT: TaskVariantRule(
        task_type=TaskType.PROJECT,
        kind=EntityKind.PROJECT_TASK,
        required_fields=("vendor_name", "vendor_contact"),
        forbidden_fields=("date", "materials", "assignees"),
        allowed_statuses=ALL_STATUSES,
        allowed_priorities=ALL_PRIORITIES,
        default_status=TaskStatus.TO_DO,
        default_priority=TaskPriority.MEDIUM,
        supports_activities=True,
    ),
}


def rule_for(kind: EntityKind) -> TaskVariantRule:
    task_type = TASK_TYPE_BY_KIND.get(EntityKind(kind))
    if task_type is None:
        raise InvalidPayload(f"{EntityKind(kind).value} is not a task kind", kind=EntityKind(kind).value)
    return VARIANT_RULES[task_type]


def supports_activities(kind: EntityKind) -> bool:
    return EntityKind(kind) in TASK_TYPE_BY_KIND and rule_for(kind).supports_activities


def supports_materials(kind: EntityKind) -> bool:
    return EntityKind(kind) in TASK_TYPE_BY_KIND and rule_for(kind).supports_materials


def apply_defaults(kind: EntityKind, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill status/priority for the variant when absent or explicitly null"""
    rule = rule_for(kind)
    document = dict(values)
    if document.get("status") is None:
        document["status"] = rule.default_status
    if document.get("priority") is None:
        document["priority"] = rule.default_priority
    return document


def check_task(kind: EntityKind, values: Mapping[str, Any], touched: Optional[Iterable[str]] = None) -> None:
    """
    Raise InvalidPayload when ``values`` (a full task document) breaks its
    variant's rules.

    ``touched`` names the fields an update writes. The assignee minimum only
    applies when assignees are among them: deleting a user may empty the list
    of a task that survives.
    """
    rule = rule_for(kind)
    label = rule.kind.value

    for name in rule.required_fields:
        if _is_blank(values.get(name)):
            raise InvalidPayload(f"{label} requires '{name}'", kind=label, field=name)

    for name in rule.forbidden_fields:
        if not _is_blank(values.get(name)):
            raise InvalidPayload(f"{label} does not accept '{name}'", kind=label, field=name)

    status = _enum_value(TaskStatus, values.get("status"), "status", label)
    if status is not None and status not in rule.allowed_statuses:
        raise InvalidPayload(f"Status '{status.value}' is not allowed for {label}", kind=label, field="status")

    priority = _enum_value(TaskPriority, values.get("priority"), "priority", label)
    if priority is not None and priority not in rule.allowed_priorities:
        raise InvalidPayload(f"Priority '{priority.value}' is not allowed for {label}", kind=label, field="priority")

    checks_assignees = touched is None or "assignees" in set(touched)
    if checks_assignees and len(values.get("assignees") or []) < rule.min_assignees:
        raise InvalidPayload(f"{label} requires at least {rule.min_assignees} assignee(s)", kind=label, field="assignees")

    start = _as_datetime(values.get("start_date"), "start_date", label)
    due = _as_datetime(values.get("due_date"), "due_date", label)
    if start is not None and due is not None and due < start:
        raise InvalidPayload("Due date must be greater than or equal to start date", kind=label, field="due_date")


def _is_blank(value: Any) -> bool:
    return value is None or value == [] or value == ""


def _enum_value(enum_class, value, name: str, label: str):
    if value is None or isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        raise InvalidPayload(f"Invalid {name} '{value}'", kind=label, field=name)


def _as_datetime(value: Any, name: str, label: str) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidPayload(f"Invalid datetime for '{name}'", kind=label, field=name)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
