"""
Typed failures raised by the task graph core.

Every failure carries a stable ``code`` so the command layer can surface it
unchanged; nothing in the core logs-and-ignores one of these.
"""

from typing import Optional


class TaskGraphError(Exception):
    code = "TASK_GRAPH_ERROR"
    status_code = 400

    def __init__(self, message: str, *, kind: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.field = field

    def to_dict(self) -> dict:
        data = {"detail": self.message, "code": self.code}
        if self.kind:
            data["kind"] = self.kind
        if self.field:
            data["field"] = self.field
        return data


class TenantIntegrityViolation(TaskGraphError):
    """A reference (or the command itself) crosses a tenant boundary"""
    code = "TENANT_INTEGRITY_ERROR"
    status_code = 403


class ParentNotFound(TaskGraphError):
    """A referenced target is missing or soft-deleted"""
    code = "PARENT_NOT_FOUND"
    status_code = 404


class EntityNotFound(TaskGraphError):
    code = "ENTITY_NOT_FOUND"
    status_code = 404


class UniquenessConflict(TaskGraphError):
    code = "UNIQUENESS_CONFLICT"
    status_code = 409


class EntityDeleted(TaskGraphError):
    """Content change attempted on a soft-deleted entity"""
    code = "ENTITY_DELETED"
    status_code = 409


class InvalidPayload(TaskGraphError):
    code = "INVALID_PAYLOAD"
    status_code = 422


class CascadeAborted(TaskGraphError):
    """The soft-delete closure could not be completed; the transaction was rolled back"""
    code = "CASCADE_ABORTED"
    status_code = 500

    def __init__(self, message: str, *, cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.cause = cause


class AccountInactive(TaskGraphError):
    """The acting user, or the organization or department it belongs to, can no longer act"""
    code = "ACCOUNT_INACTIVE"
    status_code = 401

    def __init__(self, message: str, *, code: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if code:
            self.code = code
