# taskgraph/services/commands.py
"""
Command surface of the task graph: create, update, delete.

Each command runs validate -> normalize -> persist -> cascade inside a single
store transaction, so a failure anywhere leaves the graph untouched.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Union

from sqlalchemy.orm import Session

from taskgraph.errors import AccountInactive, EntityDeleted, EntityNotFound, InvalidPayload, TenantIntegrityViolation
from taskgraph.models.kinds import EntityKind, UserRole, TASK_KINDS
from taskgraph.models.registry import collection_for, column_names
from taskgraph.services.array_normalizer import ArrayNormalizer, Patch, apply_patch
from taskgraph.services.cascade_engine import CascadeEngine, CascadeReport, PARENT_ARRAYS
from taskgraph.services.entity_store import EntityStore
from taskgraph.services.notification_guard import NotificationGuard
from taskgraph.services.task_variants import apply_defaults, check_task
from taskgraph.services.tenant_validator import TenantIntegrityValidator
from taskgraph.utils.tenant import TenantContext

logger = logging.getLogger(__name__)

PROTECTED_FIELDS = {"id", "is_deleted", "created_at", "updated_at", "task_type"}

CREATOR_FIELDS = {
    EntityKind.DEPARTMENT: "created_by_id",
    **{kind: "created_by_id" for kind in TASK_KINDS},
    EntityKind.TASK_ACTIVITY: "created_by_id",
    EntityKind.TASK_COMMENT: "created_by_id",
    EntityKind.ATTACHMENT: "uploaded_by_id",
    EntityKind.MATERIAL: "added_by_id",
    EntityKind.NOTIFICATION: "created_by_id",
}

# Fields fixed once the entity exists
IMMUTABLE_FIELDS = {
    "organization_id", "created_by_id", "uploaded_by_id", "added_by_id",
    "parent_id", "parent_kind", "task_id", "task_kind",
}
# Only these kinds may move between departments
MOVABLE_KINDS = {EntityKind.USER, EntityKind.VENDOR}

# Written by the service only: child id lists follow the children's parent links
SERVER_MANAGED_FIELDS = {
    **{kind: {"attachments", "materials"} for kind in TASK_KINDS},
    EntityKind.TASK_ACTIVITY: {"attachments", "materials"},
    EntityKind.TASK_COMMENT: {"attachments"},
    EntityKind.ORGANIZATION: {"created_by_id"},
}
# Filled in by register_organization
TENANT_BOOTSTRAP_FIELDS = {"organization_id", "department_id", "created_by_id"}

# Never returned by reads
HIDDEN_FIELDS = {EntityKind.USER: {"hashed_password"}}


class CommandService:
    def __init__(self, store: EntityStore, validator: TenantIntegrityValidator, normalizer: ArrayNormalizer,
                 cascade: CascadeEngine, guard: NotificationGuard):
        self.store = store
        self.validator = validator
        self.normalizer = normalizer
        self.cascade = cascade
        self.guard = guard

    @classmethod
    def build(cls, store: Optional[EntityStore] = None) -> "CommandService":
        """Wire the default collaborators around ``store``"""
        store = store or EntityStore()
        normalizer = ArrayNormalizer()
        guard = NotificationGuard(store, normalizer)
        return cls(store, TenantIntegrityValidator(store), normalizer, CascadeEngine(store, guard), guard)

    # Commands

    def apply_create(self, kind: Union[EntityKind, str], payload: Mapping[str, Any], tenant: TenantContext) -> int:
        kind = _kind(kind)
        values = self._prepare_create(kind, payload, tenant)
        entity_id = self.store.with_transaction(lambda tx: self._create(kind, values, tx))
        logger.info(f"Created {kind.value} {entity_id} for organization {values.get('organization_id', entity_id)}")
        return entity_id

    def apply_update(self, kind: Union[EntityKind, str], entity_id: int, patch: Union[Patch, Mapping[str, Any]],
                     tenant: TenantContext) -> Optional[CascadeReport]:
        """
        Apply a partial update. Setting ``is_deleted`` to true routes the entity
        through the delete transition (and returns its cascade report); setting
        it back to false is not supported.
        """
        kind = _kind(kind)
        patch = _as_patch(patch)
        content = Patch(dict(patch.set_values), dict(patch.add_to_set), dict(patch.push),
                        dict(patch.pull), dict(patch.merge_receipts))
        deleting = False
        if "is_deleted" in content.set_values:
            flag = content.set_values.pop("is_deleted")
            if not flag:
                raise InvalidPayload("Restoring a deleted entity is not supported", kind=kind.value, field="is_deleted")
            deleting = True
        self._check_writable(kind, content.touched_fields())

        def work(tx: Session) -> Optional[CascadeReport]:
            current = self._load(kind, entity_id, tenant, tx)
            if "department_id" in content.set_values:
                self._authorize(kind, current["organization_id"], content.set_values["department_id"], tenant)
            if not content.is_empty():
                if current["is_deleted"]:
                    raise EntityDeleted(f"{kind.value} {entity_id} is deleted", kind=kind.value)
                self._update(kind, entity_id, current, content, tx)
            if deleting:
                return self._delete(kind, entity_id, current, tx)
            return None

        report = self.store.with_transaction(work)
        logger.info(f"Updated {kind.value} {entity_id}")
        return report

    def apply_delete(self, kind: Union[EntityKind, str], entity_id: int,
                     tenant: TenantContext) -> Optional[CascadeReport]:
        """Soft-delete an entity and its closure; ``None`` when it was already deleted"""
        kind = _kind(kind)

        def work(tx: Session) -> Optional[CascadeReport]:
            current = self._load(kind, entity_id, tenant, tx)
            return self._delete(kind, entity_id, current, tx)

        return self.store.with_transaction(work)

    def get(self, kind: Union[EntityKind, str], entity_id: int, tenant: TenantContext) -> Dict[str, Any]:
        kind = _kind(kind)
        document = self._load(kind, entity_id, tenant)
        for name in HIDDEN_FIELDS.get(kind, ()):
            document.pop(name, None)
        return document

    def mark_read(self, notification_id: int, tenant: TenantContext) -> None:
        def work(tx: Session) -> None:
            self._load(EntityKind.NOTIFICATION, notification_id, tenant, tx)
            self.guard.mark_read(notification_id, tenant.user_id, tx=tx)

        self.store.with_transaction(work)
        logger.info(f"User {tenant.user_id} read notification {notification_id}")

    def register_organization(self, organization: Mapping[str, Any], department: Mapping[str, Any],
                              admin: Mapping[str, Any]) -> Dict[str, int]:
        """
        Bootstrap a tenant: the organization, its first department and a
        SuperAdmin in that department are created together or not at all.
        """
        org_values = self._check_payload(EntityKind.ORGANIZATION, organization)
        dept_values = self._check_payload(EntityKind.DEPARTMENT, department, reserved=TENANT_BOOTSTRAP_FIELDS)
        admin_values = self._check_payload(EntityKind.USER, admin, reserved=TENANT_BOOTSTRAP_FIELDS | {"role"})

        def work(tx: Session) -> Dict[str, int]:
            organization_id = self._create(EntityKind.ORGANIZATION, org_values, tx)
            department_id = self._create(EntityKind.DEPARTMENT,
                                         {**dept_values, "organization_id": organization_id}, tx)
            user_id = self._create(EntityKind.USER, {
                **admin_values,
                "organization_id": organization_id,
                "department_id": department_id,
                "role": UserRole.SUPER_ADMIN,
            }, tx)
            self.store.update_many(EntityKind.ORGANIZATION, {"id": organization_id},
                                   Patch.assign(created_by_id=user_id), tx=tx)
            self.store.update_many(EntityKind.DEPARTMENT, {"id": department_id},
                                   Patch.assign(created_by_id=user_id), tx=tx)
            return {"organization_id": organization_id, "department_id": department_id, "user_id": user_id}

        ids = self.store.with_transaction(work)
        logger.info(f"Registered organization {ids['organization_id']} with super admin {ids['user_id']}")
        return ids

    def resolve_tenant(self, user_id: int) -> TenantContext:
        """
        Tenant context of an authenticated user, read from the stored rows.

        Raises ``AccountInactive`` when the user is missing or deleted, when its
        organization or department is deleted, or when the department belongs to
        another organization.
        """
        def work(tx: Session) -> TenantContext:
            user = self.store.find_by_id(EntityKind.USER, user_id,
                                         projection=["id", "organization_id", "department_id", "role", "is_deleted"],
                                         tx=tx)
            if user is None:
                raise AccountInactive("User not found", code="USER_NOT_FOUND_ERROR", kind=EntityKind.USER.value)

            organization = self.store.find_by_id(EntityKind.ORGANIZATION, user["organization_id"],
                                                 projection=["id", "is_deleted"], tx=tx)
            department = self.store.find_by_id(EntityKind.DEPARTMENT, user["department_id"],
                                               projection=["id", "organization_id", "is_deleted"], tx=tx)
            if organization is None or department is None or department["organization_id"] != organization["id"]:
                raise AccountInactive("Department organization mismatch", code="TENANT_INTEGRITY_ERROR",
                                      kind=EntityKind.USER.value)
            if user["is_deleted"]:
                raise AccountInactive("User is deleted", code="USER_DELETED_ERROR", kind=EntityKind.USER.value)
            if organization["is_deleted"]:
                raise AccountInactive("Organization is deleted", code="ORGANIZATION_DELETED_ERROR",
                                      kind=EntityKind.ORGANIZATION.value)
            if department["is_deleted"]:
                raise AccountInactive("Department is deleted", code="DEPARTMENT_DELETED_ERROR",
                                      kind=EntityKind.DEPARTMENT.value)

            return TenantContext(
                organization_id=user["organization_id"],
                department_id=user["department_id"],
                user_id=user["id"],
                role=UserRole(user["role"]),
            )

        return self.store.with_transaction(work)

    # Steps

    @staticmethod
    def _check_payload(kind: EntityKind, payload: Mapping[str, Any], reserved: set = frozenset()) -> Dict[str, Any]:
        values = dict(payload)
        protected = (PROTECTED_FIELDS | SERVER_MANAGED_FIELDS.get(kind, set()) | reserved) & set(values)
        if protected:
            raise InvalidPayload(f"Protected field(s) {sorted(protected)} cannot be written",
                                 kind=kind.value, field=sorted(protected)[0])
        unknown = set(values) - column_names(kind)
        if unknown:
            raise InvalidPayload(f"Unknown field(s) {sorted(unknown)} on {kind.value}",
                                 kind=kind.value, field=sorted(unknown)[0])
        return values

    def _prepare_create(self, kind: EntityKind, payload: Mapping[str, Any], tenant: TenantContext) -> Dict[str, Any]:
        values = self._check_payload(kind, payload)

        if kind is not EntityKind.ORGANIZATION:
            values.setdefault("organization_id", tenant.organization_id)
            if "department_id" in column_names(kind) and kind is not EntityKind.VENDOR:
                values.setdefault("department_id", tenant.department_id)
            creator = CREATOR_FIELDS.get(kind)
            if creator and tenant.user_id is not None:
                values.setdefault(creator, tenant.user_id)
            self._authorize(kind, values.get("organization_id"), values.get("department_id"), tenant)
        return values

    def _create(self, kind: EntityKind, values: Dict[str, Any], tx: Session) -> int:
        document = self.normalizer.normalize_document(kind, values)
        if kind in TASK_KINDS:
            document = apply_defaults(kind, document)
            check_task(kind, document)
        if kind is EntityKind.NOTIFICATION:
            self.guard.check(document)

        self.validator.validate(kind, document, tx=tx)
        entity_id = self.store.insert(kind, document, tx=tx)

        # Children are listed in their parent's denormalized array
        if kind in PARENT_ARRAYS:
            array = PARENT_ARRAYS[kind]
            self.store.update_many(EntityKind(document["parent_kind"]), {"id": document["parent_id"]},
                                   Patch(add_to_set={array: [entity_id]}), tx=tx)
        return entity_id

    def _update(self, kind: EntityKind, entity_id: int, current: Mapping[str, Any], content: Patch,
                tx: Session) -> None:
        normalized = self.normalizer.normalize_patch(kind, content)
        touched = normalized.touched_fields()
        candidate = dict(current)
        candidate.update(apply_patch(current, normalized))
        if kind in TASK_KINDS:
            check_task(kind, candidate, touched)
        if kind is EntityKind.NOTIFICATION:
            self.guard.check(candidate)

        if candidate.get("department_id") != current.get("department_id"):
            self.validator.check_referrers(kind, entity_id, tx=tx)
        self.validator.validate(kind, candidate, touched, tx=tx, entity_id=entity_id)
        self.store.update_many(kind, {"id": entity_id, "is_deleted": False}, normalized, tx=tx)

    def _delete(self, kind: EntityKind, entity_id: int, current: Mapping[str, Any],
                tx: Session) -> Optional[CascadeReport]:
        if current["is_deleted"]:
            logger.info(f"{kind.value} {entity_id} already deleted; nothing to cascade")
            return None
        flipped = self.store.update_many(kind, {"id": entity_id, "is_deleted": False},
                                         Patch.assign(is_deleted=True), tx=tx)
        if not flipped:
            return None
        logger.info(f"Deleted {kind.value} {entity_id}")
        return self.cascade.run(kind, entity_id, tx)

    # Guards

    def _load(self, kind: EntityKind, entity_id: int, tenant: TenantContext,
              tx: Optional[Session] = None) -> Dict[str, Any]:
        document = self.store.find_by_id(kind, entity_id, tx=tx)
        if document is None:
            raise EntityNotFound(f"{kind.value} {entity_id} not found", kind=kind.value)
        collection = collection_for(kind)
        department = document.get(collection.dept_field) if collection.dept_field else None
        self._authorize(kind, document[collection.org_field], department, tenant)
        return document

    @staticmethod
    def _authorize(kind: EntityKind, organization_id: Any, department_id: Any, tenant: TenantContext) -> None:
        if organization_id != tenant.organization_id:
            raise TenantIntegrityViolation(f"{kind.value} belongs to another organization", kind=kind.value)
        if department_id is not None and not tenant.can_cross_departments and department_id != tenant.department_id:
            raise TenantIntegrityViolation(f"{kind.value} belongs to another department", kind=kind.value)

    @staticmethod
    def _check_writable(kind: EntityKind, touched: set) -> None:
        unknown = touched - column_names(kind)
        if unknown:
            raise InvalidPayload(f"Unknown field(s) {sorted(unknown)} on {kind.value}",
                                 kind=kind.value, field=sorted(unknown)[0])
        fixed = touched & (PROTECTED_FIELDS | IMMUTABLE_FIELDS | SERVER_MANAGED_FIELDS.get(kind, set()))
        if "department_id" in touched and kind not in MOVABLE_KINDS:
            fixed.add("department_id")
        if fixed:
            raise InvalidPayload(f"Field(s) {sorted(fixed)} cannot be changed", kind=kind.value, field=sorted(fixed)[0])


def _kind(kind: Union[EntityKind, str]) -> EntityKind:
    try:
        return EntityKind(kind)
    except ValueError:
        raise InvalidPayload(f"Unknown entity kind '{kind}'")


def _as_patch(patch: Union[Patch, Mapping[str, Any]]) -> Patch:
    if isinstance(patch, Patch):
        return patch
    return Patch(
        set_values=dict(patch.get("set") or {}),
        add_to_set=dict(patch.get("add_to_set") or {}),
        push=dict(patch.get("push") or {}),
        pull=dict(patch.get("pull") or {}),
    )


@lru_cache(maxsize=1)
def get_command_service() -> CommandService:
    """FastAPI dependency: the process-wide command service on the configured database"""
    return CommandService.build()
