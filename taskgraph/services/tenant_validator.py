# taskgraph/services/tenant_validator.py
"""
Tenant integrity checks run before any write is applied.

Each entity kind declares its reference fields and how the referenced row's
tenant keys must line up with its own: organization only, or organization and
department. A reference to a row that does not exist (or is soft-deleted) is a
``ParentNotFound``; a key mismatch is a ``TenantIntegrityViolation``. The
second layer is the tenant-scoped uniqueness rules.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from taskgraph.errors import InvalidPayload, ParentNotFound, TenantIntegrityViolation, UniquenessConflict
from taskgraph.models.kinds import EntityKind, TASK_KINDS
from taskgraph.models.registry import collection_for
from taskgraph.models.user import ADMIN_ROLES
from taskgraph.services.entity_store import AnyOf, ArrayContains, EntityStore, Not

logger = logging.getLogger(__name__)

TENANT_KEYS = ("organization_id", "department_id")


class Match(enum.Enum):
    ORG = "organization"
    ORG_AND_DEPT = "organization and department"


@dataclass(frozen=True)
class ReferenceRule:
    field: str
    match: Match
    target: Optional[EntityKind] = None
    # Polymorphic references name the column holding the tag and the tags allowed in it
    kind_field: Optional[str] = None
    allowed: Tuple[EntityKind, ...] = ()
    many: bool = False
    required: bool = True

    @property
    def fields(self) -> set:
        return {self.field, self.kind_field} - {None}


@dataclass(frozen=True)
class UniquenessRule:
    fields: Tuple[str, ...]
    description: str
    # Only rows (and candidates) whose field value is in the given set take part
    only_when: Optional[Tuple[str, Tuple[Any, ...]]] = None


ORGANIZATION_REF = ReferenceRule("organization_id", Match.ORG, target=EntityKind.ORGANIZATION)
DEPARTMENT_REF = ReferenceRule("department_id", Match.ORG, target=EntityKind.DEPARTMENT)


def _creator(field: str) -> ReferenceRule:
    return ReferenceRule(field, Match.ORG_AND_DEPT, target=EntityKind.USER)


def _parent(field: str, kind_field: str, allowed: Iterable[EntityKind]) -> ReferenceRule:
    return ReferenceRule(field, Match.ORG_AND_DEPT, kind_field=kind_field, allowed=tuple(allowed))


_TASK_RULES = [
    ORGANIZATION_REF,
    DEPARTMENT_REF,
    _creator("created_by_id"),
    ReferenceRule("assignees", Match.ORG_AND_DEPT, target=EntityKind.USER, many=True, required=False),
    ReferenceRule("watchers", Match.ORG, target=EntityKind.USER, many=True, required=False),
    ReferenceRule("vendor_id", Match.ORG, target=EntityKind.VENDOR, required=False),
]

NOTIFICATION_TARGETS = TASK_KINDS + (
    EntityKind.TASK_ACTIVITY, EntityKind.TASK_COMMENT, EntityKind.ATTACHMENT, EntityKind.MATERIAL,
)

REFERENCE_RULES: Dict[EntityKind, List[ReferenceRule]] = {
    EntityKind.ORGANIZATION: [],
    EntityKind.DEPARTMENT: [
        ORGANIZATION_REF,
        ReferenceRule("created_by_id", Match.ORG, target=EntityKind.USER, required=False),
    ],
    EntityKind.USER: [ORGANIZATION_REF, DEPARTMENT_REF],
    EntityKind.VENDOR: [ORGANIZATION_REF, ReferenceRule("department_id", Match.ORG, target=EntityKind.DEPARTMENT, required=False)],
    **{kind: list(_TASK_RULES) for kind in TASK_KINDS},
    EntityKind.TASK_ACTIVITY: [
        ORGANIZATION_REF,
        DEPARTMENT_REF,
        _parent("task_id", "task_kind", (EntityKind.ASSIGNED_TASK, EntityKind.PROJECT_TASK)),
        _creator("created_by_id"),
    ],
    EntityKind.TASK_COMMENT: [
        ORGANIZATION_REF,
        DEPARTMENT_REF,
        _parent("parent_id", "parent_kind", TASK_KINDS + (EntityKind.TASK_ACTIVITY,)),
        _creator("created_by_id"),
        ReferenceRule("mentions", Match.ORG, target=EntityKind.USER, many=True, required=False),
    ],
    EntityKind.ATTACHMENT: [
        ORGANIZATION_REF,
        DEPARTMENT_REF,
        _parent("parent_id", "parent_kind", TASK_KINDS + (EntityKind.TASK_ACTIVITY, EntityKind.TASK_COMMENT)),
        _creator("uploaded_by_id"),
    ],
    EntityKind.MATERIAL: [
        ORGANIZATION_REF,
        DEPARTMENT_REF,
        _parent("parent_id", "parent_kind", (EntityKind.ROUTINE_TASK, EntityKind.TASK_ACTIVITY)),
        _creator("added_by_id"),
    ],
    EntityKind.NOTIFICATION: [
        ORGANIZATION_REF,
        DEPARTMENT_REF,
        _creator("created_by_id"),
        ReferenceRule("recipients", Match.ORG_AND_DEPT, target=EntityKind.USER, many=True),
        ReferenceRule("entity_id", Match.ORG_AND_DEPT, kind_field="entity_kind",
                      allowed=NOTIFICATION_TARGETS, required=False),
    ],
}

UNIQUENESS_RULES: Dict[EntityKind, List[UniquenessRule]] = {
    EntityKind.ORGANIZATION: [
        UniquenessRule(("name",), "Organization name already exists"),
        UniquenessRule(("email",), "Organization email already exists"),
        UniquenessRule(("phone",), "Organization phone already exists"),
    ],
    EntityKind.DEPARTMENT: [
        UniquenessRule(("organization_id", "name"), "Department name already exists in this organization"),
    ],
    EntityKind.USER: [
        UniquenessRule(("organization_id", "email"), "Email already registered in this organization"),
        UniquenessRule(("department_id",), "Department already has an admin-level user",
                       only_when=("role", ADMIN_ROLES)),
    ],
    EntityKind.VENDOR: [
        UniquenessRule(("organization_id", "name"), "Vendor name already exists in this organization"),
    ],
}


class TenantIntegrityValidator:
    """Checks references and tenant-scoped uniqueness for one candidate document"""

    def __init__(self, store: EntityStore,
                 reference_rules: Optional[Dict[EntityKind, List[ReferenceRule]]] = None,
                 uniqueness_rules: Optional[Dict[EntityKind, List[UniquenessRule]]] = None):
        self.store = store
        self.reference_rules = reference_rules if reference_rules is not None else REFERENCE_RULES
        self.uniqueness_rules = uniqueness_rules if uniqueness_rules is not None else UNIQUENESS_RULES

    def validate(self, kind: EntityKind, values: Mapping[str, Any], touched: Optional[Iterable[str]] = None,
                 tx: Optional[Session] = None, entity_id: Optional[int] = None) -> None:
        """
        Validate the candidate document ``values`` of an entity of ``kind``.

        ``touched`` limits the reference checks to fields created or modified by
        the write; ``None`` means every field (a create). Changing a tenant key
        re-validates every reference. ``entity_id`` excludes the entity itself
        from uniqueness counts.
        """
        kind = EntityKind(kind)
        touched = None if touched is None else set(touched)
        everything = touched is None or bool(touched & set(TENANT_KEYS))

        for rule in self.reference_rules.get(kind, []):
            if everything or rule.fields & touched:
                self.check_reference(kind, values, rule, tx=tx)

        self.check_uniqueness(kind, values, touched=None if everything else touched, tx=tx, entity_id=entity_id)

    def check_reference(self, kind: EntityKind, values: Mapping[str, Any], rule: ReferenceRule,
                        tx: Optional[Session] = None) -> None:
        raw = values.get(rule.field)
        ids = list(raw or []) if rule.many else ([] if raw is None else [raw])
        if not ids:
            if rule.kind_field and values.get(rule.kind_field) is not None:
                raise InvalidPayload(f"'{rule.kind_field}' is set but '{rule.field}' is missing",
                                     kind=kind.value, field=rule.field)
            if rule.required:
                raise InvalidPayload(f"{kind.value} requires '{rule.field}'", kind=kind.value, field=rule.field)
            return

        target = rule.target or self._polymorphic_target(kind, values, rule)
        collection = collection_for(target)
        projection = ["id", collection.org_field] + ([collection.dept_field] if collection.dept_field else [])
        projection = list(dict.fromkeys(projection))

        rows = self.store.find_many(target, {"id": AnyOf(ids), "is_deleted": False}, projection=projection, tx=tx)
        found = {row["id"]: row for row in rows}
        for ref_id in ids:
            if ref_id not in found:
                raise ParentNotFound(f"{target.value} {ref_id} referenced by {kind.value}.{rule.field} not found",
                                     kind=kind.value, field=rule.field)

        for ref_id in ids:
            row = found[ref_id]
            if row[collection.org_field] != values.get("organization_id"):
                raise TenantIntegrityViolation(
                    f"{target.value} {ref_id} in {kind.value}.{rule.field} belongs to another organization",
                    kind=kind.value, field=rule.field)
            if rule.match is Match.ORG_AND_DEPT:
                ref_dept = row[collection.dept_field] if collection.dept_field else None
                if ref_dept != values.get("department_id"):
                    raise TenantIntegrityViolation(
                        f"{target.value} {ref_id} in {kind.value}.{rule.field} belongs to another department",
                        kind=kind.value, field=rule.field)

    def check_referrers(self, kind: EntityKind, entity_id: int, tx: Optional[Session] = None) -> None:
        """
        Refuse to move ``kind``/``entity_id`` to another department while live
        rows reference it through an organization-and-department rule.
        """
        kind = EntityKind(kind)
        for holder_kind, rules in self.reference_rules.items():
            for rule in rules:
                if rule.target is not kind or rule.match is not Match.ORG_AND_DEPT:
                    continue
                condition = ArrayContains(entity_id) if rule.many else entity_id
                if self.store.count(holder_kind, {rule.field: condition, "is_deleted": False}, tx=tx):
                    raise TenantIntegrityViolation(
                        f"{kind.value} {entity_id} is still referenced by {holder_kind.value}.{rule.field} "
                        f"in its department", kind=kind.value, field="department_id")

    def check_uniqueness(self, kind: EntityKind, values: Mapping[str, Any], touched: Optional[set] = None,
                         tx: Optional[Session] = None, entity_id: Optional[int] = None) -> None:
        for rule in self.uniqueness_rules.get(EntityKind(kind), []):
            involved = set(rule.fields)
            if rule.only_when:
                involved.add(rule.only_when[0])
            if touched is not None and not involved & touched:
                continue

            filter: Dict[str, Any] = {name: values.get(name) for name in rule.fields}
            if rule.only_when:
                name, allowed = rule.only_when
                if values.get(name) not in allowed:
                    continue
                filter[name] = AnyOf(allowed)
            filter["is_deleted"] = False
            if entity_id is not None:
                filter["id"] = Not(entity_id)

            if self.store.count(kind, filter, tx=tx) > 0:
                raise UniquenessConflict(rule.description, kind=EntityKind(kind).value, field=rule.fields[-1])

    @staticmethod
    def _polymorphic_target(kind: EntityKind, values: Mapping[str, Any], rule: ReferenceRule) -> EntityKind:
        tag = values.get(rule.kind_field)
        if tag is None:
            raise InvalidPayload(f"{kind.value} requires '{rule.kind_field}'", kind=kind.value, field=rule.kind_field)
        try:
            target = EntityKind(tag)
        except ValueError:
            raise InvalidPayload(f"Unknown kind '{tag}' in {kind.value}.{rule.kind_field}",
                                 kind=kind.value, field=rule.kind_field)
        if target not in rule.allowed:
            raise InvalidPayload(f"{kind.value}.{rule.kind_field} cannot be '{target.value}'",
                                 kind=kind.value, field=rule.kind_field)
        return target
