# taskgraph/services/cascade_engine.py
"""
Soft-delete cascade.

Deleting an entity flips ``is_deleted`` on everything that semantically belongs
to it, transitively, inside the caller's transaction. The closure is computed
breadth-first from a static dependency table: for each kind, which collections
point at it and through which field. Every level is collected from rows that
are still active, flipped in one batch, and then the newly deleted ids are
pruned from the denormalized arrays that hold them.

The engine never walks upwards: deleting a child only removes it from its
parent's arrays.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from sqlalchemy.orm import Session

from taskgraph.errors import CascadeAborted
from taskgraph.models.kinds import EntityKind, TASK_KINDS
from taskgraph.models.registry import collection_for
from taskgraph.services.array_normalizer import Patch
from taskgraph.services.entity_store import AnyOf, ArrayContains, EntityStore
from taskgraph.services.notification_guard import NotificationGuard
from taskgraph.services.task_variants import supports_activities, supports_materials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependency:
    """Rows of ``targets`` whose ``field`` points at the deleted entity"""
    targets: Tuple[EntityKind, ...]
    field: str
    # Polymorphic links also match the kind tag stored in this column
    kind_field: Optional[str] = None
    # ``field`` is a JSON array of ids rather than a scalar reference
    array: bool = False


@dataclass(frozen=True)
class ArrayHolder:
    """A denormalized array that must not keep ids of deleted ``kind`` rows"""
    kinds: Tuple[EntityKind, ...]
    field: str


TENANT_SCOPED = (
    EntityKind.USER, *TASK_KINDS, EntityKind.TASK_ACTIVITY, EntityKind.TASK_COMMENT,
    EntityKind.ATTACHMENT, EntityKind.MATERIAL, EntityKind.NOTIFICATION, EntityKind.VENDOR,
)


def _task_dependencies(kind: EntityKind) -> List[Dependency]:
    dependencies = [
        Dependency((EntityKind.TASK_COMMENT,), "parent_id", kind_field="parent_kind"),
        Dependency((EntityKind.ATTACHMENT,), "parent_id", kind_field="parent_kind"),
    ]
    if supports_activities(kind):
        dependencies.append(Dependency((EntityKind.TASK_ACTIVITY,), "task_id", kind_field="task_kind"))
    if supports_materials(kind):
        dependencies.append(Dependency((EntityKind.MATERIAL,), "parent_id", kind_field="parent_kind"))
    return dependencies


DEPENDENCIES: Dict[EntityKind, List[Dependency]] = {
    EntityKind.ORGANIZATION: [
        Dependency((EntityKind.DEPARTMENT,), "organization_id"),
        Dependency(TENANT_SCOPED, "organization_id"),
    ],
    EntityKind.DEPARTMENT: [
        Dependency(TENANT_SCOPED, "department_id"),
    ],
    EntityKind.USER: [
        Dependency(TASK_KINDS + (EntityKind.TASK_ACTIVITY, EntityKind.TASK_COMMENT), "created_by_id"),
        Dependency((EntityKind.ATTACHMENT,), "uploaded_by_id"),
        Dependency((EntityKind.NOTIFICATION,), "created_by_id"),
        Dependency((EntityKind.NOTIFICATION,), "recipients", array=True),
    ],
    **{kind: _task_dependencies(kind) for kind in TASK_KINDS},
    EntityKind.TASK_ACTIVITY: [
        Dependency((EntityKind.TASK_COMMENT,), "parent_id", kind_field="parent_kind"),
        Dependency((EntityKind.ATTACHMENT,), "parent_id", kind_field="parent_kind"),
        Dependency((EntityKind.MATERIAL,), "parent_id", kind_field="parent_kind"),
    ],
    EntityKind.TASK_COMMENT: [
        Dependency((EntityKind.ATTACHMENT,), "parent_id", kind_field="parent_kind"),
    ],
    EntityKind.ATTACHMENT: [],
    EntityKind.MATERIAL: [],
    EntityKind.NOTIFICATION: [],
    EntityKind.VENDOR: [],
}

# Arrays a deleted user id is pruned from
USER_ARRAYS = [
    ArrayHolder(TASK_KINDS, "assignees"),
    ArrayHolder(TASK_KINDS, "watchers"),
    ArrayHolder((EntityKind.TASK_COMMENT,), "mentions"),
    ArrayHolder((EntityKind.NOTIFICATION,), "recipients"),
]

# Children listed in their parent's array, keyed by child kind
PARENT_ARRAYS = {
    EntityKind.ATTACHMENT: "attachments",
    EntityKind.MATERIAL: "materials",
}


@dataclass
class CascadeReport:
    root_kind: EntityKind
    root_id: int
    deleted: Dict[EntityKind, List[int]] = field(default_factory=lambda: defaultdict(list))
    pruned: int = 0
    cleared: int = 0

    def record(self, kind: EntityKind, ids: Iterable[int]) -> None:
        self.deleted[kind].extend(ids)

    @property
    def total(self) -> int:
        return sum(len(ids) for ids in self.deleted.values())

    def to_dict(self) -> dict:
        return {
            "root": {"kind": self.root_kind.value, "id": self.root_id},
            "deleted": {kind.value: sorted(ids) for kind, ids in self.deleted.items() if ids},
            "pruned": self.pruned,
            "cleared": self.cleared,
        }


class CascadeEngine:
    def __init__(self, store: EntityStore, guard: NotificationGuard,
                 dependencies: Optional[Dict[EntityKind, List[Dependency]]] = None):
        self.store = store
        self.guard = guard
        self.dependencies = dependencies if dependencies is not None else DEPENDENCIES

    def run(self, kind: EntityKind, entity_id: int, tx: Session) -> CascadeReport:
        """
        Propagate the deletion of ``kind``/``entity_id`` (already flagged by the
        caller) through everything that depends on it.

        Must run on the caller's transaction; any failure surfaces as
        ``CascadeAborted`` and leaves the rollback to the transaction owner.
        """
        kind = EntityKind(kind)
        report = CascadeReport(kind, entity_id)
        logger.info(f"Cascading soft delete from {kind.value} {entity_id}")

        try:
            root = self.store.find_by_id(kind, entity_id, projection=self._projection(kind), tx=tx)
            if root is None:
                return report

            visited: Set[Tuple[EntityKind, int]] = {(kind, entity_id)}
            frontier: Dict[EntityKind, Dict[int, Dict[str, Any]]] = {kind: {entity_id: root}}
            while frontier:
                next_frontier: Dict[EntityKind, Dict[int, Dict[str, Any]]] = defaultdict(dict)
                for parent_kind, rows in frontier.items():
                    self._expand(parent_kind, rows, visited, next_frontier, report, tx)
                    invalidated = self.guard.invalidate_targets(parent_kind, list(rows), tx=tx)
                    invalidated = [i for i in invalidated if (EntityKind.NOTIFICATION, i) not in visited]
                    visited.update((EntityKind.NOTIFICATION, i) for i in invalidated)
                    report.record(EntityKind.NOTIFICATION, invalidated)
                    self._prune(parent_kind, rows, visited, report, tx)
                frontier = next_frontier
        except CascadeAborted:
            raise
        except Exception as exc:
            logger.error(f"Cascade from {kind.value} {entity_id} aborted: {exc}")
            raise CascadeAborted(f"Cascade from {kind.value} {entity_id} failed: {exc}",
                                 cause=exc, kind=kind.value) from exc

        logger.info(f"Cascade from {kind.value} {entity_id} finished: {report.total} dependent(s) deleted, "
                    f"{report.pruned} array holder(s) pruned")
        return report

    def _expand(self, parent_kind: EntityKind, rows: Mapping[int, Mapping[str, Any]],
                visited: Set[Tuple[EntityKind, int]], next_frontier, report: CascadeReport, tx: Session) -> None:
        """Collect, flip and enqueue the still-active dependents of ``rows``"""
        ids = list(rows)
        org_field = collection_for(parent_kind).org_field
        orgs = {row[org_field] for row in rows.values()}

        for dependency in self.dependencies.get(parent_kind, []):
            for target in dependency.targets:
                if dependency.kind_field:
                    filter = {dependency.field: AnyOf(ids), dependency.kind_field: parent_kind}
                elif dependency.array:
                    filter = {dependency.field: ArrayContains(*ids), "organization_id": AnyOf(orgs)}
                else:
                    filter = {dependency.field: AnyOf(ids)}
                filter["is_deleted"] = False

                children = self.store.find_many(target, filter, projection=self._projection(target), tx=tx)
                children = [child for child in children if (target, child["id"]) not in visited]
                if not children:
                    continue

                child_ids = [child["id"] for child in children]
                self.store.update_many(target, {"id": AnyOf(child_ids), "is_deleted": False},
                                       Patch.assign(is_deleted=True), tx=tx)
                logger.debug(f"Soft-deleted {len(child_ids)} {target.value} via {dependency.field}")
                report.record(target, child_ids)
                for child in children:
                    visited.add((target, child["id"]))
                    next_frontier[target][child["id"]] = child

    def _prune(self, kind: EntityKind, rows: Mapping[int, Mapping[str, Any]],
               visited: Set[Tuple[EntityKind, int]], report: CascadeReport, tx: Session) -> None:
        """Remove the ids of freshly deleted ``rows`` from the arrays still holding them"""
        ids = list(rows)

        if kind in PARENT_ARRAYS:
            array = PARENT_ARRAYS[kind]
            by_parent: Dict[Tuple[EntityKind, int], List[int]] = defaultdict(list)
            for row in rows.values():
                if row.get("parent_id") is not None and row.get("parent_kind") is not None:
                    by_parent[(EntityKind(row["parent_kind"]), row["parent_id"])].append(row["id"])
            for (parent_kind, parent_id), child_ids in by_parent.items():
                report.pruned += self._pull(parent_kind, {"id": parent_id, array: ArrayContains(*child_ids)},
                                            array, child_ids, visited, tx)

        if kind is EntityKind.USER:
            orgs = AnyOf({row["organization_id"] for row in rows.values()})
            for holder in USER_ARRAYS:
                for holder_kind in holder.kinds:
                    filter = {holder.field: ArrayContains(*ids), "organization_id": orgs}
                    report.pruned += self._pull(holder_kind, filter, holder.field, ids, visited, tx)

        if kind is EntityKind.VENDOR:
            report.cleared += self.store.update_many(
                EntityKind.PROJECT_TASK, {"vendor_id": AnyOf(ids), "is_deleted": False},
                Patch.assign(vendor_id=None), tx=tx)

    def _pull(self, holder_kind: EntityKind, filter: Dict[str, Any], field: str, ids: List[int],
              visited: Set[Tuple[EntityKind, int]], tx: Session) -> int:
        # Holders deleted by an earlier, unrelated write stay untouched
        holders = self.store.find_many(holder_kind, filter, projection=["id", "is_deleted"], tx=tx)
        keep = [h["id"] for h in holders if not h["is_deleted"] or (holder_kind, h["id"]) in visited]
        if not keep:
            return 0
        return self.store.update_many(holder_kind, {"id": AnyOf(keep)}, Patch(pull={field: ids}), tx=tx)

    @staticmethod
    def _projection(kind: EntityKind) -> List[str]:
        collection = collection_for(kind)
        projection = ["id", collection.org_field]
        if kind in PARENT_ARRAYS:
            projection += ["parent_id", "parent_kind"]
        return list(dict.fromkeys(projection))
