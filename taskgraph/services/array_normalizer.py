# taskgraph/services/array_normalizer.py
"""
Canonical form for multi-valued reference fields.

Full-document writes (create) and partial writes (patches applied by the
entity store) go through the same element functions here, so a list written
either way ends up in the same shape:

* identity arrays are sets kept in first-seen order
* an append is always add-if-absent
* read receipts collapse by user, keeping the most recent ``read_at``
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from taskgraph.errors import InvalidPayload
from taskgraph.models.kinds import EntityKind, TASK_KINDS


class ElementType(enum.Enum):
    ID = "id"
    STRING = "string"
    RECEIPT = "receipt"


_TASK_ARRAYS = {
    "assignees": ElementType.ID,
    "watchers": ElementType.ID,
    "attachments": ElementType.ID,
    "materials": ElementType.ID,
    "tags": ElementType.STRING,
}

ARRAY_FIELDS: Dict[EntityKind, Dict[str, ElementType]] = {
    EntityKind.USER: {"skills": ElementType.STRING},
    **{kind: dict(_TASK_ARRAYS) for kind in TASK_KINDS},
    EntityKind.TASK_ACTIVITY: {"attachments": ElementType.ID, "materials": ElementType.ID},
    EntityKind.TASK_COMMENT: {"mentions": ElementType.ID, "attachments": ElementType.ID},
    EntityKind.NOTIFICATION: {"recipients": ElementType.ID, "read_by": ElementType.RECEIPT},
}


@dataclass
class Patch:
    """A partial update. ``push`` is only meaningful before normalization."""
    set_values: Dict[str, Any] = field(default_factory=dict)
    add_to_set: Dict[str, List[Any]] = field(default_factory=dict)
    push: Dict[str, List[Any]] = field(default_factory=dict)
    pull: Dict[str, List[Any]] = field(default_factory=dict)
    merge_receipts: Dict[str, List[Any]] = field(default_factory=dict)

    @classmethod
    def assign(cls, **values) -> "Patch":
        return cls(set_values=values)

    def touched_fields(self) -> set:
        touched = set()
        for part in (self.set_values, self.add_to_set, self.push, self.pull, self.merge_receipts):
            touched.update(part.keys())
        return touched

    def is_empty(self) -> bool:
        return not self.touched_fields()


# Element functions shared by both write paths

def identity(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("user"))
    return str(value)


def dedupe(values: Iterable[Any]) -> List[Any]:
    """Unique values in first-seen order"""
    seen = set()
    result = []
    for value in values:
        key = identity(value)
        if key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def union(existing: Iterable[Any], additions: Iterable[Any]) -> List[Any]:
    """Set-union that never reorders what is already there"""
    return dedupe(list(existing or []) + list(additions or []))


def without(existing: Iterable[Any], removals: Iterable[Any]) -> List[Any]:
    drop = {identity(value) for value in removals}
    return [value for value in (existing or []) if identity(value) not in drop]


def _receipt_time(value: Any) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise InvalidPayload(f"Invalid read_at timestamp: {value!r}", field="read_by")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def collapse_receipts(receipts: Iterable[Mapping]) -> List[dict]:
    """One receipt per user, most recent read_at, first-seen user order"""
    latest: Dict[str, dict] = {}
    for receipt in receipts:
        key = identity(receipt)
        moment = _receipt_time(receipt.get("read_at"))
        current = latest.get(key)
        if current is None or _receipt_time(current["read_at"]) < moment:
            latest[key] = {"user": receipt["user"], "read_at": moment.isoformat()}
    return list(latest.values())


def apply_patch(current: Mapping[str, Any], patch: Patch) -> Dict[str, Any]:
    """New values for every field the patch touches, given the stored values"""
    changes: Dict[str, Any] = dict(patch.set_values)

    def base(name):
        if name in changes:
            return changes[name] or []
        return current.get(name) or []

    for name, items in patch.add_to_set.items():
        changes[name] = union(base(name), items)
    for name, items in patch.push.items():
        changes[name] = list(base(name)) + list(items)
    for name, items in patch.pull.items():
        changes[name] = without(base(name), items)
    for name, items in patch.merge_receipts.items():
        changes[name] = collapse_receipts(list(base(name)) + list(items))
    return changes


class ArrayNormalizer:
    """Canonicalizes array fields of documents and patches per entity kind"""

    def __init__(self, array_fields: Optional[Dict[EntityKind, Dict[str, ElementType]]] = None):
        self.array_fields = array_fields if array_fields is not None else ARRAY_FIELDS

    def fields_for(self, kind: EntityKind) -> Dict[str, ElementType]:
        return self.array_fields.get(EntityKind(kind), {})

    def normalize_document(self, kind: EntityKind, values: Mapping[str, Any]) -> Dict[str, Any]:
        document = dict(values)
        for name, element_type in self.fields_for(kind).items():
            if name not in document:
                continue
            document[name] = self._canonical(name, element_type, self._as_list(name, document[name]))
        return document

    def normalize_patch(self, kind: EntityKind, patch: Patch) -> Patch:
        fields = self.fields_for(kind)
        normalized = Patch()

        for name, value in patch.set_values.items():
            if name in fields:
                normalized.set_values[name] = self._canonical(name, fields[name], self._as_list(name, value))
            else:
                normalized.set_values[name] = value

        # push and add_to_set both end up as add-if-absent
        for source in (patch.add_to_set, patch.push):
            for name, value in source.items():
                element_type = self._array_field(fields, name)
                items = self._canonical(name, element_type, self._as_list(name, value))
                if element_type is ElementType.RECEIPT:
                    merged = normalized.merge_receipts.get(name, []) + items
                    normalized.merge_receipts[name] = collapse_receipts(merged)
                else:
                    normalized.add_to_set[name] = union(normalized.add_to_set.get(name, []), items)

        for name, items in patch.merge_receipts.items():
            self._array_field(fields, name)
            merged = normalized.merge_receipts.get(name, []) + self._canonical(name, ElementType.RECEIPT, self._as_list(name, items))
            normalized.merge_receipts[name] = collapse_receipts(merged)

        for name, value in patch.pull.items():
            element_type = self._array_field(fields, name)
            if element_type is ElementType.RECEIPT:
                raise InvalidPayload(f"Receipts in '{name}' cannot be pulled", kind=EntityKind(kind).value, field=name)
            normalized.pull[name] = self._canonical(name, element_type, self._as_list(name, value))

        return normalized

    def _array_field(self, fields, name) -> ElementType:
        if name not in fields:
            raise InvalidPayload(f"'{name}' is not an array field", field=name)
        return fields[name]

    @staticmethod
    def _as_list(name: str, value: Any) -> list:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, (set, frozenset)):
            raise InvalidPayload(f"'{name}' must be an ordered list", field=name)
        return [value]

    @staticmethod
    def _canonical(name: str, element_type: ElementType, items: list) -> list:
        if element_type is ElementType.ID:
            return dedupe(_coerce_id(name, item) for item in items)
        if element_type is ElementType.RECEIPT:
            return collapse_receipts(_coerce_receipt(name, item) for item in items)
        return dedupe(str(item) for item in items)


def _coerce_id(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidPayload(f"Invalid id in '{name}': {value!r}", field=name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"Invalid id in '{name}': {value!r}", field=name)


def _coerce_receipt(name: str, value: Any) -> dict:
    if isinstance(value, Mapping):
        if "user" not in value:
            raise InvalidPayload(f"Receipt in '{name}' is missing 'user'", field=name)
        return {"user": _coerce_id(name, value["user"]), "read_at": value.get("read_at")}
    return {"user": _coerce_id(name, value), "read_at": None}
