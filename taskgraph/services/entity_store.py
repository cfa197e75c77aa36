# taskgraph/services/entity_store.py
"""
Transactional persistence primitive used by the validator, the cascade engine
and the command service.

Every operation takes an optional ``tx`` (an open SQLAlchemy session) so the
callers can compose inside one unit of work. Reads issued with a ``tx`` see
the writes made earlier on it: each write flushes before returning.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar

from sqlalchemy import Enum as SAEnum, DateTime, false
from sqlalchemy.orm import Session

from taskgraph.database import SessionLocal
from taskgraph.errors import InvalidPayload
from taskgraph.models.kinds import EntityKind
from taskgraph.models.registry import collection_for
from taskgraph.services.array_normalizer import Patch, apply_patch, identity

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnyOf:
    """Field value is one of ``values``"""

    def __init__(self, values: Iterable[Any]):
        self.values = list(values)


class Not:
    def __init__(self, value: Any):
        self.value = value


class ArrayContains:
    """JSON array field holds at least one of ``values``. Evaluated after the SQL filters."""

    def __init__(self, *values: Any):
        self.values = values

    def matches(self, array) -> bool:
        keys = {identity(value) for value in self.values}
        return any(identity(item) in keys for item in (array or []))


class EntityStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    # Transactions

    def with_transaction(self, fn: Callable[[Session], T]) -> T:
        """Run ``fn`` in a new transaction; commit on success, roll back on any error"""
        session = self.session_factory()
        try:
            result = fn(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _session(self, tx: Optional[Session]):
        if tx is not None:
            yield tx
            return
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    # Reads

    def find_by_id(self, kind: EntityKind, entity_id: int, projection: Optional[Iterable[str]] = None,
                   tx: Optional[Session] = None) -> Optional[Dict[str, Any]]:
        rows = self.find_many(kind, {"id": entity_id}, projection=projection, tx=tx)
        return rows[0] if rows else None

    def find_many(self, kind: EntityKind, filter: Optional[Mapping[str, Any]] = None,
                  projection: Optional[Iterable[str]] = None, tx: Optional[Session] = None) -> List[Dict[str, Any]]:
        model = collection_for(kind).model
        wanted = list(projection) if projection else [c.name for c in model.__table__.columns]
        post_fields = [name for name, cond in (filter or {}).items() if isinstance(cond, ArrayContains)]
        loaded = wanted + [name for name in post_fields if name not in wanted]
        columns = [self._attribute(model, name) for name in loaded]

        with self._session(tx) as session:
            query = self._filtered(session.query(*columns), kind, filter)
            rows = [row._asdict() for row in query.all()]

        rows = [row for row in rows if self._post_match(row, filter)]
        if len(loaded) != len(wanted):
            rows = [{name: row[name] for name in wanted} for row in rows]
        return rows

    def find_ids(self, kind: EntityKind, filter: Optional[Mapping[str, Any]] = None,
                 tx: Optional[Session] = None) -> List[int]:
        return [row["id"] for row in self.find_many(kind, filter, projection=["id"], tx=tx)]

    def count(self, kind: EntityKind, filter: Optional[Mapping[str, Any]] = None,
              tx: Optional[Session] = None) -> int:
        if any(isinstance(cond, ArrayContains) for cond in (filter or {}).values()):
            return len(self.find_ids(kind, filter, tx=tx))
        model = collection_for(kind).model
        with self._session(tx) as session:
            return self._filtered(session.query(model), kind, filter).count()

    # Writes

    def insert(self, kind: EntityKind, values: Mapping[str, Any], tx: Optional[Session] = None) -> int:
        if tx is None:
            return self.with_transaction(lambda session: self.insert(kind, values, tx=session))

        collection = collection_for(kind)
        model = collection.model
        data = {name: self._coerce(model, name, value) for name, value in values.items()}
        if collection.variant is not None:
            data["task_type"] = collection.variant
        entity = model(**data)
        tx.add(entity)
        tx.flush()
        logger.debug(f"Inserted {collection.kind.value} {entity.id}")
        return entity.id

    def update_many(self, kind: EntityKind, filter: Mapping[str, Any], patch: Patch,
                    tx: Optional[Session] = None) -> int:
        """Apply ``patch`` to every row matching ``filter``; returns the number of rows changed"""
        if tx is None:
            return self.with_transaction(lambda session: self.update_many(kind, filter, patch, tx=session))
        if patch.is_empty():
            return 0

        model = collection_for(kind).model
        touched = patch.touched_fields()
        for name in touched:
            self._attribute(model, name)

        post_fields = [name for name, cond in (filter or {}).items() if isinstance(cond, ArrayContains)]
        entities = self._filtered(tx.query(model), kind, filter).all()
        modified = 0
        for entity in entities:
            if not self._post_match({name: getattr(entity, name) for name in post_fields}, filter):
                continue
            current = {name: getattr(entity, name) for name in touched}
            changes = apply_patch(current, patch)
            changed = False
            for name, value in changes.items():
                value = self._coerce(model, name, value)
                if current.get(name) != value:
                    setattr(entity, name, value)
                    changed = True
            if changed:
                modified += 1
        tx.flush()
        return modified

    # Helpers

    def _filtered(self, query, kind: EntityKind, filter: Optional[Mapping[str, Any]]):
        collection = collection_for(kind)
        model = collection.model
        if collection.variant is not None:
            query = query.filter(model.task_type == collection.variant)
        for name, cond in (filter or {}).items():
            attribute = self._attribute(model, name)
            if isinstance(cond, ArrayContains):
                continue
            if isinstance(cond, Not):
                if cond.value is None:
                    query = query.filter(attribute.is_not(None))
                else:
                    query = query.filter(attribute != self._coerce(model, name, cond.value))
                continue
            if isinstance(cond, (AnyOf, list, tuple, set, frozenset)):
                values = cond.values if isinstance(cond, AnyOf) else list(cond)
                if not values:
                    query = query.filter(false())
                else:
                    query = query.filter(attribute.in_([self._coerce(model, name, v) for v in values]))
                continue
            if cond is None:
                query = query.filter(attribute.is_(None))
            else:
                query = query.filter(attribute == self._coerce(model, name, cond))
        return query

    @staticmethod
    def _post_match(row: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
        for name, cond in (filter or {}).items():
            if isinstance(cond, ArrayContains) and not cond.matches(row.get(name)):
                return False
        return True

    @staticmethod
    def _attribute(model, name: str):
        if name not in model.__table__.columns:
            raise InvalidPayload(f"Unknown field '{name}' on {model.__name__}", field=name)
        return getattr(model, name)

    @staticmethod
    def _coerce(model, name: str, value: Any) -> Any:
        if name not in model.__table__.columns:
            raise InvalidPayload(f"Unknown field '{name}' on {model.__name__}", field=name)
        if value is None:
            return None
        column_type = model.__table__.columns[name].type
        if isinstance(column_type, SAEnum) and column_type.enum_class is not None:
            if isinstance(value, column_type.enum_class):
                return value
            try:
                return column_type.enum_class(value)
            except ValueError:
                raise InvalidPayload(f"Invalid value for '{name}': {value!r}", field=name)
        if isinstance(column_type, DateTime) and isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                raise InvalidPayload(f"Invalid datetime for '{name}': {value!r}", field=name)
        return value
