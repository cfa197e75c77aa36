# taskgraph/services/notification_guard.py
"""
Notification specific integrity. Read receipts may only come from recipients;
notifications are soft-deleted together with the entity they point at.
"""

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from taskgraph.errors import EntityDeleted, EntityNotFound, InvalidPayload, TenantIntegrityViolation
from taskgraph.models.kinds import EntityKind
from taskgraph.services.array_normalizer import ArrayNormalizer, Patch, identity
from taskgraph.services.entity_store import AnyOf, EntityStore
from taskgraph.services.tenant_validator import NOTIFICATION_TARGETS

logger = logging.getLogger(__name__)


class NotificationGuard:
    def __init__(self, store: EntityStore, normalizer: ArrayNormalizer):
        self.store = store
        self.normalizer = normalizer

    def check(self, values: Mapping[str, Any]) -> None:
        """Shape checks on a candidate notification; tenant checks run in the validator"""
        if not values.get("recipients"):
            raise InvalidPayload("At least one recipient is required",
                                 kind=EntityKind.NOTIFICATION.value, field="recipients")
        recipients = {identity(user) for user in values.get("recipients") or []}
        for receipt in values.get("read_by") or []:
            if identity(receipt) not in recipients:
                raise TenantIntegrityViolation(f"User {receipt.get('user')} is not a recipient",
                                               kind=EntityKind.NOTIFICATION.value, field="read_by")

    def invalidate_targets(self, kind: EntityKind, ids: List[int], tx: Optional[Session] = None) -> List[int]:
        """Soft-delete the live notifications pointing at any of ``ids``; returns their ids"""
        kind = EntityKind(kind)
        if kind not in NOTIFICATION_TARGETS or not ids:
            return []
        filter = {"entity_kind": kind, "entity_id": AnyOf(ids), "is_deleted": False}
        notification_ids = self.store.find_ids(EntityKind.NOTIFICATION, filter, tx=tx)
        if notification_ids:
            self.store.update_many(EntityKind.NOTIFICATION,
                                   {"id": AnyOf(notification_ids), "is_deleted": False},
                                   Patch.assign(is_deleted=True), tx=tx)
            logger.info(f"Invalidated {len(notification_ids)} notification(s) targeting {kind.value} {ids}")
        return notification_ids

    def mark_read(self, notification_id: int, user_id: int, tx: Optional[Session] = None,
                  read_at: Optional[datetime] = None) -> None:
        notification = self.store.find_by_id(EntityKind.NOTIFICATION, notification_id,
                                             projection=["id", "recipients", "is_deleted"], tx=tx)
        if notification is None:
            raise EntityNotFound(f"Notification {notification_id} not found", kind=EntityKind.NOTIFICATION.value)
        if notification["is_deleted"]:
            raise EntityDeleted(f"Notification {notification_id} is deleted", kind=EntityKind.NOTIFICATION.value)
        if identity(user_id) not in {identity(user) for user in notification["recipients"] or []}:
            raise TenantIntegrityViolation(f"User {user_id} is not a recipient of notification {notification_id}",
                                           kind=EntityKind.NOTIFICATION.value, field="read_by")

        receipt = {"user": user_id, "read_at": read_at}
        patch = self.normalizer.normalize_patch(EntityKind.NOTIFICATION, Patch(push={"read_by": [receipt]}))
        self.store.update_many(EntityKind.NOTIFICATION, {"id": notification_id, "is_deleted": False}, patch, tx=tx)
