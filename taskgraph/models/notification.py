# taskgraph/models/notification.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Enum, JSON, Index
from sqlalchemy.sql import func
from taskgraph.database import Base
from taskgraph.models.kinds import EntityKind, NotificationType


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(NotificationType), nullable=False, default=NotificationType.SYSTEM)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    # Optional target entity (polymorphic)
    entity_id = Column(Integer, nullable=True)
    entity_kind = Column(Enum(EntityKind), nullable=True)

    recipients = Column(JSON, nullable=False, default=list)
    read_by = Column(JSON, nullable=False, default=list)  # [{"user": id, "read_at": iso}]

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Notification(id={self.id}, entity={self.entity_kind}:{self.entity_id}, recipients={self.recipients})>"


Index("ix_notifications_entity", Notification.entity_kind, Notification.entity_id)
