# taskgraph/models/attachment.py
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Enum, Boolean, Index
from sqlalchemy.sql import func
from taskgraph.database import Base
from taskgraph.models.kinds import EntityKind, AttachmentType


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True)
    original_name = Column(String(255), nullable=False)
    stored_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)  # bytes
    type = Column(Enum(AttachmentType), nullable=False, default=AttachmentType.OTHER)
    url = Column(String(500), nullable=False)

    parent_id = Column(Integer, nullable=False)
    parent_kind = Column(Enum(EntityKind), nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Material(Base):
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(50), nullable=True)
    cost = Column(Float, nullable=True)

    parent_id = Column(Integer, nullable=False)
    parent_kind = Column(Enum(EntityKind), nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    added_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


Index("ix_attachments_parent", Attachment.parent_kind, Attachment.parent_id)
Index("ix_materials_parent", Material.parent_kind, Material.parent_id)
