# taskgraph/models/task.py
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Enum, Text, Boolean, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taskgraph.database import Base
from taskgraph.models.kinds import EntityKind, TaskType, TaskStatus, TaskPriority


class Task(Base):
    """All task variants share one table; ``task_type`` is the variant tag"""
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    task_type = Column(Enum(TaskType), nullable=False, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False)
    status = Column(Enum(TaskStatus), default=TaskStatus.TO_DO, nullable=False)
    priority = Column(Enum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Denormalized reference arrays
    attachments = Column(JSON, nullable=False, default=list)
    materials = Column(JSON, nullable=False, default=list)   # Routine
    assignees = Column(JSON, nullable=False, default=list)   # Assigned
    watchers = Column(JSON, nullable=False, default=list)    # Project
    tags = Column(JSON, nullable=False, default=list)        # Project

    # Routine
    date = Column(DateTime(timezone=True), nullable=True)

    # Assigned / Project
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    # Project
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    vendor_name = Column(String(100), nullable=True)
    vendor_contact = Column(String(255), nullable=True)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator = relationship("User", foreign_keys=[created_by_id])


class TaskActivity(Base):
    __tablename__ = "task_activities"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, nullable=False)
    task_kind = Column(Enum(EntityKind), nullable=False)
    description = Column(Text, nullable=False)
    logged_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    attachments = Column(JSON, nullable=False, default=list)
    materials = Column(JSON, nullable=False, default=list)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class TaskComment(Base):
    __tablename__ = "task_comments"

    id = Column(Integer, primary_key=True, index=True)
    parent_id = Column(Integer, nullable=False)
    parent_kind = Column(Enum(EntityKind), nullable=False)
    content = Column(Text, nullable=False)
    mentions = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


Index("ix_task_activities_task", TaskActivity.task_kind, TaskActivity.task_id)
Index("ix_task_comments_parent", TaskComment.parent_kind, TaskComment.parent_id)
