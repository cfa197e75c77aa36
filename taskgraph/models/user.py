# taskgraph/models/user.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, JSON, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taskgraph.database import Base
from taskgraph.models.kinds import UserRole


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    position = Column(String(50), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    email = Column(String(255), nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    skills = Column(JSON, nullable=False, default=list)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    department = relationship("Department", back_populates="users")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN)

Index("uq_users_org_email_active", User.organization_id, User.email, unique=True,
      postgresql_where=User.is_deleted.is_(False), sqlite_where=User.is_deleted.is_(False))
# A department holds at most one admin-level user
Index("uq_users_department_admin_active", User.department_id, unique=True,
      postgresql_where=text("is_deleted = false AND role IN ('SUPER_ADMIN', 'ADMIN')"),
      sqlite_where=text("is_deleted = 0 AND role IN ('SUPER_ADMIN', 'ADMIN')"))
