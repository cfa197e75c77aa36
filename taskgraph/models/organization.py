# taskgraph/models/organization.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taskgraph.database import Base
from taskgraph.models.kinds import IndustrySize, IndustryType


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    address = Column(String(200), nullable=False)
    size = Column(Enum(IndustrySize), nullable=False)
    industry = Column(Enum(IndustryType), nullable=False)
    logo_url = Column(String(500), nullable=True)
    created_by_id = Column(Integer, nullable=True)  # set once the first user exists

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    departments = relationship("Department", back_populates="organization")


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    created_by_id = Column(Integer, nullable=True)  # validated, not a FK (users reference departments)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    organization = relationship("Organization", back_populates="departments")
    users = relationship("User", back_populates="department")


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    contact = Column(String(255), nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# Uniqueness only applies to rows that are not soft-deleted
Index("uq_organizations_name_active", Organization.name, unique=True,
      postgresql_where=Organization.is_deleted.is_(False), sqlite_where=Organization.is_deleted.is_(False))
Index("uq_organizations_email_active", Organization.email, unique=True,
      postgresql_where=Organization.is_deleted.is_(False), sqlite_where=Organization.is_deleted.is_(False))
Index("uq_organizations_phone_active", Organization.phone, unique=True,
      postgresql_where=Organization.is_deleted.is_(False), sqlite_where=Organization.is_deleted.is_(False))
Index("uq_departments_org_name_active", Department.organization_id, Department.name, unique=True,
      postgresql_where=Department.is_deleted.is_(False), sqlite_where=Department.is_deleted.is_(False))
Index("uq_vendors_org_name_active", Vendor.organization_id, Vendor.name, unique=True,
      postgresql_where=Vendor.is_deleted.is_(False), sqlite_where=Vendor.is_deleted.is_(False))
