# tests/conftest.py: Shared test fixtures
import os
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["ALGORITHM"] = "HS256"

from taskgraph.database import Base
from taskgraph.models import EntityKind, IndustrySize, IndustryType, UserRole
from taskgraph.services.commands import CommandService
from taskgraph.services.entity_store import EntityStore
from taskgraph.utils.auth import create_access_token
from taskgraph.utils.tenant import TenantContext


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(engine):
    return EntityStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


@pytest.fixture
def service(store):
    return CommandService.build(store)


def _organization(store, name):
    return store.insert(EntityKind.ORGANIZATION, {
        "name": name,
        "email": f"contact@{name.lower()}.test",
        "phone": f"+1-555-{len(name):04d}-{name[:3]}",
        "address": "1 Main Street",
        "size": IndustrySize.SMALL,
        "industry": IndustryType.TECHNOLOGY,
    })


def _department(store, organization_id, name):
    return store.insert(EntityKind.DEPARTMENT, {
        "name": name,
        "description": f"{name} department",
        "organization_id": organization_id,
    })


def _user(store, organization_id, department_id, first_name, role=UserRole.USER):
    return store.insert(EntityKind.USER, {
        "first_name": first_name,
        "last_name": "Tester",
        "position": "Staff",
        "role": role,
        "email": f"{first_name.lower()}@example.test",
        "hashed_password": "not-a-real-hash",
        "organization_id": organization_id,
        "department_id": department_id,
    })


@pytest.fixture
def graph(store):
    """
    Two organizations. Org1 has departments D1 (U1 admin, U2 user) and D1b (U4);
    Org2 has D2 (U3).
    """
    org1 = _organization(store, "Acme")
    org2 = _organization(store, "Globex")
    d1 = _department(store, org1, "Housekeeping")
    d1b = _department(store, org1, "Maintenance")
    d2 = _department(store, org2, "Housekeeping")
    u1 = _user(store, org1, d1, "Alice", role=UserRole.ADMIN)
    u2 = _user(store, org1, d1, "Bob")
    u4 = _user(store, org1, d1b, "Dana")
    u3 = _user(store, org2, d2, "Carol", role=UserRole.ADMIN)

    return SimpleNamespace(
        org1=org1, org2=org2, d1=d1, d1b=d1b, d2=d2, u1=u1, u2=u2, u3=u3, u4=u4,
        admin=TenantContext(organization_id=org1, department_id=d1, user_id=u1, role=UserRole.ADMIN),
        member=TenantContext(organization_id=org1, department_id=d1, user_id=u2, role=UserRole.USER),
        super_admin=TenantContext(organization_id=org1, department_id=d1, user_id=u1, role=UserRole.SUPER_ADMIN),
        outsider=TenantContext(organization_id=org2, department_id=d2, user_id=u3, role=UserRole.ADMIN),
    )


def routine_task(**overrides):
    payload = {
        "title": "Clean lobby",
        "description": "Daily lobby cleaning",
        "date": datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
    }
    payload.update(overrides)
    return payload


def assigned_task(assignees, **overrides):
    payload = {
        "title": "Fix boiler",
        "description": "Boiler in block B is leaking",
        "start_date": datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
        "due_date": datetime(2024, 5, 3, 17, 0, tzinfo=timezone.utc),
        "assignees": assignees,
    }
    payload.update(overrides)
    return payload


def project_task(**overrides):
    payload = {
        "title": "Renovate kitchen",
        "description": "Full kitchen renovation",
        "vendor_name": "BuildCo",
        "vendor_contact": "build@example.test",
    }
    payload.update(overrides)
    return payload


def attachment(parent_id, parent_kind, name="photo.jpg"):
    return {
        "original_name": name,
        "stored_name": f"stored-{name}",
        "mime_type": "image/jpeg",
        "size": 1024,
        "type": "image",
        "url": f"https://files.example.test/{name}",
        "parent_id": parent_id,
        "parent_kind": parent_kind,
    }


def notification(recipients, entity_id=None, entity_kind=None):
    return {
        "title": "Heads up",
        "message": "Something changed",
        "recipients": recipients,
        "entity_id": entity_id,
        "entity_kind": entity_kind,
    }


@pytest.fixture
def payloads():
    """Payload builders shared by the test modules"""
    return SimpleNamespace(
        routine_task=routine_task,
        assigned_task=assigned_task,
        project_task=project_task,
        attachment=attachment,
        notification=notification,
    )


@pytest.fixture
def auth_headers():
    def build(tenant: TenantContext) -> dict:
        token = create_access_token({
            "sub": str(tenant.user_id),
            "org": tenant.organization_id,
            "dept": tenant.department_id,
            "role": tenant.role.value,
        })
        return {"Authorization": f"Bearer {token}"}
    return build
