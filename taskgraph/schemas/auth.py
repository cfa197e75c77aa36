# taskgraph/schemas/auth.py
from pydantic import BaseModel, Field

from taskgraph.schemas.entities import OrganizationCreate


class DepartmentRegistration(BaseModel):
    model_config = {"extra": "forbid"}

    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=2000)


class AdminRegistration(BaseModel):
    """The first user of the organization; always registered as SuperAdmin"""
    model_config = {"extra": "forbid"}

    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    position: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=3, max_length=255)
    hashed_password: str = Field(..., min_length=1)


class RegisterIn(BaseModel):
    organization: OrganizationCreate
    department: DepartmentRegistration
    admin: AdminRegistration


class RegisteredOut(BaseModel):
    organization_id: int
    department_id: int
    user_id: int
    access_token: str
    token_type: str = "bearer"
