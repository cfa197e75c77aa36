# taskgraph/routers/auth.py
from fastapi import APIRouter, Depends, status

from taskgraph.schemas import RegisterIn, RegisteredOut
from taskgraph.services.commands import CommandService, get_command_service
from taskgraph.utils.auth import create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisteredOut, status_code=status.HTTP_201_CREATED)
def register_organization(payload: RegisterIn, service: CommandService = Depends(get_command_service)):
    """Create an organization with its first department and SuperAdmin, and sign the SuperAdmin in"""
    ids = service.register_organization(
        payload.organization.model_dump(exclude_unset=True),
        payload.department.model_dump(),
        payload.admin.model_dump(),
    )
    token = create_access_token(data={"sub": str(ids["user_id"])})
    return {**ids, "access_token": token, "token_type": "bearer"}
