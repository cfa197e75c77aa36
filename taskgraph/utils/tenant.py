# taskgraph/utils/tenant.py
from dataclasses import dataclass
from typing import Optional

from taskgraph.models.kinds import UserRole


@dataclass(frozen=True)
class TenantContext:
    """Who is issuing a command, and inside which tenant"""
    organization_id: int
    department_id: Optional[int] = None
    user_id: Optional[int] = None
    role: UserRole = UserRole.USER

    @property
    def can_cross_departments(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN
