from .entities import (
    OrganizationCreate, DepartmentCreate, UserCreate, VendorCreate, TaskCreate, TaskActivityCreate,
    TaskCommentCreate, AttachmentCreate, MaterialCreate, NotificationCreate, CREATE_SCHEMAS,
)
from .commands import PatchIn, CreatedOut, CascadeOut, DeleteOut, UpdateOut
from .auth import DepartmentRegistration, AdminRegistration, RegisterIn, RegisteredOut
